"""Exceptions raised inside the relay.

None of these reach an HTTP caller: each is logged where it is caught and
contained to the connection attempt, message or broadcast tick that raised it.
"""


class RelayError(Exception):
    """Base class for relay failures."""


class FeedConnectionError(RelayError):
    """The upstream session could not be opened or was lost."""


class SubscriptionError(FeedConnectionError):
    """Registering for push updates failed."""


class UpdateProcessingError(RelayError):
    """A single push message could not be turned into a cached record."""


class PublishError(RelayError):
    """A broadcast publish call failed."""
