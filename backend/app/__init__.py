"""Price feed relay backend."""
