"""Configuration, errors, auth primitives and logging setup."""
