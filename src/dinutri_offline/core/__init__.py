"""Core infrastructure: logging and the exception hierarchy."""
