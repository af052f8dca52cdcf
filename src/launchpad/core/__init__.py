"""Core infrastructure: configuration, paths and exceptions."""
