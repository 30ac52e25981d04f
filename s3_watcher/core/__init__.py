"""Core configuration and error types for the watcher service."""
