"""
Data models for the watcher service.

This package defines the canonical event record produced from bus messages
and the job table structures read from YAML.
"""
