"""S3 Data Watcher Service.

This service subscribes to object-store change notifications published on a
message bus and runs external job commands for the events that match a
declarative job table.
"""

__version__ = "0.1.0"
