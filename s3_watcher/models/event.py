"""
Event models for object-store change notifications.

This module defines the canonical event record that the filter engine
evaluates and that job processes receive on their standard input.
"""

from pydantic import BaseModel, ConfigDict, Field


class CanonicalEventRecord(BaseModel):
    """A single S3 event record, normalized for filtering."""

    model_config = ConfigDict(frozen=True)

    event_name: str = Field(..., description="S3 event name, e.g. s3:ObjectCreated:Put")
    bucket: str = Field(..., description="Name of the bucket the object lives in")
    object_key: str = Field(..., description="Key of the object that changed")
    raw: bytes = Field(..., description="JSON encoding of the original record entry")

    def to_json(self) -> str:
        """
        Serialize the record for delivery to a job process.

        Returns:
            The original S3 record entry as a JSON string
        """
        return self.raw.decode("utf-8")
