"""
Event converter for MinIO bucket notifications.

This module parses the JSON envelope that MinIO publishes for bucket
events and turns each S3 record inside it into a CanonicalEventRecord.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from s3_watcher.core.exceptions import MalformedMessageError
from s3_watcher.models.event import CanonicalEventRecord
from s3_watcher.utils.logging import get_component_logger


def _lookup(mapping: Mapping[str, Any], name: str) -> Any:
    """
    Look up a JSON field, preferring an exact key and falling back to a
    case-insensitive match (MinIO mixes ``EventName`` and ``eventName``).
    """
    if name in mapping:
        return mapping[name]
    folded = name.casefold()
    for key, value in mapping.items():
        if key.casefold() == folded:
            return value
    return None


def _string_field(mapping: Mapping[str, Any], name: str, where: str) -> str:
    value = _lookup(mapping, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedMessageError(f"{where}.{name} must be a string")
    return value


def _object_field(mapping: Mapping[str, Any], name: str, where: str) -> Dict[str, Any]:
    value = _lookup(mapping, name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedMessageError(f"{where}.{name} must be an object")
    return value


class EventConverter:
    """Converter from raw bus payloads to canonical event records."""

    def __init__(self, logger: Optional[Any] = None) -> None:
        """
        Initialize the event converter.

        Args:
            logger: Logger to use (defaults to one tagged ``EventConverter``)
        """
        self._logger = logger or get_component_logger("EventConverter")

    def convert(self, payload: bytes) -> List[CanonicalEventRecord]:
        """
        Parse a bus message into canonical event records.

        Args:
            payload: Raw message body

        Returns:
            One record per entry of the envelope's ``Records`` list

        Raises:
            MalformedMessageError: If the payload is not a valid notification
        """
        self._logger.debug("Converting message", operation="convert", size=len(payload))

        try:
            envelope = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedMessageError(f"message is not valid JSON: {e}") from e

        if not isinstance(envelope, dict):
            raise MalformedMessageError("message must be a JSON object")

        if not _string_field(envelope, "EventName", "message"):
            raise MalformedMessageError("empty event name")

        if not _string_field(envelope, "Key", "message"):
            raise MalformedMessageError("empty key")

        entries = _lookup(envelope, "Records")
        if entries is None:
            return []
        if not isinstance(entries, list):
            raise MalformedMessageError("message.Records must be a list")

        return [self._convert_record(entry, index) for index, entry in enumerate(entries)]

    def _convert_record(self, entry: Any, index: int) -> CanonicalEventRecord:
        where = f"Records[{index}]"
        if not isinstance(entry, dict):
            raise MalformedMessageError(f"{where} must be an object")

        s3 = _object_field(entry, "S3", where)
        bucket = _object_field(s3, "Bucket", f"{where}.s3")
        obj = _object_field(s3, "Object", f"{where}.s3")

        return CanonicalEventRecord(
            event_name=_string_field(entry, "EventName", where),
            bucket=_string_field(bucket, "Name", f"{where}.s3.bucket"),
            object_key=_string_field(obj, "Key", f"{where}.s3.object"),
            raw=json.dumps(entry, ensure_ascii=False).encode("utf-8"),
        )
