"""
Unit tests for the EventConverter.

These tests cover parsing of MinIO bucket notification envelopes into
canonical event records, and rejection of malformed messages.
"""

import json
import unittest

from s3_watcher.converter.event_converter import EventConverter
from s3_watcher.core.exceptions import MalformedMessageError


def make_record(event_name="s3:ObjectCreated:Put", bucket="data-prod", key="x/y.txt"):
    return {
        "eventVersion": "2.0",
        "eventSource": "minio:s3",
        "awsRegion": "",
        "eventTime": "2024-05-01T12:00:00.000Z",
        "eventName": event_name,
        "userIdentity": {"principalId": "minioadmin"},
        "s3": {
            "s3SchemaVersion": "1.0",
            "configurationId": "Config",
            "bucket": {"name": bucket, "arn": f"arn:aws:s3:::{bucket}"},
            "object": {"key": key, "size": 42, "eTag": "abc"},
        },
    }


def make_message(records, event_name="s3:ObjectCreated:Put", key="data-prod/x/y.txt"):
    return json.dumps({"EventName": event_name, "Key": key, "Records": records}).encode("utf-8")


class TestEventConverter(unittest.TestCase):
    """Unit tests for the EventConverter class."""

    def setUp(self):
        """Set up the test environment."""
        self.converter = EventConverter()

    def test_convert_single_record(self):
        """A MinIO notification yields one canonical record per entry."""
        entry = make_record()
        records = self.converter.convert(make_message([entry]))

        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record.event_name, "s3:ObjectCreated:Put")
        self.assertEqual(record.bucket, "data-prod")
        self.assertEqual(record.object_key, "x/y.txt")
        self.assertEqual(json.loads(record.to_json()), entry)

    def test_convert_multiple_records_keeps_order(self):
        entries = [
            make_record(key="a.txt"),
            make_record(event_name="s3:ObjectRemoved:Delete", bucket="archive", key="b.txt"),
        ]
        records = self.converter.convert(make_message(entries))

        self.assertEqual([r.object_key for r in records], ["a.txt", "b.txt"])
        self.assertEqual(records[1].event_name, "s3:ObjectRemoved:Delete")
        self.assertEqual(records[1].bucket, "archive")

    def test_field_names_are_case_insensitive(self):
        """Upper-camel record fields are accepted as well as MinIO's lower-camel ones."""
        entry = {
            "EventName": "s3:ObjectCreated:Copy",
            "S3": {"Bucket": {"Name": "data-dev"}, "Object": {"Key": "c.csv"}},
        }
        payload = json.dumps({"eventName": "s3:ObjectCreated:Copy", "key": "data-dev/c.csv", "records": [entry]})

        records = self.converter.convert(payload.encode("utf-8"))

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].event_name, "s3:ObjectCreated:Copy")
        self.assertEqual(records[0].bucket, "data-dev")
        self.assertEqual(records[0].object_key, "c.csv")

    def test_missing_records_yields_nothing(self):
        payload = json.dumps({"EventName": "s3:ObjectCreated:Put", "Key": "data-prod/x"}).encode("utf-8")
        self.assertEqual(self.converter.convert(payload), [])

    def test_missing_nested_fields_become_empty(self):
        records = self.converter.convert(make_message([{"eventName": "s3:ObjectCreated:Put"}]))

        self.assertEqual(records[0].bucket, "")
        self.assertEqual(records[0].object_key, "")

    def test_records_are_immutable(self):
        record = self.converter.convert(make_message([make_record()]))[0]
        with self.assertRaises(Exception):
            record.bucket = "other"

    def test_empty_event_name_is_rejected(self):
        with self.assertRaisesRegex(MalformedMessageError, "empty event name"):
            self.converter.convert(make_message([make_record()], event_name=""))

    def test_missing_event_name_is_rejected(self):
        payload = json.dumps({"Key": "data-prod/x", "Records": [make_record()]}).encode("utf-8")
        with self.assertRaisesRegex(MalformedMessageError, "empty event name"):
            self.converter.convert(payload)

    def test_empty_key_is_rejected(self):
        with self.assertRaisesRegex(MalformedMessageError, "empty key"):
            self.converter.convert(make_message([make_record()], key=""))

    def test_invalid_json_is_rejected(self):
        with self.assertRaises(MalformedMessageError):
            self.converter.convert(b"{not json")

    def test_invalid_utf8_is_rejected(self):
        with self.assertRaises(MalformedMessageError):
            self.converter.convert(b"\xff\xfe\x00")

    def test_non_object_envelope_is_rejected(self):
        with self.assertRaises(MalformedMessageError):
            self.converter.convert(b"[1, 2, 3]")

    def test_records_must_be_a_list(self):
        payload = json.dumps({"EventName": "s3:ObjectCreated:Put", "Key": "k", "Records": {"a": 1}})
        with self.assertRaises(MalformedMessageError):
            self.converter.convert(payload.encode("utf-8"))

    def test_wrongly_typed_record_field_is_rejected(self):
        entry = make_record()
        entry["s3"]["bucket"]["name"] = 12
        with self.assertRaises(MalformedMessageError):
            self.converter.convert(make_message([entry]))


if __name__ == "__main__":
    unittest.main()
