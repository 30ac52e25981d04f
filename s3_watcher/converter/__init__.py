"""Conversion of raw bus payloads into canonical event records."""
