"""
Unit Tests for provider response normalization

Tests:
- Shape detection for every supported envelope
- Identical output for the same messages in different envelopes
- Loud failure on unknown shapes
- Timestamp parsing and code extraction

Run with: pytest tests/test_normalizer.py -v
"""

import pytest
from datetime import datetime, timezone

from sms_rental.errors import ResponseShapeError
from sms_rental.normalizer import (
    ResponseShape,
    as_float,
    decode_messages,
    decode_values_map,
    detect_shape,
    extract_code,
    is_empty_envelope,
    normalize_message,
    parse_timestamp,
)


ENTRY = {"messageSender": "1234", "messageText": "code 555", "messageDate": "2024-01-01T00:00:00Z"}


class TestShapeDetection:
    """Test payload classification."""

    def test_bare_array(self):
        assert detect_shape([ENTRY]) == ResponseShape.BARE_ARRAY

    def test_data_array(self):
        assert detect_shape({"data": [ENTRY]}) == ResponseShape.DATA_ARRAY

    def test_messages_array(self):
        assert detect_shape({"messages": [ENTRY]}) == ResponseShape.MESSAGES_ARRAY

    def test_values_object(self):
        assert detect_shape({"values": {"1": ENTRY}}) == ResponseShape.VALUES_OBJECT

    def test_sms_list(self):
        payload = {"data": {"SmsList": [ENTRY], "OtherSms": []}}
        assert detect_shape(payload) == ResponseShape.SMS_LIST

    def test_unknown_object_raises(self):
        """An object with none of the known keys fails loudly."""
        with pytest.raises(ResponseShapeError) as exc:
            detect_shape({"status": "ok"}, provider="anosim")
        assert exc.value.code == "INVALID_RESPONSE"
        assert exc.value.provider == "anosim"

    def test_string_payload_raises(self):
        with pytest.raises(ResponseShapeError):
            detect_shape("STATUS_WAIT_CODE")


class TestDecodeMessages:
    """Test message decoding across envelopes."""

    @pytest.mark.parametrize("payload", [
        [ENTRY],
        {"data": [ENTRY]},
        {"messages": [ENTRY]},
        {"values": {"0": ENTRY}},
    ])
    def test_same_output_for_every_envelope(self, payload):
        """The same message yields the same normalized record in every shape."""
        messages = decode_messages(payload)

        assert len(messages) == 1
        assert messages[0].sender == "1234"
        assert messages[0].message == "code 555"
        assert messages[0].received_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_alternate_field_names(self):
        """phoneFrom/text/date are recognised."""
        messages = decode_messages({"values": {"7": {"phoneFrom": "Google", "text": "G-482913", "date": "2024-03-05 10:00:00"}}})

        assert messages[0].sender == "Google"
        assert messages[0].message == "G-482913"
        assert messages[0].code == "482913"

    def test_missing_sender_uses_default(self):
        messages = decode_messages([{"text": "hello 1234"}], default_sender="SMSPVA")
        assert messages[0].sender == "SMSPVA"

    def test_empty_bodies_are_dropped(self):
        messages = decode_messages([{"text": ""}, {"text": "kept"}])
        assert [m.message for m in messages] == ["kept"]

    def test_entry_without_text_field_is_skipped(self):
        messages = decode_messages([{"sender": "x"}, {"sender": "y", "text": "code 4411"}])
        assert [(m.sender, m.message) for m in messages] == [("y", "code 4411")]

    def test_normalize_message_requires_text(self):
        with pytest.raises(ResponseShapeError):
            normalize_message({"sender": "x"})

    def test_non_object_entry_raises(self):
        with pytest.raises(ResponseShapeError):
            decode_messages(["just a string"])

    def test_empty_list(self):
        assert decode_messages({"messages": []}) == []


class TestValuesMap:
    """Test values-object listings keyed by id."""

    def test_dict_values(self):
        pairs = decode_values_map({"values": {"11": {"phone": "123"}, "12": {"phone": "456"}}})
        assert [k for k, _ in pairs] == ["11", "12"]

    def test_list_values_use_positions(self):
        pairs = decode_values_map({"values": ["a", "b"]})
        assert pairs == [("0", "a"), ("1", "b")]

    def test_other_shape_raises(self):
        with pytest.raises(ResponseShapeError):
            decode_values_map([{"phone": "123"}])


class TestTimestamps:
    """Test provider timestamp parsing."""

    def test_iso_with_z(self):
        assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2024-01-01T12:30:00").tzinfo is not None

    def test_unix_seconds(self):
        assert parse_timestamp(1704067200) == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_unix_milliseconds_string(self):
        assert parse_timestamp("1704067200000") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_plain_format(self):
        assert parse_timestamp("2024-01-01 08:00:00") == datetime(2024, 1, 1, 8, tzinfo=timezone.utc)

    def test_garbage_falls_back_to_now(self):
        before = datetime.now(timezone.utc)
        assert parse_timestamp("not a date") >= before

    def test_none_is_now(self):
        assert parse_timestamp(None).tzinfo is not None


class TestCodeExtraction:

    def test_extracts_digits(self):
        assert extract_code("Your code is 48213") == "48213"

    def test_short_numbers_ignored(self):
        assert extract_code("Only 12 left") is None

    def test_empty(self):
        assert extract_code(None) is None
        assert extract_code("") is None


class TestAsFloat:

    def test_values(self):
        assert as_float("1.5") == 1.5
        assert as_float(None) is None
        assert as_float("") is None
        assert as_float("abc") is None


class TestEmptyEnvelope:
    """Test recognition of envelopes that carry no messages."""

    @pytest.mark.parametrize("payload", [
        [],
        {"messages": []},
        {"status": 1, "data": None},
        {"status": "success", "values": {}},
    ])
    def test_empty(self, payload):
        assert is_empty_envelope(payload)

    @pytest.mark.parametrize("payload", [
        [ENTRY],
        {"data": [ENTRY]},
        {"values": {"0": ENTRY}},
        {"status": "success"},
        "STATUS_WAIT_CODE",
    ])
    def test_not_empty(self, payload):
        assert not is_empty_envelope(payload)
