"""Tests for the Responses API stream decoder."""

import pytest

from dialogue_foundry.ai.stream_decoder import EMPTY, decode_event, parse_event


class TestDecodeEvent:
    """Test suite for decode_event."""

    @pytest.mark.parametrize("delta", ["Hi", " there", "", "émoji 🎉", "\n\n"])
    def test_text_delta_emits_delta(self, delta):
        decoded = decode_event({"type": "response.output_text.delta", "delta": delta})

        assert decoded.text == delta
        assert not decoded.completed
        assert not decoded.failed

    @pytest.mark.parametrize(
        "event",
        [
            {"type": "response.created", "response": {"id": "resp_1"}},
            {"type": "response.in_progress", "response": {"id": "resp_1"}},
            {"type": "response.output_text.done", "text": "Hi there"},
            {"type": "response.output_item.added", "item": {"type": "message"}},
            {"type": "response.content_part.added", "part": {"type": "output_text"}},
            {"type": "response.content_part.done", "part": {"type": "output_text"}},
            {"type": "response.output_item.done", "item": {"type": "message"}},
            {"type": "response.reasoning_summary_text.delta", "delta": "thinking"},
            {"type": "something.new", "payload": 1},
            {"no_type": True},
        ],
    )
    def test_other_events_emit_nothing(self, event):
        assert decode_event(event) == EMPTY

    def test_malformed_delta_emits_nothing(self):
        assert decode_event({"type": "response.output_text.delta"}) == EMPTY

    def test_completed(self):
        decoded = decode_event({"type": "response.completed", "response": {"id": "r"}})

        assert decoded.completed
        assert decoded.text == ""

    def test_failed_carries_message(self):
        decoded = decode_event(
            {
                "type": "response.failed",
                "response": {"error": {"message": "rate limited", "code": "rate_limit_exceeded"}},
            }
        )

        assert decoded.failed
        assert decoded.error_message == "rate limited"
        assert decoded.error_code == "rate_limit_exceeded"

    def test_failed_without_error_details(self):
        decoded = decode_event({"type": "response.failed", "response": {}})

        assert decoded.failed
        assert decoded.error_message == "Response failed"

    def test_stream_error(self):
        decoded = decode_event({"type": "error", "message": "server overloaded"})

        assert decoded.failed
        assert decoded.error_message == "server overloaded"

    def test_decoding_is_pure(self):
        event = {"type": "response.output_text.delta", "delta": "Hi"}

        assert decode_event(event) == decode_event(event)
        assert event == {"type": "response.output_text.delta", "delta": "Hi"}


class TestParseEvent:
    def test_extra_fields_allowed(self):
        parsed = parse_event(
            {
                "type": "response.output_text.delta",
                "delta": "x",
                "sequence_number": 4,
                "logprobs": [],
            }
        )

        assert parsed is not None
        assert parsed.delta == "x"

    def test_unknown_type_returns_none(self):
        assert parse_event({"type": "response.audio.delta", "delta": "AAA"}) is None
