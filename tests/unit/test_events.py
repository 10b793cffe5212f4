"""Tests for lifecycle event models."""

import pytest
from pydantic import ValidationError

from request_governor.types import (
    BatchComplete,
    CancelAll,
    MetricsReset,
    RequestError,
    RequestStart,
    parse_event,
)


class TestLifecycleEvents:
    """Tests for the event union."""

    def test_kind_tags(self) -> None:
        assert RequestStart(request_id="r1").kind == "request_start"
        assert MetricsReset().kind == "metrics_reset"

    def test_defaults(self) -> None:
        event = RequestStart(request_id="r1")
        assert event.priority == 0
        assert event.metadata == {}
        assert event.timestamp > 0

    def test_events_are_frozen(self) -> None:
        event = CancelAll(aborted=1, cancelled=2, cleared=0)
        with pytest.raises(ValidationError):
            event.aborted = 5

    def test_parse_event_dispatches_on_kind(self) -> None:
        original = RequestError(
            request_id="r2",
            message="Request timeout after 50ms",
            error_kind="timeout",
            latency_ms=51.2,
        )
        parsed = parse_event(original.model_dump())

        assert isinstance(parsed, RequestError)
        assert parsed == original

    def test_parse_event_from_json_mode(self) -> None:
        data = BatchComplete(
            batch_type="settle_all", total=3, successful=2, failed=1
        ).model_dump(mode="json")

        parsed = parse_event(data)
        assert isinstance(parsed, BatchComplete)
        assert parsed.failed == 1

    def test_parse_event_unknown_kind(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"kind": "request_teleported", "request_id": "r3"})

    def test_missing_required_field(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"kind": "request_success"})
