"""
Unit tests for execution log payload serialization.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from stepflow.core.exceptions import SerializationError
from stepflow.executors.base import AgentStep, StepOutput
from stepflow.serialization.decoder import deserialize
from stepflow.serialization.encoder import serialize
from stepflow.storage.schemas import LogStatus


class TestSerialize:
    """Test encoding of rich payloads."""

    def test_primitives_stay_plain_json(self):
        assert serialize({"response": "done", "tokens": 12}) == '{"response": "done", "tokens": 12}'

    def test_tagged_types_come_back(self):
        """Test the types the decoder rebuilds."""
        payload = {
            "at": datetime(2025, 1, 15, 10, 30, tzinfo=UTC),
            "day": date(2025, 1, 15),
            "took": timedelta(seconds=90),
            "cost": Decimal("0.0042"),
            "status": LogStatus.ERROR,
            "raw": b"\x00\x01",
            "tags": {"mail"},
        }

        assert deserialize(serialize(payload)) == payload

    def test_records_are_flattened(self):
        """Test that objects with to_dict() come back as dicts."""
        output = StepOutput(
            output="done",
            intermediate_steps=[
                AgentStep(
                    action="search",
                    result="3 hits",
                    timestamp=datetime(2025, 1, 15, tzinfo=UTC),
                )
            ],
        )

        restored = deserialize(serialize(output))

        assert restored["response"] == "done"
        assert restored["intermediate_steps"][0]["action"] == "search"

    def test_exceptions_keep_their_message(self):
        restored = deserialize(serialize({"error": ValueError("bad input")}))

        assert isinstance(restored["error"], Exception)
        assert str(restored["error"]) == "bad input"

    def test_unencodable_object(self):
        """Test that objects even cloudpickle can't handle raise SerializationError."""
        import threading

        with pytest.raises(SerializationError):
            serialize({"lock": threading.Lock()})

    def test_invalid_json(self):
        with pytest.raises(SerializationError):
            deserialize("{not json")
