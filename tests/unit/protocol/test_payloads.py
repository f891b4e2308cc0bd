"""Unit tests for command payload validation."""

from __future__ import annotations

import pytest

from webview_comm.protocol.message_types import Command
from webview_comm.protocol.payloads import PAYLOAD_MODELS, MoveData, validate_payload


class TestValidPayloads:
    """Payloads that must be accepted."""

    @pytest.mark.parametrize(
        ("command", "payload"),
        [
            (Command.UPDATE_CELL, {"row": 2, "col": 1, "value": "hi"}),
            (Command.UPDATE_CELL, {"row": 0, "col": 0, "value": "", "tableIndex": 1}),
            (Command.BULK_UPDATE_CELLS, {"updates": [{"row": 0, "col": 0, "value": "a"}]}),
            (Command.UPDATE_HEADER, {"col": 3, "value": "Name"}),
            (Command.ADD_ROW, None),
            (Command.ADD_ROW, {"index": 4}),
            (Command.ADD_COLUMN, None),
            (Command.DELETE_ROWS, {"indices": [0, 5]}),
            (Command.DELETE_COLUMNS, {"indices": []}),
            (Command.SORT, {"column": 1, "direction": "desc"}),
            (Command.MOVE_ROW, {"fromIndex": 0, "toIndex": 2}),
            (Command.EXPORT_CSV, {"csvContent": "a,b\n1,2", "filename": "out.csv"}),
            (Command.SWITCH_TABLE, {"index": 0}),
        ],
    )
    def test_accepted(self, command, payload):
        """Test that well-formed payloads pass."""
        assert validate_payload(command, payload) is None

    def test_commands_without_model_accept_anything(self):
        """Test that undo/redo and unknown commands are not validated."""
        assert Command.UNDO not in PAYLOAD_MODELS
        assert validate_payload(Command.UNDO, "whatever") is None
        assert validate_payload("frobnicate", {"x": object()}) is None

    def test_extra_keys_are_allowed(self):
        """Test that unknown keys do not fail validation."""
        assert validate_payload(Command.SWITCH_TABLE, {"index": 1, "reason": "click"}) is None

    def test_move_data_accepts_snake_case(self):
        """Test that populate_by_name allows the Python field names."""
        data = MoveData.model_validate({"from_index": 1, "to_index": 0})
        assert data.from_index == 1


class TestInvalidPayloads:
    """Payloads that must be rejected with a description."""

    @pytest.mark.parametrize(
        ("command", "payload", "fragment"),
        [
            (Command.UPDATE_CELL, {"row": -1, "col": 0, "value": "x"}, "row"),
            (Command.UPDATE_CELL, {"row": 0, "col": 0}, "value"),
            (Command.UPDATE_CELL, None, "payload"),
            (Command.DELETE_ROWS, {"indices": [1, -2]}, "indices"),
            (Command.SORT, {"column": 0, "direction": "sideways"}, "direction"),
            (Command.MOVE_COLUMN, {"fromIndex": 0}, "toIndex"),
            (Command.EXPORT_CSV, {"csvContent": "   "}, "csvContent"),
            (Command.EXPORT_CSV, {"csvContent": "a", "filename": " "}, "filename"),
            (Command.SWITCH_TABLE, {"index": -1}, "index"),
        ],
    )
    def test_rejected(self, command, payload, fragment):
        """Test that invalid payloads return an error naming the field."""
        error = validate_payload(command, payload)

        assert error is not None
        assert error.startswith(f"Invalid payload for '{command}'")
        assert fragment in error
