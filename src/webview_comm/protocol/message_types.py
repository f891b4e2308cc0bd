"""Message kinds, command set, error codes and the Message dataclass.

Wire shape (one JSON object per message):

    {
      "id": str,                 # unique per sender
      "kind": "REQUEST" | "RESPONSE" | "NOTIFICATION" | "ACK" | "PING" | "PONG",
      "command": str,            # REQUEST / NOTIFICATION only
      "correlationId": str,      # RESPONSE / ACK only, id of the answered message
      "timestamp": int,          # sender clock, milliseconds, non-decreasing
      "payload": any             # command-defined
    }

Kind overview:
- REQUEST -> ACK (immediately) -> RESPONSE (after the handler completes)
- NOTIFICATION: fire-and-forget, no ACK and no RESPONSE
- PING -> PONG: heartbeat, PONG echoes the PING timestamp
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

# Wire field names
FIELD_ID = "id"
FIELD_KIND = "kind"
FIELD_COMMAND = "command"
FIELD_CORRELATION_ID = "correlationId"
FIELD_TIMESTAMP = "timestamp"
FIELD_PAYLOAD = "payload"


class MessageKind(StrEnum):
    """Discriminant of every wire message."""

    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"
    NOTIFICATION = "NOTIFICATION"
    ACK = "ACK"
    PING = "PING"
    PONG = "PONG"


# Kinds that answer an earlier message and therefore carry a correlation id
CORRELATED_KINDS = frozenset({MessageKind.RESPONSE, MessageKind.ACK})
# Kinds that are routed by command
COMMAND_KINDS = frozenset({MessageKind.REQUEST, MessageKind.NOTIFICATION})


class Command(StrEnum):
    """Known commands exchanged between the host and the webview.

    Unknown command strings still decode; the dispatcher reports them as
    unsupported instead of dropping them.
    """

    # Host -> webview
    UPDATE_TABLE_DATA = "updateTableData"
    SET_ACTIVE_TABLE = "setActiveTable"
    APPLY_THEME_VARIABLES = "applyThemeVariables"
    APPLY_FONT_SETTINGS = "applyFontSettings"
    CELL_UPDATE_ERROR = "cellUpdateError"
    HEADER_UPDATE_ERROR = "headerUpdateError"
    OPERATION_SUCCESS = "operationSuccess"
    OPERATION_ERROR = "operationError"
    SYNC_STATE = "syncState"

    # Webview -> host
    REQUEST_TABLE_DATA = "requestTableData"
    UPDATE_CELL = "updateCell"
    BULK_UPDATE_CELLS = "bulkUpdateCells"
    UPDATE_HEADER = "updateHeader"
    ADD_ROW = "addRow"
    DELETE_ROWS = "deleteRows"
    ADD_COLUMN = "addColumn"
    DELETE_COLUMNS = "deleteColumns"
    SORT = "sort"
    MOVE_ROW = "moveRow"
    MOVE_COLUMN = "moveColumn"
    EXPORT_CSV = "exportCSV"
    SWITCH_TABLE = "switchTable"
    REQUEST_THEME_VARIABLES = "requestThemeVariables"
    UNDO = "undo"
    REDO = "redo"
    REQUEST_SYNC = "requestSync"
    STATE_UPDATE = "stateUpdate"


class ErrorCode(StrEnum):
    """Failure codes carried in a failed RESPONSE payload."""

    TIMEOUT = "TIMEOUT"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    HANDLER_NOT_FOUND = "HANDLER_NOT_FOUND"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Message:
    """One decoded wire message.

    Attributes:
        id: Sender-generated unique id (retransmissions reuse it)
        kind: Message discriminant
        timestamp: Sender clock reading in milliseconds
        command: Command name (REQUEST / NOTIFICATION)
        payload: Command-defined payload
        correlation_id: Id of the answered message (RESPONSE / ACK)

    """

    id: str
    kind: MessageKind
    timestamp: int
    command: str | None = None
    payload: Any = None
    correlation_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible wire representation (optional fields omitted when unset)."""
        wire: dict[str, Any] = {
            FIELD_ID: self.id,
            FIELD_KIND: self.kind.value,
            FIELD_TIMESTAMP: self.timestamp,
        }
        if self.command is not None:
            wire[FIELD_COMMAND] = self.command
        if self.correlation_id is not None:
            wire[FIELD_CORRELATION_ID] = self.correlation_id
        if self.payload is not None:
            wire[FIELD_PAYLOAD] = self.payload
        return wire


@dataclass(frozen=True)
class ResponseResult:
    """Outcome carried in the payload of a RESPONSE.

    Attributes:
        success: Whether the handler completed successfully
        data: Handler result on success
        error: Failure description on failure
        code: ErrorCode value on failure

    """

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ResponseResult:
        """Build a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, code: ErrorCode, error: str) -> ResponseResult:
        """Build a failed result."""
        return cls(success=False, error=error, code=code.value)

    @classmethod
    def from_payload(cls, payload: Any) -> ResponseResult:
        """Read a RESPONSE payload; anything unrecognizable counts as an UNKNOWN failure."""
        if not isinstance(payload, dict) or not isinstance(payload.get("success"), bool):
            return cls(success=False, error="Response payload missing 'success'", code=ErrorCode.UNKNOWN.value)
        if payload["success"]:
            return cls(success=True, data=payload.get("data"))
        return cls(
            success=False,
            error=str(payload.get("error") or "Request failed"),
            code=str(payload.get("code") or ErrorCode.UNKNOWN.value),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the RESPONSE payload for this result."""
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "code": self.code}
