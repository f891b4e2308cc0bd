"""Payload models for commands whose payload shape is fixed.

Validation is lenient in the same direction as the UI: extra keys are allowed,
and commands without a model (undo, redo, requestTableData, ...) accept any
payload.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from webview_comm.protocol.message_types import Command

__all__ = [
    "AddColumnData",
    "AddRowData",
    "BulkUpdateCellsData",
    "CellUpdate",
    "DeleteIndicesData",
    "ExportCSVData",
    "MoveData",
    "PAYLOAD_MODELS",
    "SortData",
    "SwitchTableData",
    "UpdateCellData",
    "UpdateHeaderData",
    "validate_payload",
]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class UpdateCellData(_Payload):
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    value: str
    table_index: int | None = Field(default=None, alias="tableIndex")


class CellUpdate(_Payload):
    row: int
    col: int
    value: str


class BulkUpdateCellsData(_Payload):
    updates: list[CellUpdate]
    table_index: int | None = Field(default=None, alias="tableIndex")


class UpdateHeaderData(_Payload):
    col: int = Field(ge=0)
    value: str
    table_index: int | None = Field(default=None, alias="tableIndex")


class AddRowData(_Payload):
    index: int | None = None
    count: int | None = Field(default=None, ge=1)
    table_index: int | None = Field(default=None, alias="tableIndex")


class AddColumnData(_Payload):
    index: int | None = None
    header: str | None = None
    table_index: int | None = Field(default=None, alias="tableIndex")


class DeleteIndicesData(_Payload):
    indices: list[int]
    table_index: int | None = Field(default=None, alias="tableIndex")

    @field_validator("indices")
    @classmethod
    def _non_negative(cls, value: list[int]) -> list[int]:
        if any(i < 0 for i in value):
            msg = "indices must be non-negative"
            raise ValueError(msg)
        return value


class SortData(_Payload):
    column: int
    direction: Literal["asc", "desc", "none"]
    table_index: int | None = Field(default=None, alias="tableIndex")


class MoveData(_Payload):
    from_index: int = Field(ge=0, alias="fromIndex")
    to_index: int = Field(ge=0, alias="toIndex")
    table_index: int | None = Field(default=None, alias="tableIndex")


class ExportCSVData(_Payload):
    csv_content: str = Field(alias="csvContent")
    filename: str | None = None
    encoding: str | None = None
    table_index: int | None = Field(default=None, alias="tableIndex")

    @field_validator("csv_content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "csvContent must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("filename")
    @classmethod
    def _filename_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            msg = "filename must not be empty when given"
            raise ValueError(msg)
        return value


class SwitchTableData(_Payload):
    index: int = Field(ge=0)


PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    Command.UPDATE_CELL: UpdateCellData,
    Command.BULK_UPDATE_CELLS: BulkUpdateCellsData,
    Command.UPDATE_HEADER: UpdateHeaderData,
    Command.ADD_ROW: AddRowData,
    Command.ADD_COLUMN: AddColumnData,
    Command.DELETE_ROWS: DeleteIndicesData,
    Command.DELETE_COLUMNS: DeleteIndicesData,
    Command.SORT: SortData,
    Command.MOVE_ROW: MoveData,
    Command.MOVE_COLUMN: MoveData,
    Command.EXPORT_CSV: ExportCSVData,
    Command.SWITCH_TABLE: SwitchTableData,
}

# Commands whose payload may be omitted entirely
_OPTIONAL_PAYLOAD = frozenset({Command.ADD_ROW, Command.ADD_COLUMN})


def validate_payload(command: str, payload: Any) -> str | None:
    """Check ``payload`` against the model registered for ``command``.

    Returns:
        None if the payload is acceptable, otherwise a short error description

    """
    model = PAYLOAD_MODELS.get(command)
    if model is None:
        return None
    if payload is None and command in _OPTIONAL_PAYLOAD:
        return None
    try:
        model.model_validate(payload)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        return f"Invalid payload for '{command}': {location}: {first.get('msg', 'invalid')}"
    return None
