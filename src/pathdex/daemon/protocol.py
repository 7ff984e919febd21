"""IPC message models.

Every request is one JSON object with a ``kind`` discriminator. Responses are
plain JSON objects: ``{"entries": [...]}`` for index reads, ``{"ok": true}``
for commands, and ``PathdexError.to_dict()`` for failures.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from pathdex.config.constants import QUERY_LIMIT_MAX
from pathdex.core.errors import IpcError
from pathdex.index.models import IndexEntry
from pathdex.index.query import CaseOption, FileType, Query


def _normalize_path(v: str | None) -> str | None:
    if v is None:
        return None
    if not os.path.isabs(v):
        raise ValueError(f"path must be absolute: {v!r}")
    return os.path.normpath(v)


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class QueryRequest(_Request):
    """Search the index."""

    kind: Literal["query"] = "query"
    filter: str | None = None
    terms: tuple[str, ...] = ()
    case: CaseOption = CaseOption.SMART
    type: FileType = FileType.ALL
    root: str | None = None
    limit: int | None = Field(default=None, ge=0, le=QUERY_LIMIT_MAX)

    @field_validator("root")
    @classmethod
    def validate_root(cls, v: str | None) -> str | None:
        return _normalize_path(v)

    def to_query(self) -> Query:
        return Query.parse(
            self.terms,
            substring=self.filter,
            file_type=None if self.type is FileType.ALL else self.type,
            case=self.case,
            root=self.root,
            limit=self.limit,
        )


class GetIndexRequest(_Request):
    """Dump the index, or the part strictly below path."""

    kind: Literal["get-index"] = "get-index"
    path: str | None = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str | None) -> str | None:
        return _normalize_path(v)


class ReloadConfigRequest(_Request):
    kind: Literal["reload-config"] = "reload-config"


class FullIndexRequest(_Request):
    kind: Literal["full-index"] = "full-index"


class ShutdownRequest(_Request):
    kind: Literal["shutdown"] = "shutdown"


IpcRequest = Annotated[
    QueryRequest | GetIndexRequest | ReloadConfigRequest | FullIndexRequest | ShutdownRequest,
    Field(discriminator="kind"),
]

_request_adapter: TypeAdapter[IpcRequest] = TypeAdapter(IpcRequest)


def _describe(e: ValidationError) -> str:
    first = e.errors()[0]
    loc = ".".join(str(part) for part in first["loc"])
    return f"{loc}: {first['msg']}" if loc else str(first["msg"])


def parse_request(body: bytes | str) -> IpcRequest:
    """Decode and validate one request body.

    Raises:
        IpcError: If the body is not valid JSON or not a known request.
    """
    try:
        return _request_adapter.validate_json(body)
    except ValidationError as e:
        raise IpcError.malformed(_describe(e)) from e


def encode_request(request: IpcRequest) -> dict[str, Any]:
    return request.model_dump(mode="json", exclude_none=True)


def entries_response(entries: Iterable[IndexEntry]) -> dict[str, Any]:
    return {"entries": [entry.to_dict() for entry in entries]}


def ok_response(**extra: Any) -> dict[str, Any]:
    return {"ok": True, **extra}
