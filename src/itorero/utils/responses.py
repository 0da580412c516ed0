# src/itorero/utils/responses.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Type

from pydantic import BaseModel


def ok(data: Any = None, message: str = "OK", **extra: Any) -> Dict[str, Any]:
    """`{success: true, message, data?}` success envelope."""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def dump(schema: Type[BaseModel], row: Any) -> Dict[str, Any]:
    return schema.model_validate(row).model_dump(mode="json")


def dump_many(schema: Type[BaseModel], rows: Iterable[Any]) -> list:
    return [dump(schema, r) for r in rows]


def page(
    schema: Type[BaseModel],
    rows: Iterable[Any],
    total: int,
    limit: int,
    offset: int,
    message: str = "OK",
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return ok(
        dump_many(schema, rows),
        message,
        pagination={"total": total, "limit": limit, "offset": offset},
        **(extra or {}),
    )
