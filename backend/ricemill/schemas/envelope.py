"""The response envelope every endpoint returns, and the base for request bodies."""
from __future__ import annotations

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request body: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class BulkIds(ApiModel):
    ids: list[int]


def camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


def page_meta(total: int, page: int, page_size: int) -> dict[str, int]:
    return {"total": total, "page": page, "pageSize": page_size}


def ok(data: Any = None, message: Optional[str] = None, meta: Optional[dict[str, int]] = None) -> dict[str, Any]:
    """Success envelope; models and rows are encoded and their keys camelCased."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = camelize(jsonable_encoder(data))
    if message:
        body["message"] = message
    if meta is not None:
        body["meta"] = meta
    return body
