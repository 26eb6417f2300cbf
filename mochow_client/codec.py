# mochow_client/codec.py
"""JSON wire codec.

Bodies are encoded by alias with unset optional fields dropped. Responses
are decoded into pydantic models; non-2xx answers become ServiceError.
"""
from __future__ import annotations
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from .exceptions import DecodingError, DecodingErrorKind, EncodingError, ServiceError
from .models import M, ErrorEnvelope


def encode(body: Any) -> bytes:
    try:
        if isinstance(body, BaseModel):
            return body.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
        return to_json(body, by_alias=True)
    except PydanticSerializationError as exc:
        raise EncodingError(f"request body is not JSON serializable: {exc}") from exc


def is_success(status: int) -> bool:
    return 200 <= status < 300


def decode(
    status: int,
    content: bytes,
    response_type: type[M],
    *,
    path: str = "",
    request_id: str = "",
    attempts: int = 1,
) -> M:
    if not is_success(status):
        raise decode_error(status, content, path=path, request_id=request_id, attempts=attempts)
    try:
        return response_type.model_validate_json(content or b"{}")
    except ValidationError as exc:
        kind = (
            DecodingErrorKind.INVALID_JSON
            if any(e["type"] == "json_invalid" for e in exc.errors())
            else DecodingErrorKind.SCHEMA_MISMATCH
        )
        raise DecodingError(
            kind,
            f"expected {response_type.__name__}: {exc.error_count()} error(s), first: {exc.errors()[0]['msg']}",
            path=path,
            status=status,
            attempts=attempts,
        ) from exc


def decode_error(
    status: int,
    content: bytes,
    *,
    path: str = "",
    request_id: str = "",
    attempts: int = 1,
) -> ServiceError:
    """Map a failed response onto ServiceError; never raises."""
    try:
        env = ErrorEnvelope.model_validate_json(content or b"")
    except ValidationError:
        raw = (content or b"").decode("utf-8", errors="replace")
        return ServiceError(status, status, raw, request_id=request_id, path=path, attempts=attempts)
    return ServiceError(status, env.code, env.message, request_id=request_id, path=path, attempts=attempts)
