import json

import pytest

from mochow_client import models as M
from mochow_client.codec import decode, decode_error, encode
from mochow_client.exceptions import (
    DecodingError, DecodingErrorKind, EncodingError, ServerErrorCode, ServiceError
)


def test_encode_uses_wire_names_and_drops_unset():
    body = M.SelectRowsIn(database="book", table="seg", filter="page > 1", limit=10)
    assert json.loads(encode(body)) == {"database": "book", "table": "seg", "filter": "page > 1", "limit": 10}


def test_encode_rejects_unserializable():
    with pytest.raises(EncodingError):
        encode({"bad": object()})


def test_decode_success():
    out = decode(200, b'{"code":0,"msg":"Success","databases":["a","b"]}', M.ListDatabaseResponse)
    assert out.databases == ["a", "b"]


def test_decode_ignores_unknown_fields():
    out = decode(200, b'{"code":0,"msg":"ok","affectedCount":2,"newField":true}', M.AffectedResponse)
    assert out.affected_count == 2


def test_decode_service_error_keeps_code_and_request_id():
    with pytest.raises(ServiceError) as ei:
        decode(409, b'{"code":51,"msg":"database already exist"}', M.CommonResponse,
               path="/v1/database?create", request_id="req-7")
    err = ei.value
    assert (err.status, err.code, err.message, err.request_id) == (409, 51, "database already exist", "req-7")
    assert err.server_code is ServerErrorCode.DB_ALREADY_EXIST
    assert "req-7" in str(err) and "/v1/database?create" in str(err)


@pytest.mark.parametrize("content", [b"<html>bad gateway</html>", b"", b'{"msg":"no code"}'])
def test_malformed_error_envelope_becomes_generic_service_error(content):
    err = decode_error(502, content, path="/v1/row?search")
    assert isinstance(err, ServiceError)
    assert err.status == 502
    assert err.code == 502
    assert err.server_code is ServerErrorCode.UNKNOWN
    assert err.is_retryable()
    assert not err.is_retryable(frozenset({503}))


def test_unknown_server_code_maps_to_unknown():
    err = decode_error(400, b'{"code":4242,"msg":"new"}')
    assert err.code == 4242
    assert err.server_code is ServerErrorCode.UNKNOWN
    assert not err.is_retryable()
    assert err.is_retryable(frozenset({400}))


def test_decode_invalid_json():
    with pytest.raises(DecodingError) as ei:
        decode(200, b"{not json", M.CommonResponse, path="/v1/database?list")
    assert ei.value.kind is DecodingErrorKind.INVALID_JSON
    assert ei.value.status == 200


def test_decode_schema_mismatch():
    with pytest.raises(DecodingError) as ei:
        decode(200, b'{"code":0,"msg":"ok","databases":"not-a-list"}', M.ListDatabaseResponse)
    assert ei.value.kind is DecodingErrorKind.SCHEMA_MISMATCH
