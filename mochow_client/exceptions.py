# mochow_client/exceptions.py
from __future__ import annotations
from enum import Enum, IntEnum

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})


class ServerErrorCode(IntEnum):
    UNKNOWN = -1
    INTERNAL_ERROR = 1
    INVALID_PARAMETER = 2
    INVALID_HTTP_URL = 10
    INVALID_HTTP_HEADER = 11
    INVALID_HTTP_BODY = 12
    MISS_SSL_CERTIFICATES = 13

    USER_NOT_EXIST = 20
    USER_ALREADY_EXIST = 21
    ROLE_NOT_EXIST = 22
    ROLE_ALREADY_EXIST = 23
    AUTHENTICATION_FAILED = 24
    PERMISSION_DENIED = 25

    DB_NOT_EXIST = 50
    DB_ALREADY_EXIST = 51
    DB_TOO_MANY_TABLES = 52
    DB_NOT_EMPTY = 53

    INVALID_TABLE_SCHEMA = 60
    INVALID_PARTITION_PARAMETERS = 61
    TABLE_TOO_MANY_FIELDS = 62
    TABLE_TOO_MANY_FAMILIES = 63
    TABLE_TOO_MANY_PRIMARY_KEYS = 64
    TABLE_TOO_MANY_PARTITION_KEYS = 65
    TABLE_TOO_MANY_VECTOR_FIELDS = 66
    TABLE_TOO_MANY_INDEXES = 67
    DYNAMIC_SCHEMA_ERROR = 68
    TABLE_NOT_EXIST = 69
    TABLE_ALREADY_EXIST = 70
    INVALID_TABLE_STATE = 71
    TABLE_NOT_READY = 72
    ALIAS_NOT_EXIST = 73
    ALIAS_ALREADY_EXIST = 74

    FIELD_NOT_EXIST = 80
    FIELD_ALREADY_EXIST = 81
    VECTOR_FIELD_NOT_EXIST = 82

    INVALID_INDEX_SCHEMA = 90
    INDEX_NOT_EXIST = 91
    INDEX_ALREADY_EXIST = 92
    INDEX_DUPLICATED = 93
    INVALID_INDEX_STATE = 94

    PRIMARY_KEY_DUPLICATED = 100
    ROW_KEY_NOT_FOUND = 101

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class MochowError(Exception):
    """Base class for every error raised by the client."""


class ConfigErrorKind(str, Enum):
    MISSING_FIELD = "missing_field"
    INVALID_ENDPOINT = "invalid_endpoint"
    INVALID_OPTION = "invalid_option"


class ConfigError(MochowError):
    def __init__(self, kind: ConfigErrorKind, field: str, detail: str):
        super().__init__(f"{field}: {detail}")
        self.kind = kind
        self.field = field
        self.detail = detail


class InvalidRequestError(MochowError, ValueError):
    """Request arguments rejected locally, before anything is sent."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class TransportErrorKind(str, Enum):
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    RETRIES_EXHAUSTED = "retries_exhausted"


class TransportError(MochowError):
    def __init__(
        self,
        kind: TransportErrorKind,
        detail: str,
        *,
        path: str = "",
        attempts: int = 1,
        last_error: Exception | None = None,
    ):
        super().__init__(f"{kind.value} on {path or '<unknown>'} after {attempts} attempt(s): {detail}")
        self.kind = kind
        self.detail = detail
        self.path = path
        self.attempts = attempts
        self.last_error = last_error


class EncodingError(MochowError):
    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class DecodingErrorKind(str, Enum):
    INVALID_JSON = "invalid_json"
    SCHEMA_MISMATCH = "schema_mismatch"


class DecodingError(MochowError):
    def __init__(
        self,
        kind: DecodingErrorKind,
        detail: str,
        *,
        path: str = "",
        status: int = 0,
        attempts: int = 1,
    ):
        super().__init__(
            f"{kind.value} decoding {path or 'response'} (HTTP {status}) after {attempts} attempt(s): {detail}"
        )
        self.kind = kind
        self.detail = detail
        self.path = path
        self.status = status
        self.attempts = attempts


class ServiceError(MochowError):
    """The service understood the request and rejected it."""

    def __init__(
        self,
        status: int,
        code: int,
        message: str,
        *,
        request_id: str = "",
        path: str = "",
        attempts: int = 1,
    ):
        super().__init__(
            f"HTTP {status} on {path or '<unknown>'} after {attempts} attempt(s): code={code} msg={message!r}"
            + (f" request_id={request_id}" if request_id else "")
        )
        self.status = status
        self.code = code
        self.message = message
        self.request_id = request_id
        self.path = path
        self.attempts = attempts

    @property
    def server_code(self) -> ServerErrorCode:
        return ServerErrorCode(self.code)

    def is_retryable(self, statuses: frozenset[int] = RETRYABLE_STATUSES) -> bool:
        """Whether the status is in ``statuses``; pass ``config.retry_statuses`` for a tuned client."""
        return self.status in statuses


class DeadlineExceeded(TransportError):
    """The overall call deadline ran out; no further attempts are made."""

    def __init__(self, *, path: str = "", attempts: int = 1):
        super().__init__(TransportErrorKind.TIMEOUT, "deadline exceeded", path=path, attempts=attempts)
