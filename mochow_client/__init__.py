# mochow_client/__init__.py
from .config import ClientConfig, ClientSettings
from .client import MochowClient
from .exceptions import (
    MochowError, ConfigError, InvalidRequestError, TransportError, DeadlineExceeded,
    EncodingError, DecodingError, ServiceError, ServerErrorCode,
)
from .middleware import RetryPolicy, TraceRecord
from .logs import configure_logging
from . import models
from . import exceptions

__all__ = [
    "ClientConfig", "ClientSettings", "MochowClient",
    "MochowError", "ConfigError", "InvalidRequestError", "TransportError", "DeadlineExceeded",
    "EncodingError", "DecodingError", "ServiceError", "ServerErrorCode",
    "RetryPolicy", "TraceRecord", "configure_logging", "models", "exceptions",
]
