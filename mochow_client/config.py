# mochow_client/config.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import RETRYABLE_STATUSES, ConfigError, ConfigErrorKind

DEFAULT_VERSION = "v1"
DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_REQUEST_TIMEOUT_S = 30.0
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_BASE_S = 0.25
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_BACKOFF_MAX_DELAY_S = 8.0
DEFAULT_BACKOFF_JITTER = 0.1


@dataclass(frozen=True)
class ClientConfig:
    account: str
    credential: SecretStr = field(repr=False)
    endpoint: str                                  # e.g., "http://127.0.0.1:5287"
    version: str = DEFAULT_VERSION                 # only v1 is served today
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    max_retries: int = DEFAULT_RETRIES
    backoff_base_s: float = DEFAULT_BACKOFF_BASE_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    backoff_max_delay_s: float = DEFAULT_BACKOFF_MAX_DELAY_S
    backoff_jitter: float = DEFAULT_BACKOFF_JITTER
    retry_statuses: frozenset[int] = RETRYABLE_STATUSES
    deadline_s: float | None = None                # overall time limit across retries
    user_agent: str = ""
    enable_tracing: bool = True

    def __post_init__(self):
        for name in ("account", "endpoint"):
            if not getattr(self, name):
                raise ConfigError(ConfigErrorKind.MISSING_FIELD, name, "must not be empty")
        if not isinstance(self.credential, SecretStr):
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "credential", "must be a SecretStr")
        if not self.credential.get_secret_value():
            raise ConfigError(ConfigErrorKind.MISSING_FIELD, "credential", "must not be empty")
        _check_endpoint(self.endpoint)

        if self.max_retries < 0:
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "max_retries", "must be >= 0")
        for name in ("connect_timeout_s", "request_timeout_s"):
            if getattr(self, name) <= 0:
                raise ConfigError(ConfigErrorKind.INVALID_OPTION, name, "must be > 0")
        if self.backoff_base_s < 0 or self.backoff_max_delay_s < 0:
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "backoff", "delays must be >= 0")
        if self.backoff_multiplier < 1.0:
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "backoff_multiplier", "must be >= 1.0")
        if not 0.0 <= self.backoff_jitter <= 1.0:
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "backoff_jitter", "must be within [0, 1]")
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ConfigError(ConfigErrorKind.INVALID_OPTION, "deadline_s", "must be > 0 when set")

    @classmethod
    def build(cls, account: str, credential: str | SecretStr, endpoint: str, **options: Any) -> "ClientConfig":
        """Validate the required fields, normalize the endpoint and apply option defaults."""
        if not isinstance(credential, SecretStr):
            credential = SecretStr(credential or "")
        if "retry_statuses" in options:
            options["retry_statuses"] = frozenset(options["retry_statuses"])
        return cls(
            account=account,
            credential=credential,
            endpoint=normalize_endpoint(endpoint),
            **options,
        )

    @property
    def auth_token(self) -> str:
        return f"account={self.account}&api_key={self.credential.get_secret_value()}"

    @property
    def user_agent_header(self) -> str:
        return f"mochow-client-python/{self.user_agent}" if self.user_agent else "mochow-client-python"


def normalize_endpoint(endpoint: str) -> str:
    endpoint = (endpoint or "").strip()
    if endpoint and "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    return endpoint.rstrip("/")


def _check_endpoint(endpoint: str) -> None:
    try:
        url = httpx.URL(endpoint)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigError(ConfigErrorKind.INVALID_ENDPOINT, "endpoint", f"cannot parse {endpoint!r}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(
            ConfigErrorKind.INVALID_ENDPOINT, "endpoint",
            f"expected an absolute http(s) URL, got {endpoint!r}",
        )


class ClientSettings(BaseSettings):
    # --- Required ---
    account: str = ""
    api_key: SecretStr = SecretStr("")
    endpoint: str = ""

    # --- Timeouts / retries (optional) ---
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    max_retries: int = DEFAULT_RETRIES
    backoff_base_s: float = DEFAULT_BACKOFF_BASE_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    backoff_max_delay_s: float = DEFAULT_BACKOFF_MAX_DELAY_S
    backoff_jitter: float = DEFAULT_BACKOFF_JITTER
    deadline_s: float | None = None

    user_agent: str = ""
    enable_tracing: bool = True

    # --- Logging (optional) ---
    log_level: str = "WARNING"

    # MOCHOW_ACCOUNT, MOCHOW_API_KEY, MOCHOW_ENDPOINT ... from env or ./.env
    model_config = SettingsConfigDict(
        env_prefix="MOCHOW_",
        env_file=".env",                            # resolved against the cwd at load time
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def to_config(self) -> ClientConfig:
        return ClientConfig.build(
            self.account,
            self.api_key,
            self.endpoint,
            connect_timeout_s=self.connect_timeout_s,
            request_timeout_s=self.request_timeout_s,
            max_retries=self.max_retries,
            backoff_base_s=self.backoff_base_s,
            backoff_multiplier=self.backoff_multiplier,
            backoff_max_delay_s=self.backoff_max_delay_s,
            backoff_jitter=self.backoff_jitter,
            deadline_s=self.deadline_s,
            user_agent=self.user_agent,
            enable_tracing=self.enable_tracing,
        )
