"""
Application settings.

All configuration is read once into a ``Settings`` object which is then
passed to the components that need it. Nothing else in the package reads
environment variables.

Durations accept a compact ``<number><unit>`` syntax (``30s``, ``15m``,
``12h``, ``7d``), a plain number of seconds, or anything pydantic accepts
for ``timedelta``.
"""

import logging
import re
import secrets
from datetime import timedelta
from enum import Enum
from ipaddress import IPv4Network, IPv6Network, ip_network
from typing import Optional, Tuple, Union

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$", re.IGNORECASE)
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


IPNetwork = Union[IPv4Network, IPv6Network]


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


def parse_duration(value) -> timedelta:
    """
    Convert ``"15m"``, ``"7d"``, ``900`` or a ``timedelta`` into a ``timedelta``.

    Raises:
        ValueError: If the value cannot be interpreted as a positive duration
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, (int, float)):
        duration = timedelta(seconds=value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            duration = timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})
        elif value.strip().isdigit():
            duration = timedelta(seconds=int(value.strip()))
        else:
            raise ValueError(f"Invalid duration {value!r}; expected e.g. '15m' or '7d'")
    else:
        raise ValueError(f"Invalid duration {value!r}")

    if duration <= timedelta(0):
        raise ValueError("Duration must be positive")
    return duration


def parse_networks(value: str) -> Tuple[IPNetwork, ...]:
    """
    Parse ``"10.0.0.1, 172.16.0.0/12"`` into networks. Empty means none.

    Raises:
        ValueError: If an entry is not an IP address or CIDR block
    """
    return tuple(
        ip_network(part.strip(), strict=False)
        for part in (value or "").split(",")
        if part.strip()
    )


class Settings(BaseSettings):
    """Runtime configuration for the authentication service."""

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    port: int = Field(default=3000, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    # Storage
    database_url: str = Field(default="sqlite+aiosqlite:///./authflow.db")
    sql_debug: bool = Field(default=False)

    # Tokens. Access and refresh tokens are signed with different secrets.
    jwt_access_secret: Optional[SecretStr] = Field(default=None)
    jwt_refresh_secret: Optional[SecretStr] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    jwt_access_expiry: timedelta = Field(default=timedelta(minutes=15))
    jwt_refresh_expiry: timedelta = Field(default=timedelta(days=7))
    token_issuer: str = Field(default="authflow-api")
    token_audience: str = Field(default="authflow-client")

    # Argon2id cost parameters
    hash_time_cost: int = Field(default=3, ge=1, le=10)
    hash_memory_cost: int = Field(default=65536, ge=8192, le=1048576)
    hash_parallelism: int = Field(default=4, ge=1, le=16)
    min_password_length: int = Field(default=8, ge=6, le=128)

    # One-time codes
    verification_code_expiry: timedelta = Field(default=timedelta(minutes=30))
    reset_code_expiry: timedelta = Field(default=timedelta(minutes=15))
    code_length: int = Field(default=6, ge=4, le=10)

    # Outgoing mail. Without a host, messages are only logged.
    email_host: Optional[str] = Field(default=None)
    email_port: int = Field(default=587)
    email_user: Optional[str] = Field(default=None)
    email_pass: Optional[SecretStr] = Field(default=None)
    email_from: str = Field(default="no-reply@authflow.local")
    client_url: str = Field(default="http://localhost:5173")

    # Request counting on /v1/auth
    rate_limit_window: timedelta = Field(default=timedelta(minutes=15))
    rate_limit_max_requests: int = Field(default=100, ge=1)
    # Comma-separated proxy addresses or CIDRs whose X-Forwarded-For is trusted
    trusted_proxies: str = Field(default="")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator(
        "jwt_access_expiry",
        "jwt_refresh_expiry",
        "verification_code_expiry",
        "reset_code_expiry",
        "rate_limit_window",
        mode="before",
    )
    @classmethod
    def _parse_duration(cls, v):
        return parse_duration(v)

    @field_validator("verification_code_expiry", "reset_code_expiry")
    @classmethod
    def _bound_code_window(cls, v: timedelta) -> timedelta:
        if not timedelta(minutes=1) <= v <= timedelta(hours=24):
            raise ValueError("Code expiry must be between 1 minute and 24 hours")
        return v

    @field_validator("trusted_proxies")
    @classmethod
    def _check_trusted_proxies(cls, v: str) -> str:
        parse_networks(v)
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {v!r}")
        return level

    @model_validator(mode="after")
    def _check_secrets(self) -> "Settings":
        if self.jwt_access_secret is None or self.jwt_refresh_secret is None:
            if self.environment == Environment.PRODUCTION:
                raise ValueError(
                    "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set in production"
                )
            logger.warning(
                "Using auto-generated JWT secrets. Set JWT_ACCESS_SECRET and "
                "JWT_REFRESH_SECRET outside development."
            )
            if self.jwt_access_secret is None:
                self.jwt_access_secret = SecretStr(secrets.token_urlsafe(32))
            if self.jwt_refresh_secret is None:
                self.jwt_refresh_secret = SecretStr(secrets.token_urlsafe(32))

        if (
            self.jwt_access_secret.get_secret_value()
            == self.jwt_refresh_secret.get_secret_value()
        ):
            raise ValueError("Access and refresh token secrets must differ")
        if self.jwt_refresh_expiry <= self.jwt_access_expiry:
            raise ValueError("Refresh tokens must outlive access tokens")
        return self

    @property
    def access_secret(self) -> str:
        return self.jwt_access_secret.get_secret_value()

    @property
    def refresh_secret(self) -> str:
        return self.jwt_refresh_secret.get_secret_value()

    @property
    def trusted_proxy_networks(self) -> Tuple[IPNetwork, ...]:
        return parse_networks(self.trusted_proxies)

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION
