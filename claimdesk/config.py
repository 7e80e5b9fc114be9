"""
Centralized configuration for the claimdesk gateway.

Everything that varies by deployment lives on UpstreamConfig and is passed
explicitly into the upstream client and the refresh coordinator.
Values come from environment variables, optionally overlaid by a YAML file
named in CLAIMDESK_CONFIG:

    upstream:
      base_url: https://directus.example.com
      request_timeout: 8
    cookies:
      access_name: ctrk_jwt
      secure: true
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

# ============================================================
# Defaults
# ============================================================

DEFAULT_ACCESS_COOKIE = "ctrk_jwt"
DEFAULT_REFRESH_COOKIE = "ctrk_refresh"

DEFAULT_REQUEST_TIMEOUT = 10.0
"""Seconds allowed for a single upstream call."""

DEFAULT_AGGREGATION_TIMEOUT = 30.0
"""Seconds allowed for one aggregated source, all its variants included."""

DEFAULT_ACCESS_MAX_AGE = 60 * 15
DEFAULT_REFRESH_MAX_AGE = 60 * 60 * 24 * 30

# Checked in order; the first one set wins.
STATIC_TOKEN_ENV_VARS = (
    "DIRECTUS_STATIC_TOKEN",
    "DIRECTUS_SERVICE_TOKEN",
    "DIRECTUS_TOKEN",
    "DIRECTUS_ADMIN_TOKEN",
)


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """Email/password pair used to mint a service credential by login."""

    email: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class UpstreamConfig:
    """Settings for talking to the upstream data API."""

    base_url: str
    static_fallback_token: str | None = field(default=None, repr=False)
    service_account_credentials: ServiceAccountCredentials | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    aggregation_timeout: float = DEFAULT_AGGREGATION_TIMEOUT
    max_workers: int = 5
    access_cookie: str = DEFAULT_ACCESS_COOKIE
    refresh_cookie: str = DEFAULT_REFRESH_COOKIE
    cookie_domain: str | None = None
    cookie_secure: bool | None = None
    access_max_age: int = DEFAULT_ACCESS_MAX_AGE
    refresh_max_age: int = DEFAULT_REFRESH_MAX_AGE

    def __post_init__(self):
        if not self.base_url:
            raise ConfigError("DIRECTUS_URL is not set")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

    @property
    def is_local(self) -> bool:
        return self.base_url.startswith(("http://localhost", "http://127."))

    @property
    def secure_cookies(self) -> bool:
        """Explicit setting wins; otherwise secure unless upstream is local."""
        if self.cookie_secure is not None:
            return self.cookie_secure
        return not self.is_local


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _static_token_from_env() -> str | None:
    for name in STATIC_TOKEN_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _service_account_from_env() -> ServiceAccountCredentials | None:
    email = os.environ.get("DIRECTUS_SERVICE_EMAIL")
    password = os.environ.get("DIRECTUS_SERVICE_PASSWORD")
    if email and password:
        return ServiceAccountCredentials(email=email, password=password)
    return None


def _load_overlay(path: Path) -> dict:
    """Read the YAML overlay file; a missing file is an error, an empty one is not."""
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return data


def _apply_overlay(config: UpstreamConfig, overlay: dict) -> UpstreamConfig:
    upstream = overlay.get("upstream") or {}
    cookies = overlay.get("cookies") or {}
    changes: dict = {}

    for key in ("base_url", "static_fallback_token", "request_timeout",
                "aggregation_timeout", "max_workers"):
        if key in upstream:
            changes[key] = upstream[key]

    account = upstream.get("service_account")
    if account:
        changes["service_account_credentials"] = ServiceAccountCredentials(
            email=account["email"], password=account["password"]
        )

    cookie_keys = {
        "access_name": "access_cookie",
        "refresh_name": "refresh_cookie",
        "domain": "cookie_domain",
        "secure": "cookie_secure",
        "access_max_age": "access_max_age",
        "refresh_max_age": "refresh_max_age",
    }
    for src, dest in cookie_keys.items():
        if src in cookies:
            changes[dest] = cookies[src]

    return replace(config, **changes) if changes else config


def load_config() -> UpstreamConfig:
    """
    Build the configuration from the environment and the optional YAML overlay.

    Raises:
        ConfigError: when no upstream base URL is configured
    """
    base_url = os.environ.get("DIRECTUS_URL") or os.environ.get("NEXT_PUBLIC_DIRECTUS_URL") or ""
    overlay_path = os.environ.get("CLAIMDESK_CONFIG")
    overlay = _load_overlay(Path(overlay_path)) if overlay_path else {}

    # Allow the overlay to supply the base URL when the env does not.
    if not base_url:
        base_url = (overlay.get("upstream") or {}).get("base_url", "")

    timeout = os.environ.get("CLAIMDESK_REQUEST_TIMEOUT")
    config = UpstreamConfig(
        base_url=base_url,
        static_fallback_token=_static_token_from_env(),
        service_account_credentials=_service_account_from_env(),
        request_timeout=float(timeout) if timeout else DEFAULT_REQUEST_TIMEOUT,
        access_cookie=os.environ.get("COOKIE_NAME", DEFAULT_ACCESS_COOKIE),
        refresh_cookie=os.environ.get("REFRESH_COOKIE_NAME", DEFAULT_REFRESH_COOKIE),
        cookie_domain=os.environ.get("COOKIE_DOMAIN") or None,
        cookie_secure=_env_bool("COOKIE_SECURE"),
    )
    if overlay:
        config = _apply_overlay(config, overlay)
        logger.info(f"Applied config overlay from {overlay_path}")
    return config
