"""
Portal context: everything the engine needs from its environment.

The auth token and the UI language are client state owned by the
presentation layer; they are passed in here explicitly and never read
from ambient storage.
"""

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from reservations.core.errors import ConfigurationError

DEFAULT_ENDPOINTS: dict[str, str] = {
    "register": "/api/Registration/Registration",
    "login": "/api/Login/login",
    "profile": "/api/Login/profile",
    "reservation": "/api/Reservation/Reservation",
    "investment": "/api/Investment/Application",
}


def _is_truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class PortalContext(BaseModel):
    """Configuration of the backend the forms are submitted to."""

    api_base_url: str = "http://localhost:1125"
    api_key: str = ""
    endpoints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    request_timeout: float = Field(default=30.0, gt=0)
    ssl_verify: bool = True
    log_requests: bool = False
    session_timeout_seconds: int = Field(default=30 * 60, gt=0)
    max_upload_bytes: int = Field(default=5_000_000, gt=0)
    auth_token: str | None = None
    language: Literal["en", "ar"] = "en"
    cors_allowed_origins: list[str] = Field(default_factory=lambda: ["*"])

    def endpoint_for(self, operation: str) -> str:
        """Absolute URL of the endpoint serving `operation`.

        Raises:
            ConfigurationError: If no endpoint is configured for it.
        """
        path = self.endpoints.get(operation)
        if path is None:
            raise ConfigurationError(f"No endpoint configured for operation '{operation}'")
        return self.api_base_url.rstrip("/") + "/" + path.lstrip("/")


def load_context(**overrides) -> PortalContext:
    """Build a PortalContext from environment variables.

    Environment variables (all optional):
        PORTAL_API_BASE_URL: Base URL of the registration/reservation backend.
        PORTAL_API_KEY: Value of the X-API-KEY header.
        PORTAL_REQUEST_TIMEOUT: Transport timeout in seconds.
        PORTAL_SSL_VERIFY: Verify TLS certificates (default true).
        LOG_PORTAL_CURL: Log every outgoing request as a sanitized curl command.
        SESSION_TIMEOUT_SECONDS: Idle timeout of form sessions.
        PORTAL_MAX_UPLOAD_BYTES: Largest file accepted by the upload endpoint.
        PORTAL_LANGUAGE: "en" or "ar".
        CORS_ALLOWED_ORIGINS: Comma separated list of origins.

    Args:
        **overrides: Fields that take precedence over the environment.
    """
    load_dotenv()

    settings = {
        "api_base_url": os.getenv("PORTAL_API_BASE_URL", "http://localhost:1125"),
        "api_key": os.getenv("PORTAL_API_KEY", ""),
        "request_timeout": float(os.getenv("PORTAL_REQUEST_TIMEOUT", "30")),
        "ssl_verify": _is_truthy(os.getenv("PORTAL_SSL_VERIFY"), default=True),
        "log_requests": _is_truthy(os.getenv("LOG_PORTAL_CURL"), default=False),
        "session_timeout_seconds": int(os.getenv("SESSION_TIMEOUT_SECONDS", "1800")),
        "max_upload_bytes": int(os.getenv("PORTAL_MAX_UPLOAD_BYTES", "5000000")),
        "language": os.getenv("PORTAL_LANGUAGE", "en"),
        "cors_allowed_origins": [
            origin.strip()
            for origin in os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
            if origin.strip()
        ],
    }
    settings.update(overrides)
    return PortalContext(**settings)
