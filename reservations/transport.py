"""
HTTP transport for the registration / reservation backend.

Posts submission payloads as form data (text fields plus file
attachments) to the endpoint configured for the form's operation. Every
request carries the fixed ``X-API-KEY`` header and the UI language; the
bearer token is added when the portal context has one.
"""

import logging
from typing import Any

import httpx

from reservations.config import PortalContext
from reservations.core.errors import TransportError
from reservations.core.payload import SubmissionPayload

logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = {"authorization", "x-api-key", "api-key"}


def _build_safe_curl(request: httpx.Request) -> str:
    """Build a debug curl command with sensitive headers redacted."""
    curl = f"curl -X {request.method} '{request.url}'"
    for key, value in request.headers.items():
        header_value = value
        if key.lower() in _SENSITIVE_HEADERS:
            header_value = "[REDACTED]"
        curl += f" -H '{key}: {header_value}'"

    try:
        content = request.content
    except httpx.RequestNotRead:
        # Multipart bodies are streamed and may hold binary attachments
        return curl + " -F [multipart body]"

    if content:
        body = content.decode(errors="ignore")
        max_body_chars = 2000
        if len(body) > max_body_chars:
            body = body[:max_body_chars] + "... [TRUNCATED]"
        curl += f" -d '{body}'"
    return curl


class CurlLoggingAsyncClient(httpx.AsyncClient):
    """AsyncClient that logs each request as a sanitized curl command."""

    def __init__(self, *args, log_requests: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.log_requests = log_requests

    async def send(self, request, *args, **kwargs):
        if self.log_requests:
            logger.info("Outgoing request (sanitized): %s", _build_safe_curl(request))
        return await super().send(request, *args, **kwargs)


class HttpTransport:
    """Transport collaborator backed by an httpx AsyncClient.

    Args:
        context: Base URL, API key, endpoints, timeout, and client state.
        client: Optional pre-built client (tests inject a MockTransport).
            A client created here is closed by ``aclose``.
    """

    def __init__(self, context: PortalContext, client: httpx.AsyncClient | None = None):
        self.context = context
        self._owns_client = client is None
        self._client = client or CurlLoggingAsyncClient(
            timeout=context.request_timeout,
            verify=context.ssl_verify,
            log_requests=context.log_requests,
        )

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, auth_token: str | None = None) -> dict[str, str]:
        headers = {
            "X-API-KEY": self.context.api_key,
            "Accept-Language": self.context.language,
            "Accept": "application/json",
        }
        token = auth_token or self.context.auth_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def submit_form(self, payload: SubmissionPayload) -> dict[str, Any]:
        """POST a payload to its operation's endpoint.

        Returns:
            The decoded JSON response (non-object bodies are wrapped).

        Raises:
            ConfigurationError: If the operation has no endpoint.
            TransportError: On HTTP error status or network failure, or if an
                attachment carries no content.
        """
        url = self.context.endpoint_for(payload.operation)
        files = {}
        for name, ref in payload.files.items():
            if ref.content is None:
                raise TransportError(f"Attachment '{name}' has no content")
            files[name] = (ref.name, ref.content, ref.content_type)
        logger.info("POST %s (%s)", url, payload.form_kind)
        return await self._request(
            "POST",
            url,
            headers=self._headers(),
            data=payload.fields,
            files=files or None,
        )

    async def fetch_profile(self, auth_token: str | None = None) -> dict[str, Any]:
        """GET the signed-in organization's profile.

        Raises:
            TransportError: If no token is available, or the request fails.
        """
        token = auth_token or self.context.auth_token
        if not token:
            raise TransportError("An auth token is required to fetch the profile", status_code=401)
        url = self.context.endpoint_for("profile")
        return await self._request("GET", url, headers=self._headers(token))

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("%s %s returned HTTP %d", method, url, status)
            raise TransportError(e.response.text or f"HTTP {status}", status_code=status) from e
        except httpx.RequestError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise TransportError(f"Request to {url} failed: {e}") from e

        return _decode_body(response)


def _decode_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    if isinstance(body, dict):
        return body
    return {"data": body}
