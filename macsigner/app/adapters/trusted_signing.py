"""Azure Trusted Signing gateway over HTTP.

Talks to the signing endpoint with ``httpx.AsyncClient``:

- ``POST {authority}/{tenant}/oauth2/v2.0/token`` (client-credentials exchange)
- ``POST {endpoint}/sign``
- ``GET {endpoint}/status/{id}``
- ``GET {endpoint}/download/{id}/{fileName}``
- ``DELETE {endpoint}/cancel/{id}``

Every call goes through the retry policy and circuit breaker. The bearer
credential is shared by all concurrent signing requests and refreshed under a
lock so simultaneous callers await one exchange instead of issuing several.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import SecretStr, ValidationError

from macsigner.app.ports.gateway import (
    RemoteState,
    SigningGatewayPort,
    StatusResponse,
    StatusResult,
    SubmitFile,
    SubmitPayload,
    SubmitResponse,
    TokenResponse,
)
from macsigner.config import Settings
from macsigner.errors import AuthError, MacSignerError, TransportError
from macsigner.models import SigningRequest
from macsigner.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from macsigner.utils.clock import Clock, SystemClock
from macsigner.utils.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

_AUTH_REJECTED_STATUSES = frozenset({401, 403})


class TrustedSigningGateway(SigningGatewayPort):
    """HTTP adapter for the Azure Trusted Signing service.

    Example:
        >>> gateway = TrustedSigningGateway(settings)
        >>> if await gateway.authenticate():
        ...     remote_id = await gateway.submit(request)
        ...     result = await gateway.poll_status(remote_id)
        >>> await gateway.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: Identity, endpoint and transport settings
            http_client: Optional shared client (recommended for connection
                pooling; tests pass one built on ``httpx.MockTransport``)
            clock: Time source for token expiry and retry sleeps
            retry_policy: Back-off policy (defaults derived from settings)
            breaker: Circuit breaker (defaults derived from settings)
        """
        self._settings = settings
        self._clock = clock or SystemClock()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
        )
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=settings.circuit_breaker_threshold,
            clock=self._clock.monotonic,
        )
        self._refresh_margin = timedelta(seconds=settings.token_refresh_margin_seconds)

        self._access_token: SecretStr | None = None
        self._expires_at: datetime | None = None
        self._auth_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Credential
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return (
            self._access_token is not None
            and self._expires_at is not None
            and self._expires_at > self._clock.now()
        )

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    def needs_refresh(self) -> bool:
        if not self.is_authenticated or self._expires_at is None:
            return True
        return self._expires_at - self._refresh_margin <= self._clock.now()

    async def authenticate(self) -> bool:
        async with self._auth_lock:
            # Another task may have refreshed while we waited for the lock.
            if not self.needs_refresh():
                return True

            if not self._settings.is_configured():
                logger.error(
                    "Signing service is not configured; missing: %s",
                    ", ".join(self._settings.missing_fields()),
                )
                return False

            logger.info("Authenticating with Azure Trusted Signing service...")
            try:
                response = await self._send(
                    "authenticate",
                    "POST",
                    self._token_url(),
                    authenticated=False,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._settings.client_id or "",
                        "client_secret": self._settings.get_client_secret() or "",
                        "scope": self._settings.token_scope,
                    },
                )
                token = TokenResponse.model_validate(response.json())
            except (MacSignerError, ValidationError, ValueError) as exc:
                logger.error("Failed to authenticate with signing service: %s", exc)
                self._clear_credential()
                return False

            self._access_token = SecretStr(token.access_token)
            self._expires_at = self._clock.now() + timedelta(seconds=token.expires_in)
            logger.info(
                "Authenticated with signing service (credential expires %s)",
                self._expires_at.isoformat(),
            )
            return True

    def _clear_credential(self) -> None:
        self._access_token = None
        self._expires_at = None

    def _bearer(self) -> str:
        if not self.is_authenticated or self._access_token is None:
            raise AuthError("Not authenticated with the signing service")
        return self._access_token.get_secret_value()

    # ------------------------------------------------------------------
    # Signing operations
    # ------------------------------------------------------------------

    async def submit(self, request: SigningRequest) -> str:
        """Submit ``request``.

        The local request id travels in the payload, so a retried submission
        is recognisable as the same request by the service.
        """
        self._bearer()
        payload = SubmitPayload(
            certificate_profile_name=self._settings.certificate_profile or "",
            request_id=request.request_id,
            files=[
                SubmitFile(
                    file_name=artifact.name,
                    file_path=str(artifact.path),
                    file_size=artifact.size_bytes,
                )
                for artifact in request.files
            ],
        )

        logger.info("Submitting signing request for %d files", len(request.files))
        response = await self._send(
            "submit",
            "POST",
            self._url("sign"),
            json=payload.model_dump(by_alias=True),
        )

        remote = SubmitResponse()
        if response.content:
            try:
                remote = SubmitResponse.model_validate(response.json())
            except (ValidationError, ValueError) as exc:
                logger.debug("Ignoring unreadable submit response body: %s", exc)

        remote_id = remote.request_id or request.request_id
        logger.info("Submitted signing request %s (remote id %s)", request.request_id, remote_id)
        return remote_id

    async def poll_status(self, remote_request_id: str) -> StatusResult:
        try:
            response = await self._send(
                "status", "GET", self._url("status", remote_request_id)
            )
            body = StatusResponse.model_validate(response.json())
        except MacSignerError as exc:
            logger.error("Failed to get signing status for %s: %s", remote_request_id, exc)
            return StatusResult.failure(str(exc), kind=exc.kind)
        except (ValidationError, ValueError) as exc:
            logger.error("Unreadable status response for %s: %s", remote_request_id, exc)
            return StatusResult.failure(f"Unreadable status response: {exc}")

        state = RemoteState.parse(body.status)
        if state is RemoteState.UNKNOWN:
            logger.error(
                "Unrecognised signing status %r for %s", body.status, remote_request_id
            )
            return StatusResult(
                state=state,
                raw_status=body.status,
                error=f"Unrecognised signing status: {body.status!r}",
            )

        error = body.message if state is RemoteState.FAILED else None
        return StatusResult(state=state, raw_status=body.status, error=error)

    async def download(self, remote_request_id: str, file_name: str) -> bytes | None:
        try:
            response = await self._send(
                "download",
                "GET",
                self._url("download", remote_request_id, file_name),
            )
        except TransportError as exc:
            if exc.status_code == 404:
                logger.warning(
                    "Signed file %s not produced for request %s", file_name, remote_request_id
                )
                return None
            raise

        if not response.content:
            logger.warning("Signed file %s for %s was empty", file_name, remote_request_id)
            return None
        return response.content

    async def cancel(self, remote_request_id: str) -> bool:
        try:
            await self._send("cancel", "DELETE", self._url("cancel", remote_request_id))
        except MacSignerError as exc:
            logger.error("Failed to cancel signing request %s: %s", remote_request_id, exc)
            return False

        logger.info("Cancelled signing request: %s", remote_request_id)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    def _token_url(self) -> str:
        authority = self._settings.authority_host.rstrip("/")
        tenant = quote(self._settings.tenant_id or "", safe="")
        return f"{authority}/{tenant}/oauth2/v2.0/token"

    def _url(self, *segments: str) -> str:
        base = (self._settings.endpoint or "").rstrip("/")
        return "/".join([base, *(quote(segment, safe="") for segment in segments)])

    async def _send(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute one logical request with retries.

        Raises:
            AuthError: On 401/403 or when no credential is held
            TransportError: On network failure, open circuit or other HTTP errors
        """

        # Checked before the breaker so a missing credential never counts as a probe.
        headers = {"Authorization": f"Bearer {self._bearer()}"} if authenticated else {}

        async def attempt() -> httpx.Response:
            response = await self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response

        try:
            return await retry_async(
                attempt,
                policy=self._retry_policy,
                sleep=self._clock.sleep,
                breaker=self._breaker,
                operation=f"Signing service {operation}",
            )
        except CircuitBreakerOpen as exc:
            raise TransportError(f"Signing service {operation} rejected: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code in _AUTH_REJECTED_STATUSES:
                if authenticated:
                    self._clear_credential()
                raise AuthError(
                    f"Signing service {operation} rejected credential (HTTP {status_code})"
                ) from exc
            raise TransportError(
                f"Signing service {operation} failed: HTTP {status_code}",
                status_code=status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Signing service {operation} failed: {exc}") from exc
