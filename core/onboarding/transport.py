"""
Onboarding API Transports

The client talks to the backend through OnboardingApi. Two implementations:
- HttpOnboardingApi: requests.Session against the FastAPI routes
- InProcessOnboardingApi: calls OnboardingService directly, same status codes

Transports are synchronous; the persistence client runs them in worker
threads so the event loop never blocks on I/O.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Optional

import requests

from core.onboarding.errors import AuthUnavailableError, TransientSaveError
from core.progress.errors import OnboardingError, error_response
from core.progress.service import OnboardingService


logger = logging.getLogger(__name__)

USER_AGENT: Final[str] = "VillaOnboardingClient/1.0"

TokenProvider = Callable[[], Optional[str]]


@dataclass(frozen=True)
class ApiResponse:
    """Status code and decoded body of a step-save call."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class OnboardingApi(ABC):
    """Backend operations the client needs."""

    @abstractmethod
    def start_onboarding(self, property_name: str) -> dict[str, Any]:
        """Create a record and return its progress payload."""

    @abstractmethod
    def fetch_progress(self, record_id: str) -> dict[str, Any]:
        """Authoritative progress payload for a record."""

    @abstractmethod
    def save_step(self, record_id: str, step: int, body: dict[str, Any]) -> ApiResponse:
        """Send one step update. Non-2xx statuses are returned, not raised."""


# =============================================================================
# HTTP
# =============================================================================


class HttpOnboardingApi(OnboardingApi):
    """
    requests-based transport.

    Usage:
        api = HttpOnboardingApi("http://localhost:8000", token_provider=lambda: token)
        progress = api.fetch_progress("VILLA-1a2b3c4d5e6f")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._token_provider = token_provider
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })

    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/onboarding{path}"

    def _auth_headers(self) -> dict[str, str]:
        """
        Bearer header from the token provider.

        Raises:
            AuthUnavailableError: If a provider is configured but yields no token
        """
        if self._token_provider is None:
            return {}
        try:
            token = self._token_provider()
        except Exception as e:
            raise AuthUnavailableError(f"Token provider failed: {e}") from e
        if not token:
            raise AuthUnavailableError("No auth token available")
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _decode(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def start_onboarding(self, property_name: str) -> dict[str, Any]:
        """
        Raises:
            requests.RequestException: On network errors or non-2xx statuses
        """
        response = self._session.post(
            self._url("/start"),
            json={"property_name": property_name},
            headers=self._auth_headers(),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return self._decode(response).get("data", {})

    def fetch_progress(self, record_id: str) -> dict[str, Any]:
        """
        Raises:
            requests.RequestException: On network errors or non-2xx statuses
        """
        response = self._session.get(
            self._url(f"/{record_id}/progress"),
            headers=self._auth_headers(),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return self._decode(response).get("data", {})

    def save_step(self, record_id: str, step: int, body: dict[str, Any]) -> ApiResponse:
        """
        Raises:
            AuthUnavailableError: If no token could be obtained
            TransientSaveError: On network errors
        """
        headers = self._auth_headers()
        try:
            response = self._session.patch(
                self._url(f"/{record_id}/step/{step}"),
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("Step %s save request for %s failed: %s", step, record_id, e)
            raise TransientSaveError(f"Step {step} save request failed: {e}") from e
        return ApiResponse(
            status_code=response.status_code,
            body=self._decode(response),
            text=response.text,
        )


# =============================================================================
# In-Process
# =============================================================================


class InProcessOnboardingApi(OnboardingApi):
    """
    Transport that calls the service directly.

    Backend errors become the same status codes and bodies the HTTP routes
    produce, so the client sees identical responses.
    """

    def __init__(self, service: OnboardingService):
        self._service = service

    def start_onboarding(self, property_name: str) -> dict[str, Any]:
        record = self._service.start_onboarding(property_name)
        return self._service.get_progress(record.record_id)

    def fetch_progress(self, record_id: str) -> dict[str, Any]:
        return self._service.get_progress(record_id)

    def save_step(self, record_id: str, step: int, body: dict[str, Any]) -> ApiResponse:
        try:
            result = self._service.update_step(
                record_id,
                step,
                body.get("data"),
                body.get("version"),
                completed=bool(body.get("completed", False)),
                operation_id=body.get("operationId"),
                client_timestamp=body.get("clientTimestamp"),
            )
        except OnboardingError as e:
            status_code, payload = error_response(e)
            return ApiResponse(status_code=status_code, body=payload, text=str(e))

        return ApiResponse(
            status_code=200,
            body={"success": True, "version": result.version, "data": result.progress},
        )
