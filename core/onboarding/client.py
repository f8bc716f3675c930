"""
Versioned Persistence Client - Batch Step Saves

Sends one save operation per dirty step, concurrently, and classifies every
response into exactly one SaveOutcome. Never raises past the batch: network
errors, auth failures and unexpected exceptions all become
TRANSIENT_FAILURE results.

Classification:
- 2xx with an integer version     -> SUCCESS
- 422                             -> VALIDATION_REJECTED (field errors attached)
- 409, or version-conflict text   -> VERSION_CONFLICT
- anything else                   -> TRANSIENT_FAILURE

The client does not touch local state. The caller applies outcomes once the
whole batch has resolved.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from core.onboarding.errors import AuthUnavailableError
from core.onboarding.schema import BatchSummary, SaveOperation, SaveOutcome, StepSaveResult
from core.onboarding.step_store import VersionLedger
from core.onboarding.transport import ApiResponse, OnboardingApi
from utils.logging import OnboardingEventLogger


logger = logging.getLogger(__name__)

VERSION_CONFLICT_PATTERN = re.compile(
    r"version\s*(conflict|mismatch)|stale\s*version|newer\s*(data|version)",
    re.IGNORECASE,
)


# =============================================================================
# Response Parsing
# =============================================================================


def parse_backend_errors(body: dict[str, Any]) -> dict[str, str]:
    """
    Field errors from a 422 body.

    Accepts {"errors": {"field": "message"}} or {"errors": ["field: message"]}.
    Entries without a field name are filed under "_step".
    """
    raw = body.get("errors")
    errors: dict[str, str] = {}

    if isinstance(raw, dict):
        for field_name, message in raw.items():
            if isinstance(message, (list, tuple)):
                message = "; ".join(str(m) for m in message)
            errors[str(field_name)] = str(message)
    elif isinstance(raw, (list, tuple)):
        for entry in raw:
            text = str(entry)
            field_name, sep, message = text.partition(":")
            if sep and field_name.strip() and " " not in field_name.strip():
                errors[field_name.strip()] = message.strip()
            else:
                errors["_step"] = text

    if not errors:
        errors["_step"] = str(body.get("message") or "Step data was rejected")
    return errors


def _error_text(response: ApiResponse) -> str:
    for key in ("message", "error", "detail"):
        value = response.body.get(key)
        if isinstance(value, str) and value:
            return value
    return response.text or ""


def is_version_conflict(response: ApiResponse) -> bool:
    if response.status_code == 409:
        return True
    if response.ok:
        return False
    return bool(VERSION_CONFLICT_PATTERN.search(_error_text(response)))


def classify_response(operation: SaveOperation, response: ApiResponse) -> StepSaveResult:
    """Map one response to exactly one outcome."""

    def result(outcome: SaveOutcome, **kwargs: Any) -> StepSaveResult:
        return StepSaveResult(
            step_number=operation.step_number,
            outcome=outcome,
            operation_id=operation.operation_id,
            sent_version=operation.version,
            payload=operation.payload,
            **kwargs,
        )

    if response.ok:
        version = response.body.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            # The new version is the only thing that lets the next save pass
            return result(
                SaveOutcome.TRANSIENT_FAILURE,
                message=f"Save response carried no version (status {response.status_code})",
            )
        return result(SaveOutcome.SUCCESS, version=version)

    if response.status_code == 422:
        return result(
            SaveOutcome.VALIDATION_REJECTED,
            errors=parse_backend_errors(response.body),
            message=_error_text(response) or None,
        )

    if is_version_conflict(response):
        return result(SaveOutcome.VERSION_CONFLICT, message=_error_text(response) or None)

    return result(
        SaveOutcome.TRANSIENT_FAILURE,
        message=f"HTTP {response.status_code}: {_error_text(response)}".strip(),
    )


@dataclass(frozen=True)
class StepProgressView:
    """One step of a fetched progress payload."""

    step: int
    version: int
    status: str
    data: dict[str, Any]


def parse_progress_steps(progress: dict[str, Any]) -> dict[int, StepProgressView]:
    """
    Per-step versions and data from a progress payload.

    Raises:
        ValueError: If the payload has no steps mapping
    """
    steps = progress.get("steps")
    if not isinstance(steps, dict):
        raise ValueError("Progress payload has no steps")

    parsed: dict[int, StepProgressView] = {}
    for key, entry in steps.items():
        if not isinstance(entry, dict):
            continue
        version = entry.get("version", 0)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError(f"Step {key} has a non-integer version: {version!r}")
        data = entry.get("data") or {}
        parsed[int(key)] = StepProgressView(
            step=int(key),
            version=version,
            status=str(entry.get("status", "not_started")),
            data=dict(data) if isinstance(data, dict) else {},
        )
    return parsed


# =============================================================================
# Client
# =============================================================================


class VersionedPersistenceClient:
    """
    Concurrent per-step saves against an OnboardingApi.

    Usage:
        client = VersionedPersistenceClient(api, ledger)
        summary = await client.save_batch(record_id, [(2, data2), (5, data5)], flush_id=1)
    """

    def __init__(
        self,
        api: OnboardingApi,
        ledger: VersionLedger,
        events: Optional[OnboardingEventLogger] = None,
    ):
        self._api = api
        self._ledger = ledger
        self._events = events or OnboardingEventLogger("onboarding.autosave")

    @property
    def api(self) -> OnboardingApi:
        return self._api

    async def save_batch(
        self,
        record_id: str,
        batch: Sequence[tuple[int, dict[str, Any]]],
        flush_id: int,
    ) -> BatchSummary:
        """
        Save every (step, payload) pair concurrently.

        Each operation carries the ledger version read at send time. Returns
        only after every attempt has resolved.
        """
        operations = [
            SaveOperation.create(step, payload, self._ledger.get(step), flush_id)
            for step, payload in batch
        ]
        results = await asyncio.gather(*(self._attempt(record_id, op) for op in operations))
        summary = BatchSummary(results=tuple(results))

        self._events.log(
            "AUTOSAVE",
            "BATCH_COMPLETE",
            {"flush_id": flush_id, **summary.to_dict()},
        )
        return summary

    async def _attempt(self, record_id: str, operation: SaveOperation) -> StepSaveResult:
        step = operation.step_number
        self._events.log(
            step,
            "AUTOSAVE_REQUEST",
            {"operation_id": operation.operation_id, "version": operation.version},
        )

        try:
            response = await asyncio.to_thread(
                self._api.save_step, record_id, step, operation.to_request_body()
            )
        except AuthUnavailableError as e:
            self._events.track_error(step, e, {"operation_id": operation.operation_id})
            return StepSaveResult(
                step_number=step,
                outcome=SaveOutcome.TRANSIENT_FAILURE,
                operation_id=operation.operation_id,
                sent_version=operation.version,
                payload=operation.payload,
                message=str(e),
                auth_unavailable=True,
            )
        except Exception as e:
            self._events.track_error(step, e, {"operation_id": operation.operation_id})
            return StepSaveResult(
                step_number=step,
                outcome=SaveOutcome.TRANSIENT_FAILURE,
                operation_id=operation.operation_id,
                sent_version=operation.version,
                payload=operation.payload,
                message=str(e),
            )

        result = classify_response(operation, response)
        if result.outcome == SaveOutcome.VERSION_CONFLICT:
            self._events.warn(
                step,
                "VERSION_CONFLICT",
                {"operation_id": operation.operation_id, "sent_version": operation.version},
            )
        elif result.outcome == SaveOutcome.TRANSIENT_FAILURE:
            self._events.warn(
                step,
                "AUTOSAVE_ERROR",
                {"operation_id": operation.operation_id, "message": result.message},
            )
        else:
            self._events.log(
                step,
                "AUTOSAVE_RESPONSE",
                {
                    "operation_id": operation.operation_id,
                    "outcome": result.outcome.value,
                    "version": result.version,
                    "errors": result.errors or None,
                },
            )
        return result

    async def fetch_progress(self, record_id: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._api.fetch_progress, record_id)

    async def start_onboarding(self, property_name: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._api.start_onboarding, property_name)
