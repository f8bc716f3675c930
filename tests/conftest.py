"""
Shared fixtures for the autosave client tests.

FakeOnboardingApi behaves like the backend (compare-and-swap per step) unless
a step has scripted responses queued. It also records every save, and
whether two flushes ever overlapped.
"""

from __future__ import annotations

import copy
import threading
import time
from collections import defaultdict
from typing import Any, Optional, Union

import pytest

from core.onboarding import (
    ApiResponse,
    AutosaveSettings,
    InMemoryKeyValueStorage,
    LocalBackupStore,
    OnboardingApi,
    OnboardingSession,
)
from core.progress import ONBOARDING_STEPS


class FakeOnboardingApi(OnboardingApi):
    def __init__(self, record_id: str = "VILLA-TEST"):
        self.record_id = record_id
        self.versions = {step: 0 for step in ONBOARDING_STEPS}
        self.data: dict[int, dict[str, Any]] = {step: {} for step in ONBOARDING_STEPS}
        self.scripted: dict[int, list[Union[ApiResponse, Exception]]] = defaultdict(list)
        self.save_calls: list[tuple[int, dict[str, Any]]] = []
        self.fetch_calls = 0
        self.fetch_failures_remaining = 0
        self.save_delay = 0.0
        self.fetch_gate: Optional[threading.Event] = None
        self.fetch_started = threading.Event()
        self.overlap_detected = False
        self._active_flushes: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    # Test controls

    def script(self, step: int, *responses: Union[ApiResponse, Exception]) -> None:
        self.scripted[step].extend(responses)

    def bump(self, step: int, data: dict[str, Any]) -> None:
        """Simulate another writer saving this step."""
        with self._lock:
            self.versions[step] += 1
            self.data[step] = copy.deepcopy(data)

    def calls_for(self, step: int) -> list[dict[str, Any]]:
        with self._lock:
            return [body for s, body in self.save_calls if s == step]

    # OnboardingApi

    def progress(self) -> dict[str, Any]:
        with self._lock:
            return {
                "record_id": self.record_id,
                "current_step": 1,
                "steps": {
                    str(step): {
                        "version": self.versions[step],
                        "status": "IN_PROGRESS" if self.versions[step] else "NOT_STARTED",
                        "data": copy.deepcopy(self.data[step]),
                    }
                    for step in ONBOARDING_STEPS
                },
            }

    def start_onboarding(self, property_name: str) -> dict[str, Any]:
        return self.progress()

    def fetch_progress(self, record_id: str) -> dict[str, Any]:
        self.fetch_calls += 1
        self.fetch_started.set()
        if self.fetch_gate is not None:
            self.fetch_gate.wait(timeout=5)
        if self.fetch_failures_remaining > 0:
            self.fetch_failures_remaining -= 1
            raise ConnectionError("backend unreachable")
        return self.progress()

    def save_step(self, record_id: str, step: int, body: dict[str, Any]) -> ApiResponse:
        flush_id = body["operationId"].split("-")[0]
        with self._lock:
            self._active_flushes[flush_id] += 1
            if len(self._active_flushes) > 1:
                self.overlap_detected = True
        try:
            if self.save_delay:
                time.sleep(self.save_delay)
            with self._lock:
                self.save_calls.append((step, copy.deepcopy(body)))
                scripted = self.scripted[step].pop(0) if self.scripted[step] else None
            if isinstance(scripted, Exception):
                raise scripted
            if scripted is not None:
                return scripted

            with self._lock:
                if body["version"] != self.versions[step]:
                    return ApiResponse(409, {"success": False, "message": "Version conflict"})
                self.versions[step] += 1
                self.data[step] = copy.deepcopy(body["data"])
                return ApiResponse(200, {"success": True, "version": self.versions[step]})
        finally:
            with self._lock:
                self._active_flushes[flush_id] -= 1
                if not self._active_flushes[flush_id]:
                    del self._active_flushes[flush_id]


# Timers long enough that only explicit flushes run unless a test shortens them
MANUAL_SETTINGS = dict(
    debounce_seconds=60.0,
    min_seconds_between_saves=0.0,
    periodic_save_seconds=60.0,
    retry_base_seconds=0.0,
)


@pytest.fixture
def fake_api():
    return FakeOnboardingApi()


@pytest.fixture
def backup_storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def make_session(fake_api, backup_storage):
    """Factory for sessions bound to the fake API and in-memory backups."""

    def factory(**overrides) -> OnboardingSession:
        settings = AutosaveSettings(**{**MANUAL_SETTINGS, **overrides})
        return OnboardingSession(
            fake_api,
            LocalBackupStore(backup_storage),
            record_id=fake_api.record_id,
            settings=settings,
        )

    return factory
