"""
Tests for the versioned persistence client and its transports.

Tests covering:
1. Response classification (exactly one outcome per attempt)
2. Backend error parsing
3. Concurrent batch saves that never raise
4. HTTP transport request shape and auth handling
"""

from __future__ import annotations

import asyncio

import pytest
import requests

from core.onboarding import (
    ApiResponse,
    AuthUnavailableError,
    HttpOnboardingApi,
    SaveOperation,
    SaveOutcome,
    TransientSaveError,
    VersionLedger,
    VersionedPersistenceClient,
    classify_response,
    parse_backend_errors,
    parse_progress_steps,
)


def operation(step=2, version=0):
    return SaveOperation.create(step, {"firstName": "Ayu"}, version, flush_id=1)


# =============================================================================
# Classification
# =============================================================================


class TestClassification:
    def test_success_carries_new_version(self):
        result = classify_response(operation(), ApiResponse(200, {"version": 1}))
        assert result.outcome == SaveOutcome.SUCCESS
        assert result.version == 1

    def test_success_without_version_is_transient(self):
        result = classify_response(operation(), ApiResponse(200, {"success": True}))
        assert result.outcome == SaveOutcome.TRANSIENT_FAILURE

    def test_422_is_validation(self):
        response = ApiResponse(422, {"errors": {"email": "Please enter a valid email address"}})
        result = classify_response(operation(), response)
        assert result.outcome == SaveOutcome.VALIDATION_REJECTED
        assert result.errors == {"email": "Please enter a valid email address"}

    def test_409_is_conflict(self):
        result = classify_response(operation(), ApiResponse(409, {}))
        assert result.outcome == SaveOutcome.VERSION_CONFLICT

    def test_conflict_text_on_other_status(self):
        response = ApiResponse(400, {"message": "Version mismatch for step 2"})
        assert classify_response(operation(), response).outcome == SaveOutcome.VERSION_CONFLICT

    @pytest.mark.parametrize("status", [400, 401, 500, 502, 503])
    def test_other_failures_are_transient(self, status):
        result = classify_response(operation(), ApiResponse(status, {"message": "Gateway error"}))
        assert result.outcome == SaveOutcome.TRANSIENT_FAILURE

    def test_result_keeps_sent_payload_and_version(self):
        op = operation(version=3)
        result = classify_response(op, ApiResponse(200, {"version": 4}))
        assert result.sent_version == 3
        assert result.payload == {"firstName": "Ayu"}
        assert result.operation_id == op.operation_id


class TestErrorParsing:
    def test_field_map(self):
        assert parse_backend_errors({"errors": {"phone": ["too short", "digits only"]}}) == {
            "phone": "too short; digits only"
        }

    def test_string_list(self):
        errors = parse_backend_errors({"errors": ["email: invalid", "Something is wrong overall"]})
        assert errors == {"email": "invalid", "_step": "Something is wrong overall"}

    def test_falls_back_to_message(self):
        assert parse_backend_errors({"message": "Invalid step payload"}) == {
            "_step": "Invalid step payload"
        }


class TestProgressParsing:
    def test_versions_and_data(self):
        steps = parse_progress_steps({
            "steps": {"2": {"version": 3, "status": "IN_PROGRESS", "data": {"firstName": "Ayu"}}}
        })
        assert steps[2].version == 3
        assert steps[2].data == {"firstName": "Ayu"}

    def test_missing_steps(self):
        with pytest.raises(ValueError):
            parse_progress_steps({})


# =============================================================================
# Batch Saves
# =============================================================================


class TestSaveBatch:
    def test_each_step_uses_its_ledger_version(self, fake_api):
        fake_api.bump(5, {"ota_credentials": []})
        ledger = VersionLedger({5: 1})
        client = VersionedPersistenceClient(fake_api, ledger)

        summary = asyncio.run(client.save_batch(
            fake_api.record_id,
            [(2, {"firstName": "Ayu"}), (5, {"ota_credentials": [{"platform": "Airbnb"}]})],
            flush_id=1,
        ))

        assert summary.version_updates == {2: 1, 5: 2}
        assert [body["version"] for body in fake_api.calls_for(5)] == [1]
        # The client never writes the ledger itself
        assert ledger.as_dict() == {5: 1}

    def test_exceptions_become_transient_results(self, fake_api):
        fake_api.script(2, ConnectionError("reset by peer"))
        client = VersionedPersistenceClient(fake_api, VersionLedger())

        summary = asyncio.run(client.save_batch(
            fake_api.record_id,
            [(2, {"firstName": "Ayu"}), (3, {"contractType": "exclusive"})],
            flush_id=1,
        ))

        assert summary.transient_steps == [2]
        assert summary.successful_steps == [3]
        assert summary.should_notify_partial_save

    def test_auth_failure_is_flagged(self, fake_api):
        fake_api.script(2, AuthUnavailableError("no token"))
        client = VersionedPersistenceClient(fake_api, VersionLedger())

        summary = asyncio.run(client.save_batch(fake_api.record_id, [(2, {"a": 1})], flush_id=1))

        assert summary.results[0].outcome == SaveOutcome.TRANSIENT_FAILURE
        assert summary.results[0].auth_unavailable is True

    def test_operation_ids_are_unique(self, fake_api):
        client = VersionedPersistenceClient(fake_api, VersionLedger())
        asyncio.run(client.save_batch(
            fake_api.record_id,
            [(1, {"a": 1}), (2, {"b": 2}), (3, {"c": 3})],
            flush_id=7,
        ))
        ids = [body["operationId"] for _, body in fake_api.save_calls]
        assert len(set(ids)) == 3
        assert all(op_id.startswith("7-") for op_id in ids)


class TestPartialSaveRule:
    def summary_for(self, fake_api, scripted):
        for step, response in scripted.items():
            fake_api.script(step, response)
        client = VersionedPersistenceClient(fake_api, VersionLedger())
        batch = [(step, {"value": step}) for step in (1, 2, 3)]
        return asyncio.run(client.save_batch(fake_api.record_id, batch, flush_id=1))

    def test_all_saved_is_not_partial(self, fake_api):
        assert not self.summary_for(fake_api, {}).should_notify_partial_save

    def test_none_saved_is_not_partial(self, fake_api):
        failure = ApiResponse(503, {})
        summary = self.summary_for(fake_api, {1: failure, 2: failure, 3: failure})
        assert not summary.should_notify_partial_save

    def test_conflict_suppresses_partial(self, fake_api):
        summary = self.summary_for(fake_api, {2: ApiResponse(409, {})})
        assert not summary.should_notify_partial_save

    def test_validation_suppresses_partial(self, fake_api):
        summary = self.summary_for(fake_api, {2: ApiResponse(422, {"errors": {"value": "bad"}})})
        assert not summary.should_notify_partial_save


# =============================================================================
# HTTP Transport
# =============================================================================


class StubResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")


class StubSession:
    def __init__(self, response):
        self.headers = {}
        self.response = response
        self.requests = []

    def patch(self, url, **kwargs):
        self.requests.append(("PATCH", url, kwargs))
        return self.response

    def get(self, url, **kwargs):
        self.requests.append(("GET", url, kwargs))
        return self.response


class TestHttpTransport:
    def test_save_step_request(self):
        session = StubSession(StubResponse(200, {"success": True, "version": 2}))
        api = HttpOnboardingApi("http://backend/", token_provider=lambda: "tok", session=session)

        response = api.save_step("VILLA-1", 3, {"data": {}, "version": 1})

        method, url, kwargs = session.requests[0]
        assert method == "PATCH"
        assert url == "http://backend/api/onboarding/VILLA-1/step/3"
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["json"] == {"data": {}, "version": 1}
        assert response.status_code == 200
        assert response.body["version"] == 2

    def test_non_2xx_is_returned_not_raised(self):
        session = StubSession(StubResponse(409, {"message": "Version conflict"}))
        api = HttpOnboardingApi("http://backend", session=session)
        assert api.save_step("VILLA-1", 3, {}).status_code == 409

    def test_missing_token_raises_auth_unavailable(self):
        api = HttpOnboardingApi("http://backend", token_provider=lambda: None, session=StubSession(None))
        with pytest.raises(AuthUnavailableError):
            api.save_step("VILLA-1", 3, {})

    def test_fetch_progress_unwraps_data(self):
        session = StubSession(StubResponse(200, {"success": True, "data": {"steps": {}}}))
        api = HttpOnboardingApi("http://backend", session=session)
        assert api.fetch_progress("VILLA-1") == {"steps": {}}

    def test_network_error_is_transient_save_error(self):
        class BrokenSession(StubSession):
            def patch(self, url, **kwargs):
                raise requests.ConnectionError("connection refused")

        api = HttpOnboardingApi("http://backend", session=BrokenSession(None))
        with pytest.raises(TransientSaveError):
            api.save_step("VILLA-1", 3, {})
