"""
Onboarding Routes - Web API for the Villa Onboarding Wizard

Versioned step saves, progress reads and consistency reports.

Status codes:
- 200 step saved, body carries the new version
- 400 unknown step number
- 404 unknown record
- 409 stale version (client must re-fetch, never blindly retry)
- 422 malformed step payload, body carries field -> message
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from core.progress import (
    OnboardingService,
    ProgressConsistencyAuditor,
    RecordNotFoundError,
    RepositoryProgressSource,
    get_onboarding_repository,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


def get_onboarding_service() -> OnboardingService:
    """Service bound to the process-wide repository."""
    return OnboardingService(get_onboarding_repository())


# =============================================================================
# Request Models
# =============================================================================


class StartOnboardingRequest(BaseModel):
    property_name: str = Field(min_length=1, max_length=200)


class StepUpdateRequest(BaseModel):
    """Body of a versioned step save."""

    data: dict[str, Any]
    version: Optional[int] = None
    completed: bool = False
    operationId: Optional[str] = None
    clientTimestamp: Optional[str] = None


# =============================================================================
# Routes
# =============================================================================


@router.post("/start")
def start_onboarding(
    request: StartOnboardingRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Create a new onboarding record."""
    record = service.start_onboarding(request.property_name)
    return {"success": True, "data": service.get_progress(record.record_id)}


@router.get("/{record_id}/progress")
def get_progress(
    record_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Authoritative progress, including every step's version and data."""
    return {"success": True, "data": service.get_progress(record_id)}


@router.patch("/{record_id}/step/{step}")
def update_step(
    record_id: str,
    step: int,
    request: StepUpdateRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """
    Save one step with compare-and-swap on its version.

    Returns the new version on success. Backend errors are raised and mapped
    to status codes by the application's OnboardingError handler.
    """
    result = service.update_step(
        record_id,
        step,
        request.data,
        request.version,
        completed=request.completed,
        operation_id=request.operationId,
        client_timestamp=request.clientTimestamp,
    )
    return {"success": True, "version": result.version, "data": result.progress}


@router.get("/consistency")
def check_all_consistency(service: OnboardingService = Depends(get_onboarding_service)):
    """Audit every record; per-record failures are listed, not fatal."""
    auditor = ProgressConsistencyAuditor(RepositoryProgressSource(service.repository))
    return {"success": True, "data": auditor.check_all().to_dict()}


@router.get("/{record_id}/consistency")
def check_consistency(
    record_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Audit one record's flags, step statuses and session counter."""
    auditor = ProgressConsistencyAuditor(RepositoryProgressSource(service.repository))
    try:
        report = auditor.check_record(record_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Onboarding record {record_id} not found")
    return {"success": True, "data": report.to_dict()}
