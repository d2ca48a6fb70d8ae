"""Allocation read endpoints for people and the whole team."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from archtrack.db.dependencies import get_db_session
from archtrack.services.allocation_engine import AllocationFilter
from archtrack.services.staffing_service import StaffingService

router = APIRouter(tags=["allocation"])


class AllocationCheckPayload(BaseModel):
    working_percentage: Decimal = Field(ge=0, le=100, max_digits=5, decimal_places=2)
    exclude_assignment_id: UUID | None = None


def allocation_filter_params(
    date_range_start: date | None = Query(default=None),
    date_range_end: date | None = Query(default=None),
    project_id: UUID | None = Query(default=None),
) -> AllocationFilter:
    return AllocationFilter(
        date_range_start=date_range_start,
        date_range_end=date_range_end,
        project_id=project_id,
    )


@router.get("/people/{person_id}/allocation")
def get_person_allocation(
    person_id: UUID,
    allocation_filter: AllocationFilter = Depends(allocation_filter_params),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = StaffingService(db)
    snapshot = service.person_allocation(person_id=person_id, allocation_filter=allocation_filter)
    return service.serialize_snapshot(snapshot, service.load_allocation_labels([snapshot]))


@router.get("/team/allocation")
def get_team_allocation(
    allocation_filter: AllocationFilter = Depends(allocation_filter_params),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = StaffingService(db)
    summary = service.team_allocation(allocation_filter=allocation_filter)
    return service.serialize_team_summary(summary, service.load_allocation_labels(summary.snapshots))


@router.post("/people/{person_id}/allocation/check")
def check_person_allocation(
    person_id: UUID,
    payload: AllocationCheckPayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = StaffingService(db)
    check = service.check_allocation(
        person_id=person_id,
        proposed_percentage=payload.working_percentage,
        exclude_assignment_id=payload.exclude_assignment_id,
    )
    return service.serialize_check(check)
