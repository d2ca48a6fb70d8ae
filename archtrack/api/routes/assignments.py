"""Phase staffing endpoints: assignment create, read, update and removal."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from archtrack.core.config import OverallocationPolicy
from archtrack.db.dependencies import get_db_session
from archtrack.models.entities import AssignmentRole
from archtrack.services.staffing_service import (
    AssignmentCreateData,
    AssignmentUpdateData,
    StaffingService,
)

router = APIRouter(tags=["assignments"])


class AssignmentCreatePayload(BaseModel):
    person_id: UUID
    role: AssignmentRole = AssignmentRole.MEMBER
    working_percentage: Decimal = Field(ge=0, le=100, max_digits=5, decimal_places=2)
    start_date: date
    end_date: date | None = None


class AssignmentUpdatePayload(BaseModel):
    role: AssignmentRole | None = None
    working_percentage: Decimal | None = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    start_date: date | None = None
    # Explicit null makes the assignment open-ended.
    end_date: date | None = None
    is_active: bool | None = None
    version: int | None = Field(default=None, ge=1)


def _staffing_service(db: Session) -> StaffingService:
    return StaffingService(db)


@router.post("/phases/{phase_id}/assignments", status_code=status.HTTP_201_CREATED)
def create_phase_assignment(
    phase_id: UUID,
    payload: AssignmentCreatePayload,
    overallocation_policy: OverallocationPolicy | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _staffing_service(db)
    result = service.create_assignment(
        phase_id=phase_id,
        data=AssignmentCreateData(
            person_id=payload.person_id,
            role=payload.role,
            working_percentage=payload.working_percentage,
            start_date=payload.start_date,
            end_date=payload.end_date,
        ),
        policy=overallocation_policy,
    )
    return service.serialize_write_result(result)


@router.get("/phases/{phase_id}/assignments")
def list_phase_assignments(
    phase_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _staffing_service(db)
    rows = service.list_phase_assignments(phase_id)
    return {"items": [service.serialize_assignment(row) for row in rows]}


@router.get("/people/{person_id}/assignments")
def list_person_assignments(
    person_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _staffing_service(db)
    rows = service.list_person_assignments(person_id)
    return {"items": [service.serialize_assignment(row) for row in rows]}


@router.get("/assignments/{assignment_id}")
def get_assignment(
    assignment_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _staffing_service(db)
    return service.serialize_assignment(service.get_assignment(assignment_id))


@router.patch("/assignments/{assignment_id}")
def update_assignment(
    assignment_id: UUID,
    payload: AssignmentUpdatePayload,
    overallocation_policy: OverallocationPolicy | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _staffing_service(db)
    result = service.update_assignment(
        assignment_id=assignment_id,
        data=AssignmentUpdateData(
            role=payload.role,
            working_percentage=payload.working_percentage,
            start_date=payload.start_date,
            end_date=payload.end_date,
            clear_end_date="end_date" in payload.model_fields_set and payload.end_date is None,
            is_active=payload.is_active,
            expected_version=payload.version,
        ),
        policy=overallocation_policy,
    )
    return service.serialize_write_result(result)


@router.post("/assignments/{assignment_id}/deactivate")
def deactivate_assignment(
    assignment_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _staffing_service(db)
    assignment = service.deactivate_assignment(assignment_id=assignment_id)
    return service.serialize_assignment(assignment)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: UUID,
    db: Session = Depends(get_db_session),
) -> Response:
    service = _staffing_service(db)
    service.delete_assignment(assignment_id=assignment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
