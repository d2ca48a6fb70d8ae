"""Application service for phase staffing and allocation queries."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from archtrack.core.config import OverallocationPolicy, get_settings
from archtrack.models.entities import Assignment, AssignmentRole, Person, Phase, Project
from archtrack.repositories.assignment_repository import AssignmentRepository
from archtrack.services.allocation_engine import (
    AllocationCheck,
    AllocationEngine,
    AllocationFilter,
    AllocationSnapshot,
    InvalidFilter,
    PersonNotFound,
    TeamAllocationSummary,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
Q2 = Decimal("0.01")

DUPLICATE_ASSIGNMENT = "This person is already assigned to the phase."


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


@dataclass(slots=True)
class AssignmentCreateData:
    person_id: UUID
    role: AssignmentRole
    working_percentage: Decimal
    start_date: date
    end_date: date | None = None


@dataclass(slots=True)
class AssignmentUpdateData:
    role: AssignmentRole | None = None
    working_percentage: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    clear_end_date: bool = False
    is_active: bool | None = None
    expected_version: int | None = None


@dataclass(slots=True)
class AssignmentWriteResult:
    assignment: Assignment
    check: AllocationCheck | None
    warning: str | None


@dataclass(slots=True)
class AllocationLabels:
    """Directory names attached to allocation snapshots for display."""

    people: dict[UUID, Person] = field(default_factory=dict)
    phases: dict[UUID, tuple[Phase, Project]] = field(default_factory=dict)


def ensure_working_percentage(value: Decimal) -> Decimal:
    if value < ZERO or value > HUNDRED:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="working_percentage must be between 0 and 100.",
        )
    return _q2(value)


def ensure_date_range(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must be greater than or equal to start_date.",
        )


class StaffingService:
    """Service implementing assignment lifecycle gated by the allocation engine."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = AssignmentRepository(db)
        self.settings = get_settings()
        self.engine = AllocationEngine(self.repo, ceiling=self.settings.allocation_ceiling)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_assignment(assignment: Assignment) -> dict[str, object]:
        return {
            "id": str(assignment.id),
            "phase_id": str(assignment.phase_id),
            "person_id": str(assignment.person_id),
            "role": assignment.role.value,
            "working_percentage": str(_q2(assignment.working_percentage)),
            "start_date": assignment.start_date.isoformat(),
            "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
            "is_active": assignment.is_active,
            "version": assignment.version,
            "created_at": assignment.created_at.isoformat(),
            "updated_at": assignment.updated_at.isoformat(),
        }

    @classmethod
    def serialize_allocated_assignment(cls, assignment: Assignment, labels: AllocationLabels) -> dict[str, object]:
        phase, project = labels.phases.get(assignment.phase_id, (None, None))
        return {
            **cls.serialize_assignment(assignment),
            "phase_name": phase.name if phase else None,
            "project_id": str(project.id) if project else None,
            "project_code": project.code if project else None,
            "project_name": project.name if project else None,
        }

    @classmethod
    def serialize_snapshot(cls, snapshot: AllocationSnapshot, labels: AllocationLabels) -> dict[str, object]:
        person = labels.people.get(snapshot.person_id)
        return {
            "person_id": str(snapshot.person_id),
            "display_name": person.display_name if person else None,
            "email": person.email if person else None,
            "total_allocation": str(snapshot.total_allocation),
            "is_overallocated": snapshot.is_overallocated,
            "assignments": [cls.serialize_allocated_assignment(row, labels) for row in snapshot.assignments],
        }

    @classmethod
    def serialize_team_summary(cls, summary: TeamAllocationSummary, labels: AllocationLabels) -> dict[str, object]:
        return {
            "total_people": summary.total_people,
            "allocated_count": summary.allocated_count,
            "overallocated_count": summary.overallocated_count,
            "allocations": [cls.serialize_snapshot(snapshot, labels) for snapshot in summary.snapshots],
        }

    @staticmethod
    def serialize_check(check: AllocationCheck) -> dict[str, object]:
        return {
            "is_overallocated": check.is_overallocated,
            "current_allocation": str(check.current_allocation),
            "proposed_total": str(check.proposed_total),
        }

    @classmethod
    def serialize_write_result(cls, result: AssignmentWriteResult) -> dict[str, object]:
        return {
            "assignment": cls.serialize_assignment(result.assignment),
            "allocation": cls.serialize_check(result.check) if result.check else None,
            "overallocation_warning": result.warning,
        }

    # ---------- Policy + concurrency ----------
    def _apply_policy(self, check: AllocationCheck, policy: OverallocationPolicy | None) -> str | None:
        if not check.is_overallocated:
            return None

        effective = policy or self.settings.overallocation_policy
        if effective is OverallocationPolicy.REJECT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Team member allocation would exceed {self.settings.allocation_ceiling}% "
                    f"({check.proposed_total}%). Current: {check.current_allocation}%"
                ),
            )
        return (
            f"Team member will be over-allocated ({check.proposed_total}%). "
            f"Current allocation: {check.current_allocation}%"
        )

    def _read_allocation_version(self, person_id: UUID) -> int | None:
        if not self.settings.allocation_strict_mode:
            return None
        return self.repo.get_allocation_version(person_id)

    def _commit(self, *, person_id: UUID, allocation_version: int | None, conflict_detail: str) -> None:
        if allocation_version is not None and not self.repo.compare_and_swap_allocation_version(
            person_id, expected=allocation_version
        ):
            self.db.rollback()
            logger.warning("Concurrent allocation change detected for person %s", person_id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Allocation for this person changed concurrently. Please retry.",
            )

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc

    def _get_assignment_or_404(self, assignment_id: UUID) -> Assignment:
        assignment = self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found.")
        return assignment

    # ---------- Assignment reads ----------
    def get_assignment(self, assignment_id: UUID) -> Assignment:
        return self._get_assignment_or_404(assignment_id)

    def list_phase_assignments(self, phase_id: UUID) -> list[Assignment]:
        if self.repo.get_phase(phase_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Phase not found.")
        return self.repo.list_assignments_for_phase(phase_id)

    def list_person_assignments(self, person_id: UUID) -> list[Assignment]:
        if not self.repo.person_exists(person_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found.")
        return self.repo.list_assignments_for_person(person_id)

    # ---------- Assignment writes ----------
    def create_assignment(
        self,
        *,
        phase_id: UUID,
        data: AssignmentCreateData,
        policy: OverallocationPolicy | None = None,
    ) -> AssignmentWriteResult:
        if self.repo.get_phase(phase_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Phase not found.")
        person = self.repo.get_person(data.person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found.")

        percentage = ensure_working_percentage(data.working_percentage)
        ensure_date_range(data.start_date, data.end_date)

        allocation_version = self._read_allocation_version(person.id)
        check = self.engine.validate_new_assignment(person.id, percentage)
        warning = self._apply_policy(check, policy)

        now = datetime.utcnow()
        assignment = Assignment(
            phase_id=phase_id,
            person_id=person.id,
            role=data.role,
            working_percentage=percentage,
            start_date=data.start_date,
            end_date=data.end_date,
            is_active=True,
            version=1,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add_assignment(assignment)
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_ASSIGNMENT) from exc
        self._commit(
            person_id=person.id,
            allocation_version=allocation_version,
            conflict_detail=DUPLICATE_ASSIGNMENT,
        )
        self.db.refresh(assignment)

        logger.info(
            "Assignment %s created: person %s on phase %s at %s%%%s",
            assignment.id,
            person.id,
            phase_id,
            percentage,
            " (over-allocated, warned)" if warning else "",
        )
        return AssignmentWriteResult(assignment=assignment, check=check, warning=warning)

    def update_assignment(
        self,
        *,
        assignment_id: UUID,
        data: AssignmentUpdateData,
        policy: OverallocationPolicy | None = None,
    ) -> AssignmentWriteResult:
        assignment = self._get_assignment_or_404(assignment_id)
        if data.expected_version is not None and data.expected_version != assignment.version:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Version conflict: the assignment was modified by another user. Refresh and retry.",
            )

        target_start = data.start_date if data.start_date is not None else assignment.start_date
        if data.clear_end_date:
            target_end = None
        elif data.end_date is not None:
            target_end = data.end_date
        else:
            target_end = assignment.end_date
        ensure_date_range(target_start, target_end)

        target_percentage = (
            ensure_working_percentage(data.working_percentage)
            if data.working_percentage is not None
            else assignment.working_percentage
        )
        target_active = data.is_active if data.is_active is not None else assignment.is_active

        allocation_version = None
        check = None
        warning = None
        if target_active:
            allocation_version = self._read_allocation_version(assignment.person_id)
            check = self.engine.validate_new_assignment(
                assignment.person_id,
                target_percentage,
                exclude_assignment_id=assignment.id,
            )
            warning = self._apply_policy(check, policy)

        if data.role is not None:
            assignment.role = data.role
        assignment.working_percentage = target_percentage
        assignment.start_date = target_start
        assignment.end_date = target_end
        assignment.is_active = target_active
        assignment.version += 1
        assignment.updated_at = datetime.utcnow()

        self._commit(
            person_id=assignment.person_id,
            allocation_version=allocation_version,
            conflict_detail=DUPLICATE_ASSIGNMENT,
        )
        self.db.refresh(assignment)

        logger.info("Assignment %s updated to version %d", assignment.id, assignment.version)
        return AssignmentWriteResult(assignment=assignment, check=check, warning=warning)

    def deactivate_assignment(self, *, assignment_id: UUID) -> Assignment:
        assignment = self._get_assignment_or_404(assignment_id)
        if assignment.is_active:
            assignment.is_active = False
            assignment.version += 1
            assignment.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(assignment)
            logger.info("Assignment %s deactivated", assignment.id)
        return assignment

    def delete_assignment(self, *, assignment_id: UUID) -> None:
        assignment = self._get_assignment_or_404(assignment_id)
        self.repo.delete_assignment(assignment)
        self.db.commit()
        logger.info("Assignment %s removed", assignment_id)

    # ---------- Allocation queries ----------
    def load_allocation_labels(self, snapshots: Sequence[AllocationSnapshot]) -> AllocationLabels:
        return AllocationLabels(
            people=self.repo.get_people_by_ids(snapshot.person_id for snapshot in snapshots),
            phases=self.repo.get_phase_labels(
                row.phase_id for snapshot in snapshots for row in snapshot.assignments
            ),
        )

    def person_allocation(
        self,
        *,
        person_id: UUID,
        allocation_filter: AllocationFilter | None = None,
    ) -> AllocationSnapshot:
        try:
            return self.engine.compute_allocation(person_id, allocation_filter)
        except InvalidFilter as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        except PersonNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found.") from exc

    def team_allocation(self, *, allocation_filter: AllocationFilter | None = None) -> TeamAllocationSummary:
        try:
            return self.engine.compute_team_allocation(allocation_filter=allocation_filter)
        except InvalidFilter as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    def check_allocation(
        self,
        *,
        person_id: UUID,
        proposed_percentage: Decimal,
        exclude_assignment_id: UUID | None = None,
    ) -> AllocationCheck:
        percentage = ensure_working_percentage(proposed_percentage)
        try:
            return self.engine.validate_new_assignment(
                person_id,
                percentage,
                exclude_assignment_id=exclude_assignment_id,
            )
        except PersonNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found.") from exc
