"""Repository helpers for staffing assignments and the people directory."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from archtrack.models.entities import ROSTER_ROLES, Assignment, Person, Phase, Project
from archtrack.services.allocation_engine import AllocationFilter


def _filter_conditions(allocation_filter: AllocationFilter | None) -> list[ColumnElement[bool]]:
    if allocation_filter is None:
        return []

    conditions: list[ColumnElement[bool]] = []
    if allocation_filter.date_range_end is not None:
        conditions.append(Assignment.start_date <= allocation_filter.date_range_end)
    if allocation_filter.date_range_start is not None:
        conditions.append(
            or_(
                Assignment.end_date.is_(None),
                Assignment.end_date >= allocation_filter.date_range_start,
            )
        )
    if allocation_filter.project_id is not None:
        conditions.append(
            Assignment.phase_id.in_(select(Phase.id).where(Phase.project_id == allocation_filter.project_id))
        )
    return conditions


class AssignmentRepository:
    """Persistence operations backing the allocation engine and staffing service."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- People ----------
    def get_person(self, person_id: UUID) -> Person | None:
        return self.db.scalar(select(Person).where(Person.id == person_id))

    def person_exists(self, person_id: UUID) -> bool:
        return self.db.scalar(select(Person.id).where(Person.id == person_id)) is not None

    def find_active_people_roster(self) -> list[UUID]:
        return list(
            self.db.scalars(
                select(Person.id)
                .where(and_(Person.is_active.is_(True), Person.role.in_(ROSTER_ROLES)))
                .order_by(Person.display_name.asc(), Person.id.asc())
            ).all()
        )

    def get_people_by_ids(self, person_ids: Iterable[UUID]) -> dict[UUID, Person]:
        ids = list(set(person_ids))
        if not ids:
            return {}
        rows = self.db.scalars(select(Person).where(Person.id.in_(ids))).all()
        return {row.id: row for row in rows}

    def get_allocation_version(self, person_id: UUID) -> int | None:
        return self.db.scalar(select(Person.allocation_version).where(Person.id == person_id))

    def compare_and_swap_allocation_version(self, person_id: UUID, *, expected: int) -> bool:
        result = self.db.execute(
            update(Person)
            .where(and_(Person.id == person_id, Person.allocation_version == expected))
            .values(allocation_version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---------- Phases ----------
    def get_phase(self, phase_id: UUID) -> Phase | None:
        return self.db.scalar(select(Phase).where(Phase.id == phase_id))

    def get_phase_labels(self, phase_ids: Iterable[UUID]) -> dict[UUID, tuple[Phase, Project]]:
        ids = list(set(phase_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(Phase, Project).join(Project, Project.id == Phase.project_id).where(Phase.id.in_(ids))
        ).all()
        return {phase.id: (phase, project) for phase, project in rows}

    # ---------- Allocation reads ----------
    def find_active_assignments(
        self,
        person_id: UUID,
        allocation_filter: AllocationFilter | None = None,
    ) -> list[Assignment]:
        conditions = [
            Assignment.person_id == person_id,
            Assignment.is_active.is_(True),
            *_filter_conditions(allocation_filter),
        ]
        return list(
            self.db.scalars(
                select(Assignment)
                .where(and_(*conditions))
                .order_by(Assignment.start_date.asc(), Assignment.id.asc())
            ).all()
        )

    def find_active_assignments_for_roster(
        self,
        person_ids: Sequence[UUID],
        allocation_filter: AllocationFilter | None = None,
    ) -> dict[UUID, list[Assignment]]:
        grouped: dict[UUID, list[Assignment]] = {person_id: [] for person_id in person_ids}
        if not grouped:
            return grouped

        conditions = [
            Assignment.person_id.in_(list(grouped)),
            Assignment.is_active.is_(True),
            *_filter_conditions(allocation_filter),
        ]
        rows = self.db.scalars(
            select(Assignment)
            .where(and_(*conditions))
            .order_by(Assignment.start_date.asc(), Assignment.id.asc())
        ).all()
        for row in rows:
            grouped[row.person_id].append(row)
        return grouped

    # ---------- Assignment CRUD ----------
    def get_assignment(self, assignment_id: UUID) -> Assignment | None:
        return self.db.scalar(select(Assignment).where(Assignment.id == assignment_id))

    def list_assignments_for_phase(self, phase_id: UUID) -> list[Assignment]:
        return list(
            self.db.scalars(
                select(Assignment)
                .where(Assignment.phase_id == phase_id)
                .order_by(Assignment.start_date.asc(), Assignment.id.asc())
            ).all()
        )

    def list_assignments_for_person(self, person_id: UUID) -> list[Assignment]:
        return self.find_active_assignments(person_id)

    def add_assignment(self, assignment: Assignment) -> Assignment:
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def delete_assignment(self, assignment: Assignment) -> None:
        self.db.delete(assignment)
        self.db.flush()
