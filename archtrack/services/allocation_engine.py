"""Team allocation engine: aggregate working percentages and classify over-allocation.

The engine is a pure computation over assignment records supplied by an
``AssignmentStore`` at call time. It keeps no state between calls, performs no
writes and never raises on over-allocation; it only classifies. Callers decide
whether an over-allocating write is rejected or allowed with a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from archtrack.models.entities import Assignment

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
DEFAULT_CEILING = Decimal("100")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


class AllocationError(Exception):
    """Base class for conditions the engine reports to its caller."""


class PersonNotFound(AllocationError):
    def __init__(self, person_id: UUID) -> None:
        super().__init__(f"Person not found: {person_id}")
        self.person_id = person_id


class InvalidFilter(AllocationError):
    pass


@dataclass(frozen=True, slots=True)
class AllocationFilter:
    """Optional restriction of the assignments that count towards a total.

    Either date bound may be omitted, leaving that side of the window open.
    """

    date_range_start: date | None = None
    date_range_end: date | None = None
    project_id: UUID | None = None

    def validate(self) -> None:
        if (
            self.date_range_start is not None
            and self.date_range_end is not None
            and self.date_range_end < self.date_range_start
        ):
            raise InvalidFilter("date_range_end must be greater than or equal to date_range_start.")

    @property
    def has_date_window(self) -> bool:
        return self.date_range_start is not None or self.date_range_end is not None


def assignment_overlaps(assignment: Assignment, allocation_filter: AllocationFilter | None) -> bool:
    """Inclusive overlap of the assignment interval with the filter window."""

    if allocation_filter is None:
        return True
    if allocation_filter.date_range_end is not None and assignment.start_date > allocation_filter.date_range_end:
        return False
    if (
        allocation_filter.date_range_start is not None
        and assignment.end_date is not None
        and assignment.end_date < allocation_filter.date_range_start
    ):
        return False
    return True


def total_working_percentage(assignments: Iterable[Assignment]) -> Decimal:
    total = ZERO
    for assignment in assignments:
        total += Decimal(str(assignment.working_percentage))
    return _q2(total)


class AssignmentStore(Protocol):
    """Read side of assignment persistence consumed by the engine."""

    def person_exists(self, person_id: UUID) -> bool: ...

    def find_active_assignments(
        self,
        person_id: UUID,
        allocation_filter: AllocationFilter | None = None,
    ) -> list[Assignment]: ...

    def find_active_assignments_for_roster(
        self,
        person_ids: Sequence[UUID],
        allocation_filter: AllocationFilter | None = None,
    ) -> dict[UUID, list[Assignment]]: ...

    def find_active_people_roster(self) -> list[UUID]: ...


@dataclass(slots=True)
class AllocationSnapshot:
    person_id: UUID
    total_allocation: Decimal
    is_overallocated: bool
    assignments: list[Assignment] = field(default_factory=list)


@dataclass(slots=True)
class TeamAllocationSummary:
    total_people: int
    allocated_count: int
    overallocated_count: int
    snapshots: list[AllocationSnapshot]


@dataclass(frozen=True, slots=True)
class AllocationCheck:
    is_overallocated: bool
    current_allocation: Decimal
    proposed_total: Decimal


class AllocationEngine:
    """Computes allocation snapshots and validates proposed assignments."""

    def __init__(self, store: AssignmentStore, *, ceiling: Decimal = DEFAULT_CEILING) -> None:
        self.store = store
        self.ceiling = ceiling

    def _is_over(self, total: Decimal) -> bool:
        return total > self.ceiling

    def _ensure_person(self, person_id: UUID) -> None:
        if not self.store.person_exists(person_id):
            raise PersonNotFound(person_id)

    def _snapshot(
        self,
        person_id: UUID,
        rows: Iterable[Assignment],
        allocation_filter: AllocationFilter | None,
    ) -> AllocationSnapshot:
        # Store filtering narrows the fetch; qualification is decided here.
        qualifying = [
            row for row in rows if row.is_active and assignment_overlaps(row, allocation_filter)
        ]
        total = total_working_percentage(qualifying)
        return AllocationSnapshot(
            person_id=person_id,
            total_allocation=total,
            is_overallocated=self._is_over(total),
            assignments=qualifying,
        )

    def compute_allocation(
        self,
        person_id: UUID,
        allocation_filter: AllocationFilter | None = None,
    ) -> AllocationSnapshot:
        if allocation_filter is not None:
            allocation_filter.validate()
        self._ensure_person(person_id)

        rows = self.store.find_active_assignments(person_id, allocation_filter)
        snapshot = self._snapshot(person_id, rows, allocation_filter)
        logger.debug(
            "Allocation for person %s: %s%% over %d assignment(s)",
            person_id,
            snapshot.total_allocation,
            len(snapshot.assignments),
        )
        return snapshot

    def compute_team_allocation(
        self,
        person_ids: Sequence[UUID] | None = None,
        allocation_filter: AllocationFilter | None = None,
    ) -> TeamAllocationSummary:
        if allocation_filter is not None:
            allocation_filter.validate()

        if person_ids is None:
            roster = self.store.find_active_people_roster()
        else:
            roster = list(dict.fromkeys(person_ids))

        by_person = (
            self.store.find_active_assignments_for_roster(roster, allocation_filter) if roster else {}
        )
        snapshots = [
            self._snapshot(person_id, by_person.get(person_id, []), allocation_filter)
            for person_id in roster
        ]

        summary = TeamAllocationSummary(
            total_people=len(snapshots),
            allocated_count=sum(1 for snap in snapshots if snap.total_allocation > ZERO),
            overallocated_count=sum(1 for snap in snapshots if snap.is_overallocated),
            snapshots=snapshots,
        )
        logger.info(
            "Team allocation computed: %d people, %d allocated, %d over-allocated",
            summary.total_people,
            summary.allocated_count,
            summary.overallocated_count,
        )
        return summary

    def validate_new_assignment(
        self,
        person_id: UUID,
        proposed_percentage: Decimal,
        exclude_assignment_id: UUID | None = None,
    ) -> AllocationCheck:
        self._ensure_person(person_id)

        rows = self.store.find_active_assignments(person_id)
        current = total_working_percentage(
            row for row in rows if row.is_active and row.id != exclude_assignment_id
        )
        proposed_total = _q2(current + Decimal(str(proposed_percentage)))
        check = AllocationCheck(
            is_overallocated=self._is_over(proposed_total),
            current_allocation=current,
            proposed_total=proposed_total,
        )
        if check.is_overallocated:
            logger.warning(
                "Proposed allocation for person %s exceeds %s%%: current %s%%, proposed total %s%%",
                person_id,
                self.ceiling,
                check.current_allocation,
                check.proposed_total,
            )
        return check
