from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

import pytest

from archtrack.models.entities import Assignment, AssignmentRole
from archtrack.services.allocation_engine import (
    AllocationEngine,
    AllocationFilter,
    InvalidFilter,
    PersonNotFound,
    assignment_overlaps,
)


class InMemoryStore:
    """Store that hands back every row for a person and leaves qualification to the engine."""

    def __init__(self) -> None:
        self.people: list[uuid.UUID] = []
        self.rows: list[Assignment] = []
        self.phase_projects: dict[uuid.UUID, uuid.UUID] = {}
        self.calls: list[str] = []

    def add_person(self) -> uuid.UUID:
        person_id = uuid.uuid4()
        self.people.append(person_id)
        return person_id

    def add(
        self,
        person_id: uuid.UUID,
        percentage: str,
        *,
        start: date = date(2024, 1, 1),
        end: date | None = None,
        active: bool = True,
        project_id: uuid.UUID | None = None,
        role: AssignmentRole = AssignmentRole.MEMBER,
    ) -> Assignment:
        phase_id = uuid.uuid4()
        self.phase_projects[phase_id] = project_id or uuid.uuid4()
        row = Assignment(
            id=uuid.uuid4(),
            phase_id=phase_id,
            person_id=person_id,
            role=role,
            working_percentage=Decimal(percentage),
            start_date=start,
            end_date=end,
            is_active=active,
            version=1,
        )
        self.rows.append(row)
        return row

    def _matches(self, row: Assignment, allocation_filter: AllocationFilter | None) -> bool:
        if allocation_filter is None or allocation_filter.project_id is None:
            return True
        return self.phase_projects[row.phase_id] == allocation_filter.project_id

    def person_exists(self, person_id: uuid.UUID) -> bool:
        self.calls.append("person_exists")
        return person_id in self.people

    def find_active_assignments(
        self,
        person_id: uuid.UUID,
        allocation_filter: AllocationFilter | None = None,
    ) -> list[Assignment]:
        self.calls.append("find_active_assignments")
        return [row for row in self.rows if row.person_id == person_id and self._matches(row, allocation_filter)]

    def find_active_assignments_for_roster(
        self,
        person_ids: Sequence[uuid.UUID],
        allocation_filter: AllocationFilter | None = None,
    ) -> dict[uuid.UUID, list[Assignment]]:
        self.calls.append("find_active_assignments_for_roster")
        return {
            person_id: self.find_active_assignments(person_id, allocation_filter) for person_id in person_ids
        }

    def find_active_people_roster(self) -> list[uuid.UUID]:
        self.calls.append("find_active_people_roster")
        return list(self.people)


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def engine(store: InMemoryStore) -> AllocationEngine:
    return AllocationEngine(store)


def test_person_without_assignments_has_zero_allocation(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()

    snapshot = engine.compute_allocation(person_id)

    assert snapshot.total_allocation == Decimal("0.00")
    assert snapshot.is_overallocated is False
    assert snapshot.assignments == []


def test_exactly_full_allocation_is_not_overallocated(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "50", start=date(2024, 1, 1), end=date(2024, 1, 15))
    store.add(person_id, "50", start=date(2024, 1, 16), end=date(2024, 1, 28), role=AssignmentRole.LEADER)

    snapshot = engine.compute_allocation(person_id)

    assert snapshot.total_allocation == Decimal("100.00")
    assert snapshot.is_overallocated is False
    assert len(snapshot.assignments) == 2


def test_boundary_just_above_ceiling_is_overallocated(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "60")
    store.add(person_id, "40.01")

    snapshot = engine.compute_allocation(person_id)

    assert snapshot.total_allocation == Decimal("100.01")
    assert snapshot.is_overallocated is True


def test_overlapping_assignments_are_summed_at_face_value(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "75", start=date(2024, 1, 1), end=date(2024, 3, 31))
    store.add(person_id, "50", start=date(2024, 3, 1))

    snapshot = engine.compute_allocation(person_id)

    assert snapshot.total_allocation == Decimal("125.00")
    assert snapshot.is_overallocated is True


def test_inactive_assignments_never_contribute(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "40")
    store.add(person_id, "100", active=False)
    store.add(person_id, "100", active=False, start=date(2023, 1, 1), end=None)

    snapshot = engine.compute_allocation(person_id, AllocationFilter(date_range_start=date(2024, 6, 1)))
    check = engine.validate_new_assignment(person_id, Decimal("10"))

    assert snapshot.total_allocation == Decimal("40.00")
    assert [row.is_active for row in snapshot.assignments] == [True]
    assert check.current_allocation == Decimal("40.00")


def test_date_window_uses_inclusive_overlap(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "50", start=date(2024, 2, 1), end=date(2024, 2, 28))

    partial = engine.compute_allocation(
        person_id,
        AllocationFilter(date_range_start=date(2024, 2, 15), date_range_end=date(2024, 3, 15)),
    )
    disjoint = engine.compute_allocation(
        person_id,
        AllocationFilter(date_range_start=date(2024, 3, 1), date_range_end=date(2024, 3, 31)),
    )
    touching = engine.compute_allocation(
        person_id,
        AllocationFilter(date_range_start=date(2024, 2, 28), date_range_end=date(2024, 2, 28)),
    )

    assert partial.total_allocation == Decimal("50.00")
    assert disjoint.total_allocation == Decimal("0.00")
    assert touching.total_allocation == Decimal("50.00")


def test_open_ended_assignment_matches_any_later_window(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "30", start=date(2024, 1, 1), end=None)

    far_future = engine.compute_allocation(
        person_id,
        AllocationFilter(date_range_start=date(2030, 1, 1), date_range_end=date(2030, 12, 31)),
    )
    before_start = engine.compute_allocation(
        person_id,
        AllocationFilter(date_range_start=date(2023, 1, 1), date_range_end=date(2023, 12, 31)),
    )
    start_only = engine.compute_allocation(person_id, AllocationFilter(date_range_start=date(2099, 1, 1)))

    assert far_future.total_allocation == Decimal("30.00")
    assert before_start.total_allocation == Decimal("0.00")
    assert start_only.total_allocation == Decimal("30.00")


def test_assignment_overlaps_without_filter() -> None:
    row = Assignment(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))

    assert assignment_overlaps(row, None) is True
    assert assignment_overlaps(row, AllocationFilter(date_range_end=date(2023, 12, 31))) is False


def test_project_filter_isolates_allocation(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    project_a = uuid.uuid4()
    project_b = uuid.uuid4()
    store.add(person_id, "100", project_id=project_a)
    store.add(person_id, "100", project_id=project_b)

    scoped = engine.compute_allocation(person_id, AllocationFilter(project_id=project_a))
    overall = engine.compute_allocation(person_id)

    assert scoped.total_allocation == Decimal("100.00")
    assert scoped.is_overallocated is False
    assert overall.total_allocation == Decimal("200.00")


def test_team_allocation_includes_people_without_assignments(
    store: InMemoryStore, engine: AllocationEngine
) -> None:
    people = [store.add_person() for _ in range(4)]
    store.add(people[0], "50")
    store.add(people[1], "100")
    store.add(people[2], "75")
    store.add(people[2], "50")

    summary = engine.compute_team_allocation()

    assert summary.total_people == 4
    assert summary.allocated_count == 3
    assert summary.overallocated_count == 1
    assert [snap.person_id for snap in summary.snapshots] == people
    idle = summary.snapshots[3]
    assert idle.total_allocation == Decimal("0.00")
    assert idle.assignments == []


def test_team_allocation_with_explicit_roster_and_empty_roster(
    store: InMemoryStore, engine: AllocationEngine
) -> None:
    person_id = store.add_person()
    store.add(person_id, "20")

    explicit = engine.compute_team_allocation([person_id, person_id])
    calls_before_empty = list(store.calls)
    empty = engine.compute_team_allocation([])

    assert explicit.total_people == 1
    assert explicit.snapshots[0].total_allocation == Decimal("20.00")
    assert empty.total_people == 0
    assert empty.snapshots == []
    assert store.calls == calls_before_empty


def test_validate_new_assignment_reports_proposed_total(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "80")

    check = engine.validate_new_assignment(person_id, Decimal("30"))

    assert check.is_overallocated is True
    assert check.current_allocation == Decimal("80.00")
    assert check.proposed_total == Decimal("110.00")


def test_validate_new_assignment_at_ceiling_is_allowed(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "80")

    check = engine.validate_new_assignment(person_id, Decimal("20"))

    assert check.is_overallocated is False
    assert check.proposed_total == Decimal("100.00")


def test_validate_excluding_own_assignment_matches_absence(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()
    store.add(person_id, "40")
    own = store.add(person_id, "60")

    with_exclusion = engine.validate_new_assignment(person_id, Decimal("70"), exclude_assignment_id=own.id)
    store.rows.remove(own)
    without_row = engine.validate_new_assignment(person_id, Decimal("70"))

    assert with_exclusion.current_allocation == without_row.current_allocation == Decimal("40.00")
    assert with_exclusion.proposed_total == Decimal("110.00")
    assert with_exclusion.is_overallocated is True


def test_unknown_person_is_rejected(store: InMemoryStore, engine: AllocationEngine) -> None:
    missing = uuid.uuid4()

    with pytest.raises(PersonNotFound):
        engine.compute_allocation(missing)
    with pytest.raises(PersonNotFound):
        engine.validate_new_assignment(missing, Decimal("10"))
    assert "find_active_assignments" not in store.calls


def test_inverted_filter_is_rejected_before_any_store_query(
    store: InMemoryStore, engine: AllocationEngine
) -> None:
    person_id = store.add_person()
    inverted = AllocationFilter(date_range_start=date(2024, 3, 1), date_range_end=date(2024, 2, 1))

    with pytest.raises(InvalidFilter):
        engine.compute_allocation(person_id, inverted)
    with pytest.raises(InvalidFilter):
        engine.compute_team_allocation(allocation_filter=inverted)
    assert store.calls == []


def test_store_failures_propagate_unchanged(store: InMemoryStore, engine: AllocationEngine) -> None:
    person_id = store.add_person()

    def broken(*_args: object, **_kwargs: object) -> list[Assignment]:
        raise RuntimeError("store offline")

    store.find_active_assignments = broken  # type: ignore[method-assign]

    with pytest.raises(RuntimeError, match="store offline"):
        engine.compute_allocation(person_id)


def test_custom_ceiling(store: InMemoryStore) -> None:
    person_id = store.add_person()
    store.add(person_id, "85")

    check = AllocationEngine(store, ceiling=Decimal("80")).validate_new_assignment(person_id, Decimal("0"))

    assert check.is_overallocated is True
