"""ORM model package."""

from archtrack.models.entities import (
    Assignment,
    AssignmentRole,
    DirectoryRole,
    Person,
    Phase,
    Project,
)

__all__ = [
    "Assignment",
    "AssignmentRole",
    "DirectoryRole",
    "Person",
    "Phase",
    "Project",
]
