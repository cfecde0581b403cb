"""Type definitions for canvas-cli."""

from __future__ import annotations

from typing import TypedDict


class EnvOverrides(TypedDict):
    """Target overrides read from the environment."""

    base_url: str | None
    course_id: str | None
    assignment_id: str | None


class ParsedAssignmentUrl(TypedDict):
    """Pieces of a canonical ``/courses/{id}[/assignments/{id}]`` URL."""

    base_url: str
    course_id: str
    assignment_id: str | None


class SubmissionTarget(TypedDict):
    """Where a submission goes; ``None`` ids are resolved interactively."""

    base_url: str
    course_id: str | None
    assignment_id: str | None
