"""Ordering, labelling and interactive selection of courses and assignments."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

import click

from canvas_cli.errors import NotFoundError
from canvas_cli.models import Assignment, Course, CourseFile

SUBMITTED_MARK = "✓"
FAVORITE_MARK = "★"
COLOR_BLOCK = "█"

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class Choice[T]:
    """A selectable item.

    Attributes:
        label: Plain text the fuzzy filter matches against.
        value: The object returned when the choice is picked.
        display: Rendered text (may contain ANSI styling); defaults to ``label``.
    """

    label: str
    value: T
    display: str | None = None

    @property
    def rendered(self) -> str:
        return self.display if self.display is not None else self.label


def sort_courses(courses: Iterable[Course]) -> list[Course]:
    """Favorites first, then by name."""
    return sorted(courses, key=lambda course: (not course.is_favorite, course.name))


def sort_assignments(assignments: Iterable[Assignment]) -> list[Assignment]:
    """Unsubmitted first, then by due date with undated assignments last."""
    return sorted(
        assignments,
        key=lambda a: (a.submitted, a.due_at is None, a.due_at or datetime.min),
    )


def fuzzy_match(query: str, label: str) -> bool:
    """Case-insensitive, order-preserving subsequence match.

    ``"hw3"`` matches ``"Homework 3"``; an empty query matches everything.
    Adding characters to a query can only remove matches.
    """
    remaining = iter(label.casefold())
    return all(char in remaining for char in query.casefold())


def filter_choices[T](query: str, choices: Sequence[Choice[T]]) -> list[Choice[T]]:
    return [choice for choice in choices if fuzzy_match(query, choice.label)]


def parse_hex_color(color: str) -> tuple[int, int, int] | None:
    """Turn ``#rgb`` / ``#rrggbb`` into an RGB tuple; other CSS forms yield None."""
    match = _HEX_COLOR.match(color.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def course_label(course: Course) -> str:
    return f"{course.name} {FAVORITE_MARK}" if course.is_favorite else course.name


def render_course(course: Course) -> str:
    """Course name preceded by a block in the user's course color."""
    rgb = parse_hex_color(course.display_color)
    block = click.style(f"{COLOR_BLOCK} ", fg=rgb) if rgb else f"{COLOR_BLOCK} "
    star = click.style(f" {FAVORITE_MARK}", fg="yellow") if course.is_favorite else ""
    return f"{block}{course.name}{star}"


def assignment_label(assignment: Assignment) -> str:
    return f"{assignment.name} {SUBMITTED_MARK if assignment.submitted else ' '}"


def course_choices(courses: Iterable[Course]) -> list[Choice[Course]]:
    return [Choice(course_label(c), c, render_course(c)) for c in sort_courses(courses)]


def assignment_choices(assignments: Iterable[Assignment]) -> list[Choice[Assignment]]:
    return [Choice(assignment_label(a), a) for a in sort_assignments(assignments)]


def file_choices(files: Iterable[CourseFile]) -> list[Choice[CourseFile]]:
    """Course files, least recently updated first."""
    return [Choice(f.label, f) for f in sorted(files, key=lambda f: f.updated_at)]


def _show(candidates: Sequence[Choice[object]]) -> None:
    width = len(str(len(candidates)))
    for index, choice in enumerate(candidates, start=1):
        click.echo(f"  {index:>{width}}) {choice.rendered}")


def select_one[T](prompt: str, choices: Sequence[Choice[T]]) -> T:
    """Ask the user to pick one choice.

    The user answers with a number to pick, or with text to narrow the list
    by fuzzy match (an empty answer shows the full list again).

    Args:
        prompt: Question shown to the user, e.g. ``"Course?"``.
        choices: Candidates in display order.

    Returns:
        The value of the picked choice.

    Raises:
        NotFoundError: If there is nothing to choose from.
    """
    if not choices:
        raise NotFoundError(f"Nothing to choose from for '{prompt}'")

    candidates = list(choices)
    while True:
        _show(candidates)
        answer = click.prompt(f"{prompt} [number or filter]", default="", show_default=False).strip()
        if answer.isdigit():
            index = int(answer)
            if 1 <= index <= len(candidates):
                return candidates[index - 1].value
            click.echo(f"Pick a number between 1 and {len(candidates)}")
            continue
        narrowed = filter_choices(answer, choices)
        if not narrowed:
            click.echo(f"No match for '{answer}'")
            continue
        candidates = narrowed


def select_many[T](prompt: str, choices: Sequence[Choice[T]]) -> list[T]:
    """Ask the user to pick any number of choices.

    Answers are comma-separated numbers (``1,3``), ``all`` for every shown
    candidate, or text to narrow the list by fuzzy match.
    """
    if not choices:
        raise NotFoundError(f"Nothing to choose from for '{prompt}'")

    candidates = list(choices)
    while True:
        _show(candidates)
        answer = click.prompt(f"{prompt} [numbers, 'all' or filter]", default="", show_default=False).strip()
        if answer.lower() == "all":
            return [choice.value for choice in candidates]
        parts = [part.strip() for part in answer.split(",") if part.strip()]
        if parts and all(part.isdigit() for part in parts):
            indexes = sorted({int(part) for part in parts})
            if all(1 <= index <= len(candidates) for index in indexes):
                return [candidates[index - 1].value for index in indexes]
            click.echo(f"Pick numbers between 1 and {len(candidates)}")
            continue
        narrowed = filter_choices(answer, choices)
        if not narrowed:
            click.echo(f"No match for '{answer}'")
            continue
        candidates = narrowed
