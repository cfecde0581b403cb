"""Resolution of the submission target from flags, environment, URL and config."""

from __future__ import annotations

import re

from canvas_cli.configs import normalize_base_url
from canvas_cli.errors import PreconditionError
from canvas_cli.types import EnvOverrides, ParsedAssignmentUrl, SubmissionTarget

ASSIGNMENT_URL_PATTERN = re.compile(
    r"^(?P<base_url>[a-zA-Z][a-zA-Z0-9+.-]*://[^/]+)"
    r"/courses/(?P<course_id>\d+)"
    r"(?:/assignments/(?P<assignment_id>\d+))?/?$"
)


def parse_assignment_url(url: str) -> ParsedAssignmentUrl:
    """Split a course or assignment URL into base URL, course id and assignment id.

    Args:
        url: e.g. ``https://school.instructure.com/courses/12/assignments/34``.

    Returns:
        The parsed pieces; ``assignment_id`` is None for a course URL.

    Raises:
        PreconditionError: If the URL does not follow the pattern.
    """
    match = ASSIGNMENT_URL_PATTERN.match(url.strip())
    if not match:
        raise PreconditionError(
            f"Could not parse '{url}'. Expected {{scheme}}://{{host}}/courses/{{id}}[/assignments/{{id}}]"
        )
    return ParsedAssignmentUrl(
        base_url=normalize_base_url(match["base_url"]),
        course_id=match["course_id"],
        assignment_id=match["assignment_id"],
    )


def _first(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def resolve_target(
    configured_url: str,
    env: EnvOverrides,
    course_id: str | None = None,
    assignment_id: str | None = None,
    url: str | None = None,
) -> SubmissionTarget:
    """Merge every source of target information.

    Precedence for ids is explicit flag > environment > parsed URL; whatever is
    still missing is left as None and picked interactively. The base URL comes
    from the environment, then the parsed URL, then the stored configuration.

    Args:
        configured_url: Base URL from the config file.
        env: Environment overrides.
        course_id: Explicit ``--course`` value.
        assignment_id: Explicit ``--assignment`` value.
        url: Explicit canonical course/assignment URL.

    Returns:
        The resolved target.
    """
    parsed = parse_assignment_url(url) if url else None
    return SubmissionTarget(
        base_url=normalize_base_url(
            _first(env["base_url"], parsed["base_url"] if parsed else None, configured_url) or ""
        ),
        course_id=_first(course_id, env["course_id"], parsed["course_id"] if parsed else None),
        assignment_id=_first(assignment_id, env["assignment_id"], parsed["assignment_id"] if parsed else None),
    )
