"""Canvas queries for courses, assignments and their user-specific metadata."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from canvas_cli.client import CanvasClient
from canvas_cli.concurrency import join_all
from canvas_cli.errors import NotFoundError, ResponseParseError, TransportError
from canvas_cli.models import (
    ONLINE_UPLOAD,
    Assignment,
    CatalogEntry,
    Course,
    CourseFile,
    parse_catalog,
    parse_model,
)

logger = logging.getLogger(__name__)

ASSIGNMENTS_QUERY = """
query QueryAssignments {
  allCourses {
    _id
    name
    assignmentsConnection {
      nodes {
        _id
        name
        dueAt
        submissionTypes
        submissionsConnection {
          nodes {
            submissionStatus
          }
        }
      }
    }
  }
}
"""

COURSE_INCLUDES = [("include[]", "favorites"), ("include[]", "concluded")]


class _FavoriteCourse(BaseModel):
    id: int | str
    name: str | None = None


class _ColorsResponse(BaseModel):
    custom_colors: dict[str, str] = Field(default_factory=dict)


class _CourseResponse(BaseModel):
    id: int | str
    name: str
    is_favorite: bool = False
    created_at: datetime | None = None
    concluded: bool = False


class _AssignmentSubmission(BaseModel):
    workflow_state: str | None = None


class _AssignmentResponse(BaseModel):
    id: int | str
    name: str
    due_at: datetime | None = None
    submission_types: list[str] = Field(default_factory=list)
    submission: _AssignmentSubmission | None = None


async def fetch_favorite_course_ids(client: CanvasClient) -> set[str]:
    """Ids of the courses the user marked as favorites."""
    payload = await client.get_json("api/v1/users/self/favorites/courses")
    if not isinstance(payload, list):
        raise ResponseParseError("Malformed favorite courses: expected a list")
    favorites = [parse_model(_FavoriteCourse, item, "favorite course") for item in payload]
    logger.info("Made REST request to get favorite courses")
    return {str(course.id) for course in favorites}


async def fetch_course_colors(client: CanvasClient) -> dict[str, str]:
    """Mapping of course asset key (``course_<id>``) to CSS color.

    Colors for other asset types (groups, users) are dropped.
    """
    payload = await client.get_json("api/v1/users/self/colors")
    colors = parse_model(_ColorsResponse, payload, "course colors").custom_colors
    logger.info("Made REST request to get course colors")
    return {key: value for key, value in colors.items() if key.startswith("course_")}


async def fetch_catalog_entries(client: CanvasClient) -> list[CatalogEntry]:
    """Every course with its assignments, from a single GraphQL query."""
    payload = await client.graphql(ASSIGNMENTS_QUERY)
    entries = parse_catalog(payload)
    logger.info("Made GraphQL request to get %d assignments", len(entries))
    return entries


def merge_catalog(
    entries: Iterable[CatalogEntry],
    favorite_ids: set[str],
    colors: dict[str, str],
) -> list[Assignment]:
    """Join favorites and colors into the catalog and keep file-upload assignments.

    Favorites are matched by course id and colors by asset key; a course
    without a stored color keeps ``color=None``.

    Args:
        entries: Flattened GraphQL catalog.
        favorite_ids: Course ids from the favorites endpoint.
        colors: Asset key to color mapping.

    Returns:
        Assignments accepting ``online_upload``, in catalog order, each with its resolved course.
    """
    courses: dict[str, Course] = {}
    assignments: list[Assignment] = []
    for entry in entries:
        if entry.course_id not in courses:
            course = Course(id=entry.course_id, name=entry.course_name, is_favorite=entry.course_id in favorite_ids)
            courses[entry.course_id] = course.model_copy(update={"color": colors.get(course.asset_key)})
        if ONLINE_UPLOAD not in entry.submission_types:
            continue
        assignments.append(
            Assignment(
                id=entry.assignment_id,
                name=entry.name,
                due_at=entry.due_at,
                course=courses[entry.course_id],
                submitted=entry.submitted,
                submission_types=entry.submission_types,
            )
        )
    return assignments


async def fetch_catalog(client: CanvasClient) -> list[Assignment]:
    """Query the catalog, favorites and colors concurrently and merge them.

    Nothing is merged unless all three queries succeed.

    Args:
        client: Authenticated Canvas client.

    Returns:
        Flat list of upload-capable assignments with their courses resolved.

    Raises:
        TransportError: If any of the three queries fails.
    """
    entries, favorite_ids, colors = await join_all(
        fetch_catalog_entries(client),
        fetch_favorite_course_ids(client),
        fetch_course_colors(client),
    )
    return merge_catalog(entries, favorite_ids, colors)


def courses_of(assignments: Iterable[Assignment]) -> list[Course]:
    """Distinct courses referenced by the assignments, in first-seen order."""
    courses: dict[str, Course] = {}
    for assignment in assignments:
        courses.setdefault(assignment.course.id, assignment.course)
    return list(courses.values())


def _course_from_response(course: _CourseResponse, colors: dict[str, str]) -> Course:
    result = Course(id=course.id, name=course.name, is_favorite=course.is_favorite, created_at=course.created_at)
    return result.model_copy(update={"color": colors.get(result.asset_key)})


async def fetch_course(client: CanvasClient, course_id: str) -> Course:
    """Look up one course by id, with favorite flag and color.

    Raises:
        NotFoundError: If the course does not exist.
    """
    try:
        payload, colors = await join_all(
            client.get_json(f"api/v1/courses/{course_id}", params=COURSE_INCLUDES),
            fetch_course_colors(client),
        )
    except NotFoundError as e:
        raise NotFoundError(f"Course {course_id} not found", status_code=e.status_code) from e
    logger.info("Made REST request to get course information")
    return _course_from_response(parse_model(_CourseResponse, payload, "course"), colors)


async def fetch_courses(client: CanvasClient) -> list[Course]:
    """All active (not concluded) courses of the user, with favorite flag and color.

    Entries the API returns in an unexpected shape (e.g. access-restricted
    courses) are skipped.
    """
    payload, colors = await join_all(
        client.get_json("api/v1/courses", params=[("per_page", 1000), *COURSE_INCLUDES]),
        fetch_course_colors(client),
    )
    if not isinstance(payload, list):
        raise ResponseParseError("Malformed course list: expected a list")

    courses: list[Course] = []
    for item in payload:
        try:
            course = parse_model(_CourseResponse, item, "course")
        except ResponseParseError as e:
            logger.debug("Skipping course entry: %s", e)
            continue
        if not course.concluded:
            courses.append(_course_from_response(course, colors))
    logger.info("Made REST request to get %d courses", len(courses))
    return courses


def _assignment_submitted(submission: _AssignmentSubmission | None) -> bool:
    return bool(submission and submission.workflow_state and submission.workflow_state != "unsubmitted")


async def fetch_assignment(client: CanvasClient, course: Course, assignment_id: str) -> Assignment:
    """Look up one assignment of a course by id.

    Raises:
        NotFoundError: If the assignment does not exist in the course, or does not accept file uploads.
    """
    try:
        payload = await client.get_json(
            f"api/v1/courses/{course.id}/assignments/{assignment_id}",
            params={"include[]": "submission"},
        )
    except NotFoundError as e:
        raise NotFoundError(
            f"Assignment {assignment_id} not found in course {course.name} ({course.id})",
            status_code=e.status_code,
        ) from e

    response = parse_model(_AssignmentResponse, payload, "assignment")
    assignment = Assignment(
        id=response.id,
        name=response.name,
        due_at=response.due_at,
        course=course,
        submitted=_assignment_submitted(response.submission),
        submission_types=frozenset(response.submission_types),
    )
    if not assignment.accepts_uploads:
        raise NotFoundError(f"Assignment '{assignment.name}' does not accept file uploads")
    return assignment


async def fetch_course_files(client: CanvasClient, course: Course) -> list[CourseFile]:
    """Files of a course; an inaccessible file listing yields an empty list."""
    try:
        payload = await client.get_json(f"api/v1/courses/{course.id}/files", params={"per_page": 1000})
    except TransportError as e:
        if e.status_code is None:
            raise
        logger.info("File listing for course %s returned %s", course.id, e.status_code)
        return []
    if not isinstance(payload, list):
        raise ResponseParseError("Malformed file list: expected a list")
    return [parse_model(CourseFile, item, "course file") for item in payload]
