"""Domain models and response parsing for the submission pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from canvas_cli.configs import DEFAULT_COURSE_COLOR
from canvas_cli.errors import PreconditionError, ResponseParseError

ONLINE_UPLOAD: str = "online_upload"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def _coerce_id(v: Any) -> Any:
    # GraphQL returns string ids, REST returns integers
    return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


CanvasId = Annotated[str, BeforeValidator(_coerce_id)]


class Course(_Frozen):
    """A course as seen at query time.

    Attributes:
        id: Canvas course id, always as a string.
        name: Display name.
        is_favorite: Whether the user starred the course.
        color: CSS color chosen by the user, None when not customised.
        created_at: Creation time, when the source provides it.
    """

    id: CanvasId
    name: str
    is_favorite: bool = False
    color: str | None = None
    created_at: datetime | None = None

    @property
    def asset_key(self) -> str:
        """Key used by the user colors endpoint."""
        return f"course_{self.id}"

    @property
    def display_color(self) -> str:
        return self.color or DEFAULT_COURSE_COLOR


class Assignment(_Frozen):
    """An assignment snapshot, carrying its resolved course."""

    id: CanvasId
    name: str
    due_at: datetime | None = None
    course: Course
    submitted: bool = False
    submission_types: frozenset[str] = frozenset()

    @property
    def accepts_uploads(self) -> bool:
        return ONLINE_UPLOAD in self.submission_types


class UploadBucket(_Frozen):
    """One-time upload target returned by the submission files endpoint."""

    upload_url: str
    upload_params: dict[str, str] = Field(default_factory=dict)

    @field_validator("upload_params", mode="before")
    @classmethod
    def stringify_params(cls, v: Any) -> Any:
        """Form fields are echoed verbatim, so keep them as the strings the API sent."""
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v


class UploadedFile(_Frozen):
    """A file confirmed by Canvas after all three upload stages."""

    id: CanvasId
    display_name: str | None = None


class SubmissionRequest(_Frozen):
    """All the file ids that make up one submission."""

    course_id: str
    assignment_id: str
    file_ids: tuple[str, ...]

    @classmethod
    def from_uploads(
        cls,
        course_id: str,
        assignment_id: str,
        paths: Sequence[Path],
        uploads: Sequence[UploadedFile],
    ) -> SubmissionRequest:
        """Build the request, refusing partial upload sets.

        Raises:
            PreconditionError: If there is not exactly one upload per input path.
        """
        if not paths:
            raise PreconditionError("No files to submit")
        if len(uploads) != len(paths):
            raise PreconditionError(f"Expected {len(paths)} uploaded file(s), got {len(uploads)}")
        return cls(course_id=course_id, assignment_id=assignment_id, file_ids=tuple(u.id for u in uploads))


class CourseFile(_Frozen):
    """A file stored in a course, as listed by the files endpoint."""

    id: CanvasId
    filename: str
    url: str
    size: int
    updated_at: datetime

    @property
    def label(self) -> str:
        return f"{self.filename} ({human_bytes(self.size)})"


def human_bytes(size: float) -> str:
    """Format a byte count with binary units, e.g. ``1.5 KiB``."""
    if size < 1024:
        return f"{size:.0f} B"
    for unit in ("KiB", "MiB", "GiB"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} TiB"


# GraphQL response shapes. Every nested level is validated here so that the
# merge step only ever sees fully formed records.


class _SubmissionNode(BaseModel):
    submission_status: str | None = Field(default=None, alias="submissionStatus")


class _SubmissionsConnection(BaseModel):
    nodes: list[_SubmissionNode]


class _AssignmentNode(BaseModel):
    id: str = Field(alias="_id")
    name: str
    due_at: datetime | None = Field(default=None, alias="dueAt")
    submission_types: list[str] = Field(alias="submissionTypes")
    submissions_connection: _SubmissionsConnection = Field(alias="submissionsConnection")


class _AssignmentsConnection(BaseModel):
    nodes: list[_AssignmentNode]


class _CourseNode(BaseModel):
    id: str = Field(alias="_id")
    name: str
    assignments_connection: _AssignmentsConnection = Field(alias="assignmentsConnection")


class _CatalogData(BaseModel):
    all_courses: list[_CourseNode] = Field(alias="allCourses")


class CatalogResponse(BaseModel):
    """Top-level GraphQL response for the assignment catalog."""

    data: _CatalogData


class CatalogEntry(_Frozen):
    """One assignment from the catalog, before favorites and colors are joined in."""

    course_id: str
    course_name: str
    assignment_id: str
    name: str
    due_at: datetime | None
    submitted: bool
    submission_types: frozenset[str]


def _format_location(error: Any) -> str:
    return ".".join(str(part) for part in error["loc"]) or "<root>"


def parse_catalog(payload: Any) -> list[CatalogEntry]:
    """Validate the GraphQL catalog response and flatten it.

    An assignment counts as submitted when any of its submissions has a
    non-empty status.

    Args:
        payload: Decoded JSON body of the GraphQL call.

    Returns:
        One entry per assignment, in response order.

    Raises:
        ResponseParseError: If the response reports errors or lacks a required field.
    """
    if isinstance(payload, dict) and payload.get("errors"):
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in payload["errors"])
        raise ResponseParseError(f"GraphQL query failed: {messages}")
    try:
        response = CatalogResponse.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        raise ResponseParseError(
            f"Malformed assignment catalog at {_format_location(first)}: {first['msg']}"
        ) from e

    return [
        CatalogEntry(
            course_id=course.id,
            course_name=course.name,
            assignment_id=node.id,
            name=node.name,
            due_at=node.due_at,
            submitted=any(s.submission_status for s in node.submissions_connection.nodes),
            submission_types=frozenset(node.submission_types),
        )
        for course in response.data.all_courses
        for node in course.assignments_connection.nodes
    ]


def parse_model[T: BaseModel](model: type[T], payload: Any, what: str) -> T:
    """Validate a REST payload, turning validation failures into ResponseParseError."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        raise ResponseParseError(f"Malformed {what} at {_format_location(first)}: {first['msg']}") from e
