"""File upload protocol and submission of uploaded files to an assignment."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from canvas_cli.client import CanvasClient
from canvas_cli.concurrency import join_all
from canvas_cli.errors import FinalizationError, PreconditionError, ProtocolError, TransportError
from canvas_cli.models import (
    ONLINE_UPLOAD,
    Assignment,
    SubmissionRequest,
    UploadBucket,
    UploadedFile,
    parse_model,
)
from canvas_cli.progress import spinning

logger = logging.getLogger(__name__)

UPLOAD_FILE_FIELD = "file"

ProgressCallback = Callable[[str], None]


def _ignore_progress(message: str) -> None:
    pass


def verify_files(paths: Sequence[Path]) -> list[Path]:
    """Check that there is at least one file and that every file is readable.

    Raises:
        PreconditionError: If the list is empty or a path is not a regular file.
    """
    if not paths:
        raise PreconditionError("No files to submit")
    for path in paths:
        if not path.is_file():
            raise PreconditionError(f"File not found: {path}")
    return list(paths)


def submission_files_path(assignment: Assignment) -> str:
    return f"api/v1/courses/{assignment.course.id}/assignments/{assignment.id}/submissions/self/files"


async def request_upload_bucket(client: CanvasClient, assignment: Assignment, path: Path) -> UploadBucket:
    """Stage 1: announce the file and get a one-time upload target."""
    payload = await client.post_json(
        submission_files_path(assignment),
        data={"name": path.name, "size": path.stat().st_size},
    )
    return parse_model(UploadBucket, payload, "upload bucket")


async def transfer_payload(client: CanvasClient, bucket: UploadBucket, path: Path) -> str:
    """Stage 2: send the bytes with the bucket's form fields.

    Returns:
        The confirmation URL from the Location header.

    Raises:
        ProtocolError: If the response carries no Location header.
    """
    with open(path, "rb") as stream:
        response = await client.post_multipart(
            bucket.upload_url,
            fields=bucket.upload_params,
            file_field=UPLOAD_FILE_FIELD,
            filename=path.name,
            stream=stream,
        )
    location = response.headers.get("Location")
    if not location:
        raise ProtocolError(f"Upload of {path.name} returned no Location header (status {response.status_code})")
    return location


async def confirm_upload(client: CanvasClient, location: str, path: Path) -> UploadedFile:
    """Stage 3: confirm the upload with an empty POST; the body describes the stored file."""
    payload = await client.post_json(location)
    if not isinstance(payload, dict) or payload.get("id") is None:
        raise ProtocolError(f"Confirmation of {path.name} returned no file id")
    return parse_model(UploadedFile, payload, "uploaded file")


async def upload_file(
    client: CanvasClient,
    assignment: Assignment,
    path: Path,
    on_progress: ProgressCallback = _ignore_progress,
) -> UploadedFile:
    """Run the three upload stages for one file, strictly in order.

    Args:
        client: Authenticated Canvas client.
        assignment: Target assignment.
        path: Local file.
        on_progress: Receives a message after each stage.

    Returns:
        The confirmed remote file.
    """
    bucket = await request_upload_bucket(client, assignment, path)
    on_progress(f"Received bucket for {path.name}")
    location = await transfer_payload(client, bucket, path)
    on_progress(f"Received location for {path.name}")
    uploaded = await confirm_upload(client, location, path)
    on_progress(f"Uploaded {path.name}")
    logger.info("Uploaded %s as file %s", path, uploaded.id)
    return uploaded


async def _upload_with_spinner(
    client: CanvasClient,
    assignment: Assignment,
    path: Path,
    position: int,
    quiet: bool,
) -> UploadedFile:
    async with spinning(f"Uploading {path.name}", position=position, disable=quiet) as spinner:
        uploaded = await upload_file(client, assignment, path, on_progress=spinner.set_message)
        spinner.succeed()
        return uploaded


async def upload_files(
    client: CanvasClient,
    assignment: Assignment,
    paths: Sequence[Path],
    quiet: bool = False,
) -> list[UploadedFile]:
    """Upload every file concurrently, one spinner per file.

    Returns:
        One uploaded file per path, in the order of ``paths``.

    Raises:
        CanvasCliError: The first failure of any file, after the others have settled.
    """
    return await join_all(
        *(
            _upload_with_spinner(client, assignment, path, position, quiet)
            for position, path in enumerate(paths)
        )
    )


async def submit_files(client: CanvasClient, request: SubmissionRequest) -> None:
    """Attach the uploaded files to the assignment as one ``online_upload`` submission.

    Raises:
        FinalizationError: If Canvas does not accept the submission.
    """
    params = [("submission[file_ids][]", file_id) for file_id in request.file_ids]
    params.append(("submission[submission_type]", ONLINE_UPLOAD))
    try:
        await client.request(
            "POST",
            f"api/v1/courses/{request.course_id}/assignments/{request.assignment_id}/submissions",
            params=params,
        )
    except TransportError as e:
        raise FinalizationError(f"Submission failed after uploading {len(request.file_ids)} file(s): {e}") from e
    logger.info("Submitted files %s", ", ".join(request.file_ids))


async def submit_assignment(
    client: CanvasClient,
    assignment: Assignment,
    paths: Sequence[Path],
    quiet: bool = False,
) -> SubmissionRequest:
    """Upload the files and submit them together.

    Nothing is submitted unless every file was uploaded.

    Returns:
        The submission that was sent.
    """
    uploads = await upload_files(client, assignment, paths, quiet=quiet)
    request = SubmissionRequest.from_uploads(assignment.course.id, assignment.id, paths, uploads)
    await submit_files(client, request)
    return request
