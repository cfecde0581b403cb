"""High-level workflow orchestration for the canvas-cli commands."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

import click
import requests
from pydantic import BaseModel

from canvas_cli.canvas_queries import (
    courses_of,
    fetch_assignment,
    fetch_catalog,
    fetch_course,
    fetch_course_files,
    fetch_courses,
)
from canvas_cli.client import CanvasClient
from canvas_cli.configs import (
    Config,
    NonEmptyConfig,
    load_config,
    read_env_overrides,
    save_config,
    validate_access_token,
    validate_url,
)
from canvas_cli.downloader import download_files
from canvas_cli.errors import NotFoundError
from canvas_cli.models import Assignment, CourseFile, SubmissionRequest, parse_model
from canvas_cli.progress import spinning
from canvas_cli.selection import (
    assignment_choices,
    course_choices,
    file_choices,
    render_course,
    select_many,
    select_one,
)
from canvas_cli.submission_handler import submit_assignment, verify_files
from canvas_cli.targets import resolve_target
from canvas_cli.types import SubmissionTarget

logger = logging.getLogger(__name__)


def load_settings(config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Stored configuration with ``CANVAS_BASE_URL`` / ``CANVAS_ACCESS_TOKEN`` applied."""
    environ = os.environ if environ is None else environ
    return load_config(config_path).with_env(environ)


async def _query_catalog(client: CanvasClient, quiet: bool) -> list[Assignment]:
    async with spinning("Querying assignment information", disable=quiet) as spinner:
        assignments = await fetch_catalog(client)
        spinner.succeed("Queried assignment information")
    return assignments


async def resolve_assignment(client: CanvasClient, target: SubmissionTarget, quiet: bool = False) -> Assignment:
    """Find the target assignment, asking the user for whatever the target leaves open.

    Explicit ids are looked up directly; a missing course or assignment is
    picked from the merged catalog.

    Raises:
        NotFoundError: If an explicit id does not exist or nothing can be chosen.
    """
    course_id = target["course_id"]
    assignment_id = target["assignment_id"]

    catalog: list[Assignment] | None = None
    if course_id:
        course = await fetch_course(client, course_id)
    else:
        catalog = await _query_catalog(client, quiet)
        course = select_one("Course?", course_choices(courses_of(catalog)))
    click.echo(f"✓ Found {render_course(course)}")

    if assignment_id:
        return await fetch_assignment(client, course, assignment_id)

    if catalog is None:
        catalog = await _query_catalog(client, quiet)
    candidates = [a for a in catalog if a.course.id == course.id]
    if not candidates:
        raise NotFoundError(f"Course {course.name} has no assignments accepting file uploads")
    return select_one("Assignment?", assignment_choices(candidates))


async def submit(
    client: CanvasClient,
    target: SubmissionTarget,
    paths: Sequence[Path],
    quiet: bool = False,
) -> SubmissionRequest:
    """Resolve the assignment, upload the files and submit them."""
    assignment = await resolve_assignment(client, target, quiet=quiet)
    click.echo(f"✓ Selected {assignment.name}")
    request = await submit_assignment(client, assignment, paths, quiet=quiet)
    click.echo(f"✓ Submitted {len(request.file_ids)} file(s) to {assignment.name} 🎉")
    return request


def run_submit(
    paths: Sequence[Path],
    course_id: str | None = None,
    assignment_id: str | None = None,
    url: str | None = None,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
    quiet: bool = False,
) -> SubmissionRequest:
    """Main workflow for the submit command.

    Every local check (configuration, files, URL) happens before the first
    request is sent.

    Args:
        paths: Files to submit.
        course_id: Explicit course id.
        assignment_id: Explicit assignment id.
        url: Canonical course or assignment URL.
        config_path: Config file, defaults to the per-user config.
        environ: Environment, defaults to ``os.environ``.
        session: HTTP session, mainly for tests.
        quiet: Suppress progress spinners.

    Returns:
        The submission that was sent.

    Raises:
        CanvasCliError: On any failure; nothing is submitted in that case.
    """
    environ = os.environ if environ is None else environ
    config = load_settings(config_path, environ).ensure_non_empty()
    files = verify_files(paths)
    click.echo("✓ Verified files")

    target = resolve_target(config.url, read_env_overrides(environ), course_id, assignment_id, url)
    client = CanvasClient(NonEmptyConfig(url=target["base_url"], access_token=config.access_token), session=session)
    try:
        request = asyncio.run(submit(client, target, files, quiet=quiet))
    finally:
        client.close()
    return request


class _SelfResponse(BaseModel):
    name: str
    pronouns: str | None = None


def run_auth(
    url: str | None = None,
    access_token: str | None = None,
    config_path: Path | None = None,
    session: requests.Session | None = None,
    quiet: bool = False,
) -> Path:
    """Verify credentials against ``/api/v1/users/self`` and store them.

    Missing values are prompted for.

    Returns:
        Path of the written config file.
    """
    url = validate_url(url or click.prompt("Canvas Instance URL"))
    access_token = validate_access_token(access_token or click.prompt("Access token", hide_input=True))

    client = CanvasClient(NonEmptyConfig(url=url, access_token=access_token), session=session)

    async def query_self() -> _SelfResponse:
        async with spinning("Test query with authentication", disable=quiet) as spinner:
            payload = await client.get_json("api/v1/users/self")
            spinner.succeed("Test query successful")
        return parse_model(_SelfResponse, payload, "user")

    try:
        user = asyncio.run(query_self())
    finally:
        client.close()

    click.echo("Authenticated as:")
    click.echo(f"  {user.name} ({user.pronouns})" if user.pronouns else f"  {user.name}")

    return save_config(Config(url=url, access_token=access_token), config_path)


async def download(
    client: CanvasClient,
    course_id: str | None,
    file_ids: Sequence[str],
    directory: Path | None,
    quiet: bool = False,
) -> list[Path]:
    """Pick a course and files, then download them concurrently.

    Returns:
        The downloaded paths; empty when the course has no files or none were picked.
    """
    if course_id:
        course = await fetch_course(client, course_id)
        click.echo(f"✓ Found {render_course(course)}")
    else:
        async with spinning("Querying course information", disable=quiet) as spinner:
            courses = await fetch_courses(client)
            spinner.succeed("Queried course information")
        course = select_one("Course?", course_choices(courses))
    logger.info("Selected course %s", course.id)

    files: list[CourseFile] = await fetch_course_files(client, course)
    if not files:
        click.echo("No files available")
        return []

    if file_ids:
        wanted = set(file_ids)
        files = [f for f in files if f.id in wanted]
        click.echo("✓ Queried all files")
    else:
        files = select_many("Files?", file_choices(files))

    if not files:
        click.echo("No files selected")
        return []

    paths = await download_files(client, files, directory, quiet=quiet)
    click.echo("✓ Successfully downloaded files 🎉")
    return paths


def run_download(
    course_id: str | None = None,
    file_ids: Sequence[str] = (),
    directory: Path | None = None,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
    quiet: bool = False,
) -> list[Path]:
    """Main workflow for the download command."""
    environ = os.environ if environ is None else environ
    config = load_settings(config_path, environ).ensure_non_empty()
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
        click.echo(f"✓ Downloading files into {directory.resolve()}")

    course_id = course_id or read_env_overrides(environ)["course_id"]
    client = CanvasClient(config, session=session)
    try:
        return asyncio.run(download(client, course_id, file_ids, directory, quiet=quiet))
    finally:
        client.close()
