"""Course file download utilities."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from canvas_cli.client import CanvasClient
from canvas_cli.concurrency import join_all
from canvas_cli.errors import PreconditionError
from canvas_cli.models import CourseFile
from canvas_cli.progress import spinning

CHUNK_SIZE = 8192


def download_file(client: CanvasClient, file: CourseFile, output_path: Path) -> Path:
    """
    Download a single course file.

    Args:
        client: Authenticated Canvas client
        file: File to download
        output_path: Path to save the file to

    Returns:
        Path to downloaded file

    Raises:
        TransportError: For HTTP/network errors
        OSError: For file system errors
    """
    response = client.stream(file.url)
    with response, open(output_path, "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if chunk:
                f.write(chunk)
    return output_path


def unique_output_path(output_dir: Path, filename: str, taken: set[Path]) -> Path:
    """Free path for ``filename`` in ``output_dir``, numbered ``stem_1``, ``stem_2`` on collision."""
    output_path = output_dir / filename

    # Handle duplicate filenames
    counter = 1
    original_path = output_path
    while output_path.exists() or output_path in taken:
        output_path = output_dir / f"{original_path.stem}_{counter}{original_path.suffix}"
        counter += 1
    taken.add(output_path)
    return output_path


async def _download_with_spinner(
    client: CanvasClient,
    file: CourseFile,
    output_path: Path,
    position: int,
    quiet: bool,
) -> Path:
    async with spinning(f"Downloading file {file.label}", position=position, disable=quiet) as spinner:
        path = await asyncio.to_thread(download_file, client, file, output_path)
        spinner.succeed(f"Downloaded file {file.label}")
        return path


async def download_files(
    client: CanvasClient,
    files: Sequence[CourseFile],
    output_dir: Path | None = None,
    quiet: bool = False,
) -> list[Path]:
    """
    Download course files concurrently, one spinner per file.

    Args:
        client: Authenticated Canvas client
        files: Files to download
        output_dir: Directory to save files (default: current directory)
        quiet: Suppress spinners

    Returns:
        Paths of the downloaded files, in the order of ``files``

    Raises:
        PreconditionError: If no files are given
    """
    if not files:
        raise PreconditionError("No files provided")

    output_dir = Path(output_dir) if output_dir is not None else Path.cwd()
    output_dir.mkdir(parents=True, exist_ok=True)

    taken: set[Path] = set()
    output_paths = [unique_output_path(output_dir, file.filename, taken) for file in files]
    return await join_all(
        *(
            _download_with_spinner(client, file, output_path, position, quiet)
            for position, (file, output_path) in enumerate(zip(files, output_paths))
        )
    )
