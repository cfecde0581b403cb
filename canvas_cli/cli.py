"""Command-line interface for canvas-cli."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from click.shell_completion import get_completion_class

from canvas_cli.configs import APP_NAME
from canvas_cli.workflow import run_auth, run_download, run_submit

SHELLS = ("bash", "zsh", "fish")


@click.group()
@click.version_option(package_name=APP_NAME)
@click.option("-v", "--verbose", is_flag=True, help="Log every request.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="CANVAS_CLI_CONFIG",
    help="Config file (defaults to the per-user config directory).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Interact with Canvas LMS from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config_path


@main.command()
@click.option("-u", "--url", help="URL for the Canvas instance, e.g. https://your.instructure.com")
@click.option("-a", "--access-token", help="Access token.")
@click.pass_obj
def auth(config_path: Path | None, url: str | None, access_token: str | None) -> None:
    """Authenticate with Canvas."""
    path = run_auth(url, access_token, config_path=config_path)
    click.echo(f"Saved configuration to {path}")


@main.command()
@click.option("-c", "--course", "course_id", help="Canvas course id.")
@click.option("-a", "--assignment", "assignment_id", help="Canvas assignment id.")
@click.option("--url", help="Course or assignment URL, e.g. https://host/courses/1/assignments/2")
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
)
@click.pass_obj
def submit(
    config_path: Path | None,
    course_id: str | None,
    assignment_id: str | None,
    url: str | None,
    files: tuple[Path, ...],
) -> None:
    """Submit FILES to a Canvas assignment."""
    run_submit(list(files), course_id=course_id, assignment_id=assignment_id, url=url, config_path=config_path)


@main.command()
@click.option("-c", "--course", "course_id", help="Canvas course id.")
@click.option(
    "-d",
    "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory.",
)
@click.argument("file_ids", nargs=-1)
@click.pass_obj
def download(
    config_path: Path | None,
    course_id: str | None,
    directory: Path | None,
    file_ids: tuple[str, ...],
) -> None:
    """Download files from a course."""
    run_download(course_id=course_id, file_ids=list(file_ids), directory=directory, config_path=config_path)


@main.command()
@click.argument("shell", type=click.Choice(SHELLS))
@click.pass_context
def completions(ctx: click.Context, shell: str) -> None:
    """Generate shell completions."""
    root = ctx.find_root()
    prog_name = root.info_name or APP_NAME
    complete_var = f"_{prog_name.replace('-', '_').upper()}_COMPLETE"
    completion_class = get_completion_class(shell)
    if completion_class is None:
        raise click.UsageError(f"Unsupported shell: {shell}")
    click.echo(completion_class(root.command, {}, prog_name, complete_var).source())


if __name__ == "__main__":
    main()
