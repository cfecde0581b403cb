"""Terminal progress spinners built on tqdm."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from itertools import cycle

from tqdm import tqdm

from canvas_cli.configs import TICK_INTERVAL_SECONDS

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
SUCCESS_MARK = "✓"
FAILURE_MARK = "✗"


class Spinner:
    """A single-line indicator: a spinning frame, a message and the elapsed time.

    Args:
        message: Initial message.
        position: Line offset when several spinners are shown at once.
        disable: Suppress all output (used when stderr is not wanted).
    """

    def __init__(self, message: str, position: int | None = None, disable: bool = False) -> None:
        self.message = message
        self._frames = cycle(SPINNER_FRAMES)
        self._frame = next(self._frames)
        self._bar = tqdm(
            total=None,
            bar_format="{desc} [{elapsed}]",
            position=position,
            leave=True,
            disable=disable,
        )
        self._render()

    def _render(self, prefix: str | None = None) -> None:
        self._bar.set_description_str(f"{prefix or self._frame} {self.message}", refresh=True)

    def tick(self) -> None:
        self._frame = next(self._frames)
        self._render()

    def set_message(self, message: str) -> None:
        """Report a phase transition."""
        self.message = message
        self._render()

    def succeed(self, message: str | None = None) -> None:
        if message:
            self.message = message
        self._render(SUCCESS_MARK)

    def fail(self, message: str | None = None) -> None:
        if message:
            self.message = message
        self._render(FAILURE_MARK)

    def close(self) -> None:
        self._bar.close()


async def _tick_forever(spinner: Spinner, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        spinner.tick()


@asynccontextmanager
async def spinning(
    message: str,
    position: int | None = None,
    interval: float = TICK_INTERVAL_SECONDS,
    disable: bool = False,
) -> AsyncIterator[Spinner]:
    """Show a spinner for the duration of the block.

    The ticking task lives exactly as long as the block: it is cancelled on
    every exit path and is not awaited, so the block's result or error
    propagates without waiting for it. If the block raises, the spinner is
    marked failed; the caller marks success itself with ``Spinner.succeed``.

    Args:
        message: Initial message.
        position: Line offset for concurrent spinners.
        interval: Seconds between animation frames.
        disable: Suppress output.

    Yields:
        The spinner, for phase messages.
    """
    spinner = Spinner(message, position=position, disable=disable)
    ticker = asyncio.create_task(_tick_forever(spinner, interval))
    try:
        yield spinner
    except BaseException:
        spinner.fail()
        raise
    finally:
        ticker.cancel()
        spinner.close()
