"""Markup loading and player hosting.

fetch_markup() reads composition markup from an http(s) URL (httpx), a
file path, or takes inline markup text as is.

PlayerHost is the embeddable-player side: load(source) fetches, resolves
and mounts a Player, replacing whatever it showed before. A load that is
superseded by a newer one is cancelled and its result or error is
dropped. Failures never raise into playback; they go to on_error.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable

import httpx

from .clock import ClockRegistry
from .player import Player, PlayerOptions
from .resolver import resolve_markup

logger = logging.getLogger(__name__)


class LoadError(OSError):
    """Markup could not be fetched or read."""


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def is_inline_markup(source: str) -> bool:
    return source.lstrip().startswith("<")


async def fetch_markup(source: str | Path, client: httpx.AsyncClient | None = None) -> str:
    """Fetch markup text from a URL, a file, or inline text.

    Args:
        source: http(s) URL, file path, or markup text starting with '<'.
        client: Client for URL sources. A short-lived one is created when
            omitted.

    Raises:
        LoadError: Non-success status, transport failure, unreadable file.
    """
    if isinstance(source, str) and is_inline_markup(source):
        return source
    if isinstance(source, str) and is_url(source):
        try:
            if client is not None:
                response = await client.get(source)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as own_client:
                    response = await own_client.get(source)
        except httpx.HTTPError as exc:
            raise LoadError(f"Failed to load VML: {exc}") from exc
        if not response.is_success:
            raise LoadError(f"Failed to load VML: {response.status_code}")
        return response.text

    path = Path(source)
    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Failed to load VML: {exc}") from exc


class PlayerHost:
    """Loads markup into a Player and swaps it on every new load.

    Args:
        registry: Clock registry shared by every player this host mounts.
        options: Options for mounted players. options.on_error receives
            load and resolution failures as messages, and None after a
            successful mount.
        client: httpx client for URL sources.
    """

    def __init__(self, registry: ClockRegistry, options: PlayerOptions | None = None,
                 client: httpx.AsyncClient | None = None):
        self.registry = registry
        self.options = options or PlayerOptions()
        self.client = client
        self.player: Player | None = None
        self._task: asyncio.Task | None = None

    def _report(self, message: str) -> None:
        if self.options.on_error:
            self.options.on_error(message)
        else:
            logger.error("%s", message)

    async def load(self, source: str | Path) -> Player | None:
        """Fetch, resolve and mount source, superseding any pending load.

        Returns:
            The mounted Player, or None when the load failed or was
            superseded.
        """
        if self._task is not None and not self._task.done():
            logger.debug("Cancelling superseded load")
            self._task.cancel()
        task = asyncio.ensure_future(fetch_markup(source, self.client))
        self._task = task
        try:
            text = await task
        except asyncio.CancelledError:
            if self._task is not task:
                return None
            raise
        except LoadError as exc:
            if self._task is task:
                self._report(str(exc))
            return None
        if self._task is not task:
            return None

        if not text.strip():
            self._report("No VML found.")
            return None

        self.unmount()
        try:
            composition = resolve_markup(text)
        except ValueError as exc:
            self._report(str(exc))
            return None
        self.player = Player(composition, self.registry, self.options).mount()
        return self.player

    def unmount(self) -> None:
        if self.player is not None:
            self.player.unmount()
            self.player = None

    def close(self) -> None:
        """Cancel any pending load and unmount."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.unmount()


def on_error_printer(prefix: str = "error") -> Callable[[str | None], None]:
    """on_error callback that prints messages and ignores the None reset."""
    def report(message):
        if message:
            print(f"{prefix}: {message}")
    return report
