"""Authenticated transport for the Canvas REST and GraphQL APIs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, BinaryIO
from urllib.parse import urlsplit

import requests

from canvas_cli.configs import NonEmptyConfig
from canvas_cli.errors import NotFoundError, ResponseParseError, TransportError

logger = logging.getLogger(__name__)

Params = Mapping[str, Any] | Sequence[tuple[str, Any]]


class CanvasClient:
    """Thin wrapper around a ``requests.Session`` carrying the bearer token.

    Blocking calls run in a worker thread so that callers can await them and
    keep several requests in flight. The session is configured once and only
    read afterwards, so it is shared by every concurrent call. There is no
    retry: the first failure is raised.

    Args:
        config: Base URL and access token.
        session: Session to use; a new one is created when omitted.
        timeout: Per-request timeout in seconds, None for the transport default.
    """

    def __init__(
        self,
        config: NonEmptyConfig,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = config.url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Bearer {config.access_token}"

    def url_for(self, path: str) -> str:
        """Absolute URL for an API path; absolute URLs are returned unchanged."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def is_canvas_url(self, url: str) -> bool:
        return urlsplit(self.url_for(url)).netloc == urlsplit(self.base_url).netloc

    def close(self) -> None:
        self._session.close()

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.url_for(path)
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{method} {url} returned 404 Not Found", status_code=404)
        if not response.ok:
            raise TransportError(
                f"{method} {url} returned {response.status_code} {response.reason or ''}".rstrip(),
                status_code=response.status_code,
            )
        return response

    async def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request off the event loop and return the successful response.

        Raises:
            NotFoundError: On HTTP 404.
            TransportError: On connection failure or any other non-success status.
        """
        return await asyncio.to_thread(self._send, method, path, **kwargs)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body.

        Raises:
            ResponseParseError: If the body is not JSON.
        """
        response = await self.request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ResponseParseError(f"{method} {response.url} returned a body that is not JSON") from e

    async def get_json(self, path: str, params: Params | None = None) -> Any:
        return await self.request_json("GET", path, params=params)

    async def post_json(
        self,
        path: str,
        params: Params | None = None,
        data: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        return await self.request_json("POST", path, params=params, data=data, json=json)

    async def post_multipart(
        self,
        url: str,
        fields: Mapping[str, str],
        file_field: str,
        filename: str,
        stream: BinaryIO,
    ) -> requests.Response:
        """POST a multipart form with ``fields`` first and the file last, without following redirects.

        The bearer token is only sent when ``url`` is on the Canvas host; the
        upload parameters authorize the transfer to external storage.
        """
        headers = None if self.is_canvas_url(url) else {"Authorization": None}
        return await self.request(
            "POST",
            url,
            data=dict(fields),
            files={file_field: (filename, stream)},
            headers=headers,
            allow_redirects=False,
        )

    async def graphql(self, query: str) -> Any:
        """Run a GraphQL query without variables against ``/api/graphql``."""
        return await self.post_json("api/graphql", json={"query": query})

    def stream(self, url: str) -> requests.Response:
        """Open a streaming GET, used by the download command from worker threads."""
        return self._send("GET", url, stream=True)
