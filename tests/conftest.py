import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import pytest
import requests

from canvas_cli.client import CanvasClient
from canvas_cli.configs import NonEmptyConfig

BASE_URL = "https://canvas.test"
UPLOAD_HOST = "https://uploads.test"
TOKEN = "secret-token"


def make_response(
    status: int = 200,
    json_body: Any = None,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
    url: str = "",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    if content is None:
        content = b"" if json_body is None else json.dumps(json_body).encode()
    response._content = content
    response._content_consumed = True
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    response.url = url
    return response


@dataclass
class Call:
    method: str
    url: str
    params: list[tuple[str, str]]
    data: dict[str, Any] | None
    json: Any
    headers: dict[str, str]
    file_field: str | None = None
    file_name: str | None = None
    file_bytes: bytes | None = None
    allow_redirects: bool = True


Handler = Callable[[Call], requests.Response]


def _normalize_params(params: Any) -> list[tuple[str, str]]:
    if params is None:
        return []
    items = params.items() if isinstance(params, dict) else params
    return [(str(k), str(v)) for k, v in items]


def _merge_headers(session_headers: Any, request_headers: dict[str, Any] | None) -> dict[str, str]:
    merged = {**session_headers, **(request_headers or {})}
    return {k: v for k, v in merged.items() if v is not None}


class FakeSession(requests.Session):
    """Stand-in for requests.Session that routes requests to canned handlers."""

    def __init__(self) -> None:
        super().__init__()
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: list[Call] = []
        self._lock = threading.Lock()

    def add(self, method: str, url: str, response: requests.Response | Handler) -> None:
        handler = response if callable(response) else (lambda call, r=response: r)
        self.routes[(method, url)] = handler

    def request(self, method, url, params=None, data=None, files=None, json=None, **kwargs):  # type: ignore[override]
        parts = urlsplit(url)
        key = (method, f"{parts.scheme}://{parts.netloc}{parts.path}")
        call = Call(
            method=method,
            url=url,
            params=_normalize_params(params),
            data=dict(data) if data is not None else None,
            json=json,
            headers=_merge_headers(self.headers, kwargs.get("headers")),
            allow_redirects=kwargs.get("allow_redirects", True),
        )
        if files:
            (field_name, (file_name, stream)), = files.items()
            call.file_field, call.file_name, call.file_bytes = field_name, file_name, stream.read()
        with self._lock:
            self.calls.append(call)
        if key not in self.routes:
            raise AssertionError(f"Unexpected request {method} {url}")
        response = self.routes[key](call)
        response.url = url
        return response

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and urlsplit(c.url).path == path]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def config() -> NonEmptyConfig:
    return NonEmptyConfig(url=BASE_URL, access_token=TOKEN)


@pytest.fixture
def client(config: NonEmptyConfig, session: FakeSession) -> CanvasClient:
    return CanvasClient(config, session=session)


def graphql_assignment(
    assignment_id: str,
    name: str,
    due_at: str | None = None,
    submission_types: tuple[str, ...] = ("online_upload",),
    statuses: tuple[str | None, ...] = (),
) -> dict[str, Any]:
    return {
        "_id": assignment_id,
        "name": name,
        "dueAt": due_at,
        "submissionTypes": list(submission_types),
        "submissionsConnection": {"nodes": [{"submissionStatus": s} for s in statuses]},
    }


def graphql_course(course_id: str, name: str, assignments: list[dict[str, Any]]) -> dict[str, Any]:
    return {"_id": course_id, "name": name, "assignmentsConnection": {"nodes": assignments}}


def install_catalog(
    session: FakeSession,
    courses: list[dict[str, Any]],
    favorites: list[dict[str, Any]] | None = None,
    colors: dict[str, str] | None = None,
) -> None:
    session.add("POST", f"{BASE_URL}/api/graphql", make_response(json_body={"data": {"allCourses": courses}}))
    session.add("GET", f"{BASE_URL}/api/v1/users/self/favorites/courses", make_response(json_body=favorites or []))
    session.add("GET", f"{BASE_URL}/api/v1/users/self/colors", make_response(json_body={"custom_colors": colors or {}}))


def install_upload_routes(
    session: FakeSession,
    course_id: str,
    assignment_id: str,
    names: list[str],
    failing_transfer: str | None = None,
) -> None:
    """Register the three upload stages for each file name plus the final submission call."""

    def intent(call: Call) -> requests.Response:
        name = call.data["name"]
        return make_response(
            json_body={
                "upload_url": f"{UPLOAD_HOST}/upload/{name}",
                "upload_params": {"key": f"uploads/{name}", "policy": "p0l1cy"},
            }
        )

    session.add(
        "POST",
        f"{BASE_URL}/api/v1/courses/{course_id}/assignments/{assignment_id}/submissions/self/files",
        intent,
    )
    for index, name in enumerate(names, start=1):
        file_id = 100 + index
        if name == failing_transfer:
            session.add("POST", f"{UPLOAD_HOST}/upload/{name}", make_response(status=500))
        else:
            session.add(
                "POST",
                f"{UPLOAD_HOST}/upload/{name}",
                make_response(status=201, headers={"Location": f"{BASE_URL}/api/v1/files/{file_id}/create_success?uuid=u{index}"}),
            )
        session.add(
            "POST",
            f"{BASE_URL}/api/v1/files/{file_id}/create_success",
            make_response(json_body={"id": file_id, "display_name": name}),
        )
    session.add(
        "POST",
        f"{BASE_URL}/api/v1/courses/{course_id}/assignments/{assignment_id}/submissions",
        make_response(status=201, json_body={"id": 1, "workflow_state": "submitted"}),
    )


@pytest.fixture
def make_files(tmp_path: Path) -> Callable[..., list[Path]]:
    def _make(*names: str) -> list[Path]:
        paths = []
        for name in names:
            path = tmp_path / name
            path.write_text(f"contents of {name}\n")
            paths.append(path)
        return paths

    return _make


class InFlight:
    """Counts concurrently running route handlers; each handler holds its slot for ``hold`` seconds."""

    def __init__(self, hold: float = 0.05) -> None:
        self.hold = hold
        self.current = 0
        self.peak = 0
        self._lock = threading.Lock()

    def wrap(self, handler: Handler) -> Handler:
        def tracked(call: Call) -> requests.Response:
            with self._lock:
                self.current += 1
                self.peak = max(self.peak, self.current)
            try:
                time.sleep(self.hold)
                return handler(call)
            finally:
                with self._lock:
                    self.current -= 1

        return tracked

    def track(self, session: FakeSession) -> None:
        for key, handler in list(session.routes.items()):
            session.routes[key] = self.wrap(handler)
