import asyncio

import pytest
from conftest import BASE_URL, TOKEN, UPLOAD_HOST, InFlight, install_upload_routes, make_response

from canvas_cli.errors import FinalizationError, PreconditionError, ProtocolError, TransportError
from canvas_cli.models import Assignment, Course, SubmissionRequest
from canvas_cli.submission_handler import (
    submit_assignment,
    submit_files,
    upload_file,
    upload_files,
    verify_files,
)

ASSIGNMENT = Assignment(
    id="20",
    name="Homework",
    course=Course(id="10", name="Algebra"),
    submission_types=frozenset({"online_upload"}),
)
FILES_PATH = "/api/v1/courses/10/assignments/20/submissions/self/files"
SUBMISSIONS_PATH = "/api/v1/courses/10/assignments/20/submissions"


def test_upload_file_runs_three_stages_in_order(client, session, make_files):
    (path,) = make_files("report.pdf")
    install_upload_routes(session, "10", "20", ["report.pdf"])
    progress = []

    uploaded = asyncio.run(upload_file(client, ASSIGNMENT, path, on_progress=progress.append))

    assert (uploaded.id, uploaded.display_name) == ("101", "report.pdf")
    intent, transfer, confirm = session.calls
    assert intent.url == f"{BASE_URL}{FILES_PATH}"
    assert intent.data == {"name": "report.pdf", "size": path.stat().st_size}
    assert transfer.url == f"{UPLOAD_HOST}/upload/report.pdf"
    assert transfer.data == {"key": "uploads/report.pdf", "policy": "p0l1cy"}
    assert (transfer.file_field, transfer.file_name) == ("file", "report.pdf")
    assert transfer.file_bytes == path.read_bytes()
    assert transfer.allow_redirects is False
    assert confirm.url == f"{BASE_URL}/api/v1/files/101/create_success?uuid=u1"
    assert (confirm.data, confirm.json) == (None, None)
    assert progress == ["Received bucket for report.pdf", "Received location for report.pdf", "Uploaded report.pdf"]


def test_missing_location_is_a_protocol_error(client, session, make_files):
    (path,) = make_files("report.pdf")
    install_upload_routes(session, "10", "20", ["report.pdf"])
    session.add("POST", f"{UPLOAD_HOST}/upload/report.pdf", make_response(status=201))

    with pytest.raises(ProtocolError, match="no Location header"):
        asyncio.run(upload_file(client, ASSIGNMENT, path))
    assert session.calls_to("POST", "/api/v1/files/101/create_success") == []


def test_confirmation_without_id_is_a_protocol_error(client, session, make_files):
    (path,) = make_files("report.pdf")
    install_upload_routes(session, "10", "20", ["report.pdf"])
    session.add("POST", f"{BASE_URL}/api/v1/files/101/create_success", make_response(json_body={"display_name": "x"}))

    with pytest.raises(ProtocolError, match="no file id"):
        asyncio.run(upload_file(client, ASSIGNMENT, path))


def test_upload_files_keeps_input_order(client, session, make_files):
    paths = make_files("a.txt", "b.txt", "c.txt")
    install_upload_routes(session, "10", "20", ["a.txt", "b.txt", "c.txt"])

    uploads = asyncio.run(upload_files(client, ASSIGNMENT, paths, quiet=True))

    assert [u.id for u in uploads] == ["101", "102", "103"]


def test_upload_files_runs_pipelines_concurrently(client, session, make_files):
    names = ["a.txt", "b.txt", "c.txt"]
    paths = make_files(*names)
    install_upload_routes(session, "10", "20", names)
    in_flight = InFlight()
    in_flight.track(session)

    asyncio.run(upload_files(client, ASSIGNMENT, paths, quiet=True))

    assert in_flight.peak == len(names)


def test_token_is_not_sent_to_external_storage(client, session, make_files):
    (path,) = make_files("report.pdf")
    install_upload_routes(session, "10", "20", ["report.pdf"])

    asyncio.run(upload_file(client, ASSIGNMENT, path))

    intent, transfer, confirm = session.calls
    assert "Authorization" not in transfer.headers
    assert intent.headers["Authorization"] == confirm.headers["Authorization"] == f"Bearer {TOKEN}"


def test_token_is_sent_when_storage_is_on_canvas_host(client, session, make_files):
    (path,) = make_files("report.pdf")
    install_upload_routes(session, "10", "20", ["report.pdf"])
    session.add(
        "POST",
        f"{BASE_URL}{FILES_PATH}",
        make_response(json_body={"upload_url": f"{BASE_URL}/files_api", "upload_params": {}}),
    )
    session.add(
        "POST",
        f"{BASE_URL}/files_api",
        make_response(status=201, headers={"Location": f"{BASE_URL}/api/v1/files/101/create_success"}),
    )

    asyncio.run(upload_file(client, ASSIGNMENT, path))

    (transfer,) = session.calls_to("POST", "/files_api")
    assert transfer.headers["Authorization"] == f"Bearer {TOKEN}"


def test_submit_files_sends_ids_and_submission_type(client, session):
    install_upload_routes(session, "10", "20", [])

    asyncio.run(submit_files(client, SubmissionRequest(course_id="10", assignment_id="20", file_ids=("101", "102"))))

    (call,) = session.calls_to("POST", SUBMISSIONS_PATH)
    assert call.params == [
        ("submission[file_ids][]", "101"),
        ("submission[file_ids][]", "102"),
        ("submission[submission_type]", "online_upload"),
    ]


def test_finalization_failure_is_reported(client, session):
    session.add("POST", f"{BASE_URL}{SUBMISSIONS_PATH}", make_response(status=400))

    with pytest.raises(FinalizationError, match="after uploading 1 file"):
        asyncio.run(submit_files(client, SubmissionRequest(course_id="10", assignment_id="20", file_ids=("101",))))


def test_transfer_failure_prevents_submission(client, session, make_files):
    paths = make_files("one.txt", "two.txt")
    install_upload_routes(session, "10", "20", ["one.txt", "two.txt"], failing_transfer="two.txt")

    with pytest.raises(TransportError, match="500"):
        asyncio.run(submit_assignment(client, ASSIGNMENT, paths, quiet=True))

    assert len(session.calls_to("POST", "/api/v1/files/101/create_success")) == 1
    assert session.calls_to("POST", SUBMISSIONS_PATH) == []


def test_verify_files(tmp_path, make_files):
    (path,) = make_files("ok.txt")

    assert verify_files([path]) == [path]
    with pytest.raises(PreconditionError, match="No files"):
        verify_files([])
    with pytest.raises(PreconditionError, match="File not found"):
        verify_files([path, tmp_path / "missing.txt"])
