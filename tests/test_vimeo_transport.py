import json
from unittest.mock import MagicMock

import pytest
import requests

from shared.config import UploadConfig
from shared.errors import (
    AuthError,
    ProtocolMismatchError,
    QuotaError,
    RemoteError,
    ServerBusyError,
    SessionExpiredError,
    TransientNetworkError,
)
from shared.models import ArtifactIdentity, UploadTicket
from upload_tool.vimeo_transport import VimeoTransport, artifact_id_from_uri, parse_range_header

TICKET = UploadTicket(
    session_id="abc123",
    transfer_endpoint="https://upload.example.com/upload?ticket_id=abc123",
    complete_uri="/users/1/uploads/abc123?video_file_id=9",
    total_length=10000,
)


def make_response(status, body=None, headers=None):
    response = requests.Response()
    response.status_code = status
    response.headers.update(headers or {})
    response._content = json.dumps(body).encode() if body is not None else b""
    return response


@pytest.fixture
def session():
    session = requests.Session()
    session.request = MagicMock()
    return session


@pytest.fixture
def vimeo(session):
    config = UploadConfig(access_token="secret-token", timeout=12)
    return VimeoTransport(config, session=session)


def test_requires_token():
    with pytest.raises(AuthError):
        VimeoTransport(UploadConfig(access_token=""))


def test_session_headers(vimeo, session):
    assert session.headers["Authorization"] == "bearer secret-token"
    assert "version=3.4" in session.headers["Accept"]


def test_issue_upload_ticket(vimeo, session):
    session.request.return_value = make_response(201, {
        "ticket_id": "abc123",
        "upload_link": "http://upload.example.com/upload?ticket_id=abc123",
        "upload_link_secure": "https://upload.example.com/upload?ticket_id=abc123",
        "complete_uri": "/users/1/uploads/abc123?video_file_id=9",
    })

    ticket = vimeo.issue_upload_ticket(10000)

    assert ticket == TICKET
    method, url = session.request.call_args[0]
    assert method == "POST"
    assert url == "https://api.vimeo.com/me/videos"
    assert session.request.call_args[1]["data"] == {"type": "streaming"}
    assert session.request.call_args[1]["timeout"] == 12


def test_issue_replace_ticket(vimeo, session):
    session.request.return_value = make_response(201, {
        "ticket_id": "r1",
        "upload_link": "https://upload.example.com/upload?ticket_id=r1",
        "complete_uri": "/users/1/uploads/r1",
    })

    ticket = vimeo.issue_replace_ticket(555, 42)

    assert ticket.session_id == "r1"
    assert ticket.transfer_endpoint == "https://upload.example.com/upload?ticket_id=r1"
    assert session.request.call_args[0][1] == "https://api.vimeo.com/videos/555/files"


def test_malformed_ticket_response(vimeo, session):
    session.request.return_value = make_response(201, {"uri": "/videos/1"})
    with pytest.raises(RemoteError):
        vimeo.issue_upload_ticket(10)


def test_send_chunk_headers(vimeo, session):
    session.request.return_value = make_response(200)

    vimeo.send_chunk(TICKET, 4096, b"x" * 4096, 10000)

    args, kwargs = session.request.call_args
    assert args == ("PUT", TICKET.transfer_endpoint)
    assert kwargs["headers"]["Content-Range"] == "bytes 4096-8191/10000"
    assert kwargs["headers"]["Content-Length"] == "4096"
    assert kwargs["data"] == b"x" * 4096


def test_query_offset_reads_range_header(vimeo, session):
    session.request.return_value = make_response(308, headers={"Range": "bytes=0-5000"})

    assert vimeo.query_offset(TICKET) == 5000
    headers = session.request.call_args[1]["headers"]
    assert headers["Content-Range"] == "bytes */*"
    assert headers["Content-Length"] == "0"


def test_query_offset_without_range_is_zero(vimeo, session):
    session.request.return_value = make_response(308)
    assert vimeo.query_offset(TICKET) == 0


def test_parse_range_header():
    assert parse_range_header("bytes=0-10000") == 10000
    assert parse_range_header(None) == 0
    with pytest.raises(ProtocolMismatchError):
        parse_range_header("bytes=zero-ten")


@pytest.mark.parametrize("status, body, error", [
    (401, {"error": "Unauthorized"}, AuthError),
    (403, {"error": "Forbidden"}, AuthError),
    (403, {"developer_message": "Upload quota exceeded"}, QuotaError),
    (404, {"error": "Not found"}, SessionExpiredError),
    (416, None, ProtocolMismatchError),
    (500, None, ServerBusyError),
    (503, None, ServerBusyError),
    (400, {"error": "Bad request"}, RemoteError),
])
def test_status_mapping_on_chunk(vimeo, session, status, body, error):
    session.request.return_value = make_response(status, body)
    with pytest.raises(error) as exc_info:
        vimeo.send_chunk(TICKET, 0, b"abc", 3)
    assert exc_info.value.status_code == status


def test_rate_limit_carries_retry_after(vimeo, session):
    session.request.return_value = make_response(429, {"error": "slow down"},
                                                 headers={"Retry-After": "3"})
    with pytest.raises(ServerBusyError) as exc_info:
        vimeo.send_chunk(TICKET, 0, b"abc", 3)
    assert exc_info.value.retry_after == 3.0


@pytest.mark.parametrize("exc", [
    requests.Timeout("read timed out"),
    requests.ConnectionError("connection reset by peer"),
])
def test_network_failures_are_transient(vimeo, session, exc):
    session.request.side_effect = exc
    with pytest.raises(TransientNetworkError):
        vimeo.send_chunk(TICKET, 0, b"abc", 3)


def test_complete_upload_reads_location(vimeo, session):
    session.request.return_value = make_response(201, headers={"Location": "/videos/12345"})

    identity = vimeo.complete_upload(TICKET)

    assert identity == ArtifactIdentity(id=12345, uri="/videos/12345")
    args = session.request.call_args[0]
    assert args == ("DELETE", "https://api.vimeo.com/users/1/uploads/abc123?video_file_id=9")


def test_complete_upload_without_location(vimeo, session):
    session.request.return_value = make_response(201)
    with pytest.raises(RemoteError):
        vimeo.complete_upload(TICKET)


def test_get_and_delete_artifact(vimeo, session):
    session.request.return_value = make_response(200, {"uri": "/videos/77"})
    assert vimeo.get_artifact(77) == ArtifactIdentity(id=77, uri="/videos/77")

    session.request.return_value = make_response(404, {"error": "gone"})
    assert vimeo.get_artifact(77) is None

    session.request.return_value = make_response(204)
    assert vimeo.delete_artifact(77) is True

    session.request.return_value = make_response(404, {"error": "gone"})
    assert vimeo.delete_artifact(77) is False


def test_artifact_id_from_uri():
    assert artifact_id_from_uri("/videos/12345") == 12345
    with pytest.raises(RemoteError):
        artifact_id_from_uri("/videos/abc")
