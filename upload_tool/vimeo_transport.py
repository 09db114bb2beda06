"""
Vimeo API transport using streaming (resumable PUT) uploads.

A ticket comes from ``POST /me/videos`` (or ``/videos/{id}/files`` to
replace a video's source). Bytes are PUT to the ticket's secure upload link
with a ``Content-Range`` header, the durable offset is read back with an
empty ``PUT`` carrying ``Content-Range: bytes */*``, and ``DELETE`` on the
ticket's complete URI turns the upload into a video.
"""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from shared.config import UploadConfig
from shared.constants import API_ACCEPT_HEADER, DEFAULT_CONTENT_TYPE, HTTP_POOL_SIZE
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
from .transport import UploadTransport

logger = logging.getLogger(__name__)

HTTP_RESUME_INCOMPLETE = 308


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get('developer_message') or body.get('error') or body)
    return str(body)


def parse_range_header(value: Optional[str]) -> int:
    """
    Bytes received according to a ``Range: bytes=0-N`` header.

    The service reports the end of the received range as the byte count;
    a missing header means nothing has been received yet.
    """
    if not value:
        return 0
    try:
        _, _, span = value.partition('=')
        _, _, end = span.partition('-')
        return int(end)
    except ValueError as e:
        raise ProtocolMismatchError(f"Unparseable Range header: {value!r}") from e


def artifact_id_from_uri(uri: str) -> int:
    """``/videos/12345`` -> 12345"""
    try:
        return int(uri.rstrip('/').rsplit('/', 1)[-1])
    except ValueError as e:
        raise RemoteError(f"Cannot read a video id from {uri!r}") from e


class VimeoTransport(UploadTransport):
    """
    Upload transport for the Vimeo v3 API.

    Retries are left to the engine's RetryPolicy, so the HTTP adapter is
    mounted without urllib3 retries.
    """

    def __init__(self, config: UploadConfig, session: Optional[requests.Session] = None):
        if not config.access_token:
            raise AuthError("No access token configured")
        self.api_base = config.api_base.rstrip('/')
        self.timeout = config.timeout
        self.session = session or requests.Session()

        adapter = HTTPAdapter(pool_connections=HTTP_POOL_SIZE, pool_maxsize=HTTP_POOL_SIZE,
                              max_retries=0)
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)
        self.session.headers.update({
            'Authorization': f"bearer {config.access_token}",
            'Accept': API_ACCEPT_HEADER,
        })

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.api_base}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        url = self._url(path)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise TransientNetworkError(f"{method} {url} timed out") from e
        except requests.ConnectionError as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
        except requests.RequestException as e:
            raise RemoteError(f"{method} {url} failed: {e}") from e

    def _check(self, response: requests.Response, session_scoped: bool = False) -> None:
        """Raise the error type matching a failed response."""
        status = response.status_code
        if status < 400:
            return

        detail = _error_detail(response)
        if status == 401:
            raise AuthError(f"Access token rejected: {detail}", status)
        if status == 403:
            if 'quota' in detail.lower():
                raise QuotaError(f"Upload quota exceeded: {detail}", status)
            raise AuthError(f"Not permitted: {detail}", status)
        if status == 404 and session_scoped:
            raise SessionExpiredError(f"Upload ticket no longer exists: {detail}", status)
        if status == 416:
            raise ProtocolMismatchError(f"Range not accepted: {detail}", status)
        if status == 429 or status >= 500:
            raise ServerBusyError(f"Service busy ({status}): {detail}", status,
                                  retry_after=_retry_after(response))
        raise RemoteError(f"Unexpected response {status}: {detail}", status)

    def _ticket_from_response(self, response: requests.Response, total_length: int) -> UploadTicket:
        try:
            data = response.json()
            return UploadTicket(
                session_id=str(data['ticket_id']),
                transfer_endpoint=data.get('upload_link_secure') or data['upload_link'],
                complete_uri=data.get('complete_uri'),
                total_length=total_length,
            )
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(f"Malformed upload ticket response: {e}") from e

    def issue_upload_ticket(self, total_length: int) -> UploadTicket:
        response = self._request('POST', '/me/videos', data={'type': 'streaming'})
        self._check(response)
        ticket = self._ticket_from_response(response, total_length)
        logger.info("Issued upload ticket %s for %d bytes", ticket.session_id, total_length)
        return ticket

    def issue_replace_ticket(self, artifact_id: int, total_length: int) -> UploadTicket:
        response = self._request('POST', f"/videos/{artifact_id}/files", data={'type': 'streaming'})
        self._check(response)
        ticket = self._ticket_from_response(response, total_length)
        logger.info("Issued replace ticket %s for video %d", ticket.session_id, artifact_id)
        return ticket

    def send_chunk(self, ticket: UploadTicket, offset: int, data: bytes,
                   total_length: int) -> None:
        end = offset + len(data) - 1
        headers = {
            'Content-Type': DEFAULT_CONTENT_TYPE,
            'Content-Length': str(len(data)),
            'Content-Range': f"bytes {offset}-{end}/{total_length}",
        }
        response = self._request('PUT', ticket.transfer_endpoint, data=data, headers=headers)
        self._check(response, session_scoped=True)

    def query_offset(self, ticket: UploadTicket) -> int:
        headers = {
            'Content-Length': '0',
            'Content-Range': 'bytes */*',
        }
        response = self._request('PUT', ticket.transfer_endpoint, data=b'', headers=headers)
        self._check(response, session_scoped=True)
        return parse_range_header(response.headers.get('Range'))

    def complete_upload(self, ticket: UploadTicket) -> ArtifactIdentity:
        if not ticket.complete_uri:
            raise RemoteError(f"Ticket {ticket.session_id} has no complete URI")
        response = self._request('DELETE', ticket.complete_uri)
        self._check(response, session_scoped=True)

        location = response.headers.get('Location')
        if not location:
            raise RemoteError(f"Completing ticket {ticket.session_id} returned no Location")
        identity = ArtifactIdentity(id=artifact_id_from_uri(location), uri=location)
        logger.info("Ticket %s finalized as %s", ticket.session_id, identity.uri)
        return identity

    def get_artifact(self, artifact_id: int) -> Optional[ArtifactIdentity]:
        response = self._request('GET', f"/videos/{artifact_id}")
        if response.status_code == 404:
            return None
        self._check(response)
        try:
            uri = response.json().get('uri') or f"/videos/{artifact_id}"
        except ValueError:
            uri = f"/videos/{artifact_id}"
        return ArtifactIdentity(id=artifact_id, uri=uri)

    def delete_artifact(self, artifact_id: int) -> bool:
        response = self._request('DELETE', f"/videos/{artifact_id}")
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    def close(self) -> None:
        self.session.close()
