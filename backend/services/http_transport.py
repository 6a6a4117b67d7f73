"""
Small HTTP layer shared by the Overpass client and the place directory client.

Requests and responses are plain value objects so the offline cache can store
and replay them. `RequestsTransport` enforces a hard deadline on the whole
exchange, on top of the per-socket timeouts `requests` provides, so a stalled
body stream still hands control back.
"""
from __future__ import annotations

import hashlib
import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import requests

from domain.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_SEC = 10.0
_CHUNK_SIZE = 8 * 1024


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    mode: str = "cors"  # "navigate" for page navigations

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    def cache_key(self) -> str:
        """Method + URL, plus a digest of the body for non-GET requests."""
        key = f"{self.method.upper()} {self.url}"
        if self.body:
            key += " #" + hashlib.sha1(self.body).hexdigest()
        return key


@dataclass
class HttpResponse:
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8") or "null")

    def text(self, limit: Optional[int] = None) -> str:
        text = self.body.decode("utf-8", errors="replace")
        return text[:limit] if limit else text

    @classmethod
    def from_json(cls, payload: Any, status: int = 200) -> "HttpResponse":
        return cls(
            status=status,
            body=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )


def _abort_stream(resp: requests.Response, expired: threading.Event) -> None:
    """Watchdog callback: cut the connection under a body that is still streaming."""
    expired.set()
    sock = getattr(getattr(resp.raw, "connection", None), "sock", None)
    if sock is None:
        resp.close()
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        logger.debug("Socket already closed at deadline: %s", exc)


class Transport:
    """Anything that can turn an HttpRequest into an HttpResponse.

    Implementations raise TransportError when no response could be obtained.
    Non-OK statuses are returned, not raised.
    """

    def send(self, request: HttpRequest, timeout: float) -> HttpResponse:
        raise NotImplementedError


class RequestsTransport(Transport):
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SEC,
        user_agent: Optional[str] = None,
    ):
        self.session = session or requests.Session()
        self.connect_timeout = connect_timeout
        self.user_agent = user_agent

    def send(self, request: HttpRequest, timeout: float) -> HttpResponse:
        deadline = time.monotonic() + timeout
        headers = dict(request.headers)
        if self.user_agent:
            headers.setdefault("User-Agent", self.user_agent)
        try:
            resp = self.session.request(
                request.method,
                request.url,
                data=request.body or None,
                headers=headers,
                timeout=(min(self.connect_timeout, timeout), timeout),
                stream=True,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{request.host}: {exc}") from exc

        hard_timeout = f"{request.host}: hard timeout after {timeout:.0f}s"
        expired = threading.Event()
        watchdog = threading.Timer(max(0.0, deadline - time.monotonic()), _abort_stream, (resp, expired))
        watchdog.daemon = True
        watchdog.start()
        try:
            chunks = []
            for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                if chunk:
                    chunks.append(chunk)
                if expired.is_set() or time.monotonic() > deadline:
                    raise TransportError(hard_timeout)
            if expired.is_set():
                raise TransportError(hard_timeout)
            body = b"".join(chunks)
        except (requests.RequestException, OSError) as exc:
            if expired.is_set():
                raise TransportError(hard_timeout) from exc
            raise TransportError(f"{request.host}: {exc}") from exc
        finally:
            watchdog.cancel()
            resp.close()

        logger.debug("%s %s -> %s (%d bytes)", request.method, request.url, resp.status_code, len(body))
        return HttpResponse(status=resp.status_code, body=body, headers=dict(resp.headers))
