from __future__ import annotations

import asyncio
import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

import httpx
import pytest

from cios import AsyncCiosClient

BASE_URL = "https://api.example.com"


@pytest.fixture
def make_client() -> Any:
    """Build clients whose default transport is an ``httpx.MockTransport``."""
    http_clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], Any], **kwargs: Any) -> AsyncCiosClient:
        kwargs.setdefault("log_errors", False)
        base_url = kwargs.pop("base_url", BASE_URL)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        http_clients.append(http_client)
        return AsyncCiosClient(base_url, httpx_client=http_client, **kwargs)

    yield factory

    async def close() -> None:
        for http_client in http_clients:
            await http_client.aclose()

    asyncio.run(close())


class _LoopbackHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        if self.path.startswith("/form"):
            self._reply(b"a=1&b=two", "application/x-www-form-urlencoded")
        else:
            self._reply(json.dumps({"path": self.path}).encode(), "application/json")

    def do_POST(self) -> None:
        body = self.rfile.read(int(self.headers.get("Content-Length", "0")))
        self._reply(body, self.headers.get("Content-Type", "application/octet-stream"))

    def _reply(self, body: bytes, content_type: str) -> None:
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        return None


@pytest.fixture
def loopback_url() -> Any:
    """Base URL of a real HTTP server bound to 127.0.0.1."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _LoopbackHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()
    thread.join()
