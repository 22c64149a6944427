"""Shared test fixtures: a local documentation store and SSE push channel helpers."""

import json
import math
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import anyio
import pytest
import pytest_asyncio

from docserver.docs import DocumentationCatalog
from docserver.server import create_server
from docserver.transport import ProtocolServerInstance, SseSessionManager

STORED_TOPICS = [
    {
        "id": "fastapi-guide",
        "name": "FastAPI Guide",
        "description": "Building HTTP APIs with FastAPI",
        "category": "Python",
        "tags": ["web", "api"],
        "llm_file_path": "fastapi.llm.txt",
    },
    {
        "id": "anyio-basics",
        "name": "AnyIO Basics",
        "description": "Structured concurrency primitives",
        "category": "Python",
        "tags": ["async"],
        "llm_file_path": "anyio.llm.txt",
    },
]


@pytest.fixture
def docs_store(tmp_path: Path) -> Path:
    """A store with the default topic, one extra topic with content and one without."""
    (tmp_path / "yfiles-layout.llm.txt").write_text("# yFiles Layout\n\nHierarchic and organic layouts.", encoding="utf-8")
    (tmp_path / "fastapi.llm.txt").write_text("# FastAPI\n\nPath operations and dependencies.", encoding="utf-8")
    (tmp_path / "topics.json").write_text(json.dumps(STORED_TOPICS), encoding="utf-8")
    return tmp_path


@pytest_asyncio.fixture
async def catalog(docs_store: Path) -> DocumentationCatalog:
    catalog = DocumentationCatalog(store_dir=docs_store)
    await catalog.initialize()
    return catalog


@pytest_asyncio.fixture
async def manager():
    manager = SseSessionManager(ProtocolServerInstance.factory(create_server), ping_interval=60)
    yield manager
    await manager.close_all(timeout=1)


# ─────────────────────────────────────────────────────────────────────────────
# Push channel driver
# ─────────────────────────────────────────────────────────────────────────────


class PushChannel:
    """Drives SseSessionManager.handle_sse the way an HTTP client holding a GET open would."""

    def __init__(self, manager: SseSessionManager, method: str = "GET", path: str = "/sse") -> None:
        self.manager = manager
        self.scope = {
            "type": "http",
            "method": method,
            "path": path,
            "root_path": "",
            "query_string": b"",
            "headers": [],
            "client": ("127.0.0.1", 50000),
        }
        self.status: int | None = None
        self.body = b""
        self.endpoint: str | None = None
        self.session_id: str | None = None
        self.finished = anyio.Event()
        self._disconnected = anyio.Event()
        self._chunk_writer, self._chunks = anyio.create_memory_object_stream[bytes](math.inf)
        self._buffer = ""

    async def receive(self):
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
        elif message["type"] == "http.response.body":
            chunk = message.get("body", b"")
            self.body += chunk
            if chunk:
                self._chunk_writer.send_nowait(chunk)

    async def run(self) -> None:
        try:
            await self.manager.handle_sse(self.scope, self.receive, self.send)
        finally:
            self._chunk_writer.close()
            self.finished.set()

    def disconnect(self) -> None:
        self._disconnected.set()

    async def next_event(self) -> tuple[str, str]:
        """Next event on the stream as (event, data). Keep-alive comments are skipped."""
        while True:
            if "\n\n" in self._buffer:
                block, self._buffer = self._buffer.split("\n\n", 1)
                event, data = "message", []
                for line in block.splitlines():
                    if line.startswith("event:"):
                        event = line[len("event:") :].strip()
                    elif line.startswith("data:"):
                        data.append(line[len("data:") :].strip())
                if data:
                    return event, "\n".join(data)
                continue
            chunk = await self._chunks.receive()
            self._buffer += chunk.decode("utf-8").replace("\r\n", "\n")

    async def next_message(self) -> dict:
        event, data = await self.next_event()
        assert event == "message"
        return json.loads(data)

    async def open(self) -> str:
        """Wait for the endpoint announcement and return the session id."""
        event, data = await self.next_event()
        assert event == "endpoint"
        self.endpoint = data
        self.session_id = parse_qs(urlparse(data).query)["sessionId"][0]
        return self.session_id


@asynccontextmanager
async def open_channels(manager: SseSessionManager, count: int = 1):
    """Open count push channels; disconnect whatever is still open on exit."""
    channels = [PushChannel(manager) for _ in range(count)]
    async with anyio.create_task_group() as tg:
        for channel in channels:
            tg.start_soon(channel.run)
        with anyio.fail_after(5):
            for channel in channels:
                await channel.open()
        yield channels
        for channel in channels:
            channel.disconnect()


def initialize_request(request_id: int = 1) -> bytes:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-06-18",
                "capabilities": {},
                "clientInfo": {"name": "test-client", "version": "0.1.0"},
            },
        }
    ).encode()


INITIALIZED_NOTIFICATION = json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}).encode()
