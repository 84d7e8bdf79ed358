"""Shared fakes and fixtures: in-memory backends, fake processors, a test client."""

import threading
from collections import defaultdict
from typing import Optional

import pytest
from fastapi import Header, HTTPException, Query, WebSocketException, status
from fastapi.testclient import TestClient

from creative_studio.api.deps import set_services
from creative_studio.auth.supabase_auth import current_user_id, websocket_user_id
from creative_studio.jobs.errors import ProcessorError
from creative_studio.jobs.gallery import InMemoryGalleryStore
from creative_studio.jobs.notifier import JobNotifier
from creative_studio.jobs.store import InMemoryJobStore
from creative_studio.jobs.submitter import LipsyncSubmitter, StyleJobSubmitter
from creative_studio.jobs.webhook import WebhookReconciler
from creative_studio.jobs.worker import StyleJobWorker
from creative_studio.processors.base import (
    ImageProcessor,
    LipsyncProcessor,
    ProcessorState,
    ProcessorStatus,
)
from creative_studio.services import Services
from creative_studio.storage.object_store import LocalObjectStore
from creative_studio.templates.generator import TemplateGenerator
from creative_studio.templates.repository import InMemoryTemplateRepository

MAX_UPLOAD_BYTES = 1024


class FakeLipsyncProcessor(LipsyncProcessor):
    """Records every call. ``states`` is consumed one entry per status query."""

    def __init__(self):
        self.submitted = []
        self.status_calls = []
        self.states = []
        self.default_state = ProcessorState.IN_PROGRESS
        self.error = None
        self.reject_with: Optional[str] = None
        self.result_payload = {"video": {"url": "https://cdn.example/out.mp4"}}
        self.on_status = None
        self._lock = threading.Lock()

    def submit(self, video_url, audio_url, webhook_url):
        if self.reject_with:
            raise ProcessorError(self.reject_with)
        with self._lock:
            self.submitted.append((video_url, audio_url, webhook_url))
            return f"req-{len(self.submitted)}"

    def status(self, request_id):
        with self._lock:
            self.status_calls.append(request_id)
            state = self.states.pop(0) if self.states else self.default_state
        if self.on_status is not None:
            self.on_status(request_id)
        if isinstance(state, Exception):
            raise state
        return ProcessorStatus(state, error=self.error if state == ProcessorState.FAILED else None)

    def result(self, request_id):
        return self.result_payload


class FakeImageProcessor(ImageProcessor):
    def __init__(self):
        self.calls = []
        self.fail_with: Optional[Exception] = None

    def _images(self, n):
        if self.fail_with is not None:
            raise self.fail_with
        return [b"png-%d" % i for i in range(n)]

    def generate(self, prompt, n, size):
        self.calls.append(("generate", prompt, None, n, size))
        return self._images(n)

    def edit(self, prompt, images, n, size):
        self.calls.append(("edit", prompt, list(images), n, size))
        return self._images(n)


# ---------------------------------------------------------------------------
# A minimal stand-in for the supabase-py table query builder
# ---------------------------------------------------------------------------

class _FakeResult:
    def __init__(self, data):
        self.data = data


class _FakeQuery:
    def __init__(self, table, op, payload=None):
        self._table = table
        self._op = op
        self._payload = payload
        self._filters = []
        self._order = None
        self._limit = None

    def select(self, *columns):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self._filters.append(lambda row: row.get(column) < value)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._limit = end + 1
        return self

    def _matches(self):
        return [row for row in self._table.rows if all(f(row) for f in self._filters)]

    def execute(self):
        if self._op == "insert":
            row = dict(self._payload)
            self._table.rows.append(row)
            return _FakeResult([dict(row)])
        if self._op == "update":
            if self._table.before_update is not None:
                hook, self._table.before_update = self._table.before_update, None
                hook(self._table)
            updated = []
            for row in self._matches():
                row.update(self._payload)
                updated.append(dict(row))
            return _FakeResult(updated)
        rows = self._matches()
        if self._order is not None:
            column, desc = self._order
            rows.sort(key=lambda row: row[column], reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        return _FakeResult([dict(row) for row in rows])


class _FakeTable:
    def __init__(self):
        self.rows = []
        self.before_update = None

    def select(self, *columns):
        return _FakeQuery(self, "select")

    def insert(self, payload):
        return _FakeQuery(self, "insert", payload)

    def update(self, payload):
        return _FakeQuery(self, "update", payload)


class FakeSupabase:
    def __init__(self):
        self.tables = defaultdict(_FakeTable)

    def table(self, name):
        return self.tables[name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStore(str(tmp_path / "objects"), base_url="http://testserver/files")


@pytest.fixture
def lipsync_processor():
    return FakeLipsyncProcessor()


@pytest.fixture
def image_processor():
    return FakeImageProcessor()


@pytest.fixture
def services(store, storage, lipsync_processor, image_processor):
    gallery = InMemoryGalleryStore()
    templates = InMemoryTemplateRepository()
    notifier = JobNotifier()
    store.add_listener(notifier.publish)
    return Services(
        store=store,
        storage=storage,
        gallery=gallery,
        templates=templates,
        notifier=notifier,
        webhook=WebhookReconciler(store),
        style_submitter=StyleJobSubmitter(store, storage, None),
        lipsync_submitter=LipsyncSubmitter(
            store, storage, lipsync_processor,
            public_base_url="http://testserver",
            max_upload_bytes=MAX_UPLOAD_BYTES,
        ),
        worker=StyleJobWorker(store, storage, image_processor, gallery),
        template_generator=TemplateGenerator(templates, image_processor),
    )


async def _header_user(authorization: str = Header(None)) -> str:
    """Tests authenticate as whoever the bearer token names."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")
    return authorization[len("Bearer "):]


async def _query_user(token: str = Query(None)) -> str:
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
    return token


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def client(services):
    from creative_studio.main import app

    set_services(services)
    app.dependency_overrides[current_user_id] = _header_user
    app.dependency_overrides[websocket_user_id] = _query_user
    yield TestClient(app)
    app.dependency_overrides.clear()
    set_services(None)
