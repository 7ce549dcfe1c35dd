"""
Shared fixtures: fake HTTP session/responses for the client, an in-memory
WordPress backend for the sync layers and an in-memory record source.
"""
from __future__ import annotations

import base64
import copy
import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import requests

from inventory_sync.models import InventoryRecord
from inventory_sync.record_manager import RecordManager
from inventory_sync.state import SyncState

API_BASE = "https://wp.test/wp-json"
FIXED_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# HTTP fakes
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None, content: bytes = b"") -> None:
        self.status_code = status_code
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text
        self.content = content or text.encode()
        self.headers: dict = {}

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class FakeSession:
    """Returns scripted responses in order and records every call."""

    def __init__(self, responses: Optional[list] = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)


def make_jwt(exp: float, sub: str = "1") -> str:
    def enc(obj: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).rstrip(b"=").decode()

    signature = base64.urlsafe_b64encode(b"signature").rstrip(b"=").decode()
    return f"{enc({'alg': 'HS256', 'typ': 'JWT'})}.{enc({'exp': exp, 'sub': sub})}.{signature}"


def token_response(exp: float, sub: str = "1") -> FakeResponse:
    return FakeResponse(200, {"data": {"token": make_jwt(exp, sub)}})


# ---------------------------------------------------------------------------
# In-memory WordPress backend
# ---------------------------------------------------------------------------

class FakeWordPress:
    """
    Stands in for WordPressClient. Posts keep meta values wrapped in
    single-element lists, the way the REST API returns them; relations
    follow replace or append semantics per (parent, relation).
    """

    api_base = API_BASE

    def __init__(self) -> None:
        self.posts: dict[int, dict] = {}
        self.terms: dict[str, list[dict]] = defaultdict(list)
        self.relations: dict[tuple[int, int], list[int]] = {}
        self.media: dict[int, dict] = {}
        self.calls: list[tuple[str, str, Any, dict]] = []
        self.failures: list[tuple[str, str, Exception]] = []
        self._next_id = 100

    # helpers for tests
    def fail(self, method: str, endpoint_prefix: str, exc: Exception) -> None:
        self.failures.append((method, endpoint_prefix, exc))

    def calls_to(self, method: str, prefix: str) -> list[tuple[str, str, Any, dict]]:
        return [c for c in self.calls if c[0] == method and c[1].startswith(prefix)]

    def relation_edges(self) -> list[tuple[int, int, int]]:
        return [
            (body["parent_id"], body["child_id"], body["relation_id"])
            for _, _, body, _ in self.calls_to("POST", "jet-rel/")
        ]

    def url_for(self, endpoint: str) -> str:
        return f"{self.api_base}/{endpoint}"

    # client API
    def request(self, method: str, endpoint: str, body: Any = None, params: Optional[dict] = None) -> Any:
        self.calls.append((method, endpoint, copy.deepcopy(body), dict(params or {})))
        for fail_method, prefix, exc in self.failures:
            if fail_method == method and endpoint.startswith(prefix):
                raise exc

        parts = endpoint.split("/")
        if parts[0] == "jet-rel":
            key = (body["parent_id"], int(parts[1]))
            if body["store_items_type"] == "replace":
                self.relations[key] = [body["child_id"]]
            elif body["child_id"] not in self.relations.setdefault(key, []):
                self.relations[key].append(body["child_id"])
            return {"success": True}
        if endpoint == "wp/v2/autos":
            return self._search_posts(params or {}) if method == "GET" else self._create_post(body)
        if endpoint.startswith("wp/v2/autos/"):
            return self._update_post(int(parts[3]), body)
        if endpoint.startswith("wp/v2/media/"):
            self.media[int(parts[3])].update(body)
            return self.media[int(parts[3])]
        taxonomy = parts[2]
        if method == "GET":
            return [copy.deepcopy(t) for t in self.terms[taxonomy] if t["slug"] == params["slug"]]
        term = {"id": self._new_id(), "name": body["name"], "slug": body["slug"], "parent": body.get("parent", 0)}
        self.terms[taxonomy].append(term)
        return copy.deepcopy(term)

    def upload_media(self, content: bytes, filename: str, content_type: str, alt_text: Optional[str] = None) -> int:
        media_id = self._new_id()
        self.calls.append(("UPLOAD", filename, content_type, {"alt_text": alt_text}))
        self.media[media_id] = {"id": media_id, "filename": filename, "alt_text": alt_text, "content": content}
        return media_id

    # internals
    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _search_posts(self, params: dict) -> list[dict]:
        if "id" in params:
            post = self.posts.get(int(params["id"]))
            return [copy.deepcopy(post)] if post else []
        wanted = params.get("ordencompra")
        return [copy.deepcopy(p) for p in self.posts.values() if p["meta"].get("ordencompra") == [wanted]]

    def _create_post(self, body: dict) -> dict:
        post_id = self._new_id()
        self.posts[post_id] = {
            "id": post_id,
            "title": body["title"],
            "content": body["content"],
            "status": body["status"],
            "featured_media": body["featured_media"],
            "meta": {k: [v] for k, v in body["meta"].items()},
            "taxonomies": {k: list(v) for k, v in body["taxonomies"].items()},
        }
        return copy.deepcopy(self.posts[post_id])

    def _update_post(self, post_id: int, body: dict) -> dict:
        post = self.posts[post_id]
        for key in ("title", "content", "status", "featured_media"):
            if key in body:
                post[key] = body[key]
        for key, value in body.get("meta", {}).items():
            post["meta"][key] = [value]
        for key, value in body.get("taxonomies", {}).items():
            post["taxonomies"][key] = list(value)
        return copy.deepcopy(post)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class InMemorySource:
    def __init__(self, records: Optional[list[InventoryRecord]] = None) -> None:
        self.records = records or []
        self.writes: list[tuple[int, dict]] = []

    def read_records(self) -> list[InventoryRecord]:
        return self.records

    def write_fields(self, record: InventoryRecord, values: dict) -> None:
        self.writes.append((record.row_number, dict(values)))
        record.fields.update(values)


def make_record(row: int = 2, **overrides: Any) -> InventoryRecord:
    fields = {
        "estatus": "",
        "post_id": "",
        "ordenid": "5001",
        "ordencompra": "PO-100",
        "ordenstatus": "Comprado",
        "ultimamodificacion": "2026-01-10T10:00:00",
        "last_sync_time": "",
        "automarca": "Nissan",
        "autosubmarcaversion": "Versa Advance",
        "autoano": "2021",
        "autoprecio": "250000",
        "autokilometraje": "32000",
        "sucursal": "Monterrey",
        "clasificacionid": "Sedan",
        "colorexterior": "Blanco",
        "colorinterior": "Negro",
        "metadescripcion": "",
        "featured_image_id": "",
        "fotos_exterior_ids": "",
        "fotos_interior_ids": "",
    }
    fields.update(overrides)
    return InventoryRecord(row_number=row, fields=fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def wp() -> FakeWordPress:
    return FakeWordPress()


@pytest.fixture
def source() -> InMemorySource:
    return InMemorySource()


@pytest.fixture
def manager(wp: FakeWordPress, source: InMemorySource) -> RecordManager:
    return RecordManager(wp, source, media=None, clock=lambda: FIXED_NOW)


@pytest.fixture
def state() -> SyncState:
    return SyncState()
