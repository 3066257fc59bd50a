import json
from typing import Any, Dict, List

import httpx
import pytest

from uema_data.utils.observability import get_metrics
from uema_data.utils.settings import Settings


def _matches(row: Dict[str, Any], params: httpx.QueryParams) -> bool:
    for column, raw in params.multi_items():
        if not raw.startswith("eq."):
            continue
        value = row.get(column)
        rendered = ("true" if value else "false") if isinstance(value, bool) else str(value)
        if rendered != raw[3:]:
            return False
    return True


class FakePostgrest:
    """Just enough of the Supabase REST surface for the data layer."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.failing_tables: set = set()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.rows(table).extend(dict(row) for row in rows)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        if table in self.failing_tables:
            return httpx.Response(500, json={"message": "unavailable"})
        params = request.url.params
        if request.method == "GET":
            return httpx.Response(200, json=self._select(table, params))
        if request.method == "POST":
            key = params.get("on_conflict", "id")
            for incoming in json.loads(request.content):
                self._upsert(table, incoming, key)
            return httpx.Response(201)
        if request.method == "PATCH":
            changes = json.loads(request.content)
            for row in self.rows(table):
                if _matches(row, params):
                    row.update(changes)
            return httpx.Response(204)
        if request.method == "DELETE":
            self.tables[table] = [row for row in self.rows(table) if not _matches(row, params)]
            return httpx.Response(204)
        return httpx.Response(405)

    def _upsert(self, table: str, incoming: Dict[str, Any], key: str) -> None:
        for row in self.rows(table):
            if row.get(key) == incoming.get(key):
                row.update(incoming)
                return
        self.rows(table).append(dict(incoming))

    def _select(self, table: str, params: httpx.QueryParams) -> List[Dict[str, Any]]:
        rows = [dict(row) for row in self.rows(table) if _matches(row, params)]
        if "chat_messages(*)" in params.get("select", ""):
            for row in rows:
                nested = [dict(m) for m in self.rows("chat_messages") if m.get("session_id") == row["id"]]
                row["chat_messages"] = sorted(nested, key=lambda m: m.get("created_at") or "")
        if order := params.get("order"):
            column, _, direction = order.partition(".")
            rows.sort(key=lambda row: str(row.get(column) or ""), reverse=direction == "desc")
        if limit := params.get("limit"):
            rows = rows[: int(limit)]
        if params.get("select") == "id":
            rows = [{"id": row["id"]} for row in rows]
        return rows


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setenv("UEMA_PASSWORD_ROUNDS", "4")


@pytest.fixture
def postgrest() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
def remote_settings(tmp_path) -> Settings:
    return Settings(
        supabase_url="https://demo.supabase.co",
        supabase_key="anon-key",
        cache_dir=tmp_path / "cache",
        remote_max_attempts=2,
        remote_backoff_min_seconds=0,
        remote_backoff_max_seconds=0,
    )


@pytest.fixture
def offline_settings(tmp_path) -> Settings:
    return Settings(cache_dir=tmp_path / "cache")
