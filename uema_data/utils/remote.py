"""Supabase (PostgREST) access for documents, processes, chats, users and settings.

Failure policy for everything in this module, stated once:

* backend not configured: reads return ``[]``/``None``, writes return ``False``;
  a ``remote_unconfigured`` warning is logged and nothing is sent.
* transport or HTTP failure: retried with backoff when transient, then logged
  and absorbed the same way. Callers never see an exception from a public
  method here; ``RemoteError`` only travels between ``_request`` and the public
  methods.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from uema_data.utils.logging import get_logger
from uema_data.utils.observability import get_metrics, time_operation
from uema_data.utils.settings import Settings

log = get_logger(__name__)

Row = Dict[str, Any]


class RemoteError(RuntimeError):
    """Raised by the transport layer when a request ultimately fails."""

    def __init__(self, message: str, *, table: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.status_code = status_code


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return False


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def eq_filters(filters: Mapping[str, Any] | None) -> Dict[str, str]:
    return {column: f"eq.{_filter_value(value)}" for column, value in (filters or {}).items()}


class RemoteClient:
    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.settings.remote_configured

    def _headers(self, prefer: str | None = None) -> Dict[str, str]:
        key = self.settings.supabase_key.strip()
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _skip(self, operation: str, table: str) -> None:
        get_metrics().increment_counter("remote_skip::unconfigured")
        log.warning("remote_unconfigured", operation=operation, table=table)

    def _absorb(self, operation: str, exc: RemoteError) -> None:
        get_metrics().increment_counter(f"remote_error::{exc.table}")
        log.warning(
            "remote_request_failed",
            operation=operation,
            table=exc.table,
            status_code=exc.status_code,
            error=str(exc),
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        settings = self.settings
        max_attempts = max(settings.remote_max_attempts, 1)
        metrics = get_metrics()
        try:
            with time_operation(metrics, f"remote::{method.lower()}:{table}"):
                async with httpx.AsyncClient(
                    base_url=settings.rest_base_url,
                    timeout=settings.remote_timeout_seconds,
                    transport=self._transport,
                ) as client:
                    async for attempt in AsyncRetrying(
                        wait=wait_exponential(
                            multiplier=1,
                            min=settings.remote_backoff_min_seconds,
                            max=settings.remote_backoff_max_seconds,
                        ),
                        stop=stop_after_attempt(max_attempts),
                        retry=retry_if_exception(_is_retryable),
                        reraise=True,
                    ):
                        attempt_number = attempt.retry_state.attempt_number
                        if attempt_number > 1:
                            metrics.increment_counter("remote_retry::attempt")
                            log.warning(
                                "remote_request_retry",
                                method=method,
                                table=table,
                                attempt=attempt_number,
                                max_attempts=max_attempts,
                            )
                        with attempt:
                            response = await client.request(
                                method,
                                f"/{table}",
                                params=dict(params or {}),
                                json=json,
                                headers=self._headers(prefer),
                            )
                            response.raise_for_status()
                            return response
        except httpx.HTTPStatusError as exc:
            raise RemoteError(
                f"{method} {table} returned {exc.response.status_code}",
                table=table,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {table} failed: {exc}", table=table) from exc
        raise RemoteError(f"{method} {table} produced no response", table=table)

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
        order: str | None = None,
        limit: int | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> List[Row]:
        if not self.configured:
            self._skip("select", table)
            return []
        params: Dict[str, str] = {"select": columns}
        params.update(eq_filters(filters))
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        if extra_params:
            params.update(extra_params)
        try:
            response = await self._request("GET", table, params=params)
        except RemoteError as exc:
            self._absorb("select", exc)
            return []
        try:
            payload = response.json()
        except ValueError:
            log.warning("remote_payload_invalid", table=table)
            return []
        if not isinstance(payload, list):
            log.warning("remote_payload_unexpected", table=table, payload_type=type(payload).__name__)
            return []
        return [row for row in payload if isinstance(row, dict)]

    async def select_one(
        self,
        table: str,
        *,
        filters: Mapping[str, Any],
        columns: str = "*",
    ) -> Row | None:
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def upsert(
        self,
        table: str,
        rows: Row | Sequence[Row],
        *,
        on_conflict: str | None = None,
    ) -> bool:
        if not self.configured:
            self._skip("upsert", table)
            return False
        payload = [rows] if isinstance(rows, Mapping) else list(rows)
        if not payload:
            return True
        try:
            await self._request(
                "POST",
                table,
                params={"on_conflict": on_conflict} if on_conflict else None,
                json=payload,
                prefer="resolution=merge-duplicates,return=minimal",
            )
        except RemoteError as exc:
            self._absorb("upsert", exc)
            return False
        return True

    async def update(self, table: str, values: Row, *, filters: Mapping[str, Any]) -> bool:
        if not self.configured:
            self._skip("update", table)
            return False
        try:
            await self._request("PATCH", table, params=eq_filters(filters), json=values, prefer="return=minimal")
        except RemoteError as exc:
            self._absorb("update", exc)
            return False
        return True

    async def delete(self, table: str, *, filters: Mapping[str, Any]) -> bool:
        if not self.configured:
            self._skip("delete", table)
            return False
        if not filters:
            raise ValueError("Refusing to delete without a filter")
        try:
            await self._request("DELETE", table, params=eq_filters(filters))
        except RemoteError as exc:
            self._absorb("delete", exc)
            return False
        return True
