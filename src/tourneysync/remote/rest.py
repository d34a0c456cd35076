"""
REST remote store.

Talks to a PostgREST-style endpoint (the REST layer Supabase exposes):
one resource per table, filters such as ``id=eq.<id>`` in the query string
and ``Prefer: return=representation`` to echo written rows back.
"""

from __future__ import annotations

from typing import Any

import httpx

from tourneysync.core.logging import get_logger
from tourneysync.core.models import strip_bookkeeping
from tourneysync.remote.base import RemoteError, RemoteResult, RemoteStore

logger = get_logger(__name__)


class RestRemoteStore(RemoteStore):
    """RemoteStore backed by httpx."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 15.0,
        schema_name: str = "public",
        client: httpx.Client | None = None,
    ) -> None:
        headers = {
            "Accept": "application/json",
            "Accept-Profile": schema_name,
            "Content-Profile": schema_name,
        }
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout_seconds,
        )
        self._client.headers.update(headers)

    @classmethod
    def from_config(cls, config: Any) -> RestRemoteStore:
        """Build from a ``RemoteConfig``."""
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
            schema_name=config.schema_name,
        )

    def select(self, table: str) -> RemoteResult:
        return self._request("GET", f"/{table}", params={"select": "*"})

    def insert(self, table: str, payload: dict[str, Any]) -> RemoteResult:
        result = self._request(
            "POST",
            f"/{table}",
            json=self._clean(payload),
            headers={"Prefer": "return=representation"},
        )
        return self._first_row(result)

    def update(self, table: str, record_id: str, payload: dict[str, Any]) -> RemoteResult:
        result = self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{record_id}"},
            json=self._clean(payload),
            headers={"Prefer": "return=representation"},
        )
        return self._first_row(result)

    def delete(self, table: str, record_id: str) -> RemoteResult:
        return self._request("DELETE", f"/{table}", params={"id": f"eq.{record_id}"})

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RestRemoteStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _clean(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = strip_bookkeeping(payload)
        if data.get("id") is None:
            data.pop("id", None)
        return data

    def _first_row(self, result: RemoteResult) -> RemoteResult:
        if result.ok and isinstance(result.data, list):
            return RemoteResult(data=result.data[0] if result.data else None)
        return result

    def _request(self, method: str, url: str, **kwargs: Any) -> RemoteResult:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            details = _error_body(exc.response)
            message = details.get("message") if isinstance(details, dict) else None
            logger.warning(
                "Remote request rejected",
                method=method,
                url=url,
                status_code=exc.response.status_code,
            )
            return RemoteResult(
                error=RemoteError(
                    message or f"HTTP {exc.response.status_code}",
                    status_code=exc.response.status_code,
                    details=details,
                )
            )
        except httpx.RequestError as exc:
            logger.warning("Remote request failed", method=method, url=url, error=str(exc))
            return RemoteResult(error=RemoteError(str(exc) or type(exc).__name__))

        if not response.content:
            return RemoteResult()
        return RemoteResult(data=response.json())


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
