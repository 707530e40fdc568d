"""Async client for the hosted data platform (rows, RPC, storage, functions)."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from studiodesk.config import GatewayConfig
from studiodesk.gateway.errors import GatewayError, TransportError, error_from_response

logger = logging.getLogger(__name__)

Filters = Mapping[str, Any]


def _encode_filters(filters: Filters | None) -> dict[str, str]:
    """Translate ``{"col": value}`` into PostgREST ``col=eq.value`` params.

    ``None`` becomes ``is.null``; lists become ``in.(a,b)``.
    """
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, (list, tuple, set)):
            params[column] = "in.(" + ",".join(str(v) for v in value) + ")"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class GatewayClient:
    """Thin async wrapper over the platform's HTTP API.

    Every failure is raised as a ``GatewayError`` subclass so callers handle a
    single taxonomy regardless of which endpoint failed.
    """

    def __init__(
        self,
        config: GatewayConfig,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.access_token = access_token or config.access_token or config.anon_key
        self.client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
            headers={
                "apikey": config.anon_key,
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            },
        )

    def set_session(self, access_token: str) -> None:
        """Switch subsequent calls to a new session token."""
        self.access_token = access_token
        self.client.headers["Authorization"] = f"Bearer {access_token}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        try:
            response = await self.client.request(
                method, url, params=params, json=json, content=content, headers=headers
            )
        except httpx.RequestError as exc:
            logger.warning("gateway_transport_error: %s %s: %s", method, url, exc)
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            error = error_from_response(
                response.status_code,
                payload,
                f"{method} {url} failed with status {response.status_code}",
            )
            logger.warning(
                "gateway_request_failed: %s %s status=%s error=%s",
                method,
                url,
                response.status_code,
                error.message,
            )
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(
                f"{method} {url} returned non-JSON body", status_code=response.status_code
            ) from exc

    # Row operations

    async def select(
        self,
        table: str,
        *,
        filters: Filters | None = None,
        columns: str = "*",
        order: Sequence[tuple[str, bool]] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows; ``order`` is a sequence of ``(column, ascending)``."""
        params = {"select": columns, **_encode_filters(filters)}
        if order:
            params["order"] = ",".join(
                f"{column}.{'asc' if ascending else 'desc'}" for column, ascending in order
            )
        if limit is not None:
            params["limit"] = str(limit)
        data = await self._request("GET", f"{self.config.rest_url}/{table}", params=params)
        return list(data or [])

    async def select_one(
        self, table: str, *, filters: Filters, columns: str = "*"
    ) -> dict[str, Any] | None:
        """Return the first matching row or ``None``."""
        rows = await self.select(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"{self.config.rest_url}/{table}",
            json=dict(row),
            headers={"Prefer": "return=representation"},
        )
        if isinstance(data, list):
            return data[0] if data else {}
        return data or {}

    async def update(
        self, table: str, values: Mapping[str, Any], *, filters: Filters
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        data = await self._request(
            "PATCH",
            f"{self.config.rest_url}/{table}",
            params=_encode_filters(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        return list(data or [])

    async def delete(self, table: str, *, filters: Filters) -> None:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        await self._request(
            "DELETE", f"{self.config.rest_url}/{table}", params=_encode_filters(filters)
        )

    # Remote procedures and edge functions

    async def rpc(self, name: str, args: Mapping[str, Any] | None = None) -> Any:
        """Invoke a named server-side function; returns its JSON result."""
        logger.debug("gateway_rpc: %s", name)
        return await self._request(
            "POST", f"{self.config.rest_url}/rpc/{name}", json=dict(args or {})
        )

    async def invoke(self, function: str, payload: Mapping[str, Any]) -> Any:
        return await self._request(
            "POST", f"{self.config.functions_url}/{function}", json=dict(payload)
        )

    # Object storage

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> str:
        """Upload bytes under ``path``; returns the storage key."""
        await self._request(
            "POST",
            f"{self.config.storage_url}/object/{bucket}/{path}",
            content=content,
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if upsert else "false",
            },
        )
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.config.storage_url}/object/public/{bucket}/{path}"

    async def remove(self, bucket: str, paths: Sequence[str]) -> None:
        await self._request(
            "DELETE",
            f"{self.config.storage_url}/object/{bucket}",
            json={"prefixes": list(paths)},
        )

    # Auth

    async def get_user(self) -> dict[str, Any]:
        """Return the user behind the current session token."""
        data = await self._request("GET", f"{self.config.auth_url}/user")
        return data or {}

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
