"""
Spreadsheet bulk-append client.

The engine only depends on the :class:`AppendClient` protocol; any object
with ``append`` and ``batch_update`` methods can stand in for the real
API. :class:`SheetsClient` is the HTTP implementation against the Google
Sheets v4 REST API, built on ``httpx``.

Endpoints:
    ::

        POST {base}/spreadsheets/{id}/values/{range}:append
             ?valueInputOption=RAW|USER_ENTERED&insertDataOption=INSERT_ROWS
             {"values": [[...], ...]}
        POST {base}/spreadsheets/{id}:batchUpdate
             {"requests": [...]}

Every failure (transport error or non-2xx response) is raised as
:class:`~lockstep.core.errors.AppendError`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

from lockstep.core.errors import AppendError
from lockstep.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://sheets.googleapis.com/v4"


@runtime_checkable
class AppendClient(Protocol):
    """External bulk-append API."""

    def append(
        self,
        destination: str,
        range_selector: str,
        value_input_option: str,
        rows: Sequence[Sequence[Any]],
    ) -> None: ...

    def batch_update(self, destination: str, requests: Sequence[dict[str, Any]]) -> None: ...


class SheetsClient:
    """HTTP client for the Sheets values/batchUpdate endpoints.

    Args:
        access_token: OAuth bearer token (omit when ``client`` already authenticates)
        base_url: API root
        timeout: Per-request timeout in seconds
        client: Pre-configured ``httpx.Client``; not closed by :meth:`close`
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers

    def _post(self, url: str, payload: dict[str, Any], params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            response = self._client.post(url, json=payload, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise AppendError(f"Request to {url} failed: {e}", cause=e) from e

        if response.is_error:
            detail = _error_detail(response)
            raise AppendError(
                f"Sheets API returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    def append(
        self,
        destination: str,
        range_selector: str,
        value_input_option: str,
        rows: Sequence[Sequence[Any]],
    ) -> None:
        url = (
            f"{self._base_url}/spreadsheets/{quote(destination, safe='')}"
            f"/values/{quote(range_selector, safe='!:')}:append"
        )
        body = self._post(
            url,
            {"values": [list(row) for row in rows]},
            params={"valueInputOption": value_input_option, "insertDataOption": "INSERT_ROWS"},
        )
        updates = body.get("updates", {})
        logger.debug(
            "sheets_rows_appended",
            destination=destination,
            rows=len(rows),
            updated_range=updates.get("updatedRange"),
        )

    def batch_update(self, destination: str, requests: Sequence[dict[str, Any]]) -> None:
        url = f"{self._base_url}/spreadsheets/{quote(destination, safe='')}:batchUpdate"
        self._post(url, {"requests": list(requests)})
        logger.debug("sheets_batch_updated", destination=destination, requests=len(requests))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> SheetsClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


__all__ = ["AppendClient", "DEFAULT_BASE_URL", "SheetsClient"]
