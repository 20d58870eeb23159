"""HTTP persistence gateway for the rundown REST API.

Maps the PersistenceGateway protocol onto the backend routes:

    PUT /rundowns/{id}                      rundown metadata
    PUT /rundown-segments/{id}              segment fields
    GET /rundowns/{id}/last-modified        {"updated_at": ...}
    PUT /rundown-segments/reorder           atomic sibling order
    GET /rundowns/{id}                      rundown row with "segments"
    GET /rundown-segments/rundown/{id}      segment rows (fallback)

Transport failures become GatewayUnavailable, timeouts GatewayTimeout, and
non-2xx answers GatewayRejected carrying the server's ``error`` message.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import httpx

from rundown_sync.core.domain.errors import GatewayRejected, GatewayTimeout, GatewayUnavailable
from rundown_sync.core.domain.types import (
    Rundown,
    RundownUpdate,
    Segment,
    SegmentContent,
    SegmentUpdate,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S: float = 15.0

_RUNDOWN_STATUSES = {"draft", "submitted", "approved", "rejected"}
_SEGMENT_TYPES = {"intro", "story", "interview", "break", "outro", "custom"}


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _parse_timestamp(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    text = str(raw)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_content(raw: Any) -> SegmentContent:
    if raw is None or raw == "":
        return SegmentContent()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            # Legacy rows stored plain text content.
            return SegmentContent(intro=raw)
    if not isinstance(raw, dict):
        return SegmentContent()
    return SegmentContent.model_validate(raw)


def segment_from_row(row: dict[str, Any]) -> Segment:
    """Build a Segment from a ``rundown_segments`` row."""
    segment_type = row.get("type") or row.get("segment_type") or "custom"
    if segment_type not in _SEGMENT_TYPES:
        segment_type = "custom"

    return Segment(
        id=row["id"],
        title=row.get("title") or "",
        segment_type=segment_type,
        duration=max(0, int(row.get("duration") or 0)),
        order_index=max(0, int(row.get("order_index") or 0)),
        is_pinned=bool(row.get("is_pinned")),
        content=_parse_content(row.get("content")),
        notes=row.get("notes"),
    )


def rundown_from_row(row: dict[str, Any], segments: list[Segment]) -> Rundown:
    """Build a Rundown from a ``rundowns`` row and its segments."""
    status = row.get("status") or "draft"
    if status not in _RUNDOWN_STATUSES:
        LOGGER.debug("Unknown rundown status; treating as draft", extra={"status": status})
        status = "draft"

    return Rundown(
        id=int(row["id"]),
        title=row.get("title") or "",
        description=row.get("description") or "",
        status=status,
        segments=sorted(segments, key=lambda seg: seg.order_index),
        updated_at=_parse_timestamp(row.get("updated_at")),
    )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class HttpPersistenceGateway:
    """PersistenceGateway over the REST API using httpx.

    Features:
    - Bearer token authentication
    - Explicit request timeout (default 15 s)
    - Error translation into the GatewayError hierarchy
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            base_url: API root, e.g. "https://example.org/api"
            token: Bearer token sent with every request
            timeout_s: Request timeout in seconds
            client: Optional preconfigured client (tests pass a MockTransport)
        """
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_s),
            headers=headers,
        )
        if client is not None:
            self.client.headers.update(headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpPersistenceGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, payload: Any = None) -> Any:
        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise GatewayUnavailable(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            message = f"HTTP {response.status_code}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            LOGGER.debug(
                "Gateway request rejected",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise GatewayRejected(response.status_code, message)

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # PersistenceGateway
    # ------------------------------------------------------------------

    async def update_document(self, document_id: int, update: RundownUpdate) -> None:
        await self._request("PUT", f"/rundowns/{document_id}", payload=update.model_dump(mode="json"))

    async def update_segment(self, segment_id: int, update: SegmentUpdate) -> None:
        await self._request("PUT", f"/rundown-segments/{segment_id}", payload=update.model_dump(mode="json"))

    async def get_last_modified(self, document_id: int) -> datetime:
        body = await self._request("GET", f"/rundowns/{document_id}/last-modified")
        updated_at = _parse_timestamp(body.get("updated_at") if isinstance(body, dict) else None)
        if updated_at is None:
            raise GatewayRejected(502, "Response is missing updated_at")
        return updated_at

    async def reorder_segments(self, document_id: int, ordered_ids: list[int]) -> list[Segment]:
        payload = {
            "rundown_id": document_id,
            "segment_orders": [
                {"id": segment_id, "order_index": index}
                for index, segment_id in enumerate(ordered_ids)
            ],
        }
        rows = await self._request("PUT", "/rundown-segments/reorder", payload=payload)
        if not isinstance(rows, list):
            raise GatewayRejected(502, "Reorder response is not a segment list")

        segments = [segment_from_row(row) for row in rows]
        returned = sorted(str(seg.id) for seg in segments)
        if returned != sorted(str(segment_id) for segment_id in ordered_ids):
            raise GatewayRejected(409, "Segment set changed on the server")
        return segments

    async def get_document(self, document_id: int) -> Rundown:
        row = await self._request("GET", f"/rundowns/{document_id}")
        if not isinstance(row, dict):
            raise GatewayRejected(502, "Rundown response is not an object")

        raw_segments = row.get("segments")
        if not isinstance(raw_segments, list):
            raw_segments = await self._request("GET", f"/rundown-segments/rundown/{document_id}")
            if not isinstance(raw_segments, list):
                raw_segments = []

        return rundown_from_row(row, [segment_from_row(seg) for seg in raw_segments])
