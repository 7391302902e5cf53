"""Delivery of rundown changes to downstream consumers.

A sink receives each change together with its payload: the full entity from
the new snapshot for creates and updates, or None for deletes.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import certifi
import httpx
from loguru import logger

from extrarundown.diff import RundownChange, RundownChangeType
from extrarundown.exceptions import SnapshotInconsistencyError

if TYPE_CHECKING:
    from extrarundown.models import Rundown

DEFAULT_TIMEOUT = 30


class SinkError(Exception):
    """Raised when a change cannot be delivered."""


def resolve_payload(
    change: RundownChange, rundown: Rundown | None
) -> dict[str, Any] | None:
    """Look up the entity a change refers to in the new snapshot.

    Args:
        change: A change produced by diff_rundowns
        rundown: The new snapshot the change was computed against

    Returns:
        The entity's full dict for creates and updates, None for deletes

    Raises:
        SnapshotInconsistencyError: If the referenced rundown, segment or
            part is not in the snapshot
    """
    if change.type.is_delete:
        return None

    if rundown is None:
        raise SnapshotInconsistencyError(change, "rundown does not exist")

    if change.level == "rundown":
        return rundown.to_dict()

    if change.segment_id is None:
        raise SnapshotInconsistencyError(change, "change has no segment id")
    segment = rundown.get_segment(change.segment_id)
    if segment is None:
        raise SnapshotInconsistencyError(
            change, f"segment '{change.segment_id}' does not exist"
        )

    if change.level == "segment":
        return segment.to_dict()

    if change.part_id is None:
        raise SnapshotInconsistencyError(change, "change has no part id")
    part = segment.get_part(change.part_id)
    if part is None:
        raise SnapshotInconsistencyError(
            change,
            f"part '{change.part_id}' does not exist in segment '{change.segment_id}'",
        )
    return part.to_dict()


class ChangeSink(ABC):
    """Abstract base class for change consumers."""

    @abstractmethod
    async def send(self, change: RundownChange, payload: dict[str, Any] | None) -> None:
        """Deliver one change.

        Args:
            change: The change record
            payload: Resolved entity for creates/updates, None for deletes
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the sink."""
        return None


class LoggingSink(ChangeSink):
    """Sink that only logs changes. Used for dry runs."""

    async def send(self, change: RundownChange, payload: dict[str, Any] | None) -> None:
        logger.bind(**change.to_dict()).info(
            "{} {}", change.type.value, _describe(change)
        )


class RecordingSink(ChangeSink):
    """Sink that keeps every delivered change in memory."""

    def __init__(self) -> None:
        self.received: list[tuple[RundownChange, dict[str, Any] | None]] = []

    async def send(self, change: RundownChange, payload: dict[str, Any] | None) -> None:
        self.received.append((change, payload))

    @property
    def changes(self) -> list[RundownChange]:
        return [change for change, _ in self.received]

    def of_type(self, change_type: RundownChangeType) -> list[RundownChange]:
        return [c for c in self.changes if c.type == change_type]


class HttpChangeSink(ChangeSink):
    """Sink that POSTs each change as JSON to an automation endpoint.

    Request body:
        {"change": {"type": ..., "rundownId": ..., ...}, "payload": {...} | null}
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        if client is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            client = httpx.AsyncClient(
                timeout=timeout,
                verify=ssl_context,
                headers={"Accept": "application/json"},
            )
        self._client = client

    async def send(self, change: RundownChange, payload: dict[str, Any] | None) -> None:
        body = {"change": change.to_dict(), "payload": payload}
        try:
            response = await self._client.post(self._url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise SinkError(
                f"Core rejected {change.type.value} ({status}): {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise SinkError(f"Network error: {e}") from e
        logger.debug("Delivered {} {}", change.type.value, _describe(change))

    async def close(self) -> None:
        await self._client.aclose()


def _describe(change: RundownChange) -> str:
    path = [change.rundown_id]
    if change.segment_id is not None:
        path.append(change.segment_id)
    if change.part_id is not None:
        path.append(change.part_id)
    return "/".join(path)
