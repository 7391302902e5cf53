"""Core diff engine for extrarundown.

Compares two rundown snapshots and returns the ordered list of changes that
turns the old one into the new one.

Precedence rules:
- A created or deleted rundown is reported on its own, without child changes.
- A created or updated segment is reported without part changes, since the
  consumer re-reads all of that segment's parts anyway.
- An updated rundown does NOT suppress segment changes.

Entities are matched solely by external id within their parent.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from extrarundown.models import Part, Rundown, Segment

if TYPE_CHECKING:
    from collections.abc import Iterable

_NodeT = TypeVar("_NodeT", Segment, Part)


class RundownChangeType(str, Enum):
    """Closed set of change kinds emitted by the engine."""

    RUNDOWN_CREATE = "rundown_create"
    RUNDOWN_DELETE = "rundown_delete"
    RUNDOWN_UPDATE = "rundown_update"
    SEGMENT_CREATE = "segment_create"
    SEGMENT_DELETE = "segment_delete"
    SEGMENT_UPDATE = "segment_update"
    PART_CREATE = "part_create"
    PART_DELETE = "part_delete"
    PART_UPDATE = "part_update"

    @property
    def level(self) -> Literal["rundown", "segment", "part"]:
        prefix = self.value.split("_", 1)[0]
        if prefix == "segment":
            return "segment"
        if prefix == "part":
            return "part"
        return "rundown"

    @property
    def is_delete(self) -> bool:
        return self.value.endswith("_delete")


@dataclass(frozen=True)
class RundownChange:
    """A single change record.

    Only ids are carried; payloads are looked up in the new snapshot by the
    consumer (see ``extrarundown.sink.resolve_payload``).
    """

    type: RundownChangeType
    rundown_id: str
    segment_id: str | None = None
    part_id: str | None = None

    @property
    def level(self) -> Literal["rundown", "segment", "part"]:
        return self.type.level

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.type.value,
            "rundownId": self.rundown_id,
        }
        if self.segment_id is not None:
            result["segmentId"] = self.segment_id
        if self.part_id is not None:
            result["partId"] = self.part_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RundownChange:
        return cls(
            type=RundownChangeType(data["type"]),
            rundown_id=data["rundownId"],
            segment_id=data.get("segmentId"),
            part_id=data.get("partId"),
        )


def diff_rundowns(
    old_rundown: Rundown | None, new_rundown: Rundown | None
) -> list[RundownChange]:
    """Compute the ordered changes between two rundown snapshots.

    Args:
        old_rundown: Last accepted snapshot, or None if there is none yet
        new_rundown: Freshly fetched snapshot, or None if the source is gone

    Returns:
        Changes in emission order. Empty if nothing changed.
    """
    if old_rundown is None and new_rundown is None:
        return []

    if old_rundown is None:
        assert new_rundown is not None
        return [
            RundownChange(RundownChangeType.RUNDOWN_CREATE, new_rundown.external_id)
        ]

    if new_rundown is None:
        return [
            RundownChange(RundownChangeType.RUNDOWN_DELETE, old_rundown.external_id)
        ]

    changes: list[RundownChange] = []

    if old_rundown.serialize() != new_rundown.serialize():
        changes.append(
            RundownChange(RundownChangeType.RUNDOWN_UPDATE, new_rundown.external_id)
        )

    rundown_id = new_rundown.external_id
    old_segments = _index_by_id(old_rundown.segments)
    new_segment_ids = {s.external_id for s in new_rundown.segments}

    for old_segment in old_rundown.segments:
        if old_segment.external_id not in new_segment_ids:
            changes.append(
                RundownChange(
                    RundownChangeType.SEGMENT_DELETE,
                    rundown_id,
                    segment_id=old_segment.external_id,
                )
            )

    for new_segment in new_rundown.segments:
        matched = old_segments.get(new_segment.external_id)
        if matched is None:
            changes.append(
                RundownChange(
                    RundownChangeType.SEGMENT_CREATE,
                    rundown_id,
                    segment_id=new_segment.external_id,
                )
            )
            continue

        if matched.serialize() != new_segment.serialize():
            changes.append(
                RundownChange(
                    RundownChangeType.SEGMENT_UPDATE,
                    rundown_id,
                    segment_id=new_segment.external_id,
                )
            )
            continue

        changes.extend(_diff_parts(rundown_id, matched, new_segment))

    return changes


def _diff_parts(
    rundown_id: str, old_segment: Segment, new_segment: Segment
) -> list[RundownChange]:
    """Part-level changes for a segment whose own fields are unchanged."""
    segment_id = new_segment.external_id
    old_parts = _index_by_id(old_segment.parts)
    new_part_ids = {p.external_id for p in new_segment.parts}
    changes: list[RundownChange] = []

    for old_part in old_segment.parts:
        if old_part.external_id not in new_part_ids:
            changes.append(
                RundownChange(
                    RundownChangeType.PART_DELETE,
                    rundown_id,
                    segment_id=segment_id,
                    part_id=old_part.external_id,
                )
            )

    for new_part in new_segment.parts:
        matched = old_parts.get(new_part.external_id)
        if matched is None:
            change_type = RundownChangeType.PART_CREATE
        elif matched.serialize() != new_part.serialize():
            change_type = RundownChangeType.PART_UPDATE
        else:
            continue
        changes.append(
            RundownChange(
                change_type,
                rundown_id,
                segment_id=segment_id,
                part_id=new_part.external_id,
            )
        )

    return changes


def summarize_changes(changes: Iterable[RundownChange]) -> dict[str, int]:
    """Count changes per type, keyed by the type's string value."""
    counts = Counter(change.type.value for change in changes)
    return dict(sorted(counts.items()))


def _index_by_id(nodes: Iterable[_NodeT]) -> dict[str, _NodeT]:
    """Map external id to node, keeping the first node for a repeated id."""
    index: dict[str, _NodeT] = {}
    for node in nodes:
        index.setdefault(node.external_id, node)
    return index
