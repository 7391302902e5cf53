"""Rundown data model.

A rundown snapshot is an immutable three-level tree:

    Rundown -> Segment -> Part (-> Piece)

Each node carries an external id (the join key used when diffing two
snapshots) and a flat set of scalar attributes. ``serialize()`` returns the
scalar projection of a node, which is what the differencing engine compares;
``to_dict()`` returns the full subtree and is what gets handed downstream and
written to snapshot files.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from extrarundown.exceptions import InvalidSnapshotError


@dataclass(frozen=True)
class Piece:
    """An item attached to a part (camera, video, graphic, ...).

    Opaque to the differencing engine beyond equality.
    """

    external_id: str
    object_type: str
    object_time: int = 0  # ms from the start of the part
    duration: int = 0  # ms
    clip_name: str = ""
    attribute_items: tuple[tuple[str, str], ...] = ()
    position: str = ""  # cell hint, e.g. "A7"

    @classmethod
    def create(
        cls,
        external_id: str,
        object_type: str,
        object_time: int = 0,
        duration: int = 0,
        clip_name: str = "",
        attributes: Mapping[str, str] | None = None,
        position: str = "",
    ) -> Piece:
        """Build a piece from a plain attributes mapping."""
        return cls(
            external_id=external_id,
            object_type=object_type,
            object_time=object_time,
            duration=duration,
            clip_name=clip_name,
            attribute_items=tuple(sorted((attributes or {}).items())),
            position=position,
        )

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self.attribute_items)

    def serialize(self) -> dict[str, Any]:
        """Compared fields. The cell position moves with row edits and is left out."""
        return {
            "id": self.external_id,
            "objectType": self.object_type,
            "objectTime": self.object_time,
            "duration": self.duration,
            "clipName": self.clip_name,
            "attributes": self.attributes,
        }

    def to_dict(self) -> dict[str, Any]:
        result = self.serialize()
        result["position"] = self.position
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Piece:
        return cls.create(
            external_id=data["id"],
            object_type=data["objectType"],
            object_time=data.get("objectTime", 0),
            duration=data.get("duration", 0),
            clip_name=data.get("clipName", ""),
            attributes=data.get("attributes"),
            position=data.get("position", ""),
        )


@dataclass(frozen=True)
class Part:
    """An ordered item within a segment (a story)."""

    external_id: str  # unique within the parent segment
    segment_id: str
    rank: int
    name: str
    type: str
    floating: bool = False
    script: str = ""
    pieces: tuple[Piece, ...] = ()

    def serialize(self) -> dict[str, Any]:
        """Scalar fields plus embedded pieces, used for update detection."""
        return {
            "type": self.type,
            "segmentId": self.segment_id,
            "id": self.external_id,
            "rank": self.rank,
            "name": self.name,
            "float": self.floating,
            "script": self.script,
            "pieces": [piece.serialize() for piece in self.pieces],
        }

    def to_dict(self) -> dict[str, Any]:
        result = self.serialize()
        result["pieces"] = [piece.to_dict() for piece in self.pieces]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Part:
        return cls(
            external_id=data["id"],
            segment_id=data["segmentId"],
            rank=data["rank"],
            name=data["name"],
            type=data["type"],
            floating=data.get("float", False),
            script=data.get("script", ""),
            pieces=tuple(Piece.from_dict(p) for p in data.get("pieces", [])),
        )


@dataclass(frozen=True)
class Segment:
    """An ordered grouping of parts within a rundown (a show section)."""

    external_id: str  # unique within the parent rundown
    rundown_id: str
    rank: int
    name: str
    floating: bool = False
    parts: tuple[Part, ...] = ()

    def serialize(self) -> dict[str, Any]:
        """Scalar projection. Parts are diffed separately."""
        return {
            "id": self.external_id,
            "rank": self.rank,
            "name": self.name,
            "float": self.floating,
        }

    def get_part(self, part_id: str) -> Part | None:
        return next((p for p in self.parts if p.external_id == part_id), None)

    def to_dict(self) -> dict[str, Any]:
        result = self.serialize()
        result["rundownId"] = self.rundown_id
        result["parts"] = [part.to_dict() for part in self.parts]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Segment:
        return cls(
            external_id=data["id"],
            rundown_id=data["rundownId"],
            rank=data["rank"],
            name=data["name"],
            floating=data.get("float", False),
            parts=tuple(Part.from_dict(p) for p in data.get("parts", [])),
        )


@dataclass(frozen=True)
class Rundown:
    """Root of a rundown snapshot, one per watched sheet.

    Attributes:
        external_id: Stable id of the source document (the spreadsheet id).
        name: Display name of the rundown.
        expected_start: Scheduled start, ms since the epoch.
        expected_end: Scheduled end, ms since the epoch.
        segments: Ordered segments.
        gateway_version: Version string declared by the sheet, if any. Not
            part of the compared projection.
    """

    external_id: str
    name: str
    expected_start: int = 0
    expected_end: int = 0
    segments: tuple[Segment, ...] = ()
    gateway_version: str | None = None

    def serialize(self) -> dict[str, Any]:
        """Scalar projection. Segments are diffed separately."""
        return {
            "externalId": self.external_id,
            "name": self.name,
            "expectedStart": self.expected_start,
            "expectedEnd": self.expected_end,
        }

    def get_segment(self, segment_id: str) -> Segment | None:
        return next((s for s in self.segments if s.external_id == segment_id), None)

    def to_dict(self) -> dict[str, Any]:
        result = self.serialize()
        if self.gateway_version is not None:
            result["gatewayVersion"] = self.gateway_version
        result["segments"] = [segment.to_dict() for segment in self.segments]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rundown:
        return cls(
            external_id=data["externalId"],
            name=data["name"],
            expected_start=data.get("expectedStart", 0),
            expected_end=data.get("expectedEnd", 0),
            segments=tuple(Segment.from_dict(s) for s in data.get("segments", [])),
            gateway_version=data.get("gatewayVersion"),
        )


def load_rundown(path: str | Path) -> Rundown:
    """Read a rundown snapshot from a JSON file.

    Raises:
        InvalidSnapshotError: If the file is missing or unreadable, is not
            JSON, or lacks required fields
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InvalidSnapshotError(str(path), "File not found") from e
    except json.JSONDecodeError as e:
        raise InvalidSnapshotError(str(path), f"Invalid JSON: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidSnapshotError(str(path), f"Unreadable file: {e}") from e

    if not isinstance(data, dict):
        raise InvalidSnapshotError(str(path), "Expected a JSON object")

    try:
        return Rundown.from_dict(data)
    except KeyError as e:
        raise InvalidSnapshotError(str(path), f"Missing field {e}") from e
    except (TypeError, AttributeError) as e:
        raise InvalidSnapshotError(str(path), str(e)) from e


def dump_rundown(rundown: Rundown, path: str | Path) -> Path:
    """Write a rundown snapshot to a JSON file and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(rundown.to_dict(), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return path
