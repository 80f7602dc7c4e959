"""
Data model for a retention run.

Image records are read-only snapshots of catalog entries. Everything else
here (classification, plan, report, events) lives for a single run only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a catalog timestamp into an aware datetime.

    Args:
        value: ISO 8601 string (may end with 'Z') or a datetime

    Returns:
        datetime in UTC or None if parsing fails
    """
    if not value:
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class ImageRecord:
    """Snapshot of one catalog image."""

    id: str
    name: str
    created_at: datetime
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def label(self) -> str:
        return f"{self.name} {self.id}"

    @classmethod
    def from_catalog(cls, doc: Dict[str, Any]) -> "ImageRecord":
        """Build a record from a Glance v2 image document.

        Raises:
            ValueError: if the document has no id or no parseable created_at
        """
        if not isinstance(doc, dict):
            raise ValueError(f"image entry is not an object: {doc!r}")

        image_id = doc.get("id")
        if not image_id:
            raise ValueError("image entry has no id")

        created_at = parse_timestamp(doc.get("created_at"))
        if created_at is None:
            raise ValueError(f"image {image_id} has invalid created_at: {doc.get('created_at')!r}")

        # Glance flattens custom properties into the image document
        properties = {k: v for k, v in doc.items() if k not in ("id", "name", "created_at")}
        return cls(id=str(image_id), name=doc.get("name") or "", created_at=created_at, properties=properties)


@dataclass(frozen=True)
class RetentionFilter:
    """Exact image name selecting the family the policy applies to."""

    name: str

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("retention filter name must not be empty")


class Classification(Enum):
    RETAIN = "retain"
    PURGE = "purge"


@dataclass
class RetentionPlan:
    """Partition of the matched images into retain and purge sets."""

    retain: List[ImageRecord] = field(default_factory=list)
    purge: List[ImageRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.retain) + len(self.purge)

    def items(self):
        """Yield (record, classification) in execution order."""
        for image in self.retain:
            yield image, Classification.RETAIN
        for image in self.purge:
            yield image, Classification.PURGE


@dataclass
class ItemOutcome:
    image: ImageRecord
    action: Classification
    success: bool
    error: Optional[str] = None
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.image.id,
            "name": self.image.name,
            "created_at": self.image.created_at.isoformat(),
            "action": self.action.value,
            "success": self.success,
            "error": self.error,
            "dry_run": self.dry_run,
        }


@dataclass
class ExecutionReport:
    """Per-image outcomes in the order they were executed."""

    outcomes: List[ItemOutcome] = field(default_factory=list)

    def record(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)

    def _count(self, action: Classification) -> int:
        return sum(1 for o in self.outcomes if o.action is action and o.success and not o.dry_run)

    @property
    def patched(self) -> int:
        return self._count(Classification.RETAIN)

    @property
    def deleted(self) -> int:
        return self._count(Classification.PURGE)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def failures(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "total": len(self.outcomes),
                "patched": self.patched,
                "deleted": self.deleted,
                "failed": self.failed,
            },
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class EventKind(Enum):
    UPDATING_METADATA = "updating_metadata"
    DELETING = "deleting"


@dataclass(frozen=True)
class StatusEvent:
    """Progress event emitted right before a catalog mutation."""

    kind: EventKind
    image: ImageRecord

    @property
    def message(self) -> str:
        if self.kind is EventKind.UPDATING_METADATA:
            return f"updating metadata for {self.image.label}"
        return f"deleting duplicate image {self.image.label}"
