"""Offline action records.

An OfflineAction is a mutation captured while the device was offline,
stored durably until it can be replayed.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class OfflineActionType(Enum):
    """Mutations that can be queued while offline."""

    CREATE_POST = "createPost"
    UPDATE_POST = "updatePost"
    DELETE_POST = "deletePost"


@dataclass(frozen=True)
class OfflineAction:
    """A pending mutation awaiting replay."""

    id: str
    type: OfflineActionType
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    retry_count: int = 0

    @classmethod
    def create(
        cls,
        action_type: OfflineActionType,
        payload: Dict[str, Any],
        created_at: Optional[datetime] = None,
    ) -> "OfflineAction":
        """Create a new action with a fresh unique id."""
        return cls(
            id=uuid.uuid4().hex,
            type=action_type,
            payload=dict(payload),
            created_at=created_at or datetime.now(),
        )

    def with_failure(self) -> "OfflineAction":
        """Copy of this action with retry_count incremented."""
        return replace(self, retry_count=self.retry_count + 1)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable record."""
        return {
            "id": self.id,
            "type": self.type.value,
            "data": self.payload,
            "createdAt": self.created_at.isoformat(),
            "retryCount": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineAction":
        """Build an action from a stored record.

        Raises:
            ValueError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected action record, got {type(data).__name__}")
        try:
            action_id = data["id"]
            action_type = OfflineActionType(data["type"])
            created_at = datetime.fromisoformat(data["createdAt"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed action record: {e}") from e

        payload = data.get("data") or {}
        if not isinstance(action_id, str) or not action_id:
            raise ValueError("Action id must be a non-empty string")
        if not isinstance(payload, dict):
            raise ValueError("Action data must be a mapping")

        retry_count = data.get("retryCount", 0)
        if not isinstance(retry_count, int) or retry_count < 0:
            raise ValueError(f"Invalid retryCount: {retry_count!r}")

        return cls(
            id=action_id,
            type=action_type,
            payload=payload,
            created_at=created_at,
            retry_count=retry_count,
        )


__all__ = ["OfflineActionType", "OfflineAction"]
