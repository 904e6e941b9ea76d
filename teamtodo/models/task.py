"""Task models"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

TEMP_ID_PREFIX = "temp-"


class Priority(str, Enum):
    """Task priority, stored with its Japanese label"""
    HIGH = "高"
    MEDIUM = "中"
    LOW = "低"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class Task(BaseModel):
    """A single to-do item owned by one identity"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    text: str
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    owner_id: Optional[str] = Field(default=None, alias="user_id")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    def to_row(self) -> dict:
        """Serialize using the backend column names"""
        return self.model_dump(mode="json", by_alias=True)

    def to_insert(self) -> dict:
        """Columns sent when inserting; the server assigns id and timestamps"""
        return {
            "text": self.text,
            "completed": self.completed,
            "priority": self.priority.value,
            "user_id": self.owner_id,
        }
