"""Change feed event model"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A row-level change notification for one table"""
    table: str
    type: ChangeType
    record: Optional[dict] = None
    old_record: Optional[dict] = None
