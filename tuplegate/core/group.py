"""
Core group data models.
"""

from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

from .status import Status

# Root groups sit at level 1; nothing may be attached below MAX_LEVEL.
MIN_LEVEL = 0
MAX_LEVEL = 5


class Direction(IntEnum):
    ANCESTORS = -1
    DESCENDANTS = 1


class GroupData(BaseModel):
    group_id: str
    owner_id: str
    parent_id: str | None = None
    name: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    level: int = 0
    path: str = ""
    status: Status = Status.ENABLED
    created_at: datetime
    updated_at: datetime | None = None
    updated_by: str | None = None
    # Only ever filled in when building hierarchical responses.
    children: list["GroupData"] = Field(default_factory=list)


class GroupPage(BaseModel):
    """
    A window onto a list of groups. When `group_id` is set the listing walks
    the hierarchy from that group, `level` steps in `direction`.
    """

    offset: int = 0
    limit: int = 10
    total: int = 0

    group_id: str | None = None
    direction: Direction = Direction.DESCENDANTS
    level: int = MAX_LEVEL

    name: str | None = None
    owner_id: str | None = None
    status: Status | None = None
    metadata: dict[str, Any] | None = None

    groups: list[GroupData] = Field(default_factory=list)
