"""
Group ORM
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from tuplegate.core.group import GroupData
from tuplegate.core.status import Status
from tuplegate.core.uuid import new_id


class Group(SQLModel, table=True):
    __tablename__ = "groups"

    group_id: str = Field(primary_key=True, default_factory=new_id)

    owner_id: str = Field(index=True)
    # The hierarchy is only stored as a reference to the parent; level and
    # path are worked out when reading.
    parent_id: str | None = Field(
        default=None, foreign_key="groups.group_id", index=True
    )

    name: str
    description: str = ""
    # `metadata` is reserved by SQLAlchemy's declarative base.
    group_metadata: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON)
    )

    status: str = Field(default=Status.ENABLED.value, index=True)

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )
    updated_by: str | None = None

    def to_core(self, level: int = 0, path: str = "") -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object. Level and path
        must be resolved by the caller, as they depend on the other groups.
        """
        return GroupData(
            group_id=self.group_id,
            owner_id=self.owner_id,
            parent_id=self.parent_id,
            name=self.name,
            description=self.description,
            metadata=self.group_metadata or {},
            level=level,
            path=path,
            status=Status(self.status),
            created_at=self.created_at,
            updated_at=self.updated_at,
            updated_by=self.updated_by,
        )
