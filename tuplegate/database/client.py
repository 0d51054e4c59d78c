"""
ORM for clients: both users and things live in the same table, told apart by
their kind.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from tuplegate.core.client import ClientData
from tuplegate.core.status import Status
from tuplegate.core.uuid import new_id


class Client(SQLModel, table=True):
    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("kind", "identity"),
        # identify resolves a secret to exactly one client.
        UniqueConstraint("kind", "secret_hash"),
    )

    client_id: str = Field(primary_key=True, default_factory=new_id)
    kind: str = Field(index=True)

    name: str = ""
    owner_id: str | None = Field(default=None, index=True)

    identity: str | None = None
    # Only ever the hash of the secret, never the secret itself.
    hash_algorithm: str
    secret_hash: str = Field(index=True)

    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    client_metadata: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON)
    )

    status: str = Field(default=Status.ENABLED.value, index=True)
    role: str | None = None

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )
    updated_by: str | None = None

    def to_core(self) -> ClientData:
        return ClientData(
            client_id=self.client_id,
            kind=self.kind,
            name=self.name,
            owner_id=self.owner_id,
            identity=self.identity,
            tags=self.tags or [],
            metadata=self.client_metadata or {},
            status=Status(self.status),
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at,
            updated_by=self.updated_by,
        )
