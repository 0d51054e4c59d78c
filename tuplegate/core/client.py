"""
A shared client (user or thing) object that is serialized. Secrets never
make it into these models.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .status import Status

ClientKind = Literal["user", "thing"]


class Role:
    USER = "user"
    ADMIN = "admin"


class ClientData(BaseModel):
    client_id: str
    kind: ClientKind
    name: str = ""
    owner_id: str | None = None
    identity: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: Status = Status.ENABLED
    role: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    updated_by: str | None = None


class ClientPage(BaseModel):
    offset: int = 0
    limit: int = 10
    total: int = 0

    name: str | None = None
    owner_id: str | None = None
    status: Status | None = None
    tag: str | None = None
    # Restrict the listing to these ids, as resolved from the policy engine.
    ids: list[str] | None = None

    clients: list[ClientData] = Field(default_factory=list)


class Member(BaseModel):
    id: str
    type: str


class MembersPage(BaseModel):
    offset: int = 0
    limit: int = 0
    total: int = 0
    members: list[Member] = Field(default_factory=list)

    @classmethod
    def from_ids(cls, ids: list[str], member_type: str) -> "MembersPage":
        """
        Wrap the member ids reported by the policy engine as one complete page.
        """
        members = [Member(id=member_id, type=member_type) for member_id in ids]
        return cls(total=len(members), offset=0, limit=len(members), members=members)


class IssuedCredentials(BaseModel):
    """
    A client along with its raw secret. Only returned when the secret was
    just set, as the raw value is not kept anywhere.
    """

    client: ClientData
    secret: str


class ClientRequest(BaseModel):
    """
    What a caller supplies to create a user or thing. Anything left out is
    filled in by the service (id, owner, generated secret for things).
    """

    client_id: str | None = None
    name: str = ""
    identity: str | None = None
    secret: str | None = None
    owner_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: str = Status.ENABLED.value
    role: str | None = None
