"""
Persistence for clients (users and things).
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tuplegate.core.client import ClientData, ClientPage
from tuplegate.core.errors import AuthorizationError, EntityExists, NotFoundError
from tuplegate.core.status import Status
from tuplegate.database.client import Client


class ClientNotFound(NotFoundError):
    pass


async def save(
    client: ClientData, secret_hash: str, hash_algorithm: str, conn: AsyncSession
) -> ClientData:
    """
    Raises
    ------
    EntityExists
        If a client of the same kind already uses this identity or secret.
    """
    row = Client(
        client_id=client.client_id,
        kind=client.kind,
        name=client.name,
        owner_id=client.owner_id,
        identity=client.identity,
        hash_algorithm=hash_algorithm,
        secret_hash=secret_hash,
        tags=client.tags,
        client_metadata=client.metadata,
        status=client.status.value,
        role=client.role,
        created_at=client.created_at,
    )

    conn.add(row)

    try:
        await conn.flush()
    except IntegrityError:
        raise EntityExists(
            f"A {client.kind} with the same identity or secret already exists"
        )

    return row.to_core()


async def _read_row(client_id: str, kind: str, conn: AsyncSession) -> Client:
    row = await conn.get(Client, client_id)

    if row is None or row.kind != kind:
        raise ClientNotFound(f"{kind.capitalize()} with ID {client_id} not found")

    return row


async def retrieve_by_id(client_id: str, kind: str, conn: AsyncSession) -> ClientData:
    """
    Raises
    ------
    ClientNotFound
        If there is no client of this kind with this id.
    """
    return (await _read_row(client_id=client_id, kind=kind, conn=conn)).to_core()


async def retrieve_by_secret(
    secret_hash: str, kind: str, conn: AsyncSession
) -> ClientData:
    """
    Raises
    ------
    ClientNotFound
        If no client of this kind holds a secret with this hash.
    """
    result = await conn.execute(
        select(Client)
        .where(Client.kind == kind)
        .where(Client.secret_hash == secret_hash)
    )
    row = result.scalars().one_or_none()

    if row is None:
        raise ClientNotFound(f"No {kind} found for the provided secret")

    return row.to_core()


async def secret_hash_of(client_id: str, kind: str, conn: AsyncSession) -> tuple[str, str]:
    row = await _read_row(client_id=client_id, kind=kind, conn=conn)
    return row.secret_hash, row.hash_algorithm


async def retrieve_all(page: ClientPage, kind: str, conn: AsyncSession) -> ClientPage:
    """
    Retrieve a page of clients of one kind, filtered by the page.
    """
    query = select(Client).where(Client.kind == kind)

    if page.ids is not None:
        query = query.where(Client.client_id.in_(page.ids))
    if page.owner_id is not None:
        query = query.where(Client.owner_id == page.owner_id)
    if page.name is not None:
        query = query.where(Client.name.ilike(f"%{page.name}%"))
    if page.status is not None:
        query = query.where(Client.status == Status(page.status).value)

    result = await conn.execute(query.order_by(Client.created_at, Client.client_id))
    rows = list(result.scalars().all())

    # Tags are stored as JSON, so that filter is applied here.
    if page.tag is not None:
        rows = [row for row in rows if page.tag in (row.tags or [])]

    return page.model_copy(
        update={
            "total": len(rows),
            "clients": [
                row.to_core() for row in rows[page.offset : page.offset + page.limit]
            ],
        }
    )


async def members(ids: list[str], page: ClientPage, kind: str, conn: AsyncSession) -> ClientPage:
    """
    Resolve the member ids reported by the policy engine to client records.
    """
    if not ids:
        return page.model_copy(update={"total": 0, "clients": []})

    return await retrieve_all(
        page=page.model_copy(update={"ids": ids}), kind=kind, conn=conn
    )


async def _apply(
    client_id: str, kind: str, updated_by: str, conn: AsyncSession, **fields: Any
) -> ClientData:
    row = await _read_row(client_id=client_id, kind=kind, conn=conn)

    for key, value in fields.items():
        setattr(row, key, value)

    row.updated_at = datetime.now(timezone.utc)
    row.updated_by = updated_by

    conn.add(row)

    try:
        await conn.flush()
    except IntegrityError:
        raise EntityExists(f"Update of {kind} {client_id} conflicts with another {kind}")

    return row.to_core()


async def update(
    client_id: str,
    kind: str,
    name: str | None,
    metadata: dict[str, Any] | None,
    updated_by: str,
    conn: AsyncSession,
) -> ClientData:
    fields = {}
    if name is not None:
        fields["name"] = name
    if metadata is not None:
        fields["client_metadata"] = metadata

    return await _apply(client_id, kind, updated_by, conn, **fields)


async def update_tags(
    client_id: str, kind: str, tags: list[str], updated_by: str, conn: AsyncSession
) -> ClientData:
    return await _apply(client_id, kind, updated_by, conn, tags=list(tags))


async def update_identity(
    client_id: str, kind: str, identity: str, updated_by: str, conn: AsyncSession
) -> ClientData:
    return await _apply(client_id, kind, updated_by, conn, identity=identity)


async def update_secret(
    client_id: str,
    kind: str,
    secret_hash: str,
    hash_algorithm: str,
    updated_by: str,
    conn: AsyncSession,
) -> ClientData:
    return await _apply(
        client_id,
        kind,
        updated_by,
        conn,
        secret_hash=secret_hash,
        hash_algorithm=hash_algorithm,
    )


async def update_owner(
    client_id: str, kind: str, owner_id: str, updated_by: str, conn: AsyncSession
) -> ClientData:
    return await _apply(client_id, kind, updated_by, conn, owner_id=owner_id)


async def change_status(
    client_id: str, kind: str, status: Status, updated_by: str, conn: AsyncSession
) -> ClientData:
    return await _apply(
        client_id, kind, updated_by, conn, status=Status(status).value
    )


async def is_owner(client_id: str, owner_id: str, conn: AsyncSession) -> None:
    """
    Raises
    ------
    AuthorizationError
        If `owner_id` does not own the client, or the client does not exist.
    """
    result = await conn.execute(
        select(func.count())
        .select_from(Client)
        .where(Client.client_id == client_id)
        .where(Client.owner_id == owner_id)
    )

    if result.scalar_one() == 0:
        raise AuthorizationError(f"{owner_id} does not own client {client_id}")
