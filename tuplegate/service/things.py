"""
Service layer for things: machines that authenticate with a secret rather
than a bearer token.

Secrets are stored hashed with a deterministic algorithm so that a thing can
be found from the secret it presents. The identity cache sits in front of
that lookup.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from tuplegate.config.settings import Settings
from tuplegate.core.client import (
    ClientData,
    ClientPage,
    ClientRequest,
    IssuedCredentials,
)
from tuplegate.core.errors import AuthenticationError
from tuplegate.core.hashing import checksum
from tuplegate.core.random import thing_secret
from tuplegate.core.status import Status, validate_status
from tuplegate.core.tuples import (
    DELETE_PERMISSION,
    EDIT_PERMISSION,
    OWNER_RELATION,
    THING_TYPE,
    THINGS_KIND,
    USER_TYPE,
    VIEW_PERMISSION,
    RelationTuple,
)
from tuplegate.core.uuid import IDProvider, new_id
from tuplegate.repository import clients as clients_repository
from tuplegate.repository.clients import ClientNotFound

from . import authz, clients, membership
from .cache import IdentityCache
from .engine import PolicyEngine


def ownership(owner_id: str, thing_id: str) -> RelationTuple:
    return RelationTuple(
        subject_type=USER_TYPE,
        subject=owner_id,
        relation=OWNER_RELATION,
        object_type=THING_TYPE,
        object=thing_id,
    )


async def create_things(
    token: str,
    things: list[ClientRequest],
    engine: PolicyEngine,
    settings: Settings,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    id_provider: IDProvider = new_id,
) -> list[IssuedCredentials]:
    """
    Create things owned by the caller (or by the owner each request names).
    Things without a secret get a generated one; the raw secrets are only
    ever returned here.

    Each thing is persisted and then its ownership tuple written before the
    next one is handled, so a failure part-way leaves the earlier things in
    place.

    Raises
    ------
    InvalidStatus
        If a requested status is not enabled or disabled. Checked for every
        request before anything is written.
    EntityExists
        If a thing with the same identity or secret already exists.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, number_of_things=len(things))

    statuses = [validate_status(request.status) for request in things]

    created = []

    for request, status in zip(things, statuses):
        secret = request.secret or thing_secret()

        thing = ClientData(
            client_id=request.client_id or id_provider(),
            kind=THING_TYPE,
            name=request.name,
            owner_id=request.owner_id or caller_id,
            identity=request.identity,
            tags=request.tags,
            metadata=request.metadata,
            status=status,
            created_at=datetime.now(timezone.utc),
        )

        thing = await clients_repository.save(
            client=thing,
            secret_hash=checksum(secret, hash_algorithm=settings.hash_algorithm),
            hash_algorithm=settings.hash_algorithm,
            conn=conn,
        )

        await authz.add_policies(
            policies=[ownership(owner_id=thing.owner_id, thing_id=thing.client_id)],
            engine=engine,
            log=log,
        )

        await log.ainfo("thing.created", thing_id=thing.client_id)
        created.append(IssuedCredentials(client=thing, secret=secret))

    return created


async def _authorized(
    token: str,
    thing_id: str,
    permission: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> tuple[str, FilteringBoundLogger]:
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, thing_id=thing_id)

    resolved = await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=permission,
        object_type=THING_TYPE,
        object=thing_id,
        engine=engine,
        log=log,
    )

    return resolved, log


async def view_thing(
    token: str,
    thing_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Raises
    ------
    AuthorizationError
        If the caller may not view the thing, including when it does not
        exist.
    ClientNotFound
        If the caller may view the thing but it has no record.
    """
    _, log = await _authorized(token, thing_id, VIEW_PERMISSION, engine, log)

    thing = await clients_repository.retrieve_by_id(
        client_id=thing_id, kind=THING_TYPE, conn=conn
    )
    await log.adebug("thing.found")

    return thing


async def list_things(
    token: str,
    page: ClientPage,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientPage:
    """
    List the things owned by the caller.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id)

    page = await clients_repository.retrieve_all(
        page=page.model_copy(update={"owner_id": caller_id}),
        kind=THING_TYPE,
        conn=conn,
    )
    await log.adebug("thing.listed", total=page.total)

    return page


async def update_thing(
    token: str,
    thing_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    name: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ClientData:
    updated_by, log = await _authorized(token, thing_id, EDIT_PERMISSION, engine, log)

    thing = await clients_repository.update(
        client_id=thing_id,
        kind=THING_TYPE,
        name=name,
        metadata=metadata,
        updated_by=updated_by,
        conn=conn,
    )
    await log.ainfo("thing.updated")

    return thing


async def update_thing_tags(
    token: str,
    thing_id: str,
    tags: list[str],
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    updated_by, log = await _authorized(token, thing_id, EDIT_PERMISSION, engine, log)

    thing = await clients_repository.update_tags(
        client_id=thing_id,
        kind=THING_TYPE,
        tags=tags,
        updated_by=updated_by,
        conn=conn,
    )
    await log.ainfo("thing.tags_updated", tags=tags)

    return thing


async def update_thing_secret(
    token: str,
    thing_id: str,
    engine: PolicyEngine,
    settings: Settings,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    secret: str | None = None,
) -> IssuedCredentials:
    """
    Replace the secret of a thing, generating one when none is given. The
    caller needs `edit` on the thing itself.

    The identity cache is not purged: the old secret keeps resolving until
    its entry expires.

    Raises
    ------
    EntityExists
        If another thing already uses this secret.
    """
    updated_by, log = await _authorized(token, thing_id, EDIT_PERMISSION, engine, log)

    secret = secret or thing_secret()

    thing = await clients_repository.update_secret(
        client_id=thing_id,
        kind=THING_TYPE,
        secret_hash=checksum(secret, hash_algorithm=settings.hash_algorithm),
        hash_algorithm=settings.hash_algorithm,
        updated_by=updated_by,
        conn=conn,
    )
    await log.ainfo("thing.secret_updated")

    return IssuedCredentials(client=thing, secret=secret)


async def update_thing_owner(
    token: str,
    thing_id: str,
    owner_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Hand a thing over to `owner_id`. Requires `delete` on the thing. The
    previous owner's tuple is removed only after the new one is written.
    """
    updated_by, log = await _authorized(
        token, thing_id, DELETE_PERMISSION, engine, log
    )
    log = log.bind(owner_id=owner_id)

    current = await clients_repository.retrieve_by_id(
        client_id=thing_id, kind=THING_TYPE, conn=conn
    )

    thing = await clients_repository.update_owner(
        client_id=thing_id,
        kind=THING_TYPE,
        owner_id=owner_id,
        updated_by=updated_by,
        conn=conn,
    )

    await authz.add_policies(
        policies=[ownership(owner_id=owner_id, thing_id=thing_id)],
        engine=engine,
        log=log,
    )

    if current.owner_id and current.owner_id != owner_id:
        await authz.delete_policies(
            policies=[ownership(owner_id=current.owner_id, thing_id=thing_id)],
            engine=engine,
            log=log,
        )

    await log.ainfo("thing.owner_updated", previous_owner_id=current.owner_id)

    return thing


async def enable_thing(
    token: str,
    thing_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    return await clients.change_status(
        token=token,
        client_id=thing_id,
        kind=THING_TYPE,
        status=Status.ENABLED,
        engine=engine,
        conn=conn,
        log=log,
    )


async def disable_thing(
    token: str,
    thing_id: str,
    engine: PolicyEngine,
    cache: IdentityCache,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Disable a thing and drop it from the identity cache, so that its secret
    stops resolving straight away.
    """
    thing = await clients.change_status(
        token=token,
        client_id=thing_id,
        kind=THING_TYPE,
        status=Status.DISABLED,
        engine=engine,
        conn=conn,
        log=log,
    )

    await cache.remove(thing_id)
    await log.ainfo("thing.evicted", thing_id=thing_id)

    return thing


async def list_things_by_group(
    token: str,
    group_id: str,
    page: ClientPage,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientPage:
    """
    The records of the things filed under a group. Requires `view` on the
    group.
    """
    members = await membership.list_members(
        token=token,
        group_id=group_id,
        permission=VIEW_PERMISSION,
        member_kind=THINGS_KIND,
        engine=engine,
        log=log,
    )

    return await clients_repository.members(
        ids=[member.id for member in members.members],
        page=page,
        kind=THING_TYPE,
        conn=conn,
    )


async def identify(
    secret: str,
    cache: IdentityCache,
    settings: Settings,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> str:
    """
    Resolve the secret a thing presents to its id, through the identity
    cache.

    Raises
    ------
    AuthenticationError
        If no enabled thing holds this secret.
    """
    if not secret:
        raise AuthenticationError("No secret provided")

    thing_id = await cache.id(secret)

    if thing_id is not None:
        await log.adebug("thing.identified", thing_id=thing_id, cached=True)
        return thing_id

    try:
        thing = await clients_repository.retrieve_by_secret(
            secret_hash=checksum(secret, hash_algorithm=settings.hash_algorithm),
            kind=THING_TYPE,
            conn=conn,
        )
    except ClientNotFound as e:
        await log.ainfo("thing.identify_failed")
        raise AuthenticationError("Secret does not belong to any thing") from e

    if thing.status != Status.ENABLED:
        await log.ainfo("thing.identify_disabled", thing_id=thing.client_id)
        raise AuthenticationError("Thing is disabled")

    await cache.save(secret, thing.client_id)
    await log.adebug("thing.identified", thing_id=thing.client_id, cached=False)

    return thing.client_id
