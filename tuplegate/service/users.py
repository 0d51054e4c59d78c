"""
Service layer for users.

Users authenticate through the policy engine with a bearer token; the
identity and hashed secret kept here are their stored credentials. Apart
from status changes, which go through the policy engine, a user may act on
itself and on the users it owns.
"""

import re
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from tuplegate.config.settings import Settings
from tuplegate.core.client import (
    ClientData,
    ClientPage,
    ClientRequest,
    Role,
)
from tuplegate.core.errors import (
    AuthenticationError,
    InvalidRole,
    MissingSecret,
    SecretFormatError,
)
from tuplegate.core.passwords import PASSWORD_ALGORITHM, hash_password, verify_password
from tuplegate.core.status import Status, validate_status
from tuplegate.core.tuples import USER_TYPE, USERS_KIND
from tuplegate.core.uuid import IDProvider, new_id
from tuplegate.repository import clients as clients_repository

from . import authz, clients, membership
from .engine import PolicyEngine


def check_secret(secret: str | None, settings: Settings) -> str:
    """
    Raises
    ------
    MissingSecret
        If no secret was given.
    SecretFormatError
        If the secret does not satisfy `settings.password_regex`.
    """
    if not secret:
        raise MissingSecret("A secret is required")

    if re.match(settings.password_regex, secret) is None:
        raise SecretFormatError("Secret does not satisfy the password policy")

    return secret


def validate_role(role: str | None) -> str:
    match role:
        case None | "":
            return Role.USER
        case Role.USER | Role.ADMIN:
            return role
        case _:
            raise InvalidRole(f"Invalid role {role!r}")


async def register_user(
    token: str | None,
    user: ClientRequest,
    engine: PolicyEngine,
    settings: Settings,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    id_provider: IDProvider = new_id,
) -> ClientData:
    """
    Register a new user. Registration is open: without a token the user owns
    nothing and is owned by no one. With a token, the caller becomes the owner
    unless the request names one.

    Raises
    ------
    AuthenticationError
        If a token was given but cannot be identified.
    MissingSecret, SecretFormatError
        If the secret is absent or does not satisfy the password policy.
    InvalidStatus, InvalidRole
        If the status or role are not recognised.
    EntityExists
        If another user already has this identity.
    """
    owner_id = user.owner_id

    if token:
        caller_id = await authz.identify(token=token, engine=engine, log=log)
        owner_id = owner_id or caller_id
        log = log.bind(caller_id=caller_id)

    secret = check_secret(user.secret, settings=settings)
    status = validate_status(user.status)
    role = validate_role(user.role)

    client = ClientData(
        client_id=user.client_id or id_provider(),
        kind=USER_TYPE,
        name=user.name,
        owner_id=owner_id,
        identity=user.identity,
        tags=user.tags,
        metadata=user.metadata,
        status=status,
        role=role,
        created_at=datetime.now(timezone.utc),
    )

    log = log.bind(user_id=client.client_id, identity=client.identity, role=role)

    client = await clients_repository.save(
        client=client,
        secret_hash=hash_password(secret),
        hash_algorithm=PASSWORD_ALGORITHM,
        conn=conn,
    )
    await log.ainfo("user.registered")

    return client


async def view_user(
    token: str,
    user_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Read a user, as that user or as its owner.

    Raises
    ------
    AuthorizationError
        If the caller is neither, including when the user does not exist.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(caller_id=caller_id, user_id=user_id)

    await clients.check_owner(caller_id=caller_id, client_id=user_id, conn=conn, log=log)

    user = await clients_repository.retrieve_by_id(
        client_id=user_id, kind=USER_TYPE, conn=conn
    )
    await log.adebug("user.found")

    return user


async def view_profile(
    token: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    caller_id = await authz.identify(token=token, engine=engine, log=log)

    return await clients_repository.retrieve_by_id(
        client_id=caller_id, kind=USER_TYPE, conn=conn
    )


async def list_users(
    token: str,
    page: ClientPage,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientPage:
    """
    List the users owned by the caller.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(caller_id=caller_id)

    page = await clients_repository.retrieve_all(
        page=page.model_copy(update={"owner_id": caller_id}),
        kind=USER_TYPE,
        conn=conn,
    )
    await log.adebug("user.listed", total=page.total)

    return page


async def _owned(
    token: str,
    user_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> tuple[str, FilteringBoundLogger]:
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(caller_id=caller_id, user_id=user_id)

    await clients.check_owner(caller_id=caller_id, client_id=user_id, conn=conn, log=log)

    return caller_id, log


async def update_user(
    token: str,
    user_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    name: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ClientData:
    caller_id, log = await _owned(token, user_id, engine, conn, log)

    user = await clients_repository.update(
        client_id=user_id,
        kind=USER_TYPE,
        name=name,
        metadata=metadata,
        updated_by=caller_id,
        conn=conn,
    )
    await log.ainfo("user.updated")

    return user


async def update_user_tags(
    token: str,
    user_id: str,
    tags: list[str],
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    caller_id, log = await _owned(token, user_id, engine, conn, log)

    user = await clients_repository.update_tags(
        client_id=user_id,
        kind=USER_TYPE,
        tags=tags,
        updated_by=caller_id,
        conn=conn,
    )
    await log.ainfo("user.tags_updated", tags=tags)

    return user


async def update_user_identity(
    token: str,
    user_id: str,
    identity: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Raises
    ------
    EntityExists
        If another user already has this identity.
    """
    caller_id, log = await _owned(token, user_id, engine, conn, log)

    user = await clients_repository.update_identity(
        client_id=user_id,
        kind=USER_TYPE,
        identity=identity,
        updated_by=caller_id,
        conn=conn,
    )
    await log.ainfo("user.identity_updated", identity=identity)

    return user


async def update_user_secret(
    token: str,
    old_secret: str,
    new_secret: str,
    engine: PolicyEngine,
    settings: Settings,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Change the caller's own secret.

    Raises
    ------
    AuthenticationError
        If `old_secret` is not the current secret.
    MissingSecret, SecretFormatError
        If the new secret is absent or does not satisfy the password policy.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id)

    new_secret = check_secret(new_secret, settings=settings)

    secret_hash, _ = await clients_repository.secret_hash_of(
        client_id=caller_id, kind=USER_TYPE, conn=conn
    )

    if not verify_password(old_secret or "", secret_hash):
        await log.ainfo("user.secret_mismatch")
        raise AuthenticationError("Current secret does not match")

    user = await clients_repository.update_secret(
        client_id=caller_id,
        kind=USER_TYPE,
        secret_hash=hash_password(new_secret),
        hash_algorithm=PASSWORD_ALGORITHM,
        updated_by=caller_id,
        conn=conn,
    )
    await log.ainfo("user.secret_updated")

    return user


async def update_user_owner(
    token: str,
    user_id: str,
    owner_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    caller_id, log = await _owned(token, user_id, engine, conn, log)

    user = await clients_repository.update_owner(
        client_id=user_id,
        kind=USER_TYPE,
        owner_id=owner_id,
        updated_by=caller_id,
        conn=conn,
    )
    await log.ainfo("user.owner_updated", owner_id=owner_id)

    return user


async def enable_user(
    token: str,
    user_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    return await clients.change_status(
        token=token,
        client_id=user_id,
        kind=USER_TYPE,
        status=Status.ENABLED,
        engine=engine,
        conn=conn,
        log=log,
    )


async def disable_user(
    token: str,
    user_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    return await clients.change_status(
        token=token,
        client_id=user_id,
        kind=USER_TYPE,
        status=Status.DISABLED,
        engine=engine,
        conn=conn,
        log=log,
    )


async def list_members(
    token: str,
    group_id: str,
    permission: str,
    page: ClientPage,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientPage:
    """
    The records of the users holding `permission` on a group. Requires `view`
    on the group.
    """
    members = await membership.list_members(
        token=token,
        group_id=group_id,
        permission=permission,
        member_kind=USERS_KIND,
        engine=engine,
        log=log,
    )

    return await clients_repository.members(
        ids=[member.id for member in members.members],
        page=page,
        kind=USER_TYPE,
        conn=conn,
    )
