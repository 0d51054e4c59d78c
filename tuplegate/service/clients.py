"""
Behaviour shared by users and things: the enable/disable lifecycle and
the ownership guard used by mutations.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from tuplegate.core.client import ClientData, ClientKind
from tuplegate.core.errors import AuthorizationError, StatusAlreadyAssigned
from tuplegate.core.status import Status, check_transition
from tuplegate.core.tuples import DELETE_PERMISSION, USER_TYPE
from tuplegate.repository import clients as clients_repository

from . import authz
from .engine import PolicyEngine


async def change_status(
    token: str,
    client_id: str,
    kind: ClientKind,
    status: Status,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> ClientData:
    """
    Move a user or thing to `status`. Both directions require the `delete`
    permission on the client itself.

    Raises
    ------
    AuthorizationError
        If the caller does not hold `delete` on the client.
    ClientNotFound
        If the client does not exist.
    StatusAlreadyAssigned
        If the client already has this status. Nothing is written.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(
        user_id=caller_id,
        client_id=client_id,
        kind=kind,
        status=Status(status).value,
    )

    updated_by = await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=DELETE_PERMISSION,
        object_type=kind,
        object=client_id,
        engine=engine,
        log=log,
    )

    current = await clients_repository.retrieve_by_id(
        client_id=client_id, kind=kind, conn=conn
    )

    try:
        check_transition(current=current.status, requested=status)
    except StatusAlreadyAssigned:
        await log.ainfo(f"{kind}.status_unchanged")
        raise

    client = await clients_repository.change_status(
        client_id=client_id,
        kind=kind,
        status=status,
        updated_by=updated_by,
        conn=conn,
    )
    await log.ainfo(f"{kind}.status_changed")

    return client


async def check_owner(
    caller_id: str, client_id: str, conn: AsyncSession, log: FilteringBoundLogger
) -> None:
    """
    Let a caller through when acting on itself or on a client it owns.

    Raises
    ------
    AuthorizationError
        If neither is the case.
    """
    if caller_id == client_id:
        return

    try:
        await clients_repository.is_owner(
            client_id=client_id, owner_id=caller_id, conn=conn
        )
    except AuthorizationError:
        await log.ainfo("client.not_owner")
        raise
