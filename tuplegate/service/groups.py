"""
Service layer for groups.

Ownership and parent links are never stored as columns that grant anything;
they are written to the policy engine as relation tuples once the group
itself has been persisted. Those writes are not transactional with the
database or with each other.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from tuplegate.core.errors import (
    AuthorizationError,
    ParentAuthorizationError,
    StatusAlreadyAssigned,
    ValidationError,
)
from tuplegate.core.group import MAX_LEVEL, GroupData
from tuplegate.core.status import Status, check_transition, validate_status
from tuplegate.core.tuples import (
    EDIT_PERMISSION,
    GROUP_TYPE,
    OWNER_RELATION,
    PARENT_GROUP_RELATION,
    USER_TYPE,
    VIEW_PERMISSION,
    RelationTuple,
)
from tuplegate.core.uuid import IDProvider, new_id
from tuplegate.repository import groups as groups_repository

from . import authz
from .engine import PolicyEngine


async def create_group(
    token: str,
    name: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    description: str = "",
    metadata: dict[str, Any] | None = None,
    parent_id: str | None = None,
    owner_id: str | None = None,
    status: str | Status = Status.ENABLED,
    id_provider: IDProvider = new_id,
) -> GroupData:
    """
    Create a new group.

    Parameters
    ----------
    token: str
        Bearer token of the caller.
    name: str
        Name of the new group.
    parent_id: str | None, optional
        Group to attach the new group below. The caller must be able to edit
        it.
    owner_id: str | None, optional
        Owner of the group; defaults to the caller.
    status: str | Status, optional
        Initial status, enabled or disabled.

    Raises
    ------
    AuthenticationError
        If the token cannot be identified.
    InvalidStatus
        If the status is not enabled or disabled.
    ParentAuthorizationError
        If the caller may not edit the parent group.
    ValidationError
        If the parent is already at the deepest allowed level.
    UpstreamError
        If the policy engine cannot be reached. The group may already be
        persisted, and its ownership tuple written, at that point.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    status = validate_status(status)

    group = GroupData(
        group_id=id_provider(),
        owner_id=owner_id or caller_id,
        parent_id=parent_id or None,
        name=name,
        description=description,
        metadata=metadata or {},
        status=status,
        created_at=datetime.now(timezone.utc),
    )

    log = log.bind(
        user_id=caller_id,
        group_id=group.group_id,
        owner_id=group.owner_id,
        parent_id=group.parent_id,
        group_name=name,
    )

    if group.parent_id is not None:
        try:
            await authz.authorize(
                subject_type=USER_TYPE,
                subject=caller_id,
                permission=EDIT_PERMISSION,
                object_type=GROUP_TYPE,
                object=group.parent_id,
                engine=engine,
                log=log,
            )
        except AuthorizationError as e:
            await log.awarning("group.parent_unauthorized")
            raise ParentAuthorizationError(
                f"Not allowed to attach groups to {group.parent_id}"
            ) from e

        parent_level = await groups_repository.level_of(
            group_id=group.parent_id, conn=conn
        )

        if parent_level >= MAX_LEVEL:
            await log.ainfo("group.too_deep", parent_level=parent_level)
            raise ValidationError(
                f"Groups cannot be nested deeper than {MAX_LEVEL} levels"
            )

    group = await groups_repository.save(group=group, conn=conn)
    await log.ainfo("group.persisted")

    policies = [
        RelationTuple(
            subject_type=USER_TYPE,
            subject=group.owner_id,
            relation=OWNER_RELATION,
            object_type=GROUP_TYPE,
            object=group.group_id,
        )
    ]

    if group.parent_id is not None:
        policies.append(
            RelationTuple(
                subject_type=GROUP_TYPE,
                subject=group.parent_id,
                relation=PARENT_GROUP_RELATION,
                object_type=GROUP_TYPE,
                object=group.group_id,
            )
        )

    await authz.add_policies(policies=policies, engine=engine, log=log)
    await log.ainfo("group.created", level=group.level)

    return group


async def view_group(
    token: str,
    group_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupData:
    """
    Read a group by its ID. A caller that may not view the group is told
    exactly that, whether or not the group exists.

    Raises
    ------
    AuthorizationError
        If the caller may not view the group.
    GroupNotFound
        If the caller may view the group but it has no record.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, group_id=group_id)

    await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=VIEW_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    group = await groups_repository.retrieve_by_id(group_id=group_id, conn=conn)
    await log.adebug("group.found")

    return group


async def update_group(
    token: str,
    group_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    name: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> GroupData:
    """
    Overwrite the name, description and metadata of a group. Parent and owner
    can not be changed.

    Raises
    ------
    AuthorizationError
        If the caller may not edit the group.
    GroupNotFound
        If the group does not exist.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, group_id=group_id)

    updated_by = await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=EDIT_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    group = await groups_repository.update(
        group_id=group_id,
        name=name,
        description=description,
        metadata=metadata,
        updated_by=updated_by,
        conn=conn,
    )
    await log.ainfo("group.updated")

    return group


async def change_group_status(
    token: str,
    group_id: str,
    status: Status,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupData:
    """
    Move a group to `status`.

    Raises
    ------
    AuthorizationError
        If the caller may not edit the group.
    GroupNotFound
        If the group does not exist.
    StatusAlreadyAssigned
        If the group already has this status. Nothing is written.
    """
    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, group_id=group_id, status=Status(status).value)

    updated_by = await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=EDIT_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    current = await groups_repository.retrieve_by_id(group_id=group_id, conn=conn)

    try:
        check_transition(current=current.status, requested=status)
    except StatusAlreadyAssigned:
        await log.ainfo("group.status_unchanged")
        raise

    group = await groups_repository.change_status(
        group_id=group_id, status=status, updated_by=updated_by, conn=conn
    )
    await log.ainfo("group.status_changed")

    return group


async def enable_group(
    token: str,
    group_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupData:
    return await change_group_status(
        token=token,
        group_id=group_id,
        status=Status.ENABLED,
        engine=engine,
        conn=conn,
        log=log,
    )


async def disable_group(
    token: str,
    group_id: str,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupData:
    return await change_group_status(
        token=token,
        group_id=group_id,
        status=Status.DISABLED,
        engine=engine,
        conn=conn,
        log=log,
    )
