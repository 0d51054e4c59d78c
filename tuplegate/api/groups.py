"""
Group management.
"""

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from tuplegate.api.dependencies import (
    DatabaseDependency,
    EngineDependency,
    LoggerDependency,
    TokenDependency,
)
from tuplegate.core.client import ClientPage, MembersPage
from tuplegate.core.group import MAX_LEVEL, Direction, GroupData, GroupPage
from tuplegate.core.status import Status
from tuplegate.core.tree import build_group_list, build_group_tree
from tuplegate.service import groups as groups_service
from tuplegate.service import membership as membership_service
from tuplegate.service import things as things_service
from tuplegate.service import users as users_service

group_app = APIRouter(tags=["Group Management"])


class GroupCreationRequest(BaseModel):
    """
    Request model for creating a new group.
    """

    name: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_id: str | None = None
    owner_id: str | None = None
    status: str = Status.ENABLED.value


class GroupUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class MembershipRequest(BaseModel):
    relation: str
    member_kind: str
    members: list[str]


def _respond(page: GroupPage, tree: bool) -> GroupPage:
    groups = build_group_tree(page.groups) if tree else build_group_list(page.groups)
    return page.model_copy(update={"groups": groups})


@group_app.post(
    "",
    summary="Create a new group",
    description=(
        "Create a group, optionally below a parent group. The caller becomes the "
        "owner unless another owner is given, and must be able to edit the parent."
    ),
    responses={
        200: {"description": "Group created successfully."},
        400: {"description": "Invalid status, or parent nested too deeply."},
        403: {"description": "Not allowed to attach groups to the parent."},
    },
)
async def create_group(
    content: GroupCreationRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    return await groups_service.create_group(
        token=token,
        name=content.name,
        description=content.description,
        metadata=content.metadata,
        parent_id=content.parent_id,
        owner_id=content.owner_id,
        status=content.status,
        engine=engine,
        conn=conn,
        log=log,
    )


@group_app.get(
    "",
    summary="List groups",
    description=(
        "List the groups the caller may view. With member_kind=things and a "
        "member_id, only the groups that thing belongs to are listed."
    ),
)
async def list_groups(
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    name: str | None = None,
    owner_id: str | None = None,
    status: Status | None = None,
    member_kind: str | None = None,
    member_id: str | None = None,
    tree: bool = False,
) -> GroupPage:
    page = await membership_service.list_groups(
        token=token,
        member_kind=member_kind,
        member_id=member_id,
        page=GroupPage(
            offset=offset, limit=limit, name=name, owner_id=owner_id, status=status
        ),
        engine=engine,
        conn=conn,
        log=log,
    )

    return _respond(page=page, tree=tree)


@group_app.get(
    "/{group_id}",
    summary="Get group by ID",
    responses={
        200: {"description": "Group details."},
        403: {"description": "Not allowed to view this group."},
        404: {"description": "Group not found."},
    },
)
async def view_group(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    return await groups_service.view_group(
        token=token, group_id=group_id, engine=engine, conn=conn, log=log
    )


@group_app.put(
    "/{group_id}",
    summary="Update a group",
    description="Overwrite the name, description and metadata of a group.",
)
async def update_group(
    group_id: str,
    content: GroupUpdateRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    return await groups_service.update_group(
        token=token,
        group_id=group_id,
        name=content.name,
        description=content.description,
        metadata=content.metadata,
        engine=engine,
        conn=conn,
        log=log,
    )


@group_app.post("/{group_id}/enable", summary="Enable a group")
async def enable_group(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    return await groups_service.enable_group(
        token=token, group_id=group_id, engine=engine, conn=conn, log=log
    )


@group_app.post("/{group_id}/disable", summary="Disable a group")
async def disable_group(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    return await groups_service.disable_group(
        token=token, group_id=group_id, engine=engine, conn=conn, log=log
    )


async def _hierarchy(
    group_id: str,
    direction: Direction,
    level: int,
    tree: bool,
    token: str,
    engine,
    conn,
    log,
) -> GroupPage:
    page = await membership_service.list_groups(
        token=token,
        member_kind=None,
        member_id=None,
        page=GroupPage(group_id=group_id, direction=direction, level=level, limit=100),
        engine=engine,
        conn=conn,
        log=log,
    )

    return _respond(page=page, tree=tree)


@group_app.get(
    "/{group_id}/parents",
    summary="List the ancestors of a group",
    description="The group and the ancestors the caller may view, up to `level` steps up.",
)
async def list_parents(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    level: int = Query(MAX_LEVEL, ge=0, le=MAX_LEVEL),
    tree: bool = False,
) -> GroupPage:
    return await _hierarchy(
        group_id, Direction.ANCESTORS, level, tree, token, engine, conn, log
    )


@group_app.get(
    "/{group_id}/children",
    summary="List the descendants of a group",
    description="The group and the descendants the caller may view, up to `level` steps down.",
)
async def list_children(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    level: int = Query(MAX_LEVEL, ge=0, le=MAX_LEVEL),
    tree: bool = False,
) -> GroupPage:
    return await _hierarchy(
        group_id, Direction.DESCENDANTS, level, tree, token, engine, conn, log
    )


@group_app.get(
    "/{group_id}/members",
    summary="List the members of a group",
    responses={
        400: {"description": "Unsupported member kind."},
        403: {"description": "Not allowed to view this group."},
    },
)
async def list_members(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    log: LoggerDependency,
    member_kind: str = "users",
    permission: str = "view",
) -> MembersPage:
    return await membership_service.list_members(
        token=token,
        group_id=group_id,
        permission=permission,
        member_kind=member_kind,
        engine=engine,
        log=log,
    )


@group_app.post(
    "/{group_id}/members",
    summary="Assign members to a group",
    responses={
        400: {"description": "Unsupported member kind."},
        403: {"description": "Not allowed to edit this group."},
    },
)
async def assign(
    group_id: str,
    content: MembershipRequest,
    token: TokenDependency,
    engine: EngineDependency,
    log: LoggerDependency,
) -> None:
    await membership_service.assign(
        token,
        group_id,
        content.relation,
        content.member_kind,
        *content.members,
        engine=engine,
        log=log,
    )


@group_app.post(
    "/{group_id}/members/remove",
    summary="Remove members from a group",
    responses={
        400: {"description": "Unsupported member kind."},
        403: {"description": "Not allowed to edit this group."},
    },
)
async def unassign(
    group_id: str,
    content: MembershipRequest,
    token: TokenDependency,
    engine: EngineDependency,
    log: LoggerDependency,
) -> None:
    await membership_service.unassign(
        token,
        group_id,
        content.relation,
        content.member_kind,
        *content.members,
        engine=engine,
        log=log,
    )


@group_app.get("/{group_id}/things", summary="List the things of a group")
async def list_group_things(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
) -> ClientPage:
    return await things_service.list_things_by_group(
        token=token,
        group_id=group_id,
        page=ClientPage(offset=offset, limit=limit),
        engine=engine,
        conn=conn,
        log=log,
    )


@group_app.get("/{group_id}/users", summary="List the users of a group")
async def list_group_users(
    group_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    permission: str = "view",
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
) -> ClientPage:
    return await users_service.list_members(
        token=token,
        group_id=group_id,
        permission=permission,
        page=ClientPage(offset=offset, limit=limit),
        engine=engine,
        conn=conn,
        log=log,
    )
