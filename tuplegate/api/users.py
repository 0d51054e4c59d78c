"""
User management.
"""

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from tuplegate.api.dependencies import (
    DatabaseDependency,
    EngineDependency,
    LoggerDependency,
    SettingsDependency,
    TokenDependency,
)
from tuplegate.core.client import ClientData, ClientPage, ClientRequest
from tuplegate.core.status import Status
from tuplegate.service import users as users_service

user_app = APIRouter(tags=["User Management"])


class UserUpdateRequest(BaseModel):
    name: str | None = None
    metadata: dict[str, Any] | None = None


class TagsRequest(BaseModel):
    tags: list[str]


class IdentityRequest(BaseModel):
    identity: str


class SecretChangeRequest(BaseModel):
    old_secret: str
    new_secret: str


class OwnerRequest(BaseModel):
    owner_id: str


@user_app.post(
    "",
    summary="Register a user",
    description=(
        "Register a new user. A bearer token is optional; when given, the caller "
        "becomes the owner of the new user."
    ),
    responses={
        400: {"description": "Missing or malformed secret, bad status or role."},
        409: {"description": "Identity already in use."},
    },
)
async def register_user(
    content: ClientRequest,
    token: TokenDependency,
    engine: EngineDependency,
    settings: SettingsDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.register_user(
        token=token or None,
        user=content,
        engine=engine,
        settings=settings,
        conn=conn,
        log=log,
    )


@user_app.get("", summary="List the users owned by the caller")
async def list_users(
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    name: str | None = None,
    tag: str | None = None,
    status: Status | None = None,
) -> ClientPage:
    return await users_service.list_users(
        token=token,
        page=ClientPage(offset=offset, limit=limit, name=name, tag=tag, status=status),
        engine=engine,
        conn=conn,
        log=log,
    )


@user_app.get("/profile", summary="The caller's own record")
async def view_profile(
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.view_profile(
        token=token, engine=engine, conn=conn, log=log
    )


@user_app.put("/secret", summary="Change the caller's secret")
async def update_user_secret(
    content: SecretChangeRequest,
    token: TokenDependency,
    engine: EngineDependency,
    settings: SettingsDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.update_user_secret(
        token=token,
        old_secret=content.old_secret,
        new_secret=content.new_secret,
        engine=engine,
        settings=settings,
        conn=conn,
        log=log,
    )


@user_app.get("/{user_id}", summary="Get user by ID")
async def view_user(
    user_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.view_user(
        token=token, user_id=user_id, engine=engine, conn=conn, log=log
    )


@user_app.put("/{user_id}", summary="Update the name and metadata of a user")
async def update_user(
    user_id: str,
    content: UserUpdateRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.update_user(
        token=token,
        user_id=user_id,
        name=content.name,
        metadata=content.metadata,
        engine=engine,
        conn=conn,
        log=log,
    )


@user_app.put("/{user_id}/tags", summary="Replace the tags of a user")
async def update_user_tags(
    user_id: str,
    content: TagsRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.update_user_tags(
        token=token,
        user_id=user_id,
        tags=content.tags,
        engine=engine,
        conn=conn,
        log=log,
    )


@user_app.put("/{user_id}/identity", summary="Change the identity of a user")
async def update_user_identity(
    user_id: str,
    content: IdentityRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.update_user_identity(
        token=token,
        user_id=user_id,
        identity=content.identity,
        engine=engine,
        conn=conn,
        log=log,
    )


@user_app.put("/{user_id}/owner", summary="Hand a user over to another owner")
async def update_user_owner(
    user_id: str,
    content: OwnerRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.update_user_owner(
        token=token,
        user_id=user_id,
        owner_id=content.owner_id,
        engine=engine,
        conn=conn,
        log=log,
    )


@user_app.post("/{user_id}/enable", summary="Enable a user")
async def enable_user(
    user_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.enable_user(
        token=token, user_id=user_id, engine=engine, conn=conn, log=log
    )


@user_app.post("/{user_id}/disable", summary="Disable a user")
async def disable_user(
    user_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await users_service.disable_user(
        token=token, user_id=user_id, engine=engine, conn=conn, log=log
    )
