"""
Thing management, and identification of things by their secret.
"""

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from tuplegate.api.dependencies import (
    CacheDependency,
    DatabaseDependency,
    EngineDependency,
    LoggerDependency,
    SettingsDependency,
    TokenDependency,
)
from tuplegate.core.client import (
    ClientData,
    ClientPage,
    ClientRequest,
    IssuedCredentials,
)
from tuplegate.core.status import Status
from tuplegate.service import things as things_service

thing_app = APIRouter(tags=["Thing Management"])


class ThingUpdateRequest(BaseModel):
    name: str | None = None
    metadata: dict[str, Any] | None = None


class TagsRequest(BaseModel):
    tags: list[str]


class SecretRequest(BaseModel):
    secret: str | None = None


class OwnerRequest(BaseModel):
    owner_id: str


class IdentifyRequest(BaseModel):
    secret: str


class IdentifyResponse(BaseModel):
    id: str


@thing_app.post(
    "",
    summary="Create things",
    description=(
        "Create one or more things. Secrets are generated for things that do not "
        "provide one, and are only ever returned in this response."
    ),
)
async def create_things(
    content: list[ClientRequest],
    token: TokenDependency,
    engine: EngineDependency,
    settings: SettingsDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[IssuedCredentials]:
    return await things_service.create_things(
        token=token,
        things=content,
        engine=engine,
        settings=settings,
        conn=conn,
        log=log,
    )


@thing_app.get("", summary="List the things owned by the caller")
async def list_things(
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
    return await things_service.list_things(
        token=token,
        page=ClientPage(offset=offset, limit=limit, name=name, tag=tag, status=status),
        engine=engine,
        conn=conn,
        log=log,
    )


@thing_app.post(
    "/identify",
    summary="Identify a thing",
    description="Resolve the secret presented by a thing to its ID.",
    responses={401: {"description": "Unknown or disabled thing."}},
)
async def identify(
    content: IdentifyRequest,
    cache: CacheDependency,
    settings: SettingsDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> IdentifyResponse:
    thing_id = await things_service.identify(
        secret=content.secret, cache=cache, settings=settings, conn=conn, log=log
    )
    return IdentifyResponse(id=thing_id)


@thing_app.get("/{thing_id}", summary="Get thing by ID")
async def view_thing(
    thing_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.view_thing(
        token=token, thing_id=thing_id, engine=engine, conn=conn, log=log
    )


@thing_app.put("/{thing_id}", summary="Update the name and metadata of a thing")
async def update_thing(
    thing_id: str,
    content: ThingUpdateRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.update_thing(
        token=token,
        thing_id=thing_id,
        name=content.name,
        metadata=content.metadata,
        engine=engine,
        conn=conn,
        log=log,
    )


@thing_app.put("/{thing_id}/tags", summary="Replace the tags of a thing")
async def update_thing_tags(
    thing_id: str,
    content: TagsRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.update_thing_tags(
        token=token,
        thing_id=thing_id,
        tags=content.tags,
        engine=engine,
        conn=conn,
        log=log,
    )


@thing_app.put("/{thing_id}/secret", summary="Rotate the secret of a thing")
async def update_thing_secret(
    thing_id: str,
    content: SecretRequest,
    token: TokenDependency,
    engine: EngineDependency,
    settings: SettingsDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> IssuedCredentials:
    return await things_service.update_thing_secret(
        token=token,
        thing_id=thing_id,
        secret=content.secret,
        engine=engine,
        settings=settings,
        conn=conn,
        log=log,
    )


@thing_app.put("/{thing_id}/owner", summary="Hand a thing over to another user")
async def update_thing_owner(
    thing_id: str,
    content: OwnerRequest,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.update_thing_owner(
        token=token,
        thing_id=thing_id,
        owner_id=content.owner_id,
        engine=engine,
        conn=conn,
        log=log,
    )


@thing_app.post("/{thing_id}/enable", summary="Enable a thing")
async def enable_thing(
    thing_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.enable_thing(
        token=token, thing_id=thing_id, engine=engine, conn=conn, log=log
    )


@thing_app.post("/{thing_id}/disable", summary="Disable a thing")
async def disable_thing(
    thing_id: str,
    token: TokenDependency,
    engine: EngineDependency,
    cache: CacheDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ClientData:
    return await things_service.disable_thing(
        token=token, thing_id=thing_id, engine=engine, cache=cache, conn=conn, log=log
    )
