"""
Tests the user service layer.
"""

import pytest

from tuplegate.core.client import ClientPage, ClientRequest
from tuplegate.core.errors import (
    AuthenticationError,
    AuthorizationError,
    EntityExists,
    InvalidRole,
    InvalidStatus,
    MissingSecret,
    SecretFormatError,
    StatusAlreadyAssigned,
)
from tuplegate.core.status import Status
from tuplegate.core.tuples import RelationTuple
from tuplegate.core.uuid import new_id
from tuplegate.repository import clients as clients_repository
from tuplegate.service import groups as groups_service
from tuplegate.service import membership as membership_service
from tuplegate.service import users as users_service


def request(**kwargs) -> ClientRequest:
    defaults = dict(
        name="Someone",
        identity=f"{new_id()}@example.com",
        secret="correct horse battery staple",
    )
    defaults.update(kwargs)
    return ClientRequest(**defaults)


async def register(session_manager, engine, settings, logger, token=None, **kwargs):
    async with session_manager.session() as conn:
        async with conn.begin():
            return await users_service.register_user(
                token=token,
                user=request(**kwargs),
                engine=engine,
                settings=settings,
                conn=conn,
                log=logger,
            )


@pytest.mark.asyncio(loop_scope="session")
async def test_register_user(session_manager, engine, server_settings, logger):
    user = await register(session_manager, engine, server_settings, logger)

    assert user.kind == "user"
    assert user.owner_id is None
    assert user.role == "user"
    assert user.status == Status.ENABLED
    assert engine.calls == []

    owned = await register(
        session_manager, engine, server_settings, logger, token="alice-token"
    )

    assert owned.owner_id == "alice"


@pytest.mark.asyncio(loop_scope="session")
async def test_register_user_bad_token(session_manager, engine, server_settings, logger):
    with pytest.raises(AuthenticationError):
        await register(
            session_manager, engine, server_settings, logger, token="nobody-token"
        )


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"secret": None}, MissingSecret),
        ({"secret": "short"}, SecretFormatError),
        ({"role": "superuser"}, InvalidRole),
        ({"status": "archived"}, InvalidStatus),
    ],
)
@pytest.mark.asyncio(loop_scope="session")
async def test_register_user_rejected(
    session_manager, engine, server_settings, logger, overrides, error
):
    with pytest.raises(error):
        await register(session_manager, engine, server_settings, logger, **overrides)


@pytest.mark.asyncio(loop_scope="session")
async def test_register_duplicate_identity(
    session_manager, engine, server_settings, logger
):
    identity = f"{new_id()}@example.com"
    await register(session_manager, engine, server_settings, logger, identity=identity)

    with pytest.raises(EntityExists):
        await register(
            session_manager, engine, server_settings, logger, identity=identity
        )


@pytest.mark.asyncio(loop_scope="session")
async def test_view_user_and_profile(session_manager, engine, server_settings, logger):
    user = await register(
        session_manager, engine, server_settings, logger, token="alice-token"
    )
    engine.register_token("user-token", user.client_id)

    async with session_manager.session() as conn:
        async with conn.begin():
            by_owner = await users_service.view_user(
                token="alice-token",
                user_id=user.client_id,
                engine=engine,
                conn=conn,
                log=logger,
            )
            by_self = await users_service.view_user(
                token="user-token",
                user_id=user.client_id,
                engine=engine,
                conn=conn,
                log=logger,
            )
            profile = await users_service.view_profile(
                token="user-token", engine=engine, conn=conn, log=logger
            )

    assert by_owner == by_self == profile

    with pytest.raises(AuthorizationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await users_service.view_user(
                    token="bob-token",
                    user_id=user.client_id,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_list_users_is_owner_scoped(
    session_manager, engine, server_settings, logger
):
    name = new_id()
    mine = await register(
        session_manager, engine, server_settings, logger, token="alice-token", name=name
    )
    await register(
        session_manager, engine, server_settings, logger, token="bob-token", name=name
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            page = await users_service.list_users(
                token="alice-token",
                page=ClientPage(name=name),
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert [u.client_id for u in page.clients] == [mine.client_id]


@pytest.mark.asyncio(loop_scope="session")
async def test_update_user(session_manager, engine, server_settings, logger):
    user = await register(
        session_manager, engine, server_settings, logger, token="alice-token"
    )
    identity = f"{new_id()}@example.com"

    async with session_manager.session() as conn:
        async with conn.begin():
            await users_service.update_user(
                token="alice-token",
                user_id=user.client_id,
                name="Renamed",
                metadata={"team": "ops"},
                engine=engine,
                conn=conn,
                log=logger,
            )
            await users_service.update_user_tags(
                token="alice-token",
                user_id=user.client_id,
                tags=["ops"],
                engine=engine,
                conn=conn,
                log=logger,
            )
            updated = await users_service.update_user_identity(
                token="alice-token",
                user_id=user.client_id,
                identity=identity,
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert updated.name == "Renamed"
    assert updated.metadata == {"team": "ops"}
    assert updated.tags == ["ops"]
    assert updated.identity == identity
    assert updated.updated_by == "alice"

    with pytest.raises(AuthorizationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await users_service.update_user(
                    token="bob-token",
                    user_id=user.client_id,
                    name="Stolen",
                    engine=engine,
                    conn=conn,
                    log=logger,
                )

    async with session_manager.session() as conn:
        async with conn.begin():
            moved = await users_service.update_user_owner(
                token="alice-token",
                user_id=user.client_id,
                owner_id="bob",
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert moved.owner_id == "bob"


@pytest.mark.asyncio(loop_scope="session")
async def test_update_user_secret(session_manager, engine, server_settings, logger):
    user = await register(
        session_manager, engine, server_settings, logger, secret="first secret"
    )
    engine.register_token("changer-token", user.client_id)

    async def change(old_secret, new_secret):
        async with session_manager.session() as conn:
            async with conn.begin():
                return await users_service.update_user_secret(
                    token="changer-token",
                    old_secret=old_secret,
                    new_secret=new_secret,
                    engine=engine,
                    settings=server_settings,
                    conn=conn,
                    log=logger,
                )

    with pytest.raises(AuthenticationError):
        await change("wrong secret", "second secret")

    with pytest.raises(SecretFormatError):
        await change("first secret", "short")

    updated = await change("first secret", "second secret")
    assert updated.updated_by == user.client_id

    with pytest.raises(AuthenticationError):
        await change("first secret", "third secret")

    await change("second secret", "third secret")


@pytest.mark.asyncio(loop_scope="session")
async def test_enable_disable_user(session_manager, engine, server_settings, logger):
    user = await register(session_manager, engine, server_settings, logger)

    async def disable(token):
        async with session_manager.session() as conn:
            async with conn.begin():
                return await users_service.disable_user(
                    token=token,
                    user_id=user.client_id,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )

    with pytest.raises(AuthorizationError):
        await disable("alice-token")

    await engine.add_policy(
        RelationTuple(
            subject_type="user",
            subject="alice",
            relation="admin",
            object_type="user",
            object=user.client_id,
        )
    )

    disabled = await disable("alice-token")
    assert disabled.status == Status.DISABLED
    assert disabled.updated_by == "alice"

    with pytest.raises(StatusAlreadyAssigned):
        await disable("alice-token")

    async with session_manager.session() as conn:
        async with conn.begin():
            enabled = await users_service.enable_user(
                token="alice-token",
                user_id=user.client_id,
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert enabled.status == Status.ENABLED


@pytest.mark.asyncio(loop_scope="session")
async def test_list_members(session_manager, engine, server_settings, logger):
    member = await register(session_manager, engine, server_settings, logger)
    outsider = await register(session_manager, engine, server_settings, logger)

    async with session_manager.session() as conn:
        async with conn.begin():
            group = await groups_service.create_group(
                token="alice-token",
                name="members",
                engine=engine,
                conn=conn,
                log=logger,
            )

    await membership_service.assign(
        "alice-token",
        group.group_id,
        "member",
        "users",
        member.client_id,
        engine=engine,
        log=logger,
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            page = await users_service.list_members(
                token="alice-token",
                group_id=group.group_id,
                permission="member",
                page=ClientPage(limit=100),
                engine=engine,
                conn=conn,
                log=logger,
            )

    # "alice" holds the group too, but has no user record here.
    assert [u.client_id for u in page.clients] == [member.client_id]
    assert outsider.client_id not in {u.client_id for u in page.clients}


@pytest.mark.asyncio(loop_scope="session")
async def test_user_secrets_are_salted(
    session_manager, engine, server_settings, logger
):
    secret = "the very same secret"
    first = await register(session_manager, engine, server_settings, logger, secret=secret)
    second = await register(
        session_manager, engine, server_settings, logger, secret=secret
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            first_hash, first_algorithm = await clients_repository.secret_hash_of(
                client_id=first.client_id, kind="user", conn=conn
            )
            second_hash, _ = await clients_repository.secret_hash_of(
                client_id=second.client_id, kind="user", conn=conn
            )

    assert first_algorithm == "argon2id"
    assert first_hash != second_hash
    assert secret not in first_hash
