"""
Tests the group service layer.
"""

from datetime import datetime, timezone

import pytest

from tuplegate.core.errors import (
    AuthorizationError,
    ConflictError,
    HierarchyError,
    InvalidStatus,
    ParentAuthorizationError,
    StatusAlreadyAssigned,
    ValidationError,
)
from tuplegate.core.group import MAX_LEVEL, MIN_LEVEL, Direction, GroupData, GroupPage
from tuplegate.core.status import Status
from tuplegate.core.tuples import RelationTuple
from tuplegate.core.uuid import new_id
from tuplegate.repository import groups as groups_repository
from tuplegate.service import groups as groups_service
from tuplegate.service import membership as membership_service


async def create(session_manager, engine, logger, token="alice-token", **kwargs):
    async with session_manager.session() as conn:
        async with conn.begin():
            return await groups_service.create_group(
                token=token,
                engine=engine,
                conn=conn,
                log=logger,
                **kwargs,
            )


@pytest.mark.asyncio(loop_scope="session")
async def test_create_group(session_manager, engine, logger):
    group = await create(session_manager, engine, logger, name="root")

    assert group.owner_id == "alice"
    assert group.parent_id is None
    assert group.level == 1
    assert group.path == group.group_id
    assert group.status == Status.ENABLED
    assert ("user", "alice", "owner", "group", group.group_id) in engine.policies

    async with session_manager.session() as conn:
        async with conn.begin():
            found = await groups_service.view_group(
                token="alice-token",
                group_id=group.group_id,
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert found.name == "root"
    assert found.level == 1

    with pytest.raises(AuthorizationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.view_group(
                    token="bob-token",
                    group_id=group.group_id,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_create_group_explicit_owner(session_manager, engine, logger):
    group = await create(session_manager, engine, logger, name="shared", owner_id="bob")

    assert group.owner_id == "bob"
    assert ("user", "bob", "owner", "group", group.group_id) in engine.policies


@pytest.mark.asyncio(loop_scope="session")
async def test_create_group_invalid_status(session_manager, engine, logger):
    with pytest.raises(InvalidStatus):
        await create(session_manager, engine, logger, name="bad", status="archived")

    assert engine.policies == set()
    assert "add_policy" not in engine.calls


@pytest.mark.asyncio(loop_scope="session")
async def test_create_child_group(session_manager, engine, logger):
    parent = await create(session_manager, engine, logger, name="parent")
    child = await create(
        session_manager, engine, logger, name="child", parent_id=parent.group_id
    )

    assert child.parent_id == parent.group_id
    assert child.level == 2
    assert child.path == f"{parent.group_id}.{child.group_id}"
    assert (
        "group",
        parent.group_id,
        "parent_group",
        "group",
        child.group_id,
    ) in engine.policies


@pytest.mark.asyncio(loop_scope="session")
async def test_parent_denied_writes_nothing(session_manager, engine, logger):
    parent = await create(session_manager, engine, logger, name="alice-only")

    policies_before = set(engine.policies)
    engine.calls.clear()
    child_id = new_id()

    with pytest.raises(ParentAuthorizationError):
        await create(
            session_manager,
            engine,
            logger,
            token="bob-token",
            name="intruder",
            parent_id=parent.group_id,
            id_provider=lambda: child_id,
        )

    assert engine.calls == ["identify", "authorize"]
    assert engine.policies == policies_before

    with pytest.raises(groups_repository.GroupNotFound):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_repository.retrieve_by_id(group_id=child_id, conn=conn)


@pytest.mark.asyncio(loop_scope="session")
async def test_parent_denial_is_an_authorization_error(session_manager, engine, logger):
    parent = await create(session_manager, engine, logger, name="guarded")

    with pytest.raises(AuthorizationError):
        await create(
            session_manager,
            engine,
            logger,
            token="bob-token",
            name="intruder",
            parent_id=parent.group_id,
        )


@pytest.mark.asyncio(loop_scope="session")
async def test_level_bounds(session_manager, engine, logger):
    chain = [await create(session_manager, engine, logger, name="level-1")]

    for level in range(2, MAX_LEVEL + 1):
        chain.append(
            await create(
                session_manager,
                engine,
                logger,
                name=f"level-{level}",
                parent_id=chain[-1].group_id,
            )
        )

    assert [group.level for group in chain] == list(range(1, MAX_LEVEL + 1))
    assert chain[-1].path == ".".join(group.group_id for group in chain)

    with pytest.raises(ValidationError):
        await create(
            session_manager,
            engine,
            logger,
            name="too-deep",
            parent_id=chain[-1].group_id,
        )

    async with session_manager.session() as conn:
        async with conn.begin():
            page = await groups_repository.retrieve_all(
                page=GroupPage(group_id=chain[0].group_id, limit=100), conn=conn
            )

    assert page.total == MAX_LEVEL
    for group in page.groups:
        assert MIN_LEVEL <= group.level <= MAX_LEVEL


@pytest.mark.asyncio(loop_scope="session")
async def test_cyclic_hierarchy_detected(session_manager, logger):
    first, second = new_id(), new_id()

    def group(group_id, parent_id):
        return GroupData(
            group_id=group_id,
            owner_id="alice",
            parent_id=parent_id,
            name="cycle",
            created_at=datetime.now(timezone.utc),
        )

    with pytest.raises(HierarchyError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_repository.save(group=group(first, second), conn=conn)
                await groups_repository.save(group=group(second, first), conn=conn)

    assert issubclass(HierarchyError, ConflictError)


@pytest.mark.asyncio(loop_scope="session")
async def test_update_group(session_manager, engine, logger):
    parent = await create(session_manager, engine, logger, name="keep-parent")
    group = await create(
        session_manager,
        engine,
        logger,
        name="before",
        parent_id=parent.group_id,
        metadata={"site": "a"},
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            updated = await groups_service.update_group(
                token="alice-token",
                group_id=group.group_id,
                name="after",
                description="renamed",
                metadata={"site": "b"},
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert updated.name == "after"
    assert updated.description == "renamed"
    assert updated.metadata == {"site": "b"}
    assert updated.updated_by == "alice"
    assert updated.updated_at is not None
    assert updated.parent_id == parent.group_id
    assert updated.owner_id == "alice"

    with pytest.raises(AuthorizationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.update_group(
                    token="bob-token",
                    group_id=group.group_id,
                    name="hijacked",
                    engine=engine,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_view_missing_group(session_manager, engine, logger):
    missing = new_id()

    # Nobody holds anything on a group that does not exist.
    with pytest.raises(AuthorizationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.view_group(
                    token="alice-token",
                    group_id=missing,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )

    await engine.add_policy(
        RelationTuple(
            subject_type="user",
            subject="alice",
            relation="viewer",
            object_type="group",
            object=missing,
        )
    )

    with pytest.raises(groups_repository.GroupNotFound):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.view_group(
                    token="alice-token",
                    group_id=missing,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_enable_disable_group(session_manager, engine, logger):
    group = await create(session_manager, engine, logger, name="toggle")

    async with session_manager.session() as conn:
        async with conn.begin():
            disabled = await groups_service.disable_group(
                token="alice-token",
                group_id=group.group_id,
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert disabled.status == Status.DISABLED
    assert disabled.updated_by == "alice"

    async with session_manager.session() as conn:
        async with conn.begin():
            enabled = await groups_service.enable_group(
                token="alice-token",
                group_id=group.group_id,
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert enabled.status == Status.ENABLED


@pytest.mark.asyncio(loop_scope="session")
async def test_same_status_is_a_conflict(session_manager, engine, logger, monkeypatch):
    group = await create(session_manager, engine, logger, name="already-enabled")

    calls = []

    async def change_status(**kwargs):
        calls.append(kwargs)
        raise AssertionError("status change must not be attempted")

    monkeypatch.setattr(groups_repository, "change_status", change_status)

    with pytest.raises(StatusAlreadyAssigned):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.enable_group(
                    token="alice-token",
                    group_id=group.group_id,
                    engine=engine,
                    conn=conn,
                    log=logger,
                )

    assert calls == []
    assert issubclass(StatusAlreadyAssigned, ConflictError)


@pytest.mark.asyncio(loop_scope="session")
async def test_hierarchy_listing(session_manager, engine, logger):
    root = await create(session_manager, engine, logger, name="walk-root")
    middle = await create(
        session_manager, engine, logger, name="walk-middle", parent_id=root.group_id
    )
    leaf = await create(
        session_manager, engine, logger, name="walk-leaf", parent_id=middle.group_id
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            descendants = await membership_service.list_groups(
                token="alice-token",
                member_kind=None,
                member_id=None,
                page=GroupPage(group_id=root.group_id, limit=100),
                engine=engine,
                conn=conn,
                log=logger,
            )
            one_step = await membership_service.list_groups(
                token="alice-token",
                member_kind=None,
                member_id=None,
                page=GroupPage(group_id=root.group_id, level=1, limit=100),
                engine=engine,
                conn=conn,
                log=logger,
            )
            ancestors = await membership_service.list_groups(
                token="alice-token",
                member_kind=None,
                member_id=None,
                page=GroupPage(
                    group_id=leaf.group_id, direction=Direction.ANCESTORS, limit=100
                ),
                engine=engine,
                conn=conn,
                log=logger,
            )

    assert [g.group_id for g in descendants.groups] == [
        root.group_id,
        middle.group_id,
        leaf.group_id,
    ]
    assert [g.group_id for g in one_step.groups] == [root.group_id, middle.group_id]
    assert [g.group_id for g in ancestors.groups] == [
        leaf.group_id,
        middle.group_id,
        root.group_id,
    ]
    assert [g.level for g in ancestors.groups] == [3, 2, 1]
