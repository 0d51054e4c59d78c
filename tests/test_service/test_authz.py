"""
Tests for the permission coordinator: identification, authorization and the
per-call timeout on the policy engine.
"""

import asyncio

import pytest

from tuplegate.core.errors import (
    AuthenticationError,
    AuthorizationError,
    UpstreamError,
)
from tuplegate.core.tuples import RelationTuple
from tuplegate.core.uuid import new_id
from tuplegate.repository import groups as groups_repository
from tuplegate.service import authz
from tuplegate.service import groups as groups_service
from tuplegate.service.mock import MockPolicyEngine


class HangingEngine(MockPolicyEngine):
    """
    Identifies tokens straight away but never answers authorization checks.
    """

    async def authorize(self, *args, **kwargs):
        self.calls.append("authorize")
        await asyncio.sleep(60)


@pytest.mark.asyncio(loop_scope="session")
async def test_identify(engine, logger):
    assert await authz.identify("alice-token", engine=engine, log=logger) == "alice"

    with pytest.raises(AuthenticationError):
        await authz.identify("unknown-token", engine=engine, log=logger)


@pytest.mark.asyncio(loop_scope="session")
async def test_identify_without_token_skips_engine(engine, logger):
    with pytest.raises(AuthenticationError):
        await authz.identify("", engine=engine, log=logger)

    with pytest.raises(AuthenticationError):
        await authz.identify(None, engine=engine, log=logger)

    assert engine.calls == []


@pytest.mark.asyncio(loop_scope="session")
async def test_authorize(engine, logger):
    await engine.add_policy(
        RelationTuple(
            subject_type="user",
            subject="alice",
            relation="editor",
            object_type="group",
            object="g",
        )
    )

    resolved = await authz.authorize(
        subject_type="user",
        subject="alice",
        permission="edit",
        object_type="group",
        object="g",
        engine=engine,
        log=logger,
    )

    assert resolved == "alice"

    with pytest.raises(AuthorizationError):
        await authz.authorize(
            subject_type="user",
            subject="alice",
            permission="delete",
            object_type="group",
            object="g",
            engine=engine,
            log=logger,
        )


@pytest.mark.asyncio(loop_scope="session")
async def test_revocation_applies_immediately(engine, logger):
    policy = RelationTuple(
        subject_type="user",
        subject="bob",
        relation="viewer",
        object_type="thing",
        object="t",
    )
    await engine.add_policy(policy)

    async def check():
        return await authz.authorize(
            subject_type="user",
            subject="bob",
            permission="view",
            object_type="thing",
            object="t",
            engine=engine,
            log=logger,
        )

    await check()
    await engine.delete_policy(policy)

    with pytest.raises(AuthorizationError):
        await check()


@pytest.mark.asyncio(loop_scope="session")
async def test_engine_timeout_is_upstream_error(logger):
    engine = HangingEngine(tokens={"alice-token": "alice"}, timeout=0.05)

    with pytest.raises(UpstreamError):
        await authz.authorize(
            subject_type="user",
            subject="alice",
            permission="view",
            object_type="group",
            object="g",
            engine=engine,
            log=logger,
        )


@pytest.mark.asyncio(loop_scope="session")
async def test_timeout_before_write_persists_nothing(session_manager, logger):
    engine = HangingEngine(tokens={"alice-token": "alice"}, timeout=0.05)
    parent_id = new_id()
    child_id = new_id()

    with pytest.raises(UpstreamError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.create_group(
                    token="alice-token",
                    name="never",
                    parent_id=parent_id,
                    engine=engine,
                    conn=conn,
                    log=logger,
                    id_provider=lambda: child_id,
                )

    assert engine.policies == set()

    with pytest.raises(groups_repository.GroupNotFound):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_repository.retrieve_by_id(group_id=child_id, conn=conn)


@pytest.mark.asyncio(loop_scope="session")
async def test_add_policies_stops_at_first_failure(logger):
    class FailingEngine(MockPolicyEngine):
        async def add_policy(self, policy):
            if policy.subject == "broken":
                raise UpstreamError("engine unavailable")
            await super().add_policy(policy)

    failing = FailingEngine()

    policies = [
        RelationTuple(
            subject_type="user",
            subject=subject,
            relation="member",
            object_type="group",
            object="g",
        )
        for subject in ["first", "broken", "last"]
    ]

    with pytest.raises(UpstreamError):
        await authz.add_policies(policies=policies, engine=failing, log=logger)

    assert failing.policies == {("user", "first", "member", "group", "g")}
