"""
Identity resolution and permission checks against the policy engine.

Grant decisions are never cached: every protected operation asks the engine
again, so a revoked permission applies from the very next call. Every engine
call runs under the engine's own timeout, independently of how long the
surrounding request is allowed to take.
"""

import asyncio
from typing import Awaitable, TypeVar

from structlog.typing import FilteringBoundLogger

from tuplegate.core.errors import AuthenticationError, AuthorizationError, UpstreamError
from tuplegate.core.tuples import RelationTuple

from .engine import PolicyEngine

T = TypeVar("T")


async def bounded(
    call: Awaitable[T], engine: PolicyEngine, operation: str, log: FilteringBoundLogger
) -> T:
    """
    Await a single engine call, giving up after `engine.timeout` seconds.

    Raises
    ------
    UpstreamError
        If the call timed out.
    """
    try:
        return await asyncio.wait_for(call, timeout=engine.timeout)
    except asyncio.TimeoutError as e:
        await log.awarning("engine.timeout", operation=operation, timeout=engine.timeout)
        raise UpstreamError(f"Policy engine call {operation} timed out") from e


async def identify(token: str | None, engine: PolicyEngine, log: FilteringBoundLogger) -> str:
    """
    Resolve a bearer token to the id of the subject holding it.

    Raises
    ------
    AuthenticationError
        If the token is missing or cannot be resolved.
    UpstreamError
        If the engine could not be reached.
    """
    if not token:
        raise AuthenticationError("No token provided")

    try:
        subject_id = await bounded(engine.identify(token), engine, "identify", log)
    except AuthenticationError:
        await log.ainfo("authz.identify_failed")
        raise

    if not subject_id:
        raise AuthenticationError("Token resolved to an empty identity")

    return subject_id


async def authorize(
    subject_type: str,
    subject: str,
    permission: str,
    object_type: str,
    object: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> str:
    """
    Check that `subject` holds `permission` on `object`, returning the subject
    id as resolved by the engine.

    Raises
    ------
    AuthorizationError
        If the engine reports the permission as not granted.
    UpstreamError
        If the engine could not be reached.
    """
    log = log.bind(
        subject_type=subject_type,
        subject=subject,
        permission=permission,
        object_type=object_type,
        object=object,
    )

    granted, resolved = await bounded(
        engine.authorize(
            subject_type=subject_type,
            subject=subject,
            permission=permission,
            object_type=object_type,
            object=object,
        ),
        engine,
        "authorize",
        log,
    )

    if not granted:
        await log.ainfo("authz.denied")
        raise AuthorizationError(
            f"{subject_type} {subject} may not {permission} {object_type} {object}"
        )

    await log.adebug("authz.granted")

    return resolved or subject


async def add_policies(
    policies: list[RelationTuple], engine: PolicyEngine, log: FilteringBoundLogger
) -> None:
    """
    Write tuples one after the other, stopping at the first failure. Tuples
    written before the failure stay written.
    """
    for policy in policies:
        await bounded(engine.add_policy(policy), engine, "add_policy", log)
        await log.adebug("authz.policy_added", policy=str(policy))


async def delete_policies(
    policies: list[RelationTuple], engine: PolicyEngine, log: FilteringBoundLogger
) -> None:
    """
    Remove tuples one after the other, stopping at the first failure.
    """
    for policy in policies:
        await bounded(engine.delete_policy(policy), engine, "delete_policy", log)
        await log.adebug("authz.policy_deleted", policy=str(policy))


async def list_objects(
    subject_type: str,
    subject: str,
    permission: str,
    object_type: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> list[str]:
    return await bounded(
        engine.list_all_objects(
            subject_type=subject_type,
            subject=subject,
            permission=permission,
            object_type=object_type,
        ),
        engine,
        "list_all_objects",
        log,
    )


async def list_subjects(
    subject_type: str,
    permission: str,
    object_type: str,
    object: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> list[str]:
    return await bounded(
        engine.list_all_subjects(
            subject_type=subject_type,
            permission=permission,
            object_type=object_type,
            object=object,
        ),
        engine,
        "list_all_subjects",
        log,
    )
