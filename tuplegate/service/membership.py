"""
Service layer answering who belongs to what, and what a caller can see.

Membership lives entirely in the policy engine. Listings combine one or two
reachability queries and only then go to the database, restricted to the
ids the engine returned.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from tuplegate.core.client import MembersPage
from tuplegate.core.errors import InvalidMemberKind, ValidationError
from tuplegate.core.group import GroupPage
from tuplegate.core.tuples import (
    EDIT_PERMISSION,
    GROUP_RELATION,
    GROUP_TYPE,
    MEMBER_KINDS,
    THING_TYPE,
    THINGS_KIND,
    USER_TYPE,
    USERS_KIND,
    VIEW_PERMISSION,
    membership_tuple,
)
from tuplegate.repository import groups as groups_repository

from . import authz
from .engine import PolicyEngine


def intersect(allowed: list[str], candidates: list[str]) -> list[str]:
    """
    The ids present in both lists, in the order of `allowed`.
    """
    candidates = set(candidates)
    return [item for item in allowed if item in candidates]


async def list_groups(
    token: str,
    member_kind: str | None,
    member_id: str | None,
    page: GroupPage,
    engine: PolicyEngine,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupPage:
    """
    List the groups the caller may view. With `member_kind` of "things", only
    the groups that `member_id` participates in are kept.

    Parameters
    ----------
    member_kind: str | None
        "things" to restrict the listing to the groups of a thing. Any other
        value lists every group the caller may view.
    member_id: str | None
        The thing, when `member_kind` is "things".
    page: GroupPage
        Pagination window, filters and optional hierarchy walk.
    """
    if member_kind == THINGS_KIND and not member_id:
        raise ValidationError("A thing id is required to list its groups")

    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(user_id=caller_id, member_kind=member_kind, member_id=member_id)

    allowed = await authz.list_objects(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=VIEW_PERMISSION,
        object_type=GROUP_TYPE,
        engine=engine,
        log=log,
    )

    match member_kind:
        case "things":
            participating = await authz.list_subjects(
                subject_type=GROUP_TYPE,
                permission=VIEW_PERMISSION,
                object_type=THING_TYPE,
                object=member_id,
                engine=engine,
                log=log,
            )
            ids = intersect(allowed=allowed, candidates=participating)
        case _:
            ids = allowed

    page = await groups_repository.retrieve_by_ids(page=page, ids=ids, conn=conn)
    await log.adebug("group.listed", number_of_groups=len(page.groups), total=page.total)

    return page


async def list_members(
    token: str,
    group_id: str,
    permission: str,
    member_kind: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> MembersPage:
    """
    List the members of a group. Things are those filed under the group
    through the `group` relation; users are those holding `permission` on the
    group, so callers can ask for editors as well as plain members.

    Raises
    ------
    InvalidMemberKind
        If `member_kind` is not "things" or "users". Raised before any call
        to the policy engine.
    ValidationError
        If users are listed without a permission. Also raised before any
        call to the policy engine.
    AuthorizationError
        If the caller may not view the group.
    """
    if member_kind not in (THINGS_KIND, USERS_KIND):
        raise InvalidMemberKind(f"Invalid member kind {member_kind!r}")
    if member_kind == USERS_KIND and not permission:
        raise ValidationError("A permission is required to list users")

    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(
        user_id=caller_id,
        group_id=group_id,
        member_kind=member_kind,
        permission=permission,
    )

    await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=VIEW_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    if member_kind == THINGS_KIND:
        ids = await authz.list_objects(
            subject_type=GROUP_TYPE,
            subject=group_id,
            permission=GROUP_RELATION,
            object_type=THING_TYPE,
            engine=engine,
            log=log,
        )
        page = MembersPage.from_ids(ids=ids, member_type=THING_TYPE)
    else:
        ids = await authz.list_subjects(
            subject_type=USER_TYPE,
            permission=permission,
            object_type=GROUP_TYPE,
            object=group_id,
            engine=engine,
            log=log,
        )
        page = MembersPage.from_ids(ids=ids, member_type=USER_TYPE)

    await log.adebug("group.members_listed", number_of_members=page.total)

    return page


def _membership_tuples(group_id: str, relation: str, member_kind: str, member_ids):
    if member_kind not in MEMBER_KINDS:
        raise InvalidMemberKind(f"Invalid member kind {member_kind!r}")
    if not relation:
        raise ValidationError("A relation is required")

    return [
        membership_tuple(
            group_id=group_id,
            relation=relation,
            member_kind=member_kind,
            member_id=member_id,
        )
        for member_id in member_ids
    ]


async def assign(
    token: str,
    group_id: str,
    relation: str,
    member_kind: str,
    *member_ids: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> None:
    """
    Relate each of `member_ids` to the group through `relation`.

    Tuples are written one at a time and the first failure stops the rest;
    members handled before the failure stay assigned.

    Raises
    ------
    InvalidMemberKind
        If `member_kind` is not users, groups or things. Raised before any
        call to the policy engine.
    AuthorizationError
        If the caller may not edit the group.
    """
    policies = _membership_tuples(group_id, relation, member_kind, member_ids)

    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(
        user_id=caller_id,
        group_id=group_id,
        relation=relation,
        member_kind=member_kind,
        number_of_members=len(member_ids),
    )

    await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=EDIT_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    await authz.add_policies(policies=policies, engine=engine, log=log)
    await log.ainfo("group.members_assigned")


async def unassign(
    token: str,
    group_id: str,
    relation: str,
    member_kind: str,
    *member_ids: str,
    engine: PolicyEngine,
    log: FilteringBoundLogger,
) -> None:
    """
    Remove the `relation` between each of `member_ids` and the group. Same
    failure behaviour as `assign`.

    Raises
    ------
    InvalidMemberKind
        If `member_kind` is not users, groups or things. Raised before any
        call to the policy engine.
    AuthorizationError
        If the caller may not edit the group.
    """
    policies = _membership_tuples(group_id, relation, member_kind, member_ids)

    caller_id = await authz.identify(token=token, engine=engine, log=log)
    log = log.bind(
        user_id=caller_id,
        group_id=group_id,
        relation=relation,
        member_kind=member_kind,
        number_of_members=len(member_ids),
    )

    await authz.authorize(
        subject_type=USER_TYPE,
        subject=caller_id,
        permission=EDIT_PERMISSION,
        object_type=GROUP_TYPE,
        object=group_id,
        engine=engine,
        log=log,
    )

    await authz.delete_policies(policies=policies, engine=engine, log=log)
    await log.ainfo("group.members_unassigned")
