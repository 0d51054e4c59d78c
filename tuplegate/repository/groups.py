"""
Persistence for groups.

The hierarchy is stored as plain parent references. Level and path are worked
out on read by walking those references through an id-keyed arena, with a hop
guard so that a corrupt (or cyclic) chain can never loop forever.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuplegate.core.errors import HierarchyError, NotFoundError
from tuplegate.core.group import MAX_LEVEL, Direction, GroupData, GroupPage
from tuplegate.core.status import Status
from tuplegate.database.group import Group

# A chain can hold at most MAX_LEVEL groups; one more hop means it is broken.
HOP_GUARD = MAX_LEVEL + 1


class GroupNotFound(NotFoundError):
    pass


async def save(group: GroupData, conn: AsyncSession) -> GroupData:
    """
    Persist a new group. Level and path are left for the read path.
    """
    row = Group(
        group_id=group.group_id,
        owner_id=group.owner_id,
        parent_id=group.parent_id,
        name=group.name,
        description=group.description,
        group_metadata=group.metadata,
        status=group.status.value,
        created_at=group.created_at,
    )

    conn.add(row)
    await conn.flush()

    return (await resolve(rows=[row], conn=conn))[0]


async def _read_row(group_id: str, conn: AsyncSession) -> Group:
    row = await conn.get(Group, group_id)

    if row is None:
        raise GroupNotFound(f"Group with ID {group_id} not found")

    return row


async def retrieve_by_id(group_id: str, conn: AsyncSession) -> GroupData:
    """
    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    row = await _read_row(group_id=group_id, conn=conn)
    return (await resolve(rows=[row], conn=conn))[0]


async def update(
    group_id: str,
    name: str | None,
    description: str | None,
    metadata: dict[str, Any] | None,
    updated_by: str,
    conn: AsyncSession,
) -> GroupData:
    """
    Overwrite the descriptive fields of a group. Owner, parent and status are
    never touched here.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    row = await _read_row(group_id=group_id, conn=conn)

    if name is not None:
        row.name = name
    if description is not None:
        row.description = description
    if metadata is not None:
        row.group_metadata = metadata

    row.updated_at = datetime.now(timezone.utc)
    row.updated_by = updated_by

    conn.add(row)
    await conn.flush()

    return (await resolve(rows=[row], conn=conn))[0]


async def change_status(
    group_id: str, status: Status, updated_by: str, conn: AsyncSession
) -> GroupData:
    """
    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    row = await _read_row(group_id=group_id, conn=conn)

    row.status = Status(status).value
    row.updated_at = datetime.now(timezone.utc)
    row.updated_by = updated_by

    conn.add(row)
    await conn.flush()

    return (await resolve(rows=[row], conn=conn))[0]


async def level_of(group_id: str, conn: AsyncSession) -> int:
    """
    The depth of a group in its hierarchy, with roots at level 1.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    HierarchyError
        If the parent chain is deeper than the hierarchy allows.
    """
    group = await retrieve_by_id(group_id=group_id, conn=conn)
    return group.level


async def retrieve_all(
    page: GroupPage, conn: AsyncSession, ids: list[str] | None = None
) -> GroupPage:
    """
    Retrieve a page of groups. If `page.group_id` is set, the ancestors or
    descendants (depending on `page.direction`) of that group, up to
    `page.level` steps away and including the group itself, are listed.
    Otherwise all groups matching the filters on the page. `ids`, when
    provided, restricts the result to those groups.
    """
    if page.group_id is not None or page.metadata:
        # Hierarchy walks and metadata filters are applied in memory.
        if page.group_id is not None:
            rows = await _traverse(page=page, conn=conn)
        else:
            result = await conn.execute(
                _filtered_query(page=page, ids=ids).order_by(
                    Group.created_at, Group.group_id
                )
            )
            rows = list(result.scalars().all())
        rows = [row for row in rows if _matches(row=row, page=page, ids=ids)]
        total = len(rows)
        rows = rows[page.offset : page.offset + page.limit]
    else:
        query = _filtered_query(page=page, ids=ids)
        total = (
            await conn.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        result = await conn.execute(
            query.order_by(Group.created_at, Group.group_id)
            .offset(page.offset)
            .limit(page.limit)
        )
        rows = list(result.scalars().all())

    groups = await resolve(rows=rows, conn=conn)

    return page.model_copy(update={"total": total, "groups": groups})


async def retrieve_by_ids(
    page: GroupPage, ids: list[str], conn: AsyncSession
) -> GroupPage:
    """
    Retrieve a page of groups restricted to `ids`. An empty id list is an
    empty page; no query is made.
    """
    if not ids:
        return page.model_copy(update={"total": 0, "groups": []})

    return await retrieve_all(page=page, conn=conn, ids=ids)


def _filtered_query(page: GroupPage, ids: list[str] | None):
    query = select(Group)

    if ids is not None:
        query = query.where(Group.group_id.in_(ids))
    if page.owner_id is not None:
        query = query.where(Group.owner_id == page.owner_id)
    if page.name is not None:
        query = query.where(Group.name.ilike(f"%{page.name}%"))
    if page.status is not None:
        query = query.where(Group.status == Status(page.status).value)

    return query


def _matches(row: Group, page: GroupPage, ids: list[str] | None) -> bool:
    if ids is not None and row.group_id not in ids:
        return False
    if page.owner_id is not None and row.owner_id != page.owner_id:
        return False
    if page.name is not None and page.name.lower() not in row.name.lower():
        return False
    if page.status is not None and row.status != Status(page.status).value:
        return False
    if page.metadata:
        stored = row.group_metadata or {}
        if any(stored.get(k) != v for k, v in page.metadata.items()):
            return False
    return True


async def _traverse(page: GroupPage, conn: AsyncSession) -> list[Group]:
    root = await _read_row(group_id=page.group_id, conn=conn)
    depth = min(max(page.level, 0), MAX_LEVEL)

    rows = [root]
    seen = {root.group_id}

    if page.direction == Direction.ANCESTORS:
        current = root
        for _ in range(depth):
            if current.parent_id is None or current.parent_id in seen:
                break
            parent = await conn.get(Group, current.parent_id)
            if parent is None:
                break
            rows.append(parent)
            seen.add(parent.group_id)
            current = parent
    else:
        frontier = [root.group_id]
        for _ in range(depth):
            if not frontier:
                break
            result = await conn.execute(
                select(Group)
                .where(Group.parent_id.in_(frontier))
                .order_by(Group.created_at, Group.group_id)
            )
            children = [row for row in result.scalars().all() if row.group_id not in seen]
            rows.extend(children)
            seen.update(row.group_id for row in children)
            frontier = [row.group_id for row in children]

    return rows


async def resolve(rows: list[Group], conn: AsyncSession) -> list[GroupData]:
    """
    Work out level and path for each of `rows`, loading any ancestors that
    are not already in hand.

    Raises
    ------
    HierarchyError
        If a parent chain is longer than MAX_LEVEL groups.
    """
    arena: dict[str, Group] = {row.group_id: row for row in rows}

    for _ in range(HOP_GUARD):
        missing = {
            row.parent_id
            for row in arena.values()
            if row.parent_id is not None and row.parent_id not in arena
        }
        if not missing:
            break
        result = await conn.execute(select(Group).where(Group.group_id.in_(missing)))
        found = result.scalars().all()
        if not found:
            break
        arena.update({row.group_id: row for row in found})

    resolved = []

    for row in rows:
        chain = [row.group_id]
        current = row.parent_id

        while current is not None and current in arena:
            if len(chain) >= HOP_GUARD - 1:
                raise HierarchyError(
                    f"Group {row.group_id} is nested deeper than {MAX_LEVEL} levels"
                )
            chain.append(current)
            current = arena[current].parent_id

        resolved.append(row.to_core(level=len(chain), path=".".join(reversed(chain))))

    return resolved
