"""
Relation tuples and the vocabulary (types, relations, permissions, member
kinds) used when talking to the policy engine.
"""

from pydantic import BaseModel

# Entity types, as known to the policy engine.
USER_TYPE = "user"
GROUP_TYPE = "group"
THING_TYPE = "thing"

# Relations written by this service.
OWNER_RELATION = "owner"
GROUP_RELATION = "group"
PARENT_GROUP_RELATION = "parent_group"

# Permissions checked by this service.
DELETE_PERMISSION = "delete"
EDIT_PERMISSION = "edit"
VIEW_PERMISSION = "view"
MEMBER_PERMISSION = "member"

USERS_KIND = "users"
GROUPS_KIND = "groups"
THINGS_KIND = "things"

MEMBER_KINDS = (USERS_KIND, GROUPS_KIND, THINGS_KIND)


class RelationTuple(BaseModel):
    """
    A single (subject, relation, object) fact held by the policy engine.
    """

    subject_type: str
    subject: str
    relation: str
    object_type: str
    object: str

    def __str__(self) -> str:
        return (
            f"{self.subject_type}:{self.subject}#{self.relation}"
            f"@{self.object_type}:{self.object}"
        )


def membership_tuple(
    group_id: str, relation: str, member_kind: str, member_id: str
) -> RelationTuple:
    """
    Build the tuple linking `member_id` to `group_id`. Users and nested groups
    are subjects of the group; a group is the subject of the things it holds,
    which is the same direction `list_members` queries for things.

    Raises
    ------
    ValueError
        If `member_kind` is not one of `MEMBER_KINDS`.
    """
    match member_kind:
        case "users":
            return RelationTuple(
                subject_type=USER_TYPE,
                subject=member_id,
                relation=relation,
                object_type=GROUP_TYPE,
                object=group_id,
            )
        case "groups":
            return RelationTuple(
                subject_type=GROUP_TYPE,
                subject=member_id,
                relation=relation,
                object_type=GROUP_TYPE,
                object=group_id,
            )
        case "things":
            return RelationTuple(
                subject_type=GROUP_TYPE,
                subject=group_id,
                relation=relation,
                object_type=THING_TYPE,
                object=member_id,
            )
        case _:
            raise ValueError(f"Unsupported member kind {member_kind}")
