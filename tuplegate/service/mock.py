"""
The mock policy engine, used for testing and local development.

Tuples are held in memory. A subject holds a permission on an object when
it is directly related to the object through one of the relations that grant
the permission, or when it holds that permission on a group the object
belongs to (a parent group, or the group a thing is filed under).
"""

from tuplegate.core.errors import AuthenticationError
from tuplegate.core.tuples import (
    DELETE_PERMISSION,
    EDIT_PERMISSION,
    GROUP_RELATION,
    GROUP_TYPE,
    MEMBER_PERMISSION,
    OWNER_RELATION,
    PARENT_GROUP_RELATION,
    VIEW_PERMISSION,
    RelationTuple,
)

from .engine import PolicyEngine

# Which relations grant which permission. A relation always grants the
# permission of the same name.
PERMISSION_RELATIONS = {
    DELETE_PERMISSION: {OWNER_RELATION, "admin"},
    EDIT_PERMISSION: {OWNER_RELATION, "admin", "editor"},
    VIEW_PERMISSION: {OWNER_RELATION, "admin", "editor", "viewer", "member", GROUP_RELATION},
    MEMBER_PERMISSION: {OWNER_RELATION, "admin", "editor", "viewer", "member"},
}

# Relations through which an object inherits permissions from a group.
INHERITING_RELATIONS = {PARENT_GROUP_RELATION, GROUP_RELATION}

MAX_DEPTH = 8


class MockPolicyEngine(PolicyEngine):
    tokens: dict[str, str]
    policies: set[tuple[str, str, str, str, str]]
    calls: list[str]

    def __init__(self, tokens: dict[str, str] | None = None, timeout: float = 1.0):
        self.tokens = dict(tokens or {})
        self.policies = set()
        self.calls = []
        self.timeout = timeout

    def register_token(self, token: str, subject_id: str):
        self.tokens[token] = subject_id

    def _grants(self, relation: str, permission: str) -> bool:
        return relation == permission or relation in PERMISSION_RELATIONS.get(
            permission, set()
        )

    def check(
        self,
        subject_type: str,
        subject: str,
        permission: str,
        object_type: str,
        object: str,
        depth: int = 0,
    ) -> bool:
        if depth > MAX_DEPTH:
            return False

        for s_type, s_id, relation, o_type, o_id in self.policies:
            if o_type != object_type or o_id != object:
                continue

            if (
                s_type == subject_type
                and s_id == subject
                and self._grants(relation, permission)
            ):
                return True

            if (
                s_type == GROUP_TYPE
                and relation in INHERITING_RELATIONS
                and self.check(
                    subject_type, subject, permission, GROUP_TYPE, s_id, depth + 1
                )
            ):
                return True

        return False

    async def identify(self, token: str) -> str:
        self.calls.append("identify")

        try:
            return self.tokens[token]
        except KeyError:
            raise AuthenticationError("Token could not be identified")

    async def authorize(
        self,
        subject_type: str,
        subject: str,
        permission: str,
        object_type: str,
        object: str,
    ) -> tuple[bool, str]:
        self.calls.append("authorize")

        granted = self.check(subject_type, subject, permission, object_type, object)

        return granted, subject

    async def add_policy(self, policy: RelationTuple) -> None:
        self.calls.append("add_policy")
        self.policies.add(
            (
                policy.subject_type,
                policy.subject,
                policy.relation,
                policy.object_type,
                policy.object,
            )
        )

    async def delete_policy(self, policy: RelationTuple) -> None:
        self.calls.append("delete_policy")
        self.policies.discard(
            (
                policy.subject_type,
                policy.subject,
                policy.relation,
                policy.object_type,
                policy.object,
            )
        )

    async def list_all_objects(
        self, subject_type: str, subject: str, permission: str, object_type: str
    ) -> list[str]:
        self.calls.append("list_all_objects")

        candidates = sorted({p[4] for p in self.policies if p[3] == object_type})

        return [
            candidate
            for candidate in candidates
            if self.check(subject_type, subject, permission, object_type, candidate)
        ]

    async def list_all_subjects(
        self, subject_type: str, permission: str, object_type: str, object: str
    ) -> list[str]:
        self.calls.append("list_all_subjects")

        candidates = sorted({p[1] for p in self.policies if p[0] == subject_type})

        return [
            candidate
            for candidate in candidates
            if self.check(subject_type, candidate, permission, object_type, object)
        ]
