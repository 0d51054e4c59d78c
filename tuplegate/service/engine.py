"""
Base for policy engines.
"""

import abc

from tuplegate.core.tuples import RelationTuple


class PolicyEngine(abc.ABC):
    """
    The relationship-based access control engine that holds every relation
    tuple. We never evaluate the tuple graph ourselves; downstream must
    implement:

    - identify: resolve a bearer token to a subject id.
    - authorize: check whether a subject holds a permission on an object,
                 returning the decision and the resolved subject id.
    - add_policy / delete_policy: write or remove a single tuple.
    - list_all_objects: every object of a type the subject holds a
                        permission on.
    - list_all_subjects: every subject of a type holding a permission on
                         the object.

    Implementations raise `AuthenticationError` for unknown tokens and
    `UpstreamError` when the engine cannot be reached.
    """

    # Upper bound, in seconds, for any single call to the engine.
    timeout: float = 1.0

    @abc.abstractmethod
    async def identify(self, token: str) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    async def authorize(
        self,
        subject_type: str,
        subject: str,
        permission: str,
        object_type: str,
        object: str,
    ) -> tuple[bool, str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def add_policy(self, policy: RelationTuple) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_policy(self, policy: RelationTuple) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_all_objects(
        self, subject_type: str, subject: str, permission: str, object_type: str
    ) -> list[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_all_subjects(
        self, subject_type: str, permission: str, object_type: str, object: str
    ) -> list[str]:
        raise NotImplementedError

    async def aclose(self) -> None:
        """
        Release any connections held by the engine client.
        """
