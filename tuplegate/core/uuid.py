"""
Identifier creation. uuid7 is not part of the python standard library as of
3.12, so we pull it from uuid_extensions. Identifiers are handed around as
strings because they double as subjects and objects in relation tuples.
"""

from typing import Callable

from uuid_extensions import uuid7

IDProvider = Callable[[], str]


def new_id() -> str:
    return str(uuid7())


__ALL__ = ["IDProvider", "new_id"]
