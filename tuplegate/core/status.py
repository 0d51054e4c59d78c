"""
The enabled/disabled state machine shared by groups, users and things.
"""

from enum import Enum

from .errors import InvalidStatus, StatusAlreadyAssigned


class Status(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


def validate_status(status: str | Status) -> Status:
    """
    Coerce `status` into a `Status`.

    Raises
    ------
    InvalidStatus
        If the status is not one of enabled or disabled.
    """
    try:
        return Status(status)
    except ValueError:
        raise InvalidStatus(f"Invalid status {status!r}")


def check_transition(current: Status, requested: Status) -> None:
    """
    Only real transitions are allowed; moving to the status an entity
    already has would repeat its side effects.

    Raises
    ------
    StatusAlreadyAssigned
        If `current` and `requested` are the same.
    """
    if Status(current) == Status(requested):
        raise StatusAlreadyAssigned(f"Status is already {Status(requested).value}")
