"""
Meta functionality for the database.
"""

from .client import Client
from .group import Group

ALL_TABLES = (
    Client,
    Group,
)
