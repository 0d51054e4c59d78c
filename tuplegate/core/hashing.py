"""
Utilities for hashing thing secrets. Hashes must be
deterministic, as things are looked up by the hash of their secret.
"""

from __future__ import annotations

import hashlib
from typing import Callable

import xxhash


class UnsupportedHashAlgorithm(Exception):
    pass


def match_name_to_algorithm(name: str) -> Callable:
    match name:
        case "xxh3":
            return xxhash.xxh3_64
        case "xxh128":
            return xxhash.xxh3_128
        case "sha256":
            return hashlib.sha256
        case _:
            raise UnsupportedHashAlgorithm(f"Algorithm {name} not supported")


def checksum(content: str | bytes, hash_algorithm: str) -> str:
    """
    Calculate a fresh hash (named checksum to avoid colliding with
    the builtin hash) of some content. You _must_ provide a valid
    hash_algorithm name (usually grab this from settings.hash_algorithm).
    """
    algorithm = match_name_to_algorithm(hash_algorithm)

    if isinstance(content, str):
        content = content.encode("utf-8")

    return algorithm(content).hexdigest()
