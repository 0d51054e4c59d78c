"""
Generate random secrets
"""

import secrets


def thing_secret():
    return secrets.token_urlsafe(32)
