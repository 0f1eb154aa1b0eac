"""Identifier helpers shared by every model."""
import secrets


def generate_id(prefix: str) -> str:
    """Return an identifier such as ``proj_9f2c41d0a7b3e6a1``.

    Identifiers are strings so that rows keep the same key in the primary
    store and in the external SQL Server database.
    """
    return f"{prefix}_{secrets.token_hex(8)}"
