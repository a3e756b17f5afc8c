"""API dependencies for request identity."""

from __future__ import annotations

import re

from fastapi import Header

from wheelscan.core.exceptions import AuthenticationError


__all__ = ["require_owner"]

_OWNER_ID = re.compile(r"^[A-Za-z0-9_.@:-]{1,128}$")


async def require_owner(
    x_owner_id: str | None = Header(default=None, alias="X-Owner-ID"),
) -> str:
    """
    Require the caller's owner identity.

    The upstream gateway authenticates the user and forwards the owner id in
    the X-Owner-ID header. Every watchlist, scan and result call is scoped
    to it.

    Raises AuthenticationError if the header is missing or malformed.
    """
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise AuthenticationError(message="Missing X-Owner-ID header")
    if not _OWNER_ID.match(owner_id):
        raise AuthenticationError(message="Invalid X-Owner-ID header")
    return owner_id
