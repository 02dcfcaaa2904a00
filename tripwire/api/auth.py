"""Webhook token verification.

Callers authenticate with a ``token`` header of the form
``<display name>:<secret>``. The display name selects an owner in the
owner directory; the secret must equal one of that owner's ``events``
identities.
"""

import hmac
from typing import Optional, Tuple

from ..exceptions import AuthenticationError
from ..owners.directory import OwnerDirectory
from ..utils.constants import EVENTS_PLATFORM


def parse_event_token(token_header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a token header into (display name, secret).

    The secret is everything after the first ``:`` and may itself contain
    colons.
    """
    if not token_header:
        return None
    name, separator, secret = token_header.partition(":")
    if not separator or not name or not secret:
        return None
    return name, secret


def authenticate_event_token(
    token_header: Optional[str], directory: OwnerDirectory
) -> str:
    """Return the authenticated owner id.

    Raises:
        AuthenticationError: If the token is missing, malformed or does not
            match the named owner's secrets.
    """
    parsed = parse_event_token(token_header)
    if parsed is None:
        raise AuthenticationError("Event token missing or malformed")

    name, secret = parsed
    owner_id = directory.resolve_display_name(name)
    if owner_id is None:
        raise AuthenticationError("Event token names an unknown owner")

    secret_bytes = secret.encode("utf-8")
    matched = False
    # Compare against every identity so timing does not reveal which matched.
    for candidate in directory.identities(owner_id, EVENTS_PLATFORM):
        if hmac.compare_digest(candidate.encode("utf-8"), secret_bytes):
            matched = True
    if not matched:
        raise AuthenticationError("Event token secret does not match")
    return owner_id
