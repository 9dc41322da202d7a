"""Session identifier normalization and peer addressing."""

import random
import re
import string
import zlib

SESSION_NAMESPACE = "speakrelay-"
PEER_PORT_BASE = 20000
PEER_PORT_SPAN = 20000

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NORMALIZED = re.compile(r"speakrelay-[a-z0-9]+")


def normalize_session_id(raw: str) -> str:
    """Lowercase, strip everything but [a-z0-9] and prefix the namespace.

    Ids that are already fully normalized come back unchanged; anything
    else, including input that merely starts with the namespace in another
    case, goes through the rule above.

    Raises:
        ValueError: if nothing alphanumeric is left
    """
    if raw and _NORMALIZED.fullmatch(raw):
        return raw
    code = _NON_ALNUM.sub("", (raw or "").lower())
    if not code:
        raise ValueError(f"Session id {raw!r} has no alphanumeric characters")
    return SESSION_NAMESPACE + code


def session_code(session_id: str) -> str:
    """The human-typed part of a normalized session id."""
    return normalize_session_id(session_id)[len(SESSION_NAMESPACE):]


def generate_session_code(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def host_peer_id(session_id: str) -> str:
    """Well-known identifier the host listens under."""
    return f"{normalize_session_id(session_id)}-host"


def peer_port(peer_id: str, base: int = PEER_PORT_BASE, span: int = PEER_PORT_SPAN) -> int:
    """Deterministic TCP port for a peer id."""
    return base + zlib.crc32(peer_id.encode("utf-8")) % span
