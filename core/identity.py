from typing import NamedTuple, Optional

UNKNOWN = "unknown"

_IPV4_MAPPED_PREFIX = "::ffff:"


class VisitorIdentity(NamedTuple):
    """Best-effort identity of whoever is viewing a shop or product"""

    user_id: Optional[int]
    address: str
    signature: str

    @property
    def has_address(self) -> bool:
        return self.address != UNKNOWN


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def resolve_client_address(
    forwarded_for: Optional[str] = None,
    real_ip: Optional[str] = None,
    peer_address: Optional[str] = None,
) -> str:
    """Pick the client address from proxy headers, falling back to the socket peer.

    X-Forwarded-For may carry a proxy chain; the left-most entry is the client.
    """
    forwarded = _clean(forwarded_for)
    if forwarded:
        return _clean(forwarded.split(",")[0]) or UNKNOWN

    real = _clean(real_ip)
    if real:
        return real

    peer = _clean(peer_address)
    if peer:
        if peer.startswith(_IPV4_MAPPED_PREFIX):
            peer = peer[len(_IPV4_MAPPED_PREFIX):]
        return peer or UNKNOWN

    return UNKNOWN


def resolve_visitor_identity(
    user_id: Optional[int] = None,
    forwarded_for: Optional[str] = None,
    real_ip: Optional[str] = None,
    peer_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> VisitorIdentity:
    """Build the (user id, address, signature) tuple. Never raises, never returns blanks."""
    return VisitorIdentity(
        user_id=user_id,
        address=resolve_client_address(forwarded_for, real_ip, peer_address),
        signature=_clean(user_agent) or UNKNOWN,
    )
