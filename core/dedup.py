"""
Cooldown windows for repeat views.

Exactly one tier applies per request, chosen by how confidently the visitor
can be recognised:

1. ADDRESS   - client address known: match on address, 1 hour.
2. USER      - no address but signed in: match on user id, 1 hour.
3. ANONYMOUS - neither: match on the "unknown" address plus user agent, 5 minutes.

The anonymous window is short on purpose: the signal is weak, so we would
rather count a few duplicates than swallow genuine repeat visits.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from config.settings import settings
from core.identity import VisitorIdentity


class DedupTier(str, enum.Enum):
    ADDRESS = "address"
    USER = "user"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class DedupPolicy:
    tier: DedupTier
    window: timedelta
    # Ledger attribute name -> value the prior view must match
    match: Dict[str, object]

    def window_start(self, now: datetime) -> datetime:
        return now - self.window

    @property
    def lock_key(self) -> Tuple:
        """Stable key naming the (tier, visitor) this policy serializes on"""
        return (self.tier.value,) + tuple(sorted((k, str(v)) for k, v in self.match.items()))


def select_policy(
    identity: VisitorIdentity,
    window: Optional[timedelta] = None,
    anonymous_window: Optional[timedelta] = None,
) -> DedupPolicy:
    """Choose the single tier, window and match predicate for this visitor."""
    if window is None:
        window = timedelta(seconds=settings.VIEW_WINDOW_SECONDS)
    if anonymous_window is None:
        anonymous_window = timedelta(seconds=settings.ANONYMOUS_VIEW_WINDOW_SECONDS)

    if identity.has_address:
        return DedupPolicy(DedupTier.ADDRESS, window, {"ip_address": identity.address})

    if identity.user_id is not None:
        return DedupPolicy(DedupTier.USER, window, {"user_id": identity.user_id})

    return DedupPolicy(
        DedupTier.ANONYMOUS,
        anonymous_window,
        {"ip_address": identity.address, "user_agent": identity.signature},
    )
