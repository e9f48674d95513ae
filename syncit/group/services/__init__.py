"""Services for group membership, event visibility and reconciliation."""

from .membership import MembershipStore
from .reconciliation import ListenerState, ReconciliationListener
from .session import GroupSession, SessionRegistry

__all__ = [
    "GroupSession",
    "ListenerState",
    "MembershipStore",
    "ReconciliationListener",
    "SessionRegistry",
]
