"""Approval authorizers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from equity_engine.errors import AuthorizationError
from equity_engine.stores.base import Actor, ApprovalAuthorizer

CAPABILITY_APPROVE = "equity.approve"
CAPABILITY_APPLY = "equity.apply"


class HeaderCapabilityAuthorizer:
    """Trusts the capabilities the actor arrived with (e.g. request headers)."""

    def has_capability(self, actor: Actor, capability: str) -> bool:
        return capability in actor.capabilities


class StaticCapabilityAuthorizer:
    """Fixed grants per actor id, ignoring what the actor claims."""

    def __init__(self, grants: Mapping[str, Iterable[str]]):
        self._grants = {actor_id: frozenset(caps) for actor_id, caps in grants.items()}

    def has_capability(self, actor: Actor, capability: str) -> bool:
        return capability in self._grants.get(actor.actor_id, frozenset())


def require_capability(
    authorizer: ApprovalAuthorizer, actor: Actor, capability: str
) -> None:
    """Raise AuthorizationError unless the actor holds the capability."""
    if not authorizer.has_capability(actor, capability):
        raise AuthorizationError(actor.actor_id, capability)


def parse_capabilities(header_value: str | None) -> frozenset[str]:
    """Split a comma separated capability header."""
    if not header_value:
        return frozenset()
    return frozenset(part.strip() for part in header_value.split(",") if part.strip())
