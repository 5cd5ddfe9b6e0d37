"""
Caller Identity Models for Mobile Core.

A User is whoever presented the bearer token: a cluster username plus the
groups that user belongs to. Group membership matters because cluster
access reviews answer with both users and groups.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import BaseModel, Field


class User(BaseModel):
    """
    Authenticated cluster user.

    Immutable: resolved once per request and never mutated.
    """

    model_config = {"frozen": True}

    username: str = Field(..., description="Cluster username")
    groups: frozenset[str] = Field(
        default_factory=frozenset,
        description="Groups the user belongs to",
    )

    def in_any_group(self, groups: Iterable[str]) -> bool:
        """True if the user belongs to at least one of groups."""
        return not self.groups.isdisjoint(groups)


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Outcome of a permission check.

    Transient: produced per check and never persisted.
    """

    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed
