"""
Authorization-scoped query filters.

`build_scope` turns (caller identity, resource) into a `Scope`: the set
of column equalities a caller's reads are restricted to.  It is a pure
function so the role rules can be tested without a database; the
repositories apply the scope to their SELECT statements.

Rules:
    policy   user → user_id = caller   agent → agent_id = caller
    claim    user → user_id = caller
    premium  user → user_id = caller
    payment  user → user_id = caller
Admins (and agents, except for policies) are unrestricted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy import Select

from app.core.constants import Resource, UserRole

SCOPE_RULES: Mapping[Resource, Mapping[UserRole, str]] = MappingProxyType(
    {
        Resource.POLICY: {UserRole.USER: "user_id", UserRole.AGENT: "agent_id"},
        Resource.CLAIM: {UserRole.USER: "user_id"},
        Resource.PREMIUM: {UserRole.USER: "user_id"},
        Resource.PAYMENT: {UserRole.USER: "user_id"},
    }
)


@dataclass(frozen=True)
class Scope:
    """Column equalities every row visible to the caller must satisfy."""

    conditions: Mapping[str, Any] = field(default_factory=dict)

    def apply(self, stmt: Select, model: type) -> Select:
        """Add the scope's WHERE clauses to a SELECT over `model`."""
        for column, value in self.conditions.items():
            stmt = stmt.where(getattr(model, column) == value)
        return stmt

    def allows(self, record: Any) -> bool:
        """Check an already-loaded record against the scope."""
        return all(getattr(record, column) == value for column, value in self.conditions.items())


UNRESTRICTED = Scope()


def build_scope(caller_id: int, caller_role: str, resource: Resource | str) -> Scope:
    """Return the read scope for a caller on a resource collection."""
    rules = SCOPE_RULES.get(Resource(resource), {})
    column = rules.get(UserRole(caller_role))
    if column is None:
        return UNRESTRICTED
    return Scope(MappingProxyType({column: caller_id}))
