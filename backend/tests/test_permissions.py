from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from app.core.constants import Resource
from app.core.permissions import UNRESTRICTED, build_scope
from app.db.models import Claim, Policy


class TestBuildScope:
    @pytest.mark.parametrize("resource", list(Resource))
    def test_admin_unrestricted(self, resource) -> None:
        assert build_scope(1, "admin", resource) is UNRESTRICTED

    @pytest.mark.parametrize("resource", list(Resource))
    def test_user_restricted_to_own_rows(self, resource) -> None:
        assert dict(build_scope(7, "user", resource).conditions) == {"user_id": 7}

    def test_agent_sees_assigned_policies_only(self) -> None:
        assert dict(build_scope(3, "agent", Resource.POLICY).conditions) == {"agent_id": 3}

    @pytest.mark.parametrize("resource", [Resource.CLAIM, Resource.PREMIUM, Resource.PAYMENT])
    def test_agent_unrestricted_elsewhere(self, resource) -> None:
        assert build_scope(3, "agent", resource) is UNRESTRICTED

    def test_accepts_plain_strings(self) -> None:
        assert dict(build_scope(5, "user", "claim").conditions) == {"user_id": 5}

    def test_unknown_role_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_scope(1, "superuser", Resource.POLICY)


class TestScope:
    def test_apply_adds_where_clause(self) -> None:
        stmt = build_scope(4, "user", Resource.CLAIM).apply(select(Claim), Claim)
        sql = str(stmt.compile(compile_kwargs={"literal_binds": True}))
        assert "claims.user_id = 4" in sql

    def test_unrestricted_apply_is_noop(self) -> None:
        stmt = select(Policy)
        assert UNRESTRICTED.apply(stmt, Policy) is stmt

    def test_allows(self) -> None:
        scope = build_scope(3, "agent", Resource.POLICY)
        assert scope.allows(SimpleNamespace(agent_id=3, user_id=9)) is True
        assert scope.allows(SimpleNamespace(agent_id=4, user_id=3)) is False
        assert UNRESTRICTED.allows(SimpleNamespace()) is True
