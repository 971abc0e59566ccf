from __future__ import annotations

from ops_agent.services.identity import IdentityResolver
from tests.seed import NOW, TENANT, USER_DANA


def _resolver(database):
    return IdentityResolver(database["access_tokens"], database["users"], clock=lambda: NOW)


def test_valid_token_resolves_user(database):
    scope = _resolver(database).resolve(TENANT, "Bearer good-token")

    assert scope.user_id == USER_DANA
    assert scope.user_display_name == "Dana Ortiz"
    assert not scope.is_anonymous


def test_missing_or_malformed_header_is_anonymous(database):
    resolver = _resolver(database)

    assert resolver.resolve(TENANT, None).is_anonymous
    assert resolver.resolve(TENANT, "Basic good-token").is_anonymous
    assert resolver.resolve(TENANT, "Bearer ").is_anonymous


def test_unknown_and_expired_tokens_are_anonymous(database):
    resolver = _resolver(database)

    assert resolver.resolve(TENANT, "Bearer nope").user_display_name == "Unknown"
    assert resolver.resolve(TENANT, "Bearer expired-token").is_anonymous


def test_user_from_another_tenant_is_anonymous(database):
    scope = _resolver(database).resolve(TENANT, "Bearer foreign-token")

    assert scope.is_anonymous
    assert scope.tenant_id == TENANT
