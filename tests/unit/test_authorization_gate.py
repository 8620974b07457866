"""Tests for the authorization gate guarding auto-approval runs."""

from uuid import UUID, uuid4

import pytest
from jose import jwt

from wastetrack.core.config import Settings
from wastetrack.core.lifecycle.errors import ForbiddenError, UnauthorizedError
from wastetrack.core.rbac import (
    AuthorizationGate,
    DecisionKind,
    PrincipalKind,
    extract_bearer,
)
from wastetrack.core.security import create_access_token, decode_token


SYSTEM_ACTOR = UUID("00000000-0000-0000-0000-00000000beef")


class StubRoleLookup:
    def __init__(self, admins=(), error=None):
        self.admins = set(admins)
        self.error = error
        self.calls = []

    def has_role(self, user_id, role):
        self.calls.append((user_id, role))
        if self.error:
            raise self.error
        return role == "admin" and user_id in self.admins


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        secret_key="gate-secret",
        system_secret="scheduler-secret",
        system_actor_id=SYSTEM_ACTOR,
    )


class TestExtractBearer:

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer   abc  ", "abc"),
        (None, None),
        ("", None),
        ("Basic abc", None),
        ("Bearer ", None),
    ])
    def test_extract_bearer(self, header, expected):
        assert extract_bearer(header) == expected


class TestSessionTokens:

    def test_round_trip(self, settings):
        user_id = uuid4()
        assert decode_token(create_access_token(user_id, settings), settings) == user_id

    def test_wrong_signature(self, settings):
        token = jwt.encode({"sub": str(uuid4()), "type": "access"}, "other", algorithm="HS256")
        assert decode_token(token, settings) is None

    def test_wrong_token_type(self, settings):
        token = jwt.encode({"sub": str(uuid4()), "type": "refresh"}, settings.secret_key, algorithm="HS256")
        assert decode_token(token, settings) is None

    def test_subject_must_be_a_uuid(self, settings):
        token = jwt.encode({"sub": "alice", "type": "access"}, settings.secret_key, algorithm="HS256")
        assert decode_token(token, settings) is None


class TestAuthorizationGate:

    def test_missing_credential_is_unauthorized(self, settings):
        lookup = StubRoleLookup()
        decision = AuthorizationGate(settings, lookup).evaluate(None)

        assert decision.kind == DecisionKind.UNAUTHORIZED
        assert decision.reason == "Unauthorized: Authentication required"
        assert lookup.calls == []

    def test_system_secret_is_admitted_as_system(self, settings):
        lookup = StubRoleLookup()
        decision = AuthorizationGate(settings, lookup).evaluate("scheduler-secret")

        assert decision.admitted
        assert decision.principal == PrincipalKind.SYSTEM
        assert decision.actor_id == SYSTEM_ACTOR
        assert lookup.calls == []

    def test_invalid_token_is_unauthorized(self, settings):
        decision = AuthorizationGate(settings, StubRoleLookup()).evaluate("not-a-jwt")

        assert decision.kind == DecisionKind.UNAUTHORIZED
        assert decision.reason == "Unauthorized: Invalid authentication"

    def test_admin_user_is_admitted(self, settings):
        user_id = uuid4()
        lookup = StubRoleLookup(admins={user_id})
        decision = AuthorizationGate(settings, lookup).evaluate(create_access_token(user_id, settings))

        assert decision.admitted
        assert decision.principal == PrincipalKind.USER
        assert decision.actor_id == user_id
        assert lookup.calls == [(user_id, "admin")]

    def test_non_admin_user_is_forbidden(self, settings):
        user_id = uuid4()
        decision = AuthorizationGate(settings, StubRoleLookup()).evaluate(
            create_access_token(user_id, settings)
        )

        assert decision.kind == DecisionKind.FORBIDDEN
        assert decision.actor_id == user_id
        assert decision.reason == "Forbidden: Admin access required"

    def test_role_lookup_failure_is_forbidden(self, settings):
        lookup = StubRoleLookup(error=RuntimeError("roles table unavailable"))
        decision = AuthorizationGate(settings, lookup).evaluate(
            create_access_token(uuid4(), settings)
        )
        assert decision.kind == DecisionKind.FORBIDDEN

    def test_authorize_raises_matching_errors(self, settings):
        gate = AuthorizationGate(settings, StubRoleLookup())

        with pytest.raises(UnauthorizedError):
            gate.authorize("")
        with pytest.raises(ForbiddenError):
            gate.authorize(create_access_token(uuid4(), settings))
        assert gate.authorize("scheduler-secret").admitted

    def test_custom_token_decoder(self, settings):
        user_id = uuid4()
        gate = AuthorizationGate(
            settings,
            StubRoleLookup(admins={user_id}),
            token_decoder=lambda token: user_id if token == "opaque" else None,
        )
        assert gate.evaluate("opaque").admitted
        assert gate.evaluate("other").kind == DecisionKind.UNAUTHORIZED
