"""Authorization gate for privileged entry points.

Admits two kinds of caller:
- the scheduler, presenting the pre-shared system credential
- a signed-in user holding the administrative role

The decision is a typed value rather than a boolean so callers can tell a
missing credential (401) from a non-admin user (403).
"""

import logging
import secrets
from enum import Enum
from typing import Callable, NamedTuple, Optional
from uuid import UUID

from wastetrack.core.config import Settings
from wastetrack.core.lifecycle.errors import ForbiddenError, UnauthorizedError
from wastetrack.core.security import decode_token

from .roles import RoleLookup

logger = logging.getLogger(__name__)


class DecisionKind(str, Enum):
    ADMIT = "admit"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


class PrincipalKind(str, Enum):
    SYSTEM = "system"
    USER = "user"


class AccessDecision(NamedTuple):
    """Result of evaluating a caller's credential."""

    kind: DecisionKind
    principal: Optional[PrincipalKind] = None
    actor_id: Optional[UUID] = None
    reason: str = ""

    @property
    def admitted(self) -> bool:
        return self.kind == DecisionKind.ADMIT

    def raise_for_denial(self) -> "AccessDecision":
        """Raise the matching authorization error unless admitted."""
        if self.kind == DecisionKind.UNAUTHORIZED:
            raise UnauthorizedError(self.reason)
        if self.kind == DecisionKind.FORBIDDEN:
            raise ForbiddenError(self.reason)
        return self


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthorizationGate:
    """Single capability check shared by every privileged entry point."""

    def __init__(
        self,
        settings: Settings,
        role_lookup: RoleLookup,
        token_decoder: Optional[Callable[[str], Optional[UUID]]] = None,
    ):
        self.settings = settings
        self.role_lookup = role_lookup
        self._decode = token_decoder or (lambda token: decode_token(token, settings))

    def evaluate(self, credential: Optional[str]) -> AccessDecision:
        """
        Decide whether a bearer credential may run privileged operations.

        Args:
            credential: Raw bearer token (system secret or user session token)
        """
        if not credential:
            return AccessDecision(DecisionKind.UNAUTHORIZED, reason="Unauthorized: Authentication required")

        if secrets.compare_digest(credential.encode(), self.settings.system_secret.encode()):
            return AccessDecision(
                DecisionKind.ADMIT,
                PrincipalKind.SYSTEM,
                self.settings.system_actor_id,
                "system credential",
            )

        user_id = self._decode(credential)
        if user_id is None:
            logger.warning("Rejected privileged call with an invalid credential")
            return AccessDecision(DecisionKind.UNAUTHORIZED, reason="Unauthorized: Invalid authentication")

        try:
            is_admin = self.role_lookup.has_role(user_id, self.settings.admin_role)
        except Exception as e:
            logger.error("Role lookup failed for user %s: %s", user_id, e)
            is_admin = False

        if not is_admin:
            logger.warning("Access denied: user %s is not %s", user_id, self.settings.admin_role)
            return AccessDecision(
                DecisionKind.FORBIDDEN,
                PrincipalKind.USER,
                user_id,
                "Forbidden: Admin access required",
            )

        return AccessDecision(DecisionKind.ADMIT, PrincipalKind.USER, user_id, "admin user")

    def authorize(self, credential: Optional[str]) -> AccessDecision:
        """Evaluate and raise ``UnauthorizedError``/``ForbiddenError`` on denial."""
        return self.evaluate(credential).raise_for_denial()
