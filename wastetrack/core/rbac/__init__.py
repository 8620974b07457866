"""Role lookup and authorization gate for WasteTrack."""

from .roles import AppRole, RoleLookup, SQLAlchemyRoleLookup
from .gate import AccessDecision, AuthorizationGate, DecisionKind, PrincipalKind, extract_bearer

__all__ = [
    "AppRole",
    "RoleLookup",
    "SQLAlchemyRoleLookup",
    "AccessDecision",
    "AuthorizationGate",
    "DecisionKind",
    "PrincipalKind",
    "extract_bearer",
]
