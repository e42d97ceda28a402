"""Authentication schemes and OAuth 2.0 token handling."""

from httpengine.auth.digest import DigestAuth, DigestAuthContext, DigestScheme
from httpengine.auth.dispatch import apply_authentication
from httpengine.auth.oauth import OAuth20FlowExecution
from httpengine.auth.token import Token
from httpengine.auth.token_cache import TokenCache


__all__ = [
    "DigestAuth",
    "DigestAuthContext",
    "DigestScheme",
    "OAuth20FlowExecution",
    "Token",
    "TokenCache",
    "apply_authentication",
]
