from typing import Optional

from fastapi import Depends, Header

from sweetshop import auth
from sweetshop.errors import AuthenticationError, PermissionDenied
from sweetshop.models import ROLE_ADMIN


def authenticate(authorization: Optional[str]) -> auth.TokenClaims:
    """Validate an Authorization header value and return the caller's claims."""
    if authorization is None:
        raise AuthenticationError("Authorization header is required.")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Bearer token is required.")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Token is required.")

    try:
        return auth.verify_token(token)
    except auth.TokenExpired:
        raise AuthenticationError("Token has expired.")
    except auth.TokenError:
        raise AuthenticationError("Invalid token.")


def get_current_claims(authorization: Optional[str] = Header(None)) -> auth.TokenClaims:
    return authenticate(authorization)


def require_admin(claims: Optional[auth.TokenClaims] = Depends(get_current_claims)) -> auth.TokenClaims:
    if claims is None:
        raise AuthenticationError("Authentication required.")
    if claims.role != ROLE_ADMIN:
        raise PermissionDenied("Admin access required.")
    return claims
