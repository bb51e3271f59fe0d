from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blogacl.domain.permissions import Access
from blogacl.infra.auth import claims_user_id, decode_access_token
from blogacl.services.acl_service import AccessControlService

bearer_scheme = HTTPBearer()


def get_acl_service() -> AccessControlService:
    return AccessControlService()


def get_current_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict[str, Any]:
    try:
        claims = decode_access_token(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc
    request.state.claims = claims
    return claims


def require_access(token: str, access: str = Access.FULL) -> Callable[..., dict[str, Any]]:
    def _checker(
        claims: Annotated[dict[str, Any], Depends(get_current_claims)],
        acl: Annotated[AccessControlService, Depends(get_acl_service)],
    ) -> dict[str, Any]:
        if not acl.user_can(claims_user_id(claims), token, access):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing access: {token} ({access})",
            )
        return claims

    return _checker
