"""
Authentication utilities - JWT verification and role dependencies
Tokens are issued by the auth service; this backend only verifies them
"""

from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from schoolfocus.config import Settings
from schoolfocus.schemas import TokenData, UserRole


# ============================================================
# JWT TOKENS
# ============================================================

def decode_access_token(token: str, settings: Settings) -> Optional[TokenData]:
    """
    Decode and validate a JWT token.
    Returns TokenData if valid, None if invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )

        user_id: str = payload.get("sub")
        email: str = payload.get("email")
        role: str = payload.get("role")
        organization_id = payload.get("organization_id")

        if user_id is None or email is None:
            return None

        return TokenData(
            user_id=user_id,
            email=email,
            role=UserRole(role),
            organization_id=int(organization_id) if organization_id is not None else None,
        )

    except (JWTError, ValueError, TypeError):
        return None


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

security = HTTPBearer()


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenData:
    """
    Dependency to get the current authenticated user from JWT.
    Raises 401 if token is invalid.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = decode_access_token(credentials.credentials, request.app.state.settings)
    if token_data is None:
        raise credentials_exception

    return token_data


async def get_admin_user(
    current_user: TokenData = Depends(get_current_user)
) -> TokenData:
    """
    Dependency to require admin role.
    Raises 403 if user is not admin.
    """
    if current_user.role != UserRole.admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


async def get_staff_user(
    current_user: TokenData = Depends(get_current_user)
) -> TokenData:
    """Admins and teachers may manage organization rules"""
    if current_user.role not in (UserRole.admin, UserRole.teacher):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or teacher access required"
        )
    return current_user
