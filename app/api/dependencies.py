# ============================================================================
# FILE: app/api/dependencies.py
# Authentication and clock dependencies for the fulfillment API
# ============================================================================
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config.settings import settings
from app.utils.time_utils import utcnow

# ============================================================================
# Security Schemes
# ============================================================================

jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="Marketplace access token (claims: sub, phone, supplier_id)",
    auto_error=False,
)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as described by its token claims"""
    user_id: str
    phone: Optional[str] = None
    supplier_id: Optional[str] = None

    @property
    def is_supplier(self) -> bool:
        return self.supplier_id is not None


# ============================================================================
# JWT Token Functions
# ============================================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Tokens are normally issued by the marketplace auth service; this is used
    by scripts and tests that need to act as a buyer or supplier.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access"
    })

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def verify_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )

        if payload.get("type") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return payload

    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ============================================================================
# Dependencies
# ============================================================================

async def get_current_principal(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(jwt_security)
) -> Principal:
    """
    Dependency to get the caller from the bearer token.

    Usage in routes:
        @router.post("/orders/{order_id}/confirm")
        def confirm(principal: Principal = Depends(get_current_principal)):
            ...
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    supplier_id = payload.get("supplier_id")
    return Principal(
        user_id=str(user_id),
        phone=payload.get("phone"),
        supplier_id=str(supplier_id) if supplier_id else None,
    )


async def require_supplier(
        principal: Principal = Depends(get_current_principal)
) -> Principal:
    """Dependency that requires a token issued to a supplier account"""
    if not principal.is_supplier:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Supplier access required"
        )
    return principal


def get_now() -> datetime:
    """Reference instant for a request; overridden in tests"""
    return utcnow()
