"""
API Dependencies
Common dependencies for FastAPI endpoints including database sessions,
authentication, authorization and the application-owned AI services
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.security import JWTManager
from app.db.database import get_db
from app.models.user import RoleCode, User
from app.services.ai_gateway import AIGateway
from app.services.model_cache import ModelCache, PerformanceStats

# Security scheme for JWT token
security = HTTPBearer()


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    """
    Get current authenticated user from JWT token

    Raises:
        HTTPException: If token is invalid or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = JWTManager.verify_token(credentials.credentials)
    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user"
        )

    return user


def require_roles(allowed_roles: list):
    """
    Role-based access control dependency factory

    Args:
        allowed_roles: Role codes allowed for the endpoint

    Returns:
        Dependency function that checks user role
    """

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role_code not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {allowed_roles}",
            )
        return current_user

    return role_checker


def require_admin():
    """Require administrator role"""
    return require_roles([RoleCode.ADMINISTRATOR.value])


def get_model_cache(request: Request) -> ModelCache:
    return request.app.state.model_cache


def get_performance_stats(request: Request) -> PerformanceStats:
    return request.app.state.performance_stats


def get_ai_gateway(
    db: Session = Depends(get_db),
    model_cache: ModelCache = Depends(get_model_cache),
    performance_stats: PerformanceStats = Depends(get_performance_stats),
) -> AIGateway:
    return AIGateway(db, model_cache=model_cache, performance_stats=performance_stats)
