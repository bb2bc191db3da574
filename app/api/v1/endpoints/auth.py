"""
Authentication endpoints
JWT-based authentication with role-based access control
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.user import User
from app.schemas.auth import TokenResponse, UserCredentials, UserResponse
from app.services.auth_service import AuthService

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserCredentials, db: Session = Depends(get_db)):
    """
    User authentication endpoint
    Returns a JWT bearer token
    """
    return AuthService(db).authenticate_user(credentials)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the current authenticated user"""
    return UserResponse.model_validate(current_user)
