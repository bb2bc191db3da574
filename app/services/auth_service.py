"""
Authentication Service
Password login and JWT issuing
"""

import logging
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import JWTManager, SecurityUtils
from app.models.user import User
from app.schemas.auth import TokenResponse, UserCredentials

logger = logging.getLogger(__name__)


class AuthService:
    """Authentication service for users and JWT tokens"""

    def __init__(self, db: Session):
        self.db = db
        self.security = SecurityUtils()
        self.jwt_manager = JWTManager()

    def authenticate_user(self, credentials: UserCredentials) -> TokenResponse:
        """Authenticate user and return a bearer token"""
        try:
            user = (
                self.db.query(User)
                .filter(User.email == credentials.email.lower())
                .first()
            )

            if not user:
                logger.warning(
                    f"Authentication failed: User not found - {credentials.email}"
                )
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid credentials",
                )

            if not user.is_active:
                logger.warning(
                    f"Authentication failed: User inactive - {credentials.email}"
                )
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Account is inactive",
                )

            if not self.security.verify_password(
                credentials.password, user.hashed_password
            ):
                logger.warning(
                    f"Authentication failed: Invalid password - {credentials.email}"
                )
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid credentials",
                )

            user.last_login = datetime.utcnow()
            self.db.commit()

            token = self.create_token_for(user)
            logger.info(f"User authenticated: {user.email}")
            return token

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Authentication error: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication failed",
            )

    def create_token_for(self, user: User) -> TokenResponse:
        expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = self.jwt_manager.create_access_token(
            data={"sub": user.id, "email": user.email, "role": user.role_code},
            expires_delta=expires,
        )
        return TokenResponse(
            access_token=access_token,
            token_type="bearer",
            expires_in=int(expires.total_seconds()),
            user_id=user.id,
            role=user.role_code,
        )
