"""
Authentication Service
Password login, JWT issue/refresh and the current-user dependencies used
by the workflow routes
"""

from datetime import datetime
from typing import Any, Dict, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from src.config.database import get_db
from src.models.user import User
from src.utils.security import verify_password, create_access_token, create_refresh_token, decode_token
from src.utils.logger import setup_logger

logger = setup_logger()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthService:
    """Authentication service"""

    def authenticate_user(self, db: Session, username: str, password: str) -> Optional[User]:
        """
        Check a username (or email) and password

        Inactive users never authenticate. On success last_login is stamped.

        Returns:
            User, or None when the credentials are rejected
        """
        user = db.query(User).filter(
            (User.username == username) | (User.email == username)
        ).first()

        if not user or not user.is_active:
            return None
        if not verify_password(password, user.hashed_password):
            return None

        user.last_login = datetime.utcnow()
        db.commit()

        logger.info(f"User authenticated: {user.username} ({user.role.value})")
        return user

    def token_claims(self, user: User) -> Dict[str, Any]:
        """Access-token claims: identity, role and entity assignments"""
        return {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role.value,
            "entities": [entity.id for entity in user.entities],
        }

    def create_tokens(self, user: User) -> dict:
        """Issue an access/refresh token pair for a user"""
        return {
            "access_token": create_access_token(data=self.token_claims(user)),
            "refresh_token": create_refresh_token(data={"sub": str(user.id)}),
            "token_type": "bearer"
        }

    def _load_active_user(self, db: Session, payload: Optional[dict], token_type: str) -> User:
        if payload is None or payload.get("type") != token_type or payload.get("sub") is None:
            raise _unauthorized()

        user = db.query(User).filter(User.id == int(payload["sub"])).first()
        if user is None:
            raise _unauthorized()
        return user

    def refresh_tokens(self, db: Session, refresh_token: str) -> dict:
        """
        Exchange a refresh token for a new token pair

        Raises:
            HTTPException: 401 for invalid tokens or inactive users
        """
        user = self._load_active_user(db, decode_token(refresh_token), "refresh")
        if not user.is_active:
            raise _unauthorized("User not found or inactive")

        logger.info(f"Tokens refreshed for {user.username}")
        return self.create_tokens(user)

    async def get_current_user(
        self,
        token: str = Depends(oauth2_scheme),
        db: Session = Depends(get_db)
    ) -> User:
        """
        FastAPI dependency resolving the bearer access token to a user

        Raises:
            HTTPException: 401 for bad tokens, 403 for inactive accounts
        """
        user = self._load_active_user(db, decode_token(token), "access")

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive"
            )

        return user

    def require_permission(self, permission: str):
        """
        Dependency requiring a permission grant (see src.config.permissions)

        Args:
            permission: Required permission, e.g. "request:create"
        """
        async def permission_checker(current_user: User = Depends(self.get_current_user)):
            if not current_user.has_permission(permission):
                logger.warning(f"{current_user.username} denied {permission}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied: {permission} required"
                )
            return current_user

        return permission_checker


# Create singleton instance
auth_service = AuthService()
