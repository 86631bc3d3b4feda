"""
Authentication Routes
Login, current user and token refresh
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from src.config.database import get_db
from src.config.permissions import get_role_label, get_role_rank
from src.services.auth_service import auth_service
from src.schemas.auth import Token
from src.schemas.user import UserResponse
from src.models.user import User
from src.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    Login endpoint

    OAuth2 compatible token login
    """
    user = auth_service.authenticate_user(db, form_data.username, form_data.password)

    if not user:
        logger.warning(f"Failed login attempt for {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tokens = auth_service.create_tokens(user)
    logger.info(f"User logged in: {user.username}")

    return tokens


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(auth_service.get_current_user)
):
    """Get current user information"""
    response = UserResponse.model_validate(current_user)
    response.role_label = get_role_label(current_user.role)
    response.rank = get_role_rank(current_user.role)
    return response


@router.post("/refresh", response_model=Token)
async def refresh_token(
    refresh_token: str,
    db: Session = Depends(get_db)
):
    """
    Exchange a refresh token for a new access/refresh pair
    """
    return auth_service.refresh_tokens(db, refresh_token)
