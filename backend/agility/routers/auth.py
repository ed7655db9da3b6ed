"""Auth API routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user
from agility.auth.jwt import create_access_token
from agility.database import get_db
from agility.models.user import User
from agility.schemas.auth import Token, UserCreate, UserLogin, UserResponse
from agility.services.auth_service import authenticate_user, create_user, user_to_response

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_for(user: User) -> Token:
    response = user_to_response(user)
    return Token(access_token=create_access_token(user.id, response.roles), user=response)


@router.post("/register", response_model=Token)
async def register(
    data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(select(User).where(User.email == data.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")
    user = await create_user(db, data)
    return _token_for(user)


@router.post("/login", response_model=Token)
async def login(
    data: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user = await authenticate_user(db, data)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User inactive")
    return _token_for(user)


@router.get("/me", response_model=UserResponse)
async def me(user: Annotated[User, Depends(get_current_user)]):
    return user_to_response(user)
