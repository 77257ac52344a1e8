# referral_hub/routes/auth.py
from fastapi import APIRouter, Depends

from ..controllers.auth_controller import (
    get_authenticated_user,
    login_with_email_password,
    register_user,
)
from ..schemas.auth_schema import AuthResponse, LoginRequest, MeResponse, RegisterRequest
from ..utils.auth_utils import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=AuthResponse, status_code=201, summary="Register a business or customer account")
async def register(data: RegisterRequest):
    return await register_user(data)


@router.post("/login", response_model=AuthResponse, summary="Login with email and password")
async def login(data: LoginRequest):
    return await login_with_email_password(data)


@router.get("/me", response_model=MeResponse, summary="Current user")
async def me(current_user: dict = Depends(get_current_user)):
    return await get_authenticated_user(current_user)
