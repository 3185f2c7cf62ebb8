"""
Authentication API routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inex_auth.api.deps import get_auth_service, oauth2_scheme
from inex_auth.services.auth_service import AuthService
from inex_auth.schemas.auth import (
    SignupRequest, SigninRequest, ForgotPasswordRequest, ResetPasswordRequest,
    RefreshTokenRequest, ResendVerificationRequest,
    AuthResponse, TokenPairResponse, CurrentUserResponse
)
from inex_auth.schemas.common import MessageResponse, ErrorResponse

router = APIRouter(prefix="/auth", tags=["auth"])

_auth_errors = {
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
}


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}}
)
async def signup(
    request: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a new user. A verification email is sent if delivery works."""
    return await auth_service.signup(
        name=request.name,
        email=request.email,
        password=request.password,
        confirm_password=request.confirm_password
    )


@router.post("/signin", response_model=AuthResponse, responses=_auth_errors)
async def signin(
    request: SigninRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login and get access + refresh tokens."""
    return await auth_service.signin(email=request.email, password=request.password)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Request a password reset email. Same answer whether or not the account exists."""
    return await auth_service.forgot_password(request.email)


@router.post("/reset-password", response_model=MessageResponse, responses=_auth_errors)
async def reset_password(
    request: ResetPasswordRequest,
    token: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Set a new password with a reset token."""
    return await auth_service.reset_password(
        token=token,
        password=request.password,
        confirm_password=request.confirm_password
    )


@router.get(
    "/reset-password",
    response_model=MessageResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}}
)
async def reset_password_landing(token: Optional[str] = None):
    """Landing target for the emailed reset link. The client posts the new password."""
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token is required")
    return MessageResponse(message="Submit a new password to complete the reset")


@router.get("/verify-account", response_model=MessageResponse, responses=_auth_errors)
async def verify_account(
    token: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Verify email with the token from the verification link."""
    return await auth_service.verify_account(token)


@router.post("/refresh-token", response_model=TokenPairResponse, responses=_auth_errors)
async def refresh_token(
    request: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Exchange a refresh token for a new token pair."""
    return await auth_service.refresh_token(request.refresh_token)


@router.get("/verify-token", response_model=CurrentUserResponse, responses=_auth_errors)
async def verify_token(
    token: str = Depends(oauth2_scheme),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Check an access token and return its user."""
    return await auth_service.verify_token(token)


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    request: ResendVerificationRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Send a new verification email for an unverified account."""
    return await auth_service.resend_verification(request.email)
