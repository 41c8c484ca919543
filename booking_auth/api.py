"""
API router and Pydantic models for the booking authentication service.

Route handlers are thin: they validate input, hand the work to the identity
service on a worker thread, and shape the response. Errors propagate as
``AuthError`` subclasses and are rendered by the application's handler.
"""
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from booking_auth.auth import IdentityService, TokenPair
from booking_auth.dependencies import (AccountContext, get_current_account,
                                       get_identity_service)
from booking_auth.models import User, UserRole

# Create API router
router = APIRouter(tags=["authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"
RESEND_VERIFICATION_MESSAGE = "If an unverified account exists for this email, a verification link has been sent"


# Pydantic models for request/response
class RegisterRequest(BaseModel):
    """Request model for account registration."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=8, max_length=72, description="Password")
    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    phone: Optional[str] = Field(None, max_length=32, description="Phone number")
    role: UserRole = Field(UserRole.USER, description="USER or LAWYER")


class LoginRequest(BaseModel):
    """Request model for login."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")
    remember_me: bool = Field(False, description="Keep the session for longer")


class RefreshRequest(BaseModel):
    """Request model for token refresh."""
    refresh_token: str = Field(..., min_length=1, description="JWT refresh token")


class LogoutRequest(BaseModel):
    """Request model for logout."""
    refresh_token: str = Field(..., min_length=1, description="JWT refresh token to revoke")


class PasswordChangeRequest(BaseModel):
    """Request model for password change."""
    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=8, max_length=72, description="New password")


class ForgotPasswordRequest(BaseModel):
    """Request model for a password reset link."""
    email: EmailStr = Field(..., description="Email address")


class ResetPasswordRequest(BaseModel):
    """Request model for password reset."""
    token: str = Field(..., min_length=1, description="Reset token from the email")
    new_password: str = Field(..., min_length=8, max_length=72, description="New password")


class VerifyEmailRequest(BaseModel):
    """Request model for email verification."""
    token: str = Field(..., min_length=1, description="Verification token from the email")


class ResendVerificationRequest(BaseModel):
    """Request model for a new verification link."""
    email: EmailStr = Field(..., description="Email address")


class TokenResponse(BaseModel):
    """Response model for token operations."""
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field("bearer", description="Token type")
    expires_at: datetime = Field(..., description="Access token expiration time (UTC)")

    @classmethod
    def from_pair(cls, tokens: TokenPair) -> "TokenResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_at=tokens.expires_at,
        )


class AccountResponse(BaseModel):
    """Response model for account details."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    is_email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    """Response model for register and login."""
    user: AccountResponse
    tokens: TokenResponse


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str = Field(..., description="Error detail")
    code: str = Field(..., description="Machine readable error code")


class SuccessResponse(BaseModel):
    """Response model for successful operations."""
    message: str = Field(..., description="Success message")
    details: Optional[Dict] = Field(None, description="Additional details")


def _account(account: User) -> AccountResponse:
    return AccountResponse.model_validate(account)


# API endpoints
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
        422: {"model": ErrorResponse, "description": "Weak password"},
    },
    summary="Register a new account",
)
async def register(
    data: RegisterRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Register an account and return its first token pair."""
    result = await run_in_threadpool(
        service.register,
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role=data.role,
    )
    return AuthResponse(user=_account(result.account), tokens=TokenResponse.from_pair(result.tokens))


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Account disabled"},
    },
    summary="Authenticate and get tokens",
)
async def login(
    data: LoginRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Authenticate with email and password."""
    result = await run_in_threadpool(service.login, data.email, data.password, data.remember_me)
    return AuthResponse(user=_account(result.account), tokens=TokenResponse.from_pair(result.tokens))


@router.post(
    "/refresh",
    response_model=TokenResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid refresh token"},
        403: {"model": ErrorResponse, "description": "Account disabled"},
    },
    summary="Rotate the refresh token",
)
async def refresh(
    data: RefreshRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Exchange a refresh token for a new pair. The presented token is consumed."""
    tokens = await run_in_threadpool(service.refresh, data.refresh_token)
    return TokenResponse.from_pair(tokens)


@router.post(
    "/logout",
    response_model=SuccessResponse,
    summary="End the current session",
)
async def logout(
    data: LogoutRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Revoke a refresh token. Unknown tokens are accepted silently."""
    await run_in_threadpool(service.logout, data.refresh_token)
    return SuccessResponse(message="Logged out successfully")


@router.post(
    "/logout-all",
    response_model=SuccessResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="End every session of the current account",
)
async def logout_all(
    account: AccountContext = Depends(get_current_account),
    service: IdentityService = Depends(get_identity_service),
):
    """Revoke all refresh tokens of the authenticated account."""
    revoked = await run_in_threadpool(service.logout_all, account.id)
    return SuccessResponse(message="Logged out from all devices", details={"sessions_revoked": revoked})


@router.post(
    "/change-password",
    response_model=SuccessResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Current password is incorrect"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
    summary="Change password",
)
async def change_password(
    data: PasswordChangeRequest,
    account: AccountContext = Depends(get_current_account),
    service: IdentityService = Depends(get_identity_service),
):
    """Change the password and end every session."""
    revoked = await run_in_threadpool(
        service.change_password, account.id, data.current_password, data.new_password
    )
    return SuccessResponse(
        message="Password changed successfully. Please log in again.",
        details={"sessions_revoked": revoked},
    )


@router.post(
    "/forgot-password",
    response_model=SuccessResponse,
    summary="Request a password reset link",
)
async def forgot_password(
    data: ForgotPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Mail a reset link. The response is the same whether or not the account exists."""
    await run_in_threadpool(service.forgot_password, data.email)
    return SuccessResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=SuccessResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired reset token"}},
    summary="Reset password with a mailed token",
)
async def reset_password(
    data: ResetPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Set a new password and end every session."""
    await run_in_threadpool(service.reset_password, data.token, data.new_password)
    return SuccessResponse(message="Password has been reset. Please log in again.")


@router.post(
    "/verify-email",
    response_model=AccountResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired verification token"}},
    summary="Verify email address",
)
async def verify_email(
    data: VerifyEmailRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Mark the account's email as verified."""
    account = await run_in_threadpool(service.verify_email, data.token)
    return _account(account)


@router.post(
    "/resend-verification",
    response_model=SuccessResponse,
    summary="Request a new verification link",
)
async def resend_verification(
    data: ResendVerificationRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Mail a new verification link. The response never reveals account existence."""
    await run_in_threadpool(service.resend_verification_email, data.email)
    return SuccessResponse(message=RESEND_VERIFICATION_MESSAGE)


@router.get(
    "/me",
    response_model=AccountResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Current account",
)
async def me(
    account: AccountContext = Depends(get_current_account),
    service: IdentityService = Depends(get_identity_service),
):
    """Profile of the authenticated account."""
    current = await run_in_threadpool(service.get_current_account, account.id)
    return _account(current)
