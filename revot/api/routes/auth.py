"""Authentication routes.

Provides:
- GET /api/auth/me - Current user (or null)
- POST /api/auth/login - Password sign-in
- POST /api/auth/signup - Password sign-up
- POST /api/auth/logout - Sign-out
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from revot.core.deps import get_identity
from revot.core.exceptions import AuthError
from revot.schemas.chat import CredentialsRequest, SignUpResponse, UserIdentity
from revot.services.identity_gateway import IdentityGateway

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me", response_model=Optional[UserIdentity])
async def me(identity: IdentityGateway = Depends(get_identity)) -> Optional[UserIdentity]:
    """Return the signed-in user, or null."""
    return identity.current_user


@router.post("/login", response_model=UserIdentity)
async def login(
    request: CredentialsRequest,
    identity: IdentityGateway = Depends(get_identity),
) -> UserIdentity:
    """
    Sign in with email and password.

    The controller reloads the user's sessions through the identity
    change notification before this returns.

    Raises:
        HTTPException: 400 with the provider's message on failure
    """
    try:
        return await identity.sign_in(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post("/signup", response_model=SignUpResponse)
async def signup(
    request: CredentialsRequest,
    identity: IdentityGateway = Depends(get_identity),
) -> SignUpResponse:
    """
    Register a new account.

    confirmation_required is true when the provider sent a confirmation
    email instead of signing the user in.
    """
    try:
        user = await identity.sign_up(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return SignUpResponse(user=user, confirmation_required=user is None)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(identity: IdentityGateway = Depends(get_identity)) -> Response:
    """Sign out; all session and message state is torn down."""
    try:
        await identity.sign_out()
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
