"""FastAPI dependencies resolving the per-process client state."""
from fastapi import Depends, HTTPException, Request, status

from revot.schemas.chat import UserIdentity
from revot.services.conversation_controller import ConversationController
from revot.services.identity_gateway import IdentityGateway
from revot.services.preferences import PreferenceStore


def get_controller(request: Request) -> ConversationController:
    return request.app.state.controller


def get_identity(request: Request) -> IdentityGateway:
    return request.app.state.controller.identity


def get_preferences(request: Request) -> PreferenceStore:
    return request.app.state.preferences


def get_current_user(
    controller: ConversationController = Depends(get_controller),
) -> UserIdentity:
    """
    Require a signed-in user.

    Raises:
        HTTPException: 401 if nobody is signed in
    """
    if controller.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return controller.user
