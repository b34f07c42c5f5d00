"""Conversation routes.

Provides:
- GET /api/sessions - List the user's sessions
- POST /api/sessions - Create and select a session
- PATCH /api/sessions/{id} - Rename a session
- DELETE /api/sessions/{id}?confirm=true - Delete a session
- PUT /api/selection - Select (or deselect) a session
- GET /api/messages - Current display state
- POST /api/messages - Send a message to the selected session
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from revot.core.deps import get_controller, get_current_user
from revot.schemas.chat import (
    ConversationSession,
    DisplayState,
    RenameRequest,
    SelectionRequest,
    SendRequest,
    SendResponse,
    UserIdentity,
)
from revot.services.conversation_controller import ConversationController

router = APIRouter(prefix="/api", tags=["chat"])


@router.get("/sessions", response_model=List[ConversationSession])
async def list_sessions(
    refresh: bool = False,
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> List[ConversationSession]:
    """
    List sessions for the signed-in user, newest first.

    refresh=true reloads from the store first; a store failure keeps the
    list already held.
    """
    if refresh:
        await controller.refresh_sessions()
    return controller.sessions


@router.post("/sessions", response_model=ConversationSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> ConversationSession:
    """
    Create a session and select it.

    Raises:
        HTTPException: 502 if the store refused
    """
    session = await controller.create_session()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not create conversation",
        )
    return session


@router.patch("/sessions/{session_id}", response_model=ConversationSession)
async def rename_session(
    session_id: str,
    request: RenameRequest,
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> ConversationSession:
    """
    Rename a session.

    Raises:
        HTTPException: 404 if the session is not in the user's list
        HTTPException: 502 if the store refused
    """
    if not any(s.id == session_id for s in controller.sessions):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    if not await controller.rename_session(session_id, request.title):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not rename conversation",
        )
    return next(s for s in controller.sessions if s.id == session_id)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    confirm: bool = False,
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> Response:
    """
    Delete a session; requires confirm=true.

    Raises:
        HTTPException: 404 if the session is not in the user's list
        HTTPException: 409 if the deletion was not confirmed
        HTTPException: 502 if the store refused
    """
    if not any(s.id == session_id for s in controller.sessions):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if not confirm:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Deletion not confirmed")

    if not await controller.delete_session(session_id, confirmed=True):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not delete conversation",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/selection", response_model=DisplayState)
async def select_session(
    request: SelectionRequest,
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> DisplayState:
    """
    Select a session and load its history (null deselects).

    Raises:
        HTTPException: 404 if the session is not in the user's list
    """
    if request.session_id is not None and not any(
        s.id == request.session_id for s in controller.sessions
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    await controller.select_session(request.session_id)
    return controller.snapshot()


@router.get("/messages", response_model=DisplayState)
async def get_messages(
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> DisplayState:
    """Return the display state, including optimistic messages of an in-flight send."""
    return controller.snapshot()


@router.post("/messages", response_model=SendResponse)
async def send_message(
    request: SendRequest,
    current_user: UserIdentity = Depends(get_current_user),
    controller: ConversationController = Depends(get_controller),
) -> SendResponse:
    """
    Send a message to the selected session.

    A refused send (empty input, send in flight, no selection) is not an
    error: accepted is false and nothing changes.
    """
    accepted = await controller.send(request.message)
    return SendResponse(accepted=accepted, state=controller.snapshot())
