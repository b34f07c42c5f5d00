"""Theme preference routes."""
from fastapi import APIRouter, Depends

from revot.core.deps import get_preferences
from revot.schemas.chat import ThemeRequest, ThemeResponse
from revot.services.preferences import PreferenceStore

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


@router.get("/theme", response_model=ThemeResponse)
def get_theme(preferences: PreferenceStore = Depends(get_preferences)) -> ThemeResponse:
    return ThemeResponse(theme=preferences.get_theme())


@router.put("/theme", response_model=ThemeResponse)
def set_theme(
    request: ThemeRequest,
    preferences: PreferenceStore = Depends(get_preferences),
) -> ThemeResponse:
    return ThemeResponse(theme=preferences.set_theme(request.theme))


@router.post("/theme/toggle", response_model=ThemeResponse)
def toggle_theme(preferences: PreferenceStore = Depends(get_preferences)) -> ThemeResponse:
    return ThemeResponse(theme=preferences.toggle_theme())
