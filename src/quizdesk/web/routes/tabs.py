"""Tab and profile endpoints."""

from fastapi import APIRouter, HTTPException, status

from quizdesk.core.identity import AuthAccount
from quizdesk.core.synchronizer import ProfileSnapshot, RefreshTrigger
from quizdesk.web.schemas import (
    ProfileSchema,
    ProfileStateResponse,
    SignInRequest,
    TabCreate,
    TabListResponse,
    TabResponse,
    VisibilityRequest,
)
from quizdesk.web.tabs import Tab, TabExistsError, get_tab_manager

router = APIRouter(prefix="/api/tabs", tags=["tabs"])


def _tab_response(tab: Tab) -> TabResponse:
    return TabResponse(
        window_id=tab.window_id,
        tab_id=tab.tab_id,
        state=tab.synchronizer.snapshot.state.value,
        visible=tab.synchronizer.visible,
        created_at=tab.created_at,
    )


def _state_response(snapshot: ProfileSnapshot) -> ProfileStateResponse:
    return ProfileStateResponse(
        user=ProfileSchema.model_validate(snapshot.user) if snapshot.user else None,
        loading=snapshot.loading,
        error=snapshot.error,
        state=snapshot.state.value,
    )


async def require_tab(window_id: str) -> Tab:
    """Look up an open tab or raise 404."""
    tab = await get_tab_manager().get_tab(window_id)
    if tab is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tab '{window_id}' not found",
        )
    return tab


@router.post("", response_model=TabResponse, status_code=status.HTTP_201_CREATED)
async def open_tab(request: TabCreate) -> TabResponse:
    """Open a window (optionally reusing or duplicating a tab id)."""
    try:
        tab = await get_tab_manager().open_tab(
            tab_id=request.tab_id, visible=request.visible, duplicate=request.duplicate
        )
    except TabExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _tab_response(tab)


@router.get("", response_model=TabListResponse)
async def list_tabs() -> TabListResponse:
    """List open tabs."""
    tabs = [_tab_response(t) for t in await get_tab_manager().list_tabs()]
    return TabListResponse(tabs=tabs, count=len(tabs))


@router.get("/{window_id}", response_model=TabResponse)
async def get_tab(window_id: str) -> TabResponse:
    """Get tab details."""
    return _tab_response(await require_tab(window_id))


@router.delete("/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_tab(window_id: str) -> None:
    """Close a tab and stop its synchronizer."""
    if not await get_tab_manager().close_tab(window_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tab '{window_id}' not found",
        )


@router.post("/{window_id}/sign-in", response_model=ProfileStateResponse)
async def sign_in(window_id: str, request: SignInRequest) -> ProfileStateResponse:
    """Sign an account in on this tab and load its profile."""
    tab = await require_tab(window_id)
    await tab.identity.sign_in(AuthAccount(email=request.email, account_id=request.account_id))
    return _state_response(tab.synchronizer.snapshot)


@router.post("/{window_id}/sign-out", response_model=ProfileStateResponse)
async def sign_out(window_id: str) -> ProfileStateResponse:
    """Sign out and clear the tab's profile and cached session."""
    tab = await require_tab(window_id)
    await tab.identity.sign_out()
    return _state_response(tab.synchronizer.snapshot)


@router.post("/{window_id}/visibility", response_model=ProfileStateResponse)
async def set_visibility(window_id: str, request: VisibilityRequest) -> ProfileStateResponse:
    """Report tab visibility; becoming visible refreshes the profile."""
    tab = await require_tab(window_id)
    await tab.synchronizer.set_visibility(request.visible)
    return _state_response(tab.synchronizer.snapshot)


@router.post("/{window_id}/refresh", response_model=ProfileStateResponse)
async def refresh(window_id: str) -> ProfileStateResponse:
    """Refresh the profile now, as the periodic timer would."""
    tab = await require_tab(window_id)
    await tab.synchronizer.refresh(RefreshTrigger.TIMER)
    return _state_response(tab.synchronizer.snapshot)


@router.get("/{window_id}/profile", response_model=ProfileStateResponse)
async def get_profile(window_id: str) -> ProfileStateResponse:
    """Current {user, loading, error} for the tab."""
    tab = await require_tab(window_id)
    return _state_response(tab.synchronizer.snapshot)
