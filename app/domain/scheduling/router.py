"""Scheduling router - FastAPI endpoints for suggestion review"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import ConfigurationError, get_current_organization_id
from ...config import SUGGESTION_RATE_LIMIT
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from .lifecycle import SuggestionStateError
from .schemas import Suggestion, SuggestionRequest, SuggestionSessionResponse, SuggestionUpdate
from .service import SuggestionService
from .sessions import SuggestionNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])

suggestion_rate_limit = create_rate_limiter(
    limit=SUGGESTION_RATE_LIMIT, window_seconds=60, key_prefix="suggestions"
)


def get_suggestion_service(db: Session = Depends(get_db)) -> SuggestionService:
    """Dependency injection for SuggestionService"""
    return SuggestionService(db)


@router.post("/suggestions", response_model=SuggestionSessionResponse)
async def create_suggestions(
    data: SuggestionRequest,
    organization_id: str = Depends(get_current_organization_id),
    service: SuggestionService = Depends(get_suggestion_service),
    _: None = Depends(suggestion_rate_limit),
):
    """Rank technician/time suggestions for a job and open a review session"""
    session = await service.generate(organization_id, data)
    return session.to_response()


@router.get("/suggestions/{session_id}", response_model=SuggestionSessionResponse)
async def get_suggestions(
    session_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: SuggestionService = Depends(get_suggestion_service),
):
    try:
        return service.get_session(session_id, organization_id).to_response()
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.patch("/suggestions/{session_id}/{suggestion_id}", response_model=Suggestion)
async def modify_suggestion(
    session_id: str,
    suggestion_id: str,
    data: SuggestionUpdate,
    organization_id: str = Depends(get_current_organization_id),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Edit a pending suggestion"""
    try:
        return service.modify(session_id, suggestion_id, organization_id, data)
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SuggestionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/suggestions/{session_id}/{suggestion_id}/confirm", response_model=Suggestion)
async def confirm_suggestion(
    session_id: str,
    suggestion_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Push the suggestion to HouseCall Pro; the response carries the final status"""
    try:
        return await service.confirm(session_id, suggestion_id, organization_id)
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SuggestionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/suggestions/{session_id}/{suggestion_id}/retry", response_model=Suggestion)
async def retry_suggestion(
    session_id: str,
    suggestion_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Replay the change request of a failed suggestion"""
    try:
        return await service.retry(session_id, suggestion_id, organization_id)
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SuggestionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
