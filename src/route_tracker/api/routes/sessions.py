"""Driver shift endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ...data.assignments_repository import fetch_assignments
from ...errors import AssignmentsUnavailable
from ...schemas.tracking import (
    LocationSampleModel,
    ProgressModel,
    SessionResponse,
    StartSessionRequest,
    UpdateDeliveriesRequest,
    progress_from_session,
    session_to_response,
)
from ...services.tracking.manager import SessionManager, TrackedShift

router = APIRouter(prefix="/sessions", tags=["sessions"])

logger = logging.getLogger(__name__)


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _get_shift(manager: SessionManager, session_id: str) -> TrackedShift:
    try:
        return manager.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0]) from exc


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    payload: StartSessionRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    if payload.deliveries is not None:
        deliveries = [delivery.to_domain() for delivery in payload.deliveries]
    elif payload.unit_id:
        try:
            deliveries = await fetch_assignments(payload.unit_id, payload.day)
        except AssignmentsUnavailable as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either deliveries or unit_id is required.",
        )

    try:
        session = manager.start_shift(
            payload.origin.to_domain(),
            payload.destination.to_domain(),
            deliveries,
            location_permission=payload.location_permission,
        )
    except ValueError as exc:
        logger.error(f"Could not start shift: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return session_to_response(session)


@router.get("/{session_id}", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionResponse:
    return session_to_response(_get_shift(manager, session_id).session)


@router.post("/{session_id}/locations", status_code=status.HTTP_202_ACCEPTED)
async def push_location(
    session_id: str,
    payload: LocationSampleModel,
    manager: SessionManager = Depends(get_session_manager),
) -> dict:
    _get_shift(manager, session_id)
    manager.push_sample(session_id, payload.to_domain())
    return {"accepted": True}


@router.put("/{session_id}/deliveries", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def update_deliveries(
    session_id: str,
    payload: UpdateDeliveriesRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    _get_shift(manager, session_id)
    session = manager.update_deliveries(session_id, [delivery.to_domain() for delivery in payload.deliveries])
    return session_to_response(session)


@router.post("/{session_id}/recalculate", status_code=status.HTTP_202_ACCEPTED)
async def recalculate(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> dict:
    _get_shift(manager, session_id)
    session = manager.recalculate(session_id)
    return {"accepted": True, "request_seq": session.request_seq}


@router.get("/{session_id}/progress", response_model=ProgressModel, status_code=status.HTTP_200_OK)
async def get_progress(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> ProgressModel:
    return progress_from_session(_get_shift(manager, session_id).session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Response:
    _get_shift(manager, session_id)
    await manager.end_shift(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
