"""
Counter endpoints.  Each path also answers with a ``.js`` suffix so clients
that can only load script URLs reach the same handler.

  GET /api/count      - record one event (userId, playerName, sessionId, gameId)
  GET /api/counter    - headline counters
  GET /api/stats      - counters plus 12h / 7d history
  GET /api/heartbeat  - keep a session alive (sessionId, userId)
"""
from fastapi import APIRouter, Depends, Query, Request

from usage_counter.schemas.response import (
    CounterResponse,
    DetailedReportResponse,
    HeartbeatResponse,
    RecordEventResponse,
)
from usage_counter.services.dispatcher import Operation, RequestDispatcher

router = APIRouter(prefix="/api", tags=["stats"])


def get_dispatcher(request: Request) -> RequestDispatcher:
    return request.app.state.dispatcher


@router.get("/count", response_model=RecordEventResponse, response_model_exclude_none=True)
@router.get("/count.js", response_model=RecordEventResponse, response_model_exclude_none=True)
async def record_event(
    user_id: str | None = Query(default=None, alias="userId"),
    player_name: str | None = Query(default=None, alias="playerName"),
    session_id: str | None = Query(default=None, alias="sessionId"),
    game_id: str | None = Query(default=None, alias="gameId"),
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
):
    """Count one client event.  Missing userId yields ``success: false``."""
    return await dispatcher.dispatch(
        Operation.RECORD_EVENT,
        {
            "userId": user_id,
            "playerName": player_name,
            "sessionId": session_id,
            "gameId": game_id,
        },
    )


@router.get("/counter", response_model=CounterResponse)
@router.get("/counter.js", response_model=CounterResponse)
async def get_counter(dispatcher: RequestDispatcher = Depends(get_dispatcher)):
    return await dispatcher.dispatch(Operation.GET_SUMMARY)


@router.get("/stats", response_model=DetailedReportResponse)
@router.get("/stats.js", response_model=DetailedReportResponse)
async def get_stats(dispatcher: RequestDispatcher = Depends(get_dispatcher)):
    return await dispatcher.dispatch(Operation.GET_DETAILED_REPORT)


@router.get("/heartbeat", response_model=HeartbeatResponse, response_model_exclude_none=True)
@router.get("/heartbeat.js", response_model=HeartbeatResponse, response_model_exclude_none=True)
async def heartbeat(
    session_id: str | None = Query(default=None, alias="sessionId"),
    user_id: str | None = Query(default=None, alias="userId"),
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.dispatch(
        Operation.HEARTBEAT,
        {"sessionId": session_id, "userId": user_id},
    )
