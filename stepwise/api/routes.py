from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any
from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from stepwise.analytics import read_events
from stepwise.api.deps import get_orchestrator_factory, get_redis, get_registry, get_settings
from stepwise.api.models import (
    AnswerRequest,
    ChallengeAnswerRequest,
    HomeworkInput,
    HomeworkRequest,
    ObjectiveRequest,
    PainPointRequest,
    SelectItemRequest,
    SessionSnapshot,
)
from stepwise.config import Settings
from stepwise.errors import InvalidTransition
from stepwise.orchestrator import SessionOrchestrator
from stepwise.session_registry import SessionNotFound, SessionRegistry
from stepwise.websocket_hub import hub

router = APIRouter()

Action = Callable[[SessionOrchestrator], Any]


async def _broadcast(orch: SessionOrchestrator) -> None:
    await hub.publish(orch.snapshot())


def _get_session(registry: SessionRegistry, session_id: UUID) -> SessionOrchestrator:
    try:
        return registry.get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from e


async def _act(registry: SessionRegistry, session_id: UUID, action: Action) -> SessionSnapshot:
    """Run one learner action against a session and return its new snapshot."""

    orch = _get_session(registry, session_id)
    async with registry.lock_for(session_id):
        try:
            result = action(orch)
            if inspect.isawaitable(result):
                await result
        except InvalidTransition as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    await _broadcast(orch)
    return orch.snapshot()


@router.websocket("/ws/session/{session_id}")
async def session_updates_ws(
    websocket: WebSocket,
    session_id: UUID,
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    try:
        current = registry.get(session_id).snapshot()
    except SessionNotFound:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await hub.connect(session_id, websocket, current=current)
    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(session_id, websocket)
    except Exception:
        await hub.disconnect(session_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ---- session lifecycle ----


@router.post("/session", response_model=SessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    registry: SessionRegistry = Depends(get_registry),
    factory: Callable[[], SessionOrchestrator] = Depends(get_orchestrator_factory),
) -> SessionSnapshot:
    orch = registry.open(factory)
    # Timer-driven changes (feedback delays, quiz auto-return) are pushed over the socket.
    orch.add_listener(_broadcast)
    return orch.snapshot()


@router.get("/session/{session_id}", response_model=SessionSnapshot)
async def get_session_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return _get_session(registry, session_id).snapshot()


@router.delete("/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> None:
    try:
        registry.close(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from e
    await hub.end_session(session_id, reason="closed")


# ---- homework -> game / solution ----


@router.post("/session/{session_id}/homework", response_model=SessionSnapshot)
async def submit_homework_route(
    session_id: UUID,
    payload: HomeworkRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    if payload.has_image:
        try:
            payload.image_data_url()
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid image data") from e

    homework = HomeworkInput(text=payload.text, image_base64=payload.image_base64, image_mime=payload.image_mime)
    return await _act(registry, session_id, lambda o: o.submit_homework(homework, mode=payload.mode))


@router.post("/session/{session_id}/select", response_model=SessionSnapshot)
async def select_item_route(
    session_id: UUID,
    payload: SelectItemRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.select_item(payload.item_id))


@router.post("/session/{session_id}/answer", response_model=SessionSnapshot)
async def submit_answer_route(
    session_id: UUID,
    payload: AnswerRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.submit_answer(payload.index))


@router.post("/session/{session_id}/continue", response_model=SessionSnapshot)
async def continue_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.continue_selecting())


@router.post("/session/{session_id}/home", response_model=SessionSnapshot)
async def go_home_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.go_home())


# ---- topic mastery ----


@router.post("/session/{session_id}/topic/start", response_model=SessionSnapshot)
async def start_topic_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.start_topic())


@router.post("/session/{session_id}/topic/pain-point", response_model=SessionSnapshot)
async def pain_point_route(
    session_id: UUID,
    payload: PainPointRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.submit_pain_point(payload.pain_point))


@router.post("/session/{session_id}/topic/objective", response_model=SessionSnapshot)
async def select_objective_route(
    session_id: UUID,
    payload: ObjectiveRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.select_objective(payload.objective_id))


@router.post("/session/{session_id}/topic/lesson/back", response_model=SessionSnapshot)
async def lesson_back_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.back_to_plan())


@router.post("/session/{session_id}/topic/challenge", response_model=SessionSnapshot)
async def challenge_route(
    session_id: UUID,
    payload: ChallengeAnswerRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.submit_challenge_answer(payload.answer))


@router.post("/session/{session_id}/topic/quiz/answer", response_model=SessionSnapshot)
async def quiz_answer_route(
    session_id: UUID,
    payload: AnswerRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.submit_quiz_answer(payload.index))


@router.post("/session/{session_id}/topic/quiz/finish", response_model=SessionSnapshot)
async def finish_quiz_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionSnapshot:
    return await _act(registry, session_id, lambda o: o.finish_quiz())


# ---- analytics ----


@router.get("/events")
async def list_events_route(
    count: int = 50,
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> dict[str, list[dict[str, Any]]]:
    """Most recent analytics events, newest first (dev aid)."""

    return {"events": read_events(r=r, stream_key=settings.events_stream, count=count)}
