import uuid

from fastapi import APIRouter, Depends, status

from . import auth as auth_utils
from .channels import TextEmotionChannel
from .conversation import ConversationLog
from .db import get_gateway
from .fusion import fuse
from .gateway import PersistenceGateway
from .lifecycle import SessionManager
from .schemas import (
    EmotionSampleOut,
    MessageCreate,
    MessageOut,
    ObservationBatch,
    ObservationOut,
    SessionCreate,
    SessionEnd,
    SessionOut,
    StrategyOut,
    TurnCreate,
    TurnOut,
)
from .therapy import TherapyService


router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def get_session_manager(gateway: PersistenceGateway = Depends(get_gateway)) -> SessionManager:
    return SessionManager(gateway)


def get_conversation_log(
    gateway: PersistenceGateway = Depends(get_gateway),
    sessions: SessionManager = Depends(get_session_manager),
) -> ConversationLog:
    return ConversationLog(gateway, sessions)


def get_therapy_service(
    sessions: SessionManager = Depends(get_session_manager),
    log: ConversationLog = Depends(get_conversation_log),
) -> TherapyService:
    return TherapyService(sessions, log, text_channel=TextEmotionChannel())


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate | None = None,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionOut:
    """Open a new therapy session.

    The session starts active and stays that way until it is ended
    through `/end`.  The optional title is display metadata only.
    """
    title = payload.title if payload else None
    return await sessions.open(user_id, title=title)


@router.get("", response_model=list[SessionOut])
async def list_sessions(
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
) -> list[SessionOut]:
    """List sessions for the authenticated user, newest first."""
    return await sessions.list_sessions(user_id)


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(
    session_id: uuid.UUID,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionOut:
    """Fetch one session by id for the authenticated user."""
    return await sessions.get(session_id, user_id)


@router.post("/{session_id}/end", response_model=SessionOut)
async def end_session(
    session_id: uuid.UUID,
    payload: SessionEnd,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionOut:
    """Close an active session with its summary and overall mood.

    Ending a session twice is a 409, not a silent success.
    """
    return await sessions.close(session_id, user_id, payload.summary, payload.overall_mood)


@router.get("/{session_id}/messages", response_model=list[MessageOut])
async def read_messages(
    session_id: uuid.UUID,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
) -> list[MessageOut]:
    return await log.read(session_id, user_id)


@router.post("/{session_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def append_message(
    session_id: uuid.UUID,
    payload: MessageCreate,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
) -> MessageOut:
    """Append one turn; any observations are fused before tagging it."""
    observation = None
    if payload.observations:
        observation = fuse(item.to_observation() for item in payload.observations)
    return await log.append(session_id, user_id, payload.role, payload.content, observation)


@router.get("/{session_id}/emotions", response_model=list[EmotionSampleOut])
async def read_emotions(
    session_id: uuid.UUID,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
) -> list[EmotionSampleOut]:
    return await log.timeline(session_id, user_id)


@router.post("/{session_id}/emotions", response_model=EmotionSampleOut, status_code=status.HTTP_201_CREATED)
async def record_emotions(
    session_id: uuid.UUID,
    payload: ObservationBatch,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
) -> EmotionSampleOut:
    """Fuse a batch of channel readings into one timeline entry."""
    observation = fuse(item.to_observation() for item in payload.observations)
    return await log.record_observation(session_id, user_id, observation)


@router.post("/{session_id}/turns", response_model=TurnOut, status_code=status.HTTP_201_CREATED)
async def take_turn(
    session_id: uuid.UUID,
    payload: TurnCreate,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    therapy: TherapyService = Depends(get_therapy_service),
) -> TurnOut:
    """Record a user turn and reply with the emotion-adapted assistant turn."""
    result = await therapy.take_turn(
        session_id,
        user_id,
        payload.content,
        [item.to_observation() for item in payload.observations],
    )
    return TurnOut(
        user_message=result.user_message,
        assistant_message=result.assistant_message,
        observation=(
            ObservationOut.from_observation(result.observation) if result.observation else None
        ),
        strategy=StrategyOut(
            name=result.strategy.name,
            approach=result.strategy.approach,
            message=result.strategy.message,
        ),
    )


@router.get("/{session_id}/mood")
async def suggest_mood(
    session_id: uuid.UUID,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    therapy: TherapyService = Depends(get_therapy_service),
) -> dict[str, str]:
    """Suggest an overall mood from the session's emotion timeline."""
    mood = await therapy.suggest_overall_mood(session_id, user_id)
    return {"overall_mood": mood.value}
