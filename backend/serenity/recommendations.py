import logging
import uuid
from typing import Any, Iterable

from fastapi import APIRouter, Depends, Response, status

from . import auth as auth_utils
from .db import get_gateway
from .errors import AuthError, NotFoundError
from .gateway import SAVED_RECOMMENDATIONS, PersistenceGateway
from .schemas import RecommendationCreate, RecommendationOut


logger = logging.getLogger("serenity.recommendations")

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


class RecommendationStore:
    """Saved recommendations, owned by and visible to one user only."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def save(
        self,
        owner_id: str | None,
        type: str,
        content: str,
        emotion: str,
        tags: Iterable[str] = (),
    ) -> RecommendationOut:
        if not owner_id:
            raise AuthError("Sign in to save recommendations")
        record = {
            "user_id": owner_id,
            "type": type,
            "content": content,
            "emotion": emotion,
            "tags": list(dict.fromkeys(tag.strip() for tag in tags if tag.strip())),
            "created_at": self._gateway.now(),
        }
        rec_id = await self._gateway.insert(SAVED_RECOMMENDATIONS, record)
        return RecommendationOut.model_validate({**record, "id": rec_id})

    async def list_saved(self, owner_id: str | None) -> list[RecommendationOut]:
        if not owner_id:
            raise AuthError("Sign in to view saved recommendations")
        records = await self._gateway.query_by_owner(
            SAVED_RECOMMENDATIONS, owner_id, order_by="created_at", direction="desc"
        )
        return [RecommendationOut.model_validate(record) for record in records]

    async def delete(self, rec_id: Any, owner_id: str | None) -> None:
        if not owner_id:
            raise AuthError("Sign in to manage saved recommendations")
        deleted = await self._gateway.delete_by_id(SAVED_RECOMMENDATIONS, rec_id, owner_id)
        if not deleted:
            raise NotFoundError("Recommendation not found")
        logger.info("Deleted saved recommendation %s", rec_id)


@router.get("", response_model=list[RecommendationOut])
async def list_recommendations(
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[RecommendationOut]:
    """List the user's saved recommendations, newest first."""
    return await RecommendationStore(gateway).list_saved(user_id)


@router.post("", response_model=RecommendationOut, status_code=status.HTTP_201_CREATED)
async def save_recommendation(
    payload: RecommendationCreate,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> RecommendationOut:
    return await RecommendationStore(gateway).save(
        user_id,
        type=payload.type,
        content=payload.content,
        emotion=payload.emotion,
        tags=payload.tags,
    )


@router.delete("/{rec_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recommendation(
    rec_id: uuid.UUID,
    user_id: str | None = Depends(auth_utils.get_current_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> Response:
    """Delete one saved recommendation owned by the authenticated user."""
    await RecommendationStore(gateway).delete(rec_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
