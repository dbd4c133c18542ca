"""
Chat API endpoints.

Buyer/seller conversations about a listing, with a Server-Sent Events feed
for live messages.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, AsyncGenerator, Optional, Union

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from marketplace.api.deps import ChatSvc, CurrentUser, ProfileStore
from marketplace.core.config import get_settings
from marketplace.core.exceptions import (
    BusinessLogicError,
    ChatError,
    ForbiddenError,
    NotFoundError,
    SendFailed,
    SessionResolutionFailed,
    SubscriptionError,
)
from marketplace.core.logger import setup_logger
from marketplace.models.chat import ChatMessage, ChatMessageCreate, ChatSession
from marketplace.models.profile import Profile

logger = setup_logger(__name__)

router = APIRouter()


# ===========================================
# Request/Response Models
# ===========================================


class StartChatRequest(BaseModel):
    """Request to open a chat about a listing."""

    listing_id: int = Field(..., ge=1)


class ChatSessionResponse(BaseModel):
    """Chat session as seen by one participant."""

    id: int
    listing_id: int
    buyer_id: str
    seller_id: str
    listing_name: Optional[str]
    listing_image_url: Optional[str]
    last_message: Optional[str]
    last_message_at: Optional[datetime]
    counterpart_id: str

    @classmethod
    def from_model(cls, session: ChatSession, user_id: str) -> "ChatSessionResponse":
        return cls(
            id=session.id,
            listing_id=session.listing_id,
            buyer_id=session.buyer_id,
            seller_id=session.seller_id,
            listing_name=session.listing_name,
            listing_image_url=session.listing_image_url,
            last_message=session.last_message,
            last_message_at=session.last_message_at,
            counterpart_id=session.counterpart_of(user_id),
        )


class ChatDetailResponse(BaseModel):
    """Session plus the other participant's profile (if available)."""

    session: ChatSessionResponse
    counterpart: Optional[Profile]


# ===========================================
# Helpers
# ===========================================


async def _get_session_or_error(chat_service, user_id: str, session_id: int) -> ChatSession:
    try:
        return await chat_service.get_session_for(user_id, session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


def format_sse(payload: dict[str, Any]) -> str:
    """Encode one SSE data frame."""
    return f"data: {json.dumps(payload, separators=(',', ':'), default=str)}\n\n"


# ===========================================
# Endpoints
# ===========================================


@router.post("", response_model=ChatSessionResponse)
async def start_chat(
    request: StartChatRequest,
    user: CurrentUser,
    chat_service: ChatSvc,
):
    """Open (or reopen) the caller's chat with the seller of a listing."""
    try:
        session = await chat_service.start_chat(user.id, request.listing_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessLogicError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ChatSessionResponse.from_model(session, user.id)


@router.get("", response_model=list[ChatSessionResponse])
async def list_chats(
    user: CurrentUser,
    chat_service: ChatSvc,
):
    """List the caller's chats, most recent message first."""
    sessions = await chat_service.list_chats(user.id)
    return [ChatSessionResponse.from_model(s, user.id) for s in sessions]


@router.get("/{session_id}", response_model=ChatDetailResponse)
async def get_chat(
    session_id: int,
    user: CurrentUser,
    chat_service: ChatSvc,
    profile_store: ProfileStore,
):
    """Get a chat session and the other participant."""
    session = await _get_session_or_error(chat_service, user.id, session_id)
    try:
        counterpart = await profile_store.get_profile(session.counterpart_of(user.id))
    except Exception as e:
        logger.warning("Chat %s: counterpart profile unavailable: %s", session_id, e)
        counterpart = None
    return ChatDetailResponse(
        session=ChatSessionResponse.from_model(session, user.id),
        counterpart=counterpart,
    )


@router.get("/{session_id}/messages", response_model=list[ChatMessage])
async def list_messages(
    session_id: int,
    user: CurrentUser,
    chat_service: ChatSvc,
):
    """Stored messages, oldest first."""
    try:
        return await chat_service.history(user.id, session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.post(
    "/{session_id}/messages",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED,
    responses={204: {"description": "Blank message ignored"}},
)
async def send_message(
    session_id: int,
    body: ChatMessageCreate,
    user: CurrentUser,
    chat_service: ChatSvc,
):
    """Send a message. Subscribers receive it through the stream."""
    try:
        message = await chat_service.send_message(user.id, session_id, body.text)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except SendFailed as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    if message is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return message


@router.get("/{session_id}/stream")
async def stream_chat(
    session_id: int,
    user: CurrentUser,
    request: Request,
    chat_service: ChatSvc,
) -> StreamingResponse:
    """
    Live chat feed.

    The first event carries the session, counterpart and current messages;
    each later event carries one new message. The feed ends with a
    "closed" event if the subscription drops.
    """
    await _get_session_or_error(chat_service, user.id, session_id)

    queue: asyncio.Queue[Union[ChatMessage, ChatError]] = asyncio.Queue()
    controller = chat_service.open_controller(
        session_id,
        user.id,
        on_message=queue.put_nowait,
        on_error=queue.put_nowait,
    )
    try:
        await controller.start()
    except SessionResolutionFailed as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SubscriptionError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    # Everything queued during start() is already in the snapshot
    snapshot = controller.messages
    while not queue.empty():
        queue.get_nowait()

    keepalive = get_settings().REALTIME_KEEPALIVE_SECONDS

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            yield format_sse(
                {
                    "type": "connected",
                    "session": ChatSessionResponse.from_model(
                        controller.session, user.id
                    ).model_dump(mode="json"),
                    "counterpart": (
                        controller.counterpart.model_dump(mode="json")
                        if controller.counterpart
                        else None
                    ),
                    "messages": [m.model_dump(mode="json") for m in snapshot],
                }
            )
            while True:
                if await request.is_disconnected():
                    break
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue

                if isinstance(item, ChatMessage):
                    yield format_sse({"type": "message", "message": item.model_dump(mode="json")})
                elif not controller.is_live:
                    yield format_sse({"type": "closed", "reason": item.message})
                    break
                else:
                    yield format_sse({"type": "error", "reason": item.message})
        finally:
            await controller.close()

    return StreamingResponse(event_generator(), media_type="text/event-stream")
