"""Contract chat routes: history, sending, typing and the live socket."""

import asyncio
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_broker, get_channel_manager, get_current_user, raise_for_result
from app.api.schemas.message import MessageCreate, TypingRequest
from app.core.results import ErrorKind
from app.domain.models.chat import ChatMessage, TypingEvent
from app.domain.services.auth_service import AuthService
from app.domain.services.chat_channel_manager import ChatChannelManager
from app.domain.services.chat_service import ChatService
from app.domain.services.contract_service import ContractService
from app.infrastructure.realtime import RealtimeBroker
from app.persistence.database import get_db
from app.persistence.models.contract import Contract
from app.persistence.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()
messages_router = APIRouter()

# Close code sent when the socket is refused (RFC 6455 policy violation)
WS_POLICY_VIOLATION = 1008


def _error_frame(kind: ErrorKind, detail: str | None) -> dict[str, Any]:
    return {"type": "error", "data": {"kind": kind.value, "detail": detail}}


async def _participant_contract(db: AsyncSession, contract_id: int, user: User) -> Contract:
    contract = await ContractService(db).get_contract(contract_id)
    if contract is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Contract {contract_id} not found")
    if not contract.is_participant(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this conversation")
    return contract


@router.get("/{contract_id}/messages", response_model=list[ChatMessage])
async def get_messages(
    contract_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int | None, Query(ge=1, le=200)] = None,
) -> list[ChatMessage]:
    """Most recent messages of a contract, oldest first."""
    await _participant_contract(db, contract_id, current_user)
    return await ChatService(db).fetch_history(contract_id, limit)


@router.post("/{contract_id}/messages", response_model=ChatMessage, status_code=status.HTTP_201_CREATED)
async def send_message(
    contract_id: int,
    message_data: MessageCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    broker: Annotated[RealtimeBroker, Depends(get_broker)],
) -> ChatMessage:
    """Send a message; the contract must be approved and unexpired."""
    result = await ChatService(db, broker).send_message(current_user, message_data.content, contract_id)
    if not result.success:
        raise_for_result(result)
    return result.value


@messages_router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Delete a message; only its author may."""
    result = await ChatService(db).delete_message(message_id, current_user)
    if not result.success:
        raise_for_result(result)


@router.post("/{contract_id}/typing", status_code=status.HTTP_202_ACCEPTED)
async def notify_typing(
    contract_id: int,
    typing_data: TypingRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    channels: Annotated[ChatChannelManager, Depends(get_channel_manager)],
) -> dict[str, bool]:
    """Broadcast a typing signal to the other participant."""
    await _participant_contract(db, contract_id, current_user)
    await channels.notify_typing(
        current_user,
        typing_data.display_name or current_user.display_name or current_user.email,
        contract_id,
    )
    return {"accepted": True}


@router.websocket("/{contract_id}/ws")
async def contract_socket(
    websocket: WebSocket,
    contract_id: int,
    token: Annotated[str, Query()],
) -> None:
    """Live chat socket.

    Server frames are ``{"type": "message" | "typing" | "error", "data": {...}}``. The
    client may send ``{"type": "typing"}`` or
    ``{"type": "message", "content": "..."}``.
    """
    state = websocket.app.state
    async with state.session_factory() as db:
        user = await AuthService(db).get_current_user(token)
        contract = await ContractService(db).get_contract(contract_id) if user else None
    if user is None or contract is None or not contract.is_participant(user.id):
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    channels: ChatChannelManager = state.channel_manager

    async def on_message(message: ChatMessage) -> None:
        await outbox.put({"type": "message", "data": message.model_dump(mode="json")})

    async def on_typing(event: TypingEvent) -> None:
        if event.author_id != user.id:
            await outbox.put({"type": "typing", "data": event.model_dump(mode="json")})

    async def pump() -> None:
        while True:
            await websocket.send_json(await outbox.get())

    message_sub = await channels.subscribe_to_contract(contract_id, on_message)
    typing_sub = await channels.subscribe_to_typing(on_typing, contract_id)
    sender = asyncio.create_task(pump())
    try:
        while True:
            frame = await websocket.receive_json()
            kind = frame.get("type") if isinstance(frame, dict) else None
            if kind == "typing":
                await channels.notify_typing(user, user.display_name or user.email, contract_id)
            elif kind == "message":
                content = frame.get("content")
                if not isinstance(content, str):
                    await outbox.put(_error_frame(ErrorKind.VALIDATION, "Message content must be text"))
                    continue
                async with state.session_factory() as db:
                    result = await ChatService(db, state.broker).send_message(user, content, contract_id)
                if not result.success:
                    await outbox.put(_error_frame(result.error_kind, result.error))
    except WebSocketDisconnect:
        logger.debug(f"Socket closed for contract {contract_id}, user {user.id}")
    except ValueError:
        await websocket.close(code=WS_POLICY_VIOLATION)
    finally:
        sender.cancel()
        (outcome,) = await asyncio.gather(sender, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.debug(f"Socket sender for contract {contract_id} stopped: {outcome}")
        await message_sub.unsubscribe()
        await typing_sub.unsubscribe()
