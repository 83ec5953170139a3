from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import get_current_user, require_role, UserPrincipal
from app.database import get_db
from app.exceptions import AppointmentNotFoundError, MessageNotFoundError, UnauthorizedActionError
from app.schemas.chat import ChatThread, MessageCreate, MessageResponse
from app.services.chat_service import chat_service

router = APIRouter()


@router.get("/threads", response_model=list[ChatThread])
async def list_threads(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient", "doctor")),
):
    return await chat_service.threads(db, current_user.actor_id, current_user.role)


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient", "doctor")),
):
    return {"unread_count": await chat_service.unread_count(db, current_user.actor_id, current_user.role)}


@router.get("/appointments/{appointment_id}/messages", response_model=list[MessageResponse])
async def get_messages(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    try:
        await chat_service.ensure_participant(db, appointment_id, current_user.actor_id, current_user.role)
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedActionError as e:
        raise HTTPException(status_code=403, detail=e.reason)

    if current_user.role in ("patient", "doctor"):
        await chat_service.mark_as_read(db, appointment_id, current_user.role)
    return await chat_service.get_messages(db, appointment_id)


@router.post("/appointments/{appointment_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    appointment_id: int,
    data: MessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient", "doctor")),
):
    try:
        message = await chat_service.send_message(
            db, appointment_id, current_user.actor_id, current_user.role, data.message
        )
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedActionError as e:
        raise HTTPException(status_code=403, detail=e.reason)
    return MessageResponse.model_validate(message)


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    try:
        await chat_service.delete_message(db, message_id, current_user.actor_id, current_user.role)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedActionError as e:
        raise HTTPException(status_code=403, detail=e.reason)
    return {"deleted": True, "message_id": message_id}
