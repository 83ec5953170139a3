"""
Patient/doctor chat scoped to a single appointment.

Authorization here fails closed: a sender who is not the appointment's
patient or doctor gets UnauthorizedActionError, which routers surface as 403.
Read-side helpers degrade to empty results on database faults.
"""

from typing import Optional
from loguru import logger
from sqlalchemy import select, func, update, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.exceptions import AppointmentNotFoundError, MessageNotFoundError, UnauthorizedActionError
from app.models.appointment import Appointment
from app.models.doctor import Doctor
from app.models.message import Message
from app.models.patient import Patient

SENDER_ROLES = ("patient", "doctor")


def is_participant(appointment: Appointment, user_id: int, role: str) -> bool:
    if role == "patient":
        return appointment.patient_id == user_id
    if role == "doctor":
        return appointment.doctor_id == user_id
    return False


class ChatService:
    async def send_message(
        self,
        db: AsyncSession,
        appointment_id: int,
        sender_id: int,
        sender_role: str,
        text: str,
    ) -> Message:
        appointment = await db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)

        if sender_role not in SENDER_ROLES or not is_participant(appointment, sender_id, sender_role):
            logger.warning(
                f"Rejected chat message: {sender_role} {sender_id} is not part of appointment {appointment_id}"
            )
            raise UnauthorizedActionError(
                "sender not part of this appointment",
                {"appointment_id": appointment_id, "sender_id": sender_id, "sender_role": sender_role},
            )

        message = Message(
            appointment_id=appointment_id,
            sender_id=sender_id,
            sender_role=sender_role,
            message=text,
        )
        db.add(message)
        await db.flush()
        await db.refresh(message)
        return message

    async def ensure_participant(self, db: AsyncSession, appointment_id: int, user_id: int, role: str) -> Appointment:
        appointment = await db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        if role != "admin" and not is_participant(appointment, user_id, role):
            raise UnauthorizedActionError("not part of this appointment", {"appointment_id": appointment_id})
        return appointment

    async def get_messages(self, db: AsyncSession, appointment_id: int) -> list[dict]:
        sender_name = case(
            (Message.sender_role == "patient", Patient.name),
            (Message.sender_role == "doctor", Doctor.name),
        ).label("sender_name")
        try:
            result = await db.execute(
                select(Message, sender_name)
                .outerjoin(Patient, (Message.sender_id == Patient.id) & (Message.sender_role == "patient"))
                .outerjoin(Doctor, (Message.sender_id == Doctor.id) & (Message.sender_role == "doctor"))
                .where(Message.appointment_id == appointment_id)
                .order_by(Message.timestamp.asc())
            )
        except SQLAlchemyError as e:
            logger.error(f"Get messages failed for appointment {appointment_id}: {e}")
            return []
        return [
            {
                "id": m.id,
                "appointment_id": m.appointment_id,
                "sender_id": m.sender_id,
                "sender_role": m.sender_role,
                "sender_name": name,
                "message": m.message,
                "is_read": m.is_read,
                "timestamp": m.timestamp,
            }
            for m, name in result.all()
        ]

    async def mark_as_read(self, db: AsyncSession, appointment_id: int, reader_role: str) -> int:
        """Mark the other party's unread messages as read; returns how many changed."""
        result = await db.execute(
            update(Message)
            .where(
                Message.appointment_id == appointment_id,
                Message.sender_role != reader_role,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await db.flush()
        return result.rowcount or 0

    async def unread_count(self, db: AsyncSession, user_id: int, role: str) -> int:
        if role == "patient":
            owner, other_role = Appointment.patient_id, "doctor"
        elif role == "doctor":
            owner, other_role = Appointment.doctor_id, "patient"
        else:
            return 0
        try:
            count = await db.scalar(
                select(func.count(Message.id))
                .join(Appointment, Message.appointment_id == Appointment.id)
                .where(owner == user_id, Message.sender_role == other_role, Message.is_read.is_(False))
            )
        except SQLAlchemyError as e:
            logger.error(f"Unread count failed for {role} {user_id}: {e}")
            return 0
        return int(count or 0)

    async def threads(self, db: AsyncSession, user_id: int, role: str) -> list[dict]:
        """Appointments of the user with message counts, most recently active first."""
        if role == "patient":
            counterpart, owner = Doctor, Appointment.patient_id
            join_on = Appointment.doctor_id == Doctor.id
        elif role == "doctor":
            counterpart, owner = Patient, Appointment.doctor_id
            join_on = Appointment.patient_id == Patient.id
        else:
            return []

        last_message = func.max(Message.timestamp).label("last_message_time")
        try:
            result = await db.execute(
                select(
                    Appointment.id,
                    counterpart.name,
                    Appointment.start_time,
                    Appointment.end_time,
                    Appointment.status,
                    func.count(Message.id).label("message_count"),
                    last_message,
                )
                .join(counterpart, join_on)
                .outerjoin(Message, Message.appointment_id == Appointment.id)
                .where(owner == user_id)
                .group_by(Appointment.id, counterpart.name, Appointment.start_time, Appointment.end_time, Appointment.status)
                .order_by(last_message.desc().nulls_last())
            )
        except SQLAlchemyError as e:
            logger.error(f"Chat threads failed for {role} {user_id}: {e}")
            return []
        return [
            {
                "appointment_id": r[0],
                "counterpart_name": r[1],
                "start_time": r[2],
                "end_time": r[3],
                "status": r[4],
                "message_count": r[5],
                "last_message_time": r[6],
            }
            for r in result.all()
        ]

    async def delete_message(self, db: AsyncSession, message_id: int, user_id: Optional[int], role: str) -> None:
        message = await db.get(Message, message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        if role != "admin" and not (message.sender_id == user_id and message.sender_role == role):
            raise UnauthorizedActionError("can only delete own messages", {"message_id": message_id})
        await db.delete(message)
        await db.flush()


chat_service = ChatService()
