# Samoyed Mentor - Telegram assistant for puppy owners
# Copyright (C) 2025-2026 Olga Kalinina

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from api.dependencies.runtime import get_runtime
from api.schemas.schedule import ScheduleEventCreate, ScheduleEventResponse, ScheduleListResponse
from core.dialog.parsers import parse_time_of_day
from core.errors import CollaboratorError, ValidationError
from core.runtime import MentorRuntime
from infrastructure.database.models import ScheduleEvent
from infrastructure.logging.logger import setup_logger

logger = setup_logger("schedule_api")

router = APIRouter(prefix="/schedule", tags=["Schedule"])


def _to_response(runtime: MentorRuntime, event: ScheduleEvent) -> ScheduleEventResponse:
    return ScheduleEventResponse(
        id=event.id,
        user_id=event.user_id,
        event_kind=event.event_kind,
        label=event.label,
        time=event.time_str,
        reminder_time=runtime.scheduler.derive_spec(event).time_str,
    )


def _reschedule(runtime: MentorRuntime, user_id: str) -> None:
    try:
        runtime.scheduler.on_user_edited_schedule_list(user_id)
    except CollaboratorError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/{user_id}", response_model=ScheduleListResponse)
async def get_schedule(user_id: str, runtime: MentorRuntime = Depends(get_runtime)):
    """
    Возвращает режим дня пользователя.

    Для каждого события указано время напоминания (за REMINDER_OFFSET_MINUTES
    до события, с переходом через полночь).
    """
    try:
        events = runtime.repo.get_schedule_events(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Ошибка чтения режима дня {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    return ScheduleListResponse(
        user_id=user_id,
        events=[_to_response(runtime, event) for event in events],
        active_reminders=len(runtime.registry.handles(user_id)),
    )


@router.post("", response_model=ScheduleEventResponse)
async def add_schedule_event(req: ScheduleEventCreate, runtime: MentorRuntime = Depends(get_runtime)):
    """
    Добавляет событие и пересобирает напоминания пользователя.

    Raises:
        HTTPException: 400, если время не в формате ЧЧ:ММ.
    """
    try:
        hour, minute = parse_time_of_day(req.time)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        event = runtime.repo.add_schedule_event(req.user_id, req.event_kind.value, hour, minute, label=req.label)
    except SQLAlchemyError as e:
        logger.error(f"Ошибка добавления события для {req.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    _reschedule(runtime, req.user_id)
    logger.info(f"[schedule] {req.user_id}: добавлено {event.event_kind} {event.time_str}")
    return _to_response(runtime, event)


@router.delete("/{user_id}/{event_id}")
async def delete_schedule_event(user_id: str, event_id: int, runtime: MentorRuntime = Depends(get_runtime)):
    """
    Удаляет событие пользователя и отменяет напоминание о нём.

    Raises:
        HTTPException: 404, если событие не найдено или принадлежит другому пользователю.
    """
    try:
        deleted = runtime.repo.delete_schedule_event(user_id, event_id)
    except SQLAlchemyError as e:
        logger.error(f"Ошибка удаления события {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    if not deleted:
        raise HTTPException(status_code=404, detail="Event not found")

    _reschedule(runtime, user_id)
    return {"status": "ok"}
