"""
Ожидаемый ввод пользователя.

У каждого пользователя не больше одного состояния. Состояния живут только
в памяти процесса и теряются при перезапуске.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from models.puppy_enums import AiMode, BirthDatePurpose, EventKind, InputStateKind


@dataclass(frozen=True)
class PendingInputState:
    kind: InputStateKind
    purpose: Optional[BirthDatePurpose] = None
    event_kind: Optional[EventKind] = None
    ai_mode: Optional[AiMode] = None

    @classmethod
    def none(cls) -> "PendingInputState":
        return cls(InputStateKind.NONE)

    @classmethod
    def awaiting_puppy_name(cls) -> "PendingInputState":
        return cls(InputStateKind.AWAITING_PUPPY_NAME)

    @classmethod
    def awaiting_birth_date(cls, purpose: BirthDatePurpose) -> "PendingInputState":
        return cls(InputStateKind.AWAITING_BIRTH_DATE, purpose=BirthDatePurpose(purpose))

    @classmethod
    def awaiting_weight(cls) -> "PendingInputState":
        return cls(InputStateKind.AWAITING_WEIGHT)

    @classmethod
    def awaiting_schedule_time(cls, event_kind: EventKind) -> "PendingInputState":
        return cls(InputStateKind.AWAITING_SCHEDULE_TIME, event_kind=EventKind(event_kind))

    @classmethod
    def ai(cls, mode: AiMode) -> "PendingInputState":
        return cls(InputStateKind.AI_MODE, ai_mode=AiMode(mode))

    @property
    def is_none(self) -> bool:
        return self.kind == InputStateKind.NONE


NO_STATE = PendingInputState.none()


class PendingStateStore:
    """user_id -> PendingInputState. Новое состояние всегда перезаписывает старое."""

    def __init__(self):
        self._states: Dict[str, PendingInputState] = {}

    def get(self, user_id: str) -> PendingInputState:
        return self._states.get(str(user_id), NO_STATE)

    def set(self, user_id: str, state: PendingInputState) -> None:
        if state.is_none:
            self.clear(user_id)
        else:
            self._states[str(user_id)] = state

    def clear(self, user_id: str) -> None:
        self._states.pop(str(user_id), None)

    def clear_all(self) -> None:
        self._states.clear()

    def __len__(self):
        return len(self._states)
