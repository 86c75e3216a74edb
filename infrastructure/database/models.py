import time

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Float, BigInteger, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def now_ms() -> int:
    return int(time.time() * 1000)


class PuppyUser(Base):
    __tablename__ = "puppy_users"

    user_id = Column(String, primary_key=True)
    subscribed = Column(Boolean, default=True, nullable=False)
    puppy_name = Column(String, nullable=True)
    birth_date_ms = Column(BigInteger, nullable=True)  # полночь даты рождения в TIMEZONE
    created_at_ms = Column(BigInteger, default=now_ms, nullable=False)

    def __repr__(self):
        return (f"<PuppyUser user_id={self.user_id}, name={self.puppy_name}, "
                f"birth_date_ms={self.birth_date_ms}, subscribed={self.subscribed}>")


class ScheduleEvent(Base):
    __tablename__ = "schedule_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False, index=True)
    event_kind = Column(String, nullable=False)
    label = Column(String, nullable=True)  # свободная подпись для event_kind=other
    hour = Column(Integer, nullable=False)
    minute = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at_ms = Column(BigInteger, default=now_ms, nullable=False)

    @property
    def time_str(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def __repr__(self):
        return f"<ScheduleEvent id={self.id}, user_id={self.user_id}, kind={self.event_kind}, time={self.time_str}>"


class VaccinationEntry(Base):
    __tablename__ = "vaccinations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False)
    vaccination_type = Column(String, nullable=False)
    scheduled_at_ms = Column(BigInteger, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_vaccinations_user_scheduled", "user_id", "scheduled_at_ms"),
    )


class WeightLog(Base):
    __tablename__ = "weight_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False, index=True)
    weight = Column(Float, nullable=False)
    age_weeks = Column(Integer, nullable=False, default=0)
    timestamp_ms = Column(BigInteger, default=now_ms, nullable=False)


class FeedingLog(Base):
    __tablename__ = "feedings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False, index=True)
    fed_at_ms = Column(BigInteger, default=now_ms, nullable=False)


class WalkLog(Base):
    __tablename__ = "walks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False, index=True)
    success = Column(Boolean, nullable=False)  # True: сходил на улице, False: лужа дома
    walked_at_ms = Column(BigInteger, default=now_ms, nullable=False)


class CommandProgress(Base):
    __tablename__ = "command_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("puppy_users.user_id"), nullable=False)
    command = Column(String, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    updated_at_ms = Column(BigInteger, default=now_ms, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "command", name="uq_command_progress_user_command"),
    )
