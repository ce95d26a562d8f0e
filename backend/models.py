from sqlalchemy import Column, Integer, String, Float, Text, DateTime, func
from sqlalchemy.orm import DeclarativeBase
import datetime


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime.datetime:
    # Stored naive, always UTC.
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value is not None else None


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    call_id = Column(String, unique=True, nullable=False)
    job_role = Column(String, nullable=False, default="Software Engineer")
    transcript = Column(Text, nullable=False, default="")
    feedback = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="started")  # started, completed, terminated
    duration = Column(Float, default=0.0)  # seconds
    user_id = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    terminated_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "callId": self.call_id,
            "jobRole": self.job_role,
            "transcript": self.transcript,
            "feedback": self.feedback,
            "status": self.status,
            "duration": self.duration,
            "userId": self.user_id,
            "startedAt": _iso(self.started_at),
            "endedAt": _iso(self.ended_at),
            "terminatedAt": _iso(self.terminated_at),
            "cancelledBy": self.cancelled_by,
            "createdAt": _iso(self.created_at),
        }


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False)
    subscribed_at = Column(DateTime, default=func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "subscribedAt": _iso(self.subscribed_at)}


class PlatformFeedback(Base):
    __tablename__ = "platform_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True)
    rating = Column(Integer, nullable=True)  # 1-5
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "rating": self.rating,
            "message": self.message,
            "createdAt": _iso(self.created_at),
        }
