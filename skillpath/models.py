from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON, String, Text

from skillpath.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    password_hash = Column(String, nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    learning_goals = Column(JSON, nullable=False, default=list)
    learning_style = Column(String, nullable=True)  # visual | auditory | kinesthetic
    resume_text = Column(Text, nullable=True)
    # set semantics, enforced by DocumentStore on write
    completed_modules = Column(JSON, nullable=False, default=list)
    badges = Column(JSON, nullable=False, default=list)
    saved_resources = Column(JSON, nullable=False, default=list)
    in_progress_resources = Column(JSON, nullable=False, default=list)
    completed_resources = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class LearningPath(Base):
    __tablename__ = "learning_paths"
    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    modules = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
