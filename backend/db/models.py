from datetime import datetime
from sqlalchemy import Column, Integer, Text, DateTime

from db.database import Base


class UserRecord(Base):
    """One JSON document per user, keyed by normalized email."""

    __tablename__ = "users"

    email = Column(Text, primary_key=True)
    schema_version = Column(Integer, nullable=False, default=2)
    document = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PlanTasksRecord(Base):
    """Externalized task list of a plan, keyed by plan id."""

    __tablename__ = "plan_tasks"

    plan_id = Column(Text, primary_key=True)
    owner_email = Column(Text, nullable=True, index=True)
    tasks = Column(Text, nullable=False)  # JSON list
    task_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
