"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from app.storage import Base


DIRECTION_INCOMING = "incoming"
DIRECTION_OUTGOING = "outgoing"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(Base):
    """
    SQLAlchemy model for storing chat messages exchanged with a WhatsApp number.

    Table: chat_messages
    Unique Key: wamid (repeated webhook delivery is a no-op)
    """
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String, nullable=False, index=True)
    wamid = Column(String, nullable=False, unique=True, index=True)
    direction = Column(String, nullable=False)  # incoming | outgoing
    content = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
