from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from leadflow.database import Base


class DelayedAction(Base):
    __tablename__ = "delayed_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_key = Column(Text, nullable=False, index=True)
    instance = Column(Text)
    sequence = Column(Text, nullable=False)  # welcome, handoff_release
    step = Column(Integer, nullable=False)
    kind = Column(Text, nullable=False, default="text")  # text, audio, release_handoff
    payload = Column(Text)
    due_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
