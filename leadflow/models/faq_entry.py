from sqlalchemy import Boolean, Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from leadflow.database import Base


class FaqEntry(Base):
    __tablename__ = "faq_entries"

    id = Column(Integer, primary_key=True)
    text = Column(Text, nullable=False)
    is_pending = Column(Boolean, nullable=False, default=False)  # no manager answer yet
    is_spam = Column(Boolean, nullable=False, default=False)
    embedding = Column(Text)  # JSON array of floats
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
