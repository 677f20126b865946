from sqlalchemy import Boolean, Column, DateTime, Float, Integer, Text
from sqlalchemy.sql import func

from leadflow.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_key = Column(Text, nullable=False, index=True)  # digits only, no @s.whatsapp.net
    name = Column(Text)
    origin_instance = Column(Text)
    stage = Column(Text, nullable=False, default="not_started")
    doc_stage = Column(Text, nullable=False, default="awaiting_docs")
    wants_human = Column(Boolean, nullable=False, default=False)

    # loan simulator wizard
    sim_step = Column(Text)
    sim_age = Column(Integer)
    sim_property_value = Column(Float)
    sim_term_years = Column(Integer)
    sim_down_payment = Column(Float)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
