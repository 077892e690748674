import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from kijumbe.database import Base


class DeliveryRecord(Base):
    __tablename__ = "whatsapp_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(String(32), nullable=False, index=True)
    body = Column(Text, nullable=False)
    kind = Column(String(16), nullable=False, default="text")
    direction = Column(String(16), nullable=False, default="outgoing")
    status = Column(String(16), nullable=False)
    attempts = Column(Integer, nullable=False, default=1)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
