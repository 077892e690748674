import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.sql import func

from kijumbe.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    amount = Column(BigInteger, nullable=False)
    description = Column(Text)
    status = Column(String(16), nullable=False, default="pending")
    payment_method = Column(String(32), nullable=False, default="whatsapp_bot")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
