import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from kijumbe.database import Base


class Group(Base):
    __tablename__ = "groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(6), unique=True, nullable=False, index=True)
    name = Column(Text, nullable=False)
    leader_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    contribution_amount = Column(BigInteger, nullable=False)
    max_members = Column(Integer, nullable=False)
    current_members = Column(Integer, nullable=False, default=0)
    total_balance = Column(BigInteger, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
    next_payout_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Membership(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("user_id", "group_id", name="uq_group_members_user_group"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=False, index=True)
    member_number = Column(Integer, nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    contributions = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
