from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    LEADER = "kiongozi"
    MEMBER = "mwanachama"

    @property
    def label(self) -> str:
        return "Kiongozi" if self is Role.LEADER else "Mwanachama"


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    phone: str
    role: Role
    name: str
    created_at: Optional[datetime] = None

    @property
    def is_leader(self) -> bool:
        return self.role is Role.LEADER


class GroupSummary(BaseModel):
    """A group as seen by one user: leaders see totals, members their own balance."""

    id: UUID
    code: str
    name: str
    contribution_amount: int
    current_members: int
    max_members: int
    balance: int = 0
    member_number: Optional[int] = None
    leader_name: Optional[str] = None


class ContributionRecord(BaseModel):
    id: UUID
    group_name: str
    amount: int
    status: str = "pending"

    @property
    def reference(self) -> str:
        return self.id.hex[-8:].upper()


class TransactionSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    amount: int
    status: str
    created_at: Optional[datetime] = None


class JoinStatus(str, Enum):
    JOINED = "joined"
    ALREADY_MEMBER = "already_member"
    FULL = "full"
    NOT_FOUND = "not_found"


class JoinResult(BaseModel):
    status: JoinStatus
    code: str
    group: Optional[GroupSummary] = None
    member_number: Optional[int] = None
