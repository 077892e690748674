"""Storage of profiles, groups, contributions and delivery records."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kijumbe.logging_config import get_logger, mask_phone
from kijumbe.models import DeliveryRecord, Group, Membership, Transaction, User
from kijumbe.schemas.profile import (
    ContributionRecord,
    GroupSummary,
    JoinResult,
    JoinStatus,
    Role,
    TransactionSummary,
    UserProfile,
)

logger = get_logger("persistence_service")

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
CODE_ATTEMPTS = 5
HISTORY_LIMIT = 10


class Persistence(Protocol):
    def find_user_by_phone(self, phone: str) -> Optional[UserProfile]: ...

    def create_user(self, phone: str, role: Role, name: str) -> UserProfile: ...

    def update_user_name(self, phone: str, name: str) -> Optional[UserProfile]: ...

    def find_groups_for_user(self, user: UserProfile) -> list[GroupSummary]: ...

    def create_contribution_record(self, user: UserProfile, group_id: UUID, amount: int) -> ContributionRecord: ...

    def create_group(
        self, leader: UserProfile, name: str, contribution_amount: int, max_members: int
    ) -> GroupSummary: ...

    def join_group(self, user: UserProfile, code: str) -> JoinResult: ...

    def list_transactions(self, user: UserProfile, limit: int = HISTORY_LIMIT) -> list[TransactionSummary]: ...

    def record_delivery(
        self, phone: str, body: str, kind: str, status: str, attempts: int, error: Optional[str] = None
    ) -> None: ...


def generate_group_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def next_payout_date(now: Optional[datetime] = None) -> datetime:
    """First day of the following month."""
    now = now or datetime.now(timezone.utc)
    if now.month == 12:
        return now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def _leader_summary(group: Group) -> GroupSummary:
    return GroupSummary(
        id=group.id,
        code=group.code,
        name=group.name,
        contribution_amount=group.contribution_amount,
        current_members=group.current_members,
        max_members=group.max_members,
        balance=group.total_balance or 0,
    )


def _member_summary(group: Group, membership: Membership, leader_name: Optional[str] = None) -> GroupSummary:
    return GroupSummary(
        id=group.id,
        code=group.code,
        name=group.name,
        contribution_amount=group.contribution_amount,
        current_members=group.current_members,
        max_members=group.max_members,
        balance=membership.balance or 0,
        member_number=membership.member_number,
        leader_name=leader_name,
    )


class SqlPersistence:
    """SQLAlchemy implementation; each call runs in its own short session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def find_user_by_phone(self, phone: str) -> Optional[UserProfile]:
        with self._session_factory() as db:
            user = db.execute(select(User).where(User.phone == phone)).scalar_one_or_none()
            return UserProfile.model_validate(user) if user else None

    def create_user(self, phone: str, role: Role, name: str) -> UserProfile:
        with self._session_factory() as db:
            user = User(phone=phone, role=role.value, name=name.strip(), status="active")
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info("User registered", extra={"context": {"phone": mask_phone(phone), "role": role.value}})
            return UserProfile.model_validate(user)

    def update_user_name(self, phone: str, name: str) -> Optional[UserProfile]:
        with self._session_factory() as db:
            user = db.execute(select(User).where(User.phone == phone)).scalar_one_or_none()
            if user is None:
                return None
            user.name = name.strip()
            db.commit()
            db.refresh(user)
            return UserProfile.model_validate(user)

    def find_groups_for_user(self, user: UserProfile) -> list[GroupSummary]:
        with self._session_factory() as db:
            if user.is_leader:
                groups = db.execute(
                    select(Group).where(Group.leader_id == user.id).order_by(Group.created_at)
                ).scalars()
                return [_leader_summary(group) for group in groups]

            rows = db.execute(
                select(Group, Membership, User.name)
                .join(Membership, Membership.group_id == Group.id)
                .join(User, User.id == Group.leader_id)
                .where(Membership.user_id == user.id)
                .order_by(Membership.joined_at)
            ).all()
            return [_member_summary(group, membership, leader_name) for group, membership, leader_name in rows]

    def create_contribution_record(self, user: UserProfile, group_id: UUID, amount: int) -> ContributionRecord:
        with self._session_factory() as db:
            group = db.get(Group, group_id)
            if group is None:
                raise LookupError(f"group {group_id} not found")
            transaction = Transaction(
                group_id=group.id,
                user_id=user.id,
                type="contribution",
                amount=amount,
                description=f"Mchango kupitia WhatsApp Bot - {amount:,} TZS",
                status="pending",
                payment_method="whatsapp_bot",
            )
            db.add(transaction)
            db.commit()
            db.refresh(transaction)
            logger.info(
                "Contribution recorded",
                extra={"context": {"transaction_id": str(transaction.id), "group_id": str(group.id), "amount": amount}},
            )
            return ContributionRecord(id=transaction.id, group_name=group.name, amount=amount, status=transaction.status)

    def create_group(self, leader: UserProfile, name: str, contribution_amount: int, max_members: int) -> GroupSummary:
        last_error: Optional[IntegrityError] = None
        for _ in range(CODE_ATTEMPTS):
            with self._session_factory() as db:
                group = Group(
                    code=generate_group_code(),
                    name=name.strip(),
                    leader_id=leader.id,
                    contribution_amount=contribution_amount,
                    max_members=max_members,
                    current_members=0,
                    total_balance=0,
                    status="active",
                    next_payout_date=next_payout_date(),
                )
                db.add(group)
                try:
                    db.commit()
                except IntegrityError as exc:
                    # Code collision; roll back and draw another
                    db.rollback()
                    last_error = exc
                    continue
                db.refresh(group)
                logger.info("Group created", extra={"context": {"group_id": str(group.id), "code": group.code}})
                return _leader_summary(group)
        raise RuntimeError("could not allocate a unique group code") from last_error

    def join_group(self, user: UserProfile, code: str) -> JoinResult:
        code = code.strip().upper()
        with self._session_factory() as db:
            group = db.execute(
                select(Group).where(Group.code == code, Group.status == "active")
            ).scalar_one_or_none()
            if group is None:
                return JoinResult(status=JoinStatus.NOT_FOUND, code=code)

            leader_name = db.execute(select(User.name).where(User.id == group.leader_id)).scalar_one_or_none()
            existing = db.execute(
                select(Membership).where(Membership.user_id == user.id, Membership.group_id == group.id)
            ).scalar_one_or_none()
            if existing is not None:
                return JoinResult(
                    status=JoinStatus.ALREADY_MEMBER,
                    code=code,
                    group=_member_summary(group, existing, leader_name),
                    member_number=existing.member_number,
                )

            if group.current_members >= group.max_members:
                return JoinResult(status=JoinStatus.FULL, code=code, group=_leader_summary(group))

            member_number = group.current_members + 1
            membership = Membership(
                user_id=user.id,
                group_id=group.id,
                member_number=member_number,
                balance=0,
                contributions=0,
                status="active",
            )
            db.add(membership)
            group.current_members = member_number
            db.commit()
            db.refresh(group)
            db.refresh(membership)
            logger.info(
                "Member joined group",
                extra={"context": {"group_id": str(group.id), "member_number": member_number}},
            )
            return JoinResult(
                status=JoinStatus.JOINED,
                code=code,
                group=_member_summary(group, membership, leader_name),
                member_number=member_number,
            )

    def list_transactions(self, user: UserProfile, limit: int = HISTORY_LIMIT) -> list[TransactionSummary]:
        with self._session_factory() as db:
            rows = db.execute(
                select(Transaction)
                .where(Transaction.user_id == user.id)
                .order_by(Transaction.created_at.desc())
                .limit(limit)
            ).scalars()
            return [TransactionSummary.model_validate(row) for row in rows]

    def record_delivery(
        self, phone: str, body: str, kind: str, status: str, attempts: int, error: Optional[str] = None
    ) -> None:
        with self._session_factory() as db:
            db.add(
                DeliveryRecord(
                    phone_number=phone,
                    body=body,
                    kind=kind,
                    direction="outgoing",
                    status=status,
                    attempts=attempts,
                    error=error,
                )
            )
            db.commit()

    def count_deliveries(self, status: Optional[str] = None) -> int:
        with self._session_factory() as db:
            query = select(func.count(DeliveryRecord.id))
            if status:
                query = query.where(DeliveryRecord.status == status)
            return db.execute(query).scalar_one()
