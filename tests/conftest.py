import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kijumbe.config import Settings
from kijumbe.database import Base
from kijumbe.main import app
from kijumbe.routers import deps
from kijumbe.schemas.profile import (
    ContributionRecord,
    GroupSummary,
    JoinResult,
    JoinStatus,
    Role,
    TransactionSummary,
    UserProfile,
)
from kijumbe.services.bot_service import BotService
from kijumbe.services.greenapi_service import GreenAPIClient
from kijumbe.services.result import Result


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeSender:
    """Records sends; `script` holds results handed out in order, then success."""

    def __init__(self, script: Optional[list] = None, clock: Optional[FakeClock] = None):
        self.script = list(script or [])
        self.clock = clock
        self.sent: list[dict] = []
        self.attempts = 0

    async def _next(self, **record) -> Result:
        self.attempts += 1
        result = self.script.pop(0) if self.script else Result.success({"idMessage": f"msg-{self.attempts}"})
        if result.ok:
            if self.clock is not None:
                record["at"] = self.clock.now
            self.sent.append(record)
        return result

    async def send_text(self, phone, message, quoted_message_id=None):
        return await self._next(kind="text", phone=phone, message=message)

    async def send_media(self, phone, media_url, caption="", file_name=None, media_type="jpg"):
        return await self._next(
            kind="media", phone=phone, message=caption, media_url=media_url, file_name=file_name, media_type=media_type
        )

    async def send_buttons(self, phone, message, buttons):
        return await self._next(kind="buttons", phone=phone, message=message, buttons=buttons)

    async def send_list(self, phone, message, sections):
        return await self._next(kind="list", phone=phone, message=message, sections=sections)


class FakePersistence:
    """In-memory Persistence with the same semantics as SqlPersistence."""

    def __init__(self):
        self.users: dict[str, UserProfile] = {}
        self.groups: dict[uuid.UUID, dict] = {}
        self.memberships: list[dict] = []
        self.transactions: list[dict] = []
        self.deliveries: list[dict] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    def add_user(self, phone: str, role: Role = Role.MEMBER, name: str = "Asha") -> UserProfile:
        profile = UserProfile(id=uuid.uuid4(), phone=phone, role=role, name=name, created_at=datetime.now(timezone.utc))
        self.users[phone] = profile
        return profile

    def add_group(self, leader: UserProfile, code: str = "ABC123", max_members: int = 10, name: str = "Akiba") -> dict:
        group = {
            "id": uuid.uuid4(),
            "code": code,
            "name": name,
            "leader_id": leader.id,
            "leader_name": leader.name,
            "contribution_amount": 50000,
            "max_members": max_members,
            "current_members": 0,
            "total_balance": 0,
        }
        self.groups[group["id"]] = group
        return group

    def add_membership(self, user: UserProfile, group: dict, balance: int = 0) -> None:
        group["current_members"] += 1
        self.memberships.append(
            {"user_id": user.id, "group_id": group["id"], "member_number": group["current_members"], "balance": balance}
        )

    def _summary(self, group: dict, membership: Optional[dict] = None) -> GroupSummary:
        return GroupSummary(
            id=group["id"],
            code=group["code"],
            name=group["name"],
            contribution_amount=group["contribution_amount"],
            current_members=group["current_members"],
            max_members=group["max_members"],
            balance=membership["balance"] if membership else group["total_balance"],
            member_number=membership["member_number"] if membership else None,
            leader_name=group["leader_name"],
        )

    def find_user_by_phone(self, phone):
        self._maybe_fail("find_user_by_phone")
        return self.users.get(phone)

    def create_user(self, phone, role, name):
        self._maybe_fail("create_user")
        return self.add_user(phone, role, name.strip())

    def update_user_name(self, phone, name):
        user = self.users.get(phone)
        if user is None:
            return None
        user.name = name
        return user

    def find_groups_for_user(self, user):
        self._maybe_fail("find_groups_for_user")
        if user.is_leader:
            return [self._summary(g) for g in self.groups.values() if g["leader_id"] == user.id]
        return [self._summary(self.groups[m["group_id"]], m) for m in self.memberships if m["user_id"] == user.id]

    def create_contribution_record(self, user, group_id, amount):
        self._maybe_fail("create_contribution_record")
        record = {
            "id": uuid.uuid4(),
            "user_id": user.id,
            "group_id": group_id,
            "type": "contribution",
            "amount": amount,
            "status": "pending",
            "created_at": datetime.now(timezone.utc),
        }
        self.transactions.append(record)
        return ContributionRecord(id=record["id"], group_name=self.groups[group_id]["name"], amount=amount)

    def create_group(self, leader, name, contribution_amount, max_members):
        self._maybe_fail("create_group")
        group = self.add_group(leader, code=uuid.uuid4().hex[-6:].upper(), max_members=max_members, name=name)
        group["contribution_amount"] = contribution_amount
        return self._summary(group)

    def join_group(self, user, code):
        self._maybe_fail("join_group")
        group = next((g for g in self.groups.values() if g["code"] == code.upper()), None)
        if group is None:
            return JoinResult(status=JoinStatus.NOT_FOUND, code=code)
        existing = next(
            (m for m in self.memberships if m["user_id"] == user.id and m["group_id"] == group["id"]), None
        )
        if existing:
            return JoinResult(
                status=JoinStatus.ALREADY_MEMBER,
                code=code,
                group=self._summary(group, existing),
                member_number=existing["member_number"],
            )
        if group["current_members"] >= group["max_members"]:
            return JoinResult(status=JoinStatus.FULL, code=code, group=self._summary(group))
        self.add_membership(user, group)
        membership = self.memberships[-1]
        return JoinResult(
            status=JoinStatus.JOINED,
            code=code,
            group=self._summary(group, membership),
            member_number=membership["member_number"],
        )

    def list_transactions(self, user, limit=10):
        rows = [t for t in self.transactions if t["user_id"] == user.id][::-1][:limit]
        return [TransactionSummary(type=t["type"], amount=t["amount"], status=t["status"], created_at=t["created_at"]) for t in rows]

    def record_delivery(self, phone, body, kind, status, attempts, error=None):
        self.deliveries.append(
            {"phone": phone, "body": body, "kind": kind, "status": status, "attempts": attempts, "error": error}
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def session_factory():
    """sessionmaker bound to a fresh in-memory SQLite database."""
    import kijumbe.models  # noqa: F401

    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("GREENAPI_ID_INSTANCE", "1101000001")
    monkeypatch.setenv("GREENAPI_API_TOKEN_INSTANCE", "test-token")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")


def greenapi_handler(request: httpx.Request) -> httpx.Response:
    """MockTransport handler answering the Green API calls the bot makes."""
    path = request.url.path
    if "/getStateInstance/" in path:
        return httpx.Response(200, json={"stateInstance": "authorized"})
    if "/getSettings/" in path:
        return httpx.Response(200, json={"webhookUrl": "", "delaySendMessagesMilliseconds": 1000})
    if "/setSettings/" in path:
        return httpx.Response(200, json={"saveSettings": True})
    if "/receiveNotification/" in path:
        return httpx.Response(200, content=b"null")
    return httpx.Response(200, json={"idMessage": "BAE5000000000001"})


@pytest.fixture
def bot(persistence):
    """BotService with a mocked gateway; queue and dispatch drains are held so tests see buffered state."""
    settings = Settings(
        greenapi_id_instance="1101000001",
        greenapi_api_token_instance="test-token",
        greenapi_webhook_secret="",
        bot_enabled=True,
    )
    client = GreenAPIClient(
        api_url="https://api.green-api.com",
        id_instance="1101000001",
        api_token="test-token",
        transport=httpx.MockTransport(greenapi_handler),
    )
    service = BotService(settings, client=client, persistence=persistence)
    service.outbox._processing = True
    service.poller._processing = True
    return service


@pytest.fixture
def admin_token(monkeypatch):
    monkeypatch.setattr(deps.settings, "admin_token", "test-admin-token")
    return "test-admin-token"


@pytest.fixture
def api(bot):
    app.dependency_overrides[deps.get_bot] = lambda: bot
    yield TestClient(app)
    app.dependency_overrides.clear()
