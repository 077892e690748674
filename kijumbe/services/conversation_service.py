"""Conversation engine: routes one inbound message to exactly one reply.

Order of precedence for a message:
    1. response cache hit for (subject, normalized text)
    2. registration, while the subject has no profile
    3. the active flow's current step
    4. automation rules, then the main menu as fallback
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from kijumbe.config import Settings, settings as default_settings
from kijumbe.logging_config import LoggerAdapter, get_logger, mask_phone
from kijumbe.schemas.profile import JoinStatus, Role, UserProfile
from kijumbe.services import templates
from kijumbe.services.automation_rules import AutomationRule, load_rules, match_rule, validate_rules
from kijumbe.services.outbox_service import OutboundQueue
from kijumbe.services.parsing import (
    has_digits,
    normalize,
    parse_amount,
    parse_group_code,
    parse_member_count,
    valid_group_name,
    valid_person_name,
)
from kijumbe.services.persistence_service import Persistence
from kijumbe.services.response_cache import ResponseCache
from kijumbe.services.session_store import Session, SessionStore
from kijumbe.services.state_machine import Flow, Step, StepOutcome

logger = get_logger("conversation_service")

RESET_WORDS = frozenset({"menu", "menyu", "sitisha", "cancel"})
ROLE_CHOICES = {
    "1": Role.LEADER,
    "kiongozi": Role.LEADER,
    "2": Role.MEMBER,
    "mwanachama": Role.MEMBER,
}


@dataclass
class TurnContext:
    subject_id: str
    text: str
    normalized: str
    session: Session
    profile: Optional[UserProfile] = None
    rule: Optional[AutomationRule] = None
    parts: list[str] = field(default_factory=list)

    def say(self, text: str) -> None:
        self.parts.append(text)

    def reply(self) -> str:
        return "\n\n".join(part for part in self.parts if part)


class ConversationEngine:
    def __init__(
        self,
        sessions: SessionStore,
        persistence: Persistence,
        outbox: OutboundQueue,
        cache: Optional[ResponseCache] = None,
        rules: Optional[tuple[AutomationRule, ...]] = None,
        settings: Settings = default_settings,
    ):
        self.sessions = sessions
        self.persistence = persistence
        self.outbox = outbox
        self.cache = cache or ResponseCache()
        self.settings = settings

        self.actions: dict[str, Callable[[TurnContext], None]] = {
            "send_main_menu": self._send_main_menu,
            "send_help_menu": self._send_help_menu,
            "send_creation_guide": self._send_creation_guide,
            "prompt_group_code": self._prompt_group_code,
            "prompt_contribution_amount": self._prompt_contribution_amount,
            "send_leader_contribution_notice": self._send_leader_contribution_notice,
            "render_groups": self._render_groups,
            "render_balance": self._render_balance,
            "render_history": self._render_history,
            "render_status": self._render_status,
            "render_settings": self._render_settings,
        }
        self.handlers: dict[tuple[Flow, Step], Callable[[TurnContext], StepOutcome]] = {
            (Flow.REGISTRATION, Step.ROLE_SELECTION): self._on_role_selection,
            (Flow.REGISTRATION, Step.NAME_INPUT): self._on_name_input,
            (Flow.CONTRIBUTION, Step.AMOUNT_INPUT): self._on_contribution_amount,
            (Flow.GROUP_CREATION, Step.GROUP_NAME): self._on_group_name,
            (Flow.GROUP_CREATION, Step.CONTRIBUTION_AMOUNT): self._on_group_contribution_amount,
            (Flow.GROUP_CREATION, Step.MEMBER_COUNT): self._on_member_count,
            (Flow.GROUP_JOINING, Step.CODE_INPUT): self._on_group_code,
            (Flow.HELP, Step.TOPIC_SELECTION): self._on_help_topic,
        }

        if rules is None:
            rules = load_rules(known_actions=self.actions)
        else:
            validate_rules(rules, self.actions)
        self.rules = rules

    # === ENTRY POINT ===

    async def handle(self, subject_id: str, text: Optional[str]) -> str:
        """Process one inbound message and enqueue the single reply for it."""
        async with self.sessions.lock(subject_id):
            reply = self.respond(subject_id, text or "")
            self.outbox.enqueue_text(subject_id, reply)
            return reply

    def respond(self, subject_id: str, text: str) -> str:
        """Compute the reply and apply session changes. Callers hold the subject lock."""
        log = LoggerAdapter(logger, {"phone": mask_phone(subject_id)})
        normalized = normalize(text)
        if not normalized:
            self.sessions.get(subject_id)
            return templates.MSG_TEXT_ONLY

        cached = self.cache.lookup(subject_id, normalized)
        if cached is not None:
            log.info("Cached reply", context={"text": normalized})
            return cached

        session = self.sessions.get(subject_id)
        snapshot = session.snapshot()
        ctx = TurnContext(subject_id=subject_id, text=text.strip(), normalized=normalized, session=session)
        try:
            ctx.profile = self.persistence.find_user_by_phone(subject_id)
            if ctx.profile is None:
                self._handle_unregistered(ctx)
            elif session.in_flow:
                self._handle_flow(ctx)
            else:
                self._handle_idle(ctx)
        except Exception:
            log.exception(
                "Message handling failed",
                context={
                    "flow": snapshot[0].value if snapshot[0] else None,
                    "step": snapshot[1].value if snapshot[1] else None,
                },
            )
            session.restore(snapshot)
            return templates.MSG_ERROR

        log.info(
            "Message handled",
            context={
                "flow": session.active_flow.value if session.active_flow else None,
                "step": session.current_step.value if session.current_step else None,
                "rule": ctx.rule.name if ctx.rule else None,
            },
        )
        return ctx.reply() or templates.MSG_ERROR

    # === ROUTING ===

    def _handle_unregistered(self, ctx: TurnContext) -> None:
        if ctx.session.active_flow is not Flow.REGISTRATION:
            ctx.session.start(Flow.REGISTRATION)
            ctx.say(templates.MSG_WELCOME)
            return
        self._run_step(ctx)

    def _handle_flow(self, ctx: TurnContext) -> None:
        if ctx.session.active_flow is Flow.REGISTRATION:
            # Profile already exists; a leftover registration must not create another
            ctx.session.clear()
            self._handle_idle(ctx)
            return
        if ctx.normalized in RESET_WORDS:
            ctx.session.clear()
            self._send_main_menu(ctx)
            return
        self._run_step(ctx)

    def _run_step(self, ctx: TurnContext) -> None:
        session = ctx.session
        handler = self.handlers.get((session.active_flow, session.current_step))
        if handler is None:
            logger.warning(
                "No handler for session step",
                extra={"context": {"flow": str(session.active_flow), "step": str(session.current_step)}},
            )
            session.clear()
            self._handle_idle(ctx)
            return

        outcome = handler(ctx)
        if outcome is StepOutcome.COMPLETE:
            session.clear()
        elif outcome is StepOutcome.REDISPATCH:
            session.clear()
            self._handle_idle(ctx)

    def _handle_idle(self, ctx: TurnContext) -> None:
        if ctx.profile is None:
            self._handle_unregistered(ctx)
            return
        rule = match_rule(self.rules, ctx.normalized, ctx.profile)
        if rule is None:
            self._send_main_menu(ctx)
            return
        ctx.rule = rule
        if rule.next_flow is not None:
            ctx.session.start(rule.next_flow)
        for action in rule.actions:
            self.actions[action](ctx)

    # === REGISTRATION ===

    def _on_role_selection(self, ctx: TurnContext) -> StepOutcome:
        role = ROLE_CHOICES.get(ctx.normalized)
        if role is None:
            ctx.say(templates.MSG_INVALID_ROLE)
            return StepOutcome.AWAIT_INPUT
        ctx.session.scratch["role"] = role.value
        ctx.session.advance(Step.NAME_INPUT)
        ctx.say(templates.MSG_LEADER_SELECTED if role is Role.LEADER else templates.MSG_MEMBER_SELECTED)
        return StepOutcome.AWAIT_INPUT

    def _on_name_input(self, ctx: TurnContext) -> StepOutcome:
        if not valid_person_name(ctx.text):
            ctx.say(templates.MSG_NAME_TOO_SHORT)
            return StepOutcome.AWAIT_INPUT
        role = Role(ctx.session.scratch["role"])
        ctx.profile = self.persistence.create_user(ctx.subject_id, role, ctx.text)
        ctx.say(templates.registration_complete(ctx.profile.name, ctx.subject_id, role))
        self._send_main_menu(ctx)
        return StepOutcome.COMPLETE

    # === CONTRIBUTION ===

    def _on_contribution_amount(self, ctx: TurnContext) -> StepOutcome:
        amount = parse_amount(ctx.text)
        if amount is None:
            ctx.say(templates.MSG_INVALID_AMOUNT)
            return StepOutcome.AWAIT_INPUT
        groups = self.persistence.find_groups_for_user(ctx.profile)
        if not groups:
            ctx.say(templates.MSG_NOT_IN_GROUP)
            return StepOutcome.COMPLETE
        record = self.persistence.create_contribution_record(ctx.profile, groups[0].id, amount)
        ctx.say(templates.contribution_success(ctx.profile, record))
        return StepOutcome.COMPLETE

    # === GROUP CREATION ===

    def _on_group_name(self, ctx: TurnContext) -> StepOutcome:
        if not valid_group_name(ctx.text):
            ctx.say(templates.MSG_GROUP_NAME_TOO_SHORT)
            return StepOutcome.AWAIT_INPUT
        ctx.session.scratch["group_name"] = ctx.text
        ctx.session.advance(Step.CONTRIBUTION_AMOUNT)
        ctx.say(templates.group_name_accepted(ctx.text))
        return StepOutcome.AWAIT_INPUT

    def _on_group_contribution_amount(self, ctx: TurnContext) -> StepOutcome:
        amount = parse_amount(ctx.text)
        if amount is None:
            ctx.say(templates.MSG_INVALID_AMOUNT)
            return StepOutcome.AWAIT_INPUT
        ctx.session.scratch["contribution_amount"] = amount
        ctx.session.advance(Step.MEMBER_COUNT)
        ctx.say(templates.MSG_ASK_MEMBER_COUNT)
        return StepOutcome.AWAIT_INPUT

    def _on_member_count(self, ctx: TurnContext) -> StepOutcome:
        count = parse_member_count(ctx.text)
        if count is None:
            ctx.say(templates.MSG_INVALID_MEMBER_COUNT)
            return StepOutcome.AWAIT_INPUT
        scratch = ctx.session.scratch
        group = self.persistence.create_group(ctx.profile, scratch["group_name"], scratch["contribution_amount"], count)
        ctx.say(templates.group_created(group, ctx.profile))
        return StepOutcome.COMPLETE

    # === GROUP JOINING ===

    def _on_group_code(self, ctx: TurnContext) -> StepOutcome:
        code = parse_group_code(ctx.text)
        if code is None:
            ctx.say(templates.MSG_INVALID_CODE)
            return StepOutcome.AWAIT_INPUT
        result = self.persistence.join_group(ctx.profile, code)
        if result.status is JoinStatus.JOINED:
            ctx.say(templates.group_joined(result.group, result.member_number))
        elif result.status is JoinStatus.ALREADY_MEMBER:
            ctx.say(templates.already_member(result.group))
        elif result.status is JoinStatus.FULL:
            ctx.say(templates.group_full(result.group))
        else:
            ctx.say(templates.group_not_found(code))
        return StepOutcome.COMPLETE

    # === HELP ===

    def _on_help_topic(self, ctx: TurnContext) -> StepOutcome:
        topic = templates.HELP_TOPICS.get(ctx.normalized)
        if topic is None:
            return StepOutcome.REDISPATCH
        ctx.say(topic)
        ctx.say("📖 Chagua mada nyingine (1-3) au andika *menu* kurudi.")
        return StepOutcome.AWAIT_INPUT

    # === ACTIONS ===

    def _send_main_menu(self, ctx: TurnContext) -> None:
        ctx.say(templates.main_menu(ctx.profile))

    def _send_help_menu(self, ctx: TurnContext) -> None:
        ctx.say(
            templates.help_menu(
                ctx.profile,
                self.settings.support_phone,
                self.settings.support_email,
                self.settings.support_website,
            )
        )

    def _send_creation_guide(self, ctx: TurnContext) -> None:
        ctx.say(templates.MSG_CREATE_GROUP)

    def _prompt_group_code(self, ctx: TurnContext) -> None:
        ctx.say(templates.MSG_JOIN_GROUP)

    def _prompt_contribution_amount(self, ctx: TurnContext) -> None:
        # "toa 50000" carries the amount inline; a bare menu digit does not
        inline = has_digits(ctx.text) and not (ctx.rule and ctx.normalized in ctx.rule.exact)
        if not inline:
            ctx.say(templates.MSG_ASK_CONTRIBUTION)
            return
        if self._on_contribution_amount(ctx) is StepOutcome.COMPLETE:
            ctx.session.clear()

    def _send_leader_contribution_notice(self, ctx: TurnContext) -> None:
        ctx.say(templates.MSG_LEADER_CONTRIBUTION_NOTICE)

    def _render_groups(self, ctx: TurnContext) -> None:
        ctx.say(templates.user_groups(ctx.profile, self.persistence.find_groups_for_user(ctx.profile)))

    def _render_balance(self, ctx: TurnContext) -> None:
        ctx.say(templates.user_balance(ctx.profile, self.persistence.find_groups_for_user(ctx.profile)))

    def _render_history(self, ctx: TurnContext) -> None:
        ctx.say(templates.transaction_history(self.persistence.list_transactions(ctx.profile)))

    def _render_status(self, ctx: TurnContext) -> None:
        groups = self.persistence.find_groups_for_user(ctx.profile)
        transactions = self.persistence.list_transactions(ctx.profile)
        ctx.say(templates.user_status(ctx.profile, groups, transactions))

    def _render_settings(self, ctx: TurnContext) -> None:
        ctx.say(templates.user_settings(ctx.profile))
