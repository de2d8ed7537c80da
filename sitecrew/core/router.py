"""
SiteCrew Assistant — Message Router / Intent Classifier.

Every inbound contractor message passes through MessageRouter.route(), which
resolves identity, turns voice into text, then walks ROUTING_RULES in order
and hands the message to the first branch that claims it:

    conversation → report_start → acknowledgment → reminder_reply
        → direct_query → general_query

route() always returns a non-empty reply. Handler failures are logged and
mapped to the failing branch's apology; nothing escapes to the transport.
Messages from one chat are routed one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable
from zoneinfo import ZoneInfo

from sitecrew.config import settings
from sitecrew.core import templates
from sitecrew.core.chat_locks import ChatLocks
from sitecrew.data.models import CallerScope

if TYPE_CHECKING:
    from sitecrew.core.acknowledgment import AcknowledgmentHandler
    from sitecrew.core.conversation import ConversationMachine
    from sitecrew.core.direct_query import DirectQuery, DirectQueryResolver
    from sitecrew.core.reminder_reply import ReminderReplyHandler
    from sitecrew.data.db import ContractorDB
    from sitecrew.data.models import ContractorProfile, ConversationSession, ReminderRecord
    from sitecrew.ports.notification_port import ChatTransport
    from sitecrew.ports.query_port import QueryPort
    from sitecrew.ports.transcription_port import TranscriptionPort

logger = logging.getLogger(__name__)

ACK_PATTERN = re.compile(r"\b(?:accept(?:ed)?|ok|yes|confirmed)\b", re.IGNORECASE)

VOICE_FAILED = (
    "Sorry, I couldn't process your voice message. "
    "Please try again or type your message instead."
)
EMPTY_MESSAGE = "I didn't receive any content. Please send a text or voice message."
QUERY_APOLOGY = "Sorry, I encountered an error processing your request. Please try again."
UNEXPECTED_ERROR = "Sorry, something went wrong. Please try again in a moment."


class MessageKind(str, Enum):
    TEXT = "text"
    VOICE = "voice"


class Branch(str, Enum):
    UNREGISTERED = "unregistered"
    PENDING_APPROVAL = "pending_approval"
    VOICE_FAILED = "voice_failed"
    EMPTY = "empty"
    CONVERSATION = "conversation"
    REPORT_START = "report_start"
    ACKNOWLEDGMENT = "acknowledgment"
    REMINDER_REPLY = "reminder_reply"
    DIRECT_QUERY = "direct_query"
    GENERAL_QUERY = "general_query"
    ERROR = "error"


@dataclass
class InboundMessage:
    chat_id: str
    display_name: str = ""
    kind: MessageKind = MessageKind.TEXT
    text: str | None = None
    voice_ref: str | None = None


@dataclass
class RouteResult:
    reply: str
    branch: Branch
    contractor_id: int | None = None


@dataclass
class RouteContext:
    """Per-message state shared between a rule's match and its handler."""

    message: InboundMessage
    contractor: ContractorProfile
    text: str
    now: datetime
    session: ConversationSession | None = None
    reminder: ReminderRecord | None = None
    direct: DirectQuery | None = None

    @property
    def is_voice(self) -> bool:
        return self.message.kind is MessageKind.VOICE

    @property
    def media_ref(self) -> str | None:
        return self.message.voice_ref if self.is_voice else None


@dataclass(frozen=True)
class RoutingRule:
    branch: Branch
    matches: Callable[[MessageRouter, RouteContext], bool]
    handle: Callable[[MessageRouter, RouteContext], Awaitable[str]]
    failure_reply: str


def is_acknowledgment(text: str) -> bool:
    """True when an acceptance keyword appears as a whole word anywhere in `text`."""
    return ACK_PATTERN.search(text or "") is not None


def is_report_request(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered == "report" or templates.REPORT_BUTTON_LABEL.lower() in lowered


class MessageRouter:
    def __init__(
        self,
        contractor_db: ContractorDB,
        conversation: ConversationMachine,
        acknowledgment: AcknowledgmentHandler,
        reminder_reply: ReminderReplyHandler,
        direct_query: DirectQueryResolver,
        query: QueryPort,
        transcriber: TranscriptionPort,
        transport: ChatTransport,
        locks: ChatLocks | None = None,
        timeout: float | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._contractors = contractor_db
        self.conversation = conversation
        self.acknowledgment = acknowledgment
        self.reminder_reply = reminder_reply
        self.direct_query = direct_query
        self.query = query
        self._transcriber = transcriber
        self._transport = transport
        self._locks = locks or ChatLocks()
        self._timeout = timeout if timeout is not None else settings.COLLABORATOR_TIMEOUT_SECONDS
        self._tz = tz or ZoneInfo(settings.TIMEZONE)

    async def route(self, message: InboundMessage, now: datetime | None = None) -> RouteResult:
        async with self._locks.hold(message.chat_id):
            try:
                result = await self._route(message, now or datetime.now(self._tz))
            except Exception:
                logger.exception("Unexpected error routing message from chat %s", message.chat_id)
                result = RouteResult(reply=UNEXPECTED_ERROR, branch=Branch.ERROR)

        who = (
            f"contractor #{result.contractor_id}" if result.contractor_id is not None
            else f"chat {message.chat_id}"
        )
        logger.info("Routed %s message from %s via %s", message.kind.value, who, result.branch.value)
        return result

    async def _route(self, message: InboundMessage, now: datetime) -> RouteResult:
        contractor = self._contractors.get_by_chat_id(message.chat_id)
        if contractor is None:
            logger.info("Message from unregistered chat %s (%s)", message.chat_id, message.display_name)
            return RouteResult(reply=templates.NOT_REGISTERED, branch=Branch.UNREGISTERED)
        if contractor.is_pending:
            return RouteResult(templates.AWAITING_APPROVAL, Branch.PENDING_APPROVAL, contractor.id)

        if message.kind is MessageKind.VOICE:
            try:
                text = await asyncio.wait_for(self._transcribe(message), timeout=self._timeout)
            except Exception as exc:
                logger.warning(
                    "Voice message from contractor #%d could not be transcribed: %s",
                    contractor.id, str(exc) or type(exc).__name__,
                )
                return RouteResult(VOICE_FAILED, Branch.VOICE_FAILED, contractor.id)
        else:
            text = message.text or ""

        text = text.strip()
        if not text:
            return RouteResult(EMPTY_MESSAGE, Branch.EMPTY, contractor.id)

        ctx = RouteContext(message=message, contractor=contractor, text=text, now=now)
        for rule in ROUTING_RULES:
            try:
                if not rule.matches(self, ctx):
                    continue
                reply = await rule.handle(self, ctx)
            except Exception as exc:
                logger.error(
                    "%s handler failed for contractor #%d: %s",
                    rule.branch.value, contractor.id, exc, exc_info=True,
                )
                return RouteResult(rule.failure_reply, rule.branch, contractor.id)
            return RouteResult(reply or rule.failure_reply, rule.branch, contractor.id)

        # general_query always matches; kept for completeness of the table
        return RouteResult(QUERY_APOLOGY, Branch.GENERAL_QUERY, contractor.id)

    async def _transcribe(self, message: InboundMessage) -> str:
        if not message.voice_ref:
            return ""
        audio_url = await self._transport.get_file_url(message.voice_ref)
        result = await self._transcriber.transcribe(audio_url, settings.TRANSCRIPTION_LANGUAGE)
        return result.text

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _in_conversation(self, ctx: RouteContext) -> bool:
        ctx.session = self.conversation.active_session(ctx.message.chat_id, ctx.now)
        return ctx.session is not None

    async def _continue_conversation(self, ctx: RouteContext) -> str:
        reply = self.conversation.advance(ctx.session, ctx.text, ctx.now, media_ref=ctx.media_ref)
        return reply.text

    def _wants_report(self, ctx: RouteContext) -> bool:
        return is_report_request(ctx.text)

    async def _start_report(self, ctx: RouteContext) -> str:
        return self.conversation.start(ctx.message.chat_id, ctx.now)

    def _is_acknowledgment(self, ctx: RouteContext) -> bool:
        return is_acknowledgment(ctx.text)

    async def _acknowledge(self, ctx: RouteContext) -> str:
        return self.acknowledgment.acknowledge(ctx.contractor, ctx.now).reply

    def _has_open_reminder(self, ctx: RouteContext) -> bool:
        ctx.reminder = self.reminder_reply.open_reminder(ctx.contractor.id, ctx.now)
        return ctx.reminder is not None

    async def _reply_to_reminder(self, ctx: RouteContext) -> str:
        return self.reminder_reply.reply(
            ctx.contractor, ctx.reminder, ctx.text, is_voice=ctx.is_voice, now=ctx.now,
        )

    def _is_direct_query(self, ctx: RouteContext) -> bool:
        ctx.direct = self.direct_query.match(ctx.text, ctx.contractor)
        return ctx.direct is not None

    async def _answer_direct(self, ctx: RouteContext) -> str:
        return self.direct_query.answer(
            ctx.direct, CallerScope.for_contractor(ctx.contractor), ctx.now,
        )

    def _always(self, ctx: RouteContext) -> bool:
        return True

    async def _answer_query(self, ctx: RouteContext) -> str:
        return await asyncio.wait_for(
            self.query.answer(ctx.text, CallerScope.for_contractor(ctx.contractor)),
            timeout=self._timeout,
        )


ROUTING_RULES: tuple[RoutingRule, ...] = (
    RoutingRule(
        Branch.CONVERSATION,
        MessageRouter._in_conversation,
        MessageRouter._continue_conversation,
        "Sorry, I had trouble saving your report. Please try again.",
    ),
    RoutingRule(
        Branch.REPORT_START,
        MessageRouter._wants_report,
        MessageRouter._start_report,
        "Sorry, I couldn't start a progress report right now. Please try again.",
    ),
    RoutingRule(
        Branch.ACKNOWLEDGMENT,
        MessageRouter._is_acknowledgment,
        MessageRouter._acknowledge,
        "Sorry, I had trouble recording your acknowledgment. Please try again.",
    ),
    RoutingRule(
        Branch.REMINDER_REPLY,
        MessageRouter._has_open_reminder,
        MessageRouter._reply_to_reminder,
        "Sorry, I had trouble recording your reply. Please try again.",
    ),
    RoutingRule(
        Branch.DIRECT_QUERY,
        MessageRouter._is_direct_query,
        MessageRouter._answer_direct,
        "Sorry, I couldn't look that up right now. Please try again.",
    ),
    RoutingRule(
        Branch.GENERAL_QUERY,
        MessageRouter._always,
        MessageRouter._answer_query,
        QUERY_APOLOGY,
    ),
)
