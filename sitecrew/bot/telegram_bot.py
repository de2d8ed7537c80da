"""
SiteCrew Assistant — Telegram Bot.

Telegram is the contractors' only interface. Text and voice messages are
accepted immediately and routed in a background task; the reply goes out
as a second, independent send through the NotificationDispatcher, so a slow
transcription or LLM call never holds up the update loop.

Unknown chats can /register themselves; admins approve or link them, send
announcements and payment notices, and drive the reminder scheduler
(status, reschedule, manual firing).
"""

from __future__ import annotations

import logging
import re
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import ReplyKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from sitecrew.config import settings
from sitecrew.core import templates
from sitecrew.core.broadcast import BroadcastError, announce, notify_payment
from sitecrew.core.registration import RegistrationError, RegistrationService
from sitecrew.core.router import InboundMessage, MessageKind
from sitecrew.core.scheduler import RescheduleError
from sitecrew.data.models import ContractorStatus, ReminderKind

if TYPE_CHECKING:
    from sitecrew.core.conversation import ConversationMachine
    from sitecrew.core.dispatcher import NotificationDispatcher
    from sitecrew.core.router import MessageRouter
    from sitecrew.core.scheduler import ReminderScheduler
    from sitecrew.data.db import ActivityDB, ContractorDB, ReportDB
    from sitecrew.ports.notification_port import ChatTransport
    from sitecrew.ports.query_port import QueryPort
    from sitecrew.ports.transcription_port import TranscriptionPort

logger = logging.getLogger(__name__)

REPORT_KEYBOARD = ReplyKeyboardMarkup(
    [[templates.REPORT_BUTTON_LABEL]], resize_keyboard=True,
)

_REMINDER_KINDS = {
    "morning": ReminderKind.MORNING_CHECKIN,
    "checkin": ReminderKind.MORNING_CHECKIN,
    "evening": ReminderKind.DAILY_REPORT,
    "report": ReminderKind.DAILY_REPORT,
}
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")
_AMOUNT = re.compile(r"^£?(\d+)(?:\.(\d{1,2}))?$")


# ---------------------------------------------------------------------------
# Admin guard
# ---------------------------------------------------------------------------


def admin_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that refuses the command unless the chat belongs to an admin."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        contractor_db: ContractorDB = context.bot_data["contractor_db"]
        chat_id = str(update.effective_chat.id)
        caller = contractor_db.get_by_chat_id(chat_id)
        if caller is None or not caller.is_admin:
            logger.warning("Non-admin chat %s tried /%s", chat_id, func.__name__.removeprefix("cmd_"))
            await update.message.reply_text("Sorry, this command is for admins only.")
            return
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Background processing
# ---------------------------------------------------------------------------


async def _process(message: InboundMessage, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route one inbound message and deliver the reply."""
    router: MessageRouter = context.bot_data["router"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]

    result = await router.route(message)
    outcome = await dispatcher.send(message.chat_id, result.reply)
    if not outcome.success:
        # User text echoed into a reply can break Markdown parsing
        outcome = await dispatcher.send(message.chat_id, result.reply, parse_mode=None)

    if outcome.success:
        logger.info("Reply for chat %s delivered (%s)", message.chat_id, result.branch.value)
    else:
        logger.error(
            "Reply for chat %s (%s) not delivered: %s",
            message.chat_id, result.branch.value, outcome.error,
        )


def _schedule(message: InboundMessage, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    context.application.create_task(_process(message, context), update=update)


def _display_name(update: Update) -> str:
    user = update.effective_user
    return user.first_name if user and user.first_name else ""


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Accept a text message and route it in the background."""
    message = InboundMessage(
        chat_id=str(update.effective_chat.id),
        display_name=_display_name(update),
        kind=MessageKind.TEXT,
        text=update.message.text,
    )
    _schedule(message, update, context)


async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Accept a voice message; transcription happens inside the router."""
    message = InboundMessage(
        chat_id=str(update.effective_chat.id),
        display_name=_display_name(update),
        kind=MessageKind.VOICE,
        voice_ref=update.message.voice.file_id,
    )
    _schedule(message, update, context)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome a known contractor, or explain registration."""
    contractor_db: ContractorDB = context.bot_data["contractor_db"]
    contractor = contractor_db.get_by_chat_id(str(update.effective_chat.id))
    if contractor is None:
        await update.message.reply_text(templates.NOT_REGISTERED)
        return
    if contractor.is_pending:
        await update.message.reply_text(templates.AWAITING_APPROVAL)
        return
    await update.message.reply_text(
        templates.welcome(contractor.first_name),
        parse_mode="Markdown",
        reply_markup=REPORT_KEYBOARD,
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/report — Submit today's progress report\n"
        "/cancel — Cancel a report in progress\n"
        "/register <first> <last> — Sign up as a contractor\n"
        "/help — Show this message\n\n"
        "*Admin:*\n"
        "/pending — List registrations awaiting approval\n"
        "/approve <id> — Approve a registration\n"
        "/link <id> <chat id> — Attach a chat to an existing contractor\n"
        "/announce <title> | <message> — Message every contractor\n"
        "/paid <id> <amount> — Send a payment notice\n"
        "/reminders — Show reminder schedule\n"
        "/setreminder <morning|evening> HH:MM — Change a reminder time\n"
        "/remindnow <morning|evening> — Send a reminder batch now",
        parse_mode="Markdown",
    )


async def cmd_report(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /report — same as tapping the Report button."""
    message = InboundMessage(
        chat_id=str(update.effective_chat.id),
        display_name=_display_name(update),
        kind=MessageKind.TEXT,
        text="report",
    )
    _schedule(message, update, context)


async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel — drop the chat's report conversation, if any."""
    conversation: ConversationMachine = context.bot_data["conversation"]
    if conversation.cancel(str(update.effective_chat.id)):
        await update.message.reply_text("Progress report cancelled.", reply_markup=REPORT_KEYBOARD)
    else:
        await update.message.reply_text("There's no report in progress.")


@admin_only
async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reminders — show each trigger and its next firing."""
    scheduler: ReminderScheduler = context.bot_data["scheduler"]
    status = scheduler.status()
    if not status["initialized"]:
        await update.message.reply_text("The reminder scheduler is not running.")
        return

    lines = ["⏰ *Reminder schedule*", ""]
    for task in status["tasks"]:
        when = f" at {task['time']}" if task["time"] else ""
        lines.append(f"• {task['name']}{when}")
        if task["next_run"]:
            lines.append(f"  next: {task['next_run']}")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


def _parse_kind(args: list[str]) -> ReminderKind | None:
    if not args:
        return None
    return _REMINDER_KINDS.get(args[0].lower())


@admin_only
async def cmd_setreminder(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /setreminder <morning|evening> HH:MM."""
    scheduler: ReminderScheduler = context.bot_data["scheduler"]
    args = context.args or []
    kind = _parse_kind(args)
    match = _HHMM.match(args[1]) if len(args) > 1 else None
    if kind is None or match is None:
        await update.message.reply_text("Usage: /setreminder <morning|evening> HH:MM")
        return

    hour, minute = int(match.group(1)), int(match.group(2))
    try:
        scheduler.reschedule(kind, hour, minute)
    except RescheduleError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return

    await update.message.reply_text(
        f"✅ {kind.value} reminder now runs daily at {hour:02d}:{minute:02d} ({settings.TIMEZONE})."
    )


@admin_only
async def cmd_remindnow(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remindnow <morning|evening> — fire a batch immediately."""
    scheduler: ReminderScheduler = context.bot_data["scheduler"]
    kind = _parse_kind(context.args or [])
    if kind is None:
        await update.message.reply_text("Usage: /remindnow <morning|evening>")
        return

    if kind is ReminderKind.MORNING_CHECKIN:
        summary = await scheduler.run_morning_checkins()
    else:
        summary = await scheduler.run_daily_reports()
    await update.message.reply_text(f"📨 {summary}")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def cmd_register(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /register [first] [last] — falls back to the Telegram profile name."""
    registration: RegistrationService = context.bot_data["registration"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]
    contractor_db: ContractorDB = context.bot_data["contractor_db"]

    args = context.args or []
    user = update.effective_user
    first_name = args[0] if args else (user.first_name if user else "")
    last_name = " ".join(args[1:]) if args else ((user.last_name or "") if user else "")

    try:
        result = registration.register(str(update.effective_chat.id), first_name, last_name)
    except RegistrationError as exc:
        await update.message.reply_text(str(exc))
        return

    await update.message.reply_text(result.reply, parse_mode="Markdown")
    if result.created:
        notice = templates.new_registration(result.contractor)
        await dispatcher.send_batch(
            [(admin.chat_id, notice) for admin in contractor_db.list_admins() if admin.chat_id]
        )


def _parse_id(args: list[str], index: int = 0) -> int | None:
    if len(args) <= index or not args[index].lstrip("#").isdigit():
        return None
    return int(args[index].lstrip("#"))


@admin_only
async def cmd_pending(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /pending — registrations waiting for approval."""
    contractor_db: ContractorDB = context.bot_data["contractor_db"]
    pending = contractor_db.list_by_status(ContractorStatus.PENDING)
    if not pending:
        await update.message.reply_text("No registrations are waiting for approval.")
        return

    lines = [f"⏳ Pending registrations ({len(pending)})", ""]
    lines += [f"• #{c.id} {c.full_name} (chat {c.chat_id or 'unlinked'})" for c in pending]
    await update.message.reply_text("\n".join(lines))


@admin_only
async def cmd_approve(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /approve <id>."""
    registration: RegistrationService = context.bot_data["registration"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]

    contractor_id = _parse_id(context.args or [])
    if contractor_id is None:
        await update.message.reply_text("Usage: /approve <contractor id>")
        return

    try:
        contractor = registration.approve(contractor_id)
    except RegistrationError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return

    await update.message.reply_text(f"✅ {contractor.full_name} (#{contractor.id}) approved.")
    await dispatcher.send(contractor.chat_id, templates.welcome(contractor.first_name))


@admin_only
async def cmd_link(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /link <contractor id> <chat id>."""
    registration: RegistrationService = context.bot_data["registration"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]

    args = context.args or []
    contractor_id = _parse_id(args)
    if contractor_id is None or len(args) < 2:
        await update.message.reply_text("Usage: /link <contractor id> <chat id>")
        return

    try:
        contractor = registration.link(contractor_id, args[1])
    except RegistrationError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return

    await update.message.reply_text(f"🔗 Chat {args[1]} linked to {contractor.full_name} (#{contractor.id}).")
    await dispatcher.send(contractor.chat_id, templates.welcome(contractor.first_name))


# ---------------------------------------------------------------------------
# Broadcasts
# ---------------------------------------------------------------------------


@admin_only
async def cmd_announce(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /announce <title> | <message>."""
    contractor_db: ContractorDB = context.bot_data["contractor_db"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]

    title, sep, body = " ".join(context.args or []).partition("|")
    if not sep:
        await update.message.reply_text("Usage: /announce <title> | <message>")
        return

    try:
        summary = await announce(contractor_db, dispatcher, title, body)
    except BroadcastError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return
    await update.message.reply_text(f"📢 Announcement sent: {summary}")


def _parse_pence(raw: str) -> int | None:
    match = _AMOUNT.match(raw)
    if match is None:
        return None
    pounds, pence = match.group(1), (match.group(2) or "0").ljust(2, "0")
    return int(pounds) * 100 + int(pence)


@admin_only
async def cmd_paid(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /paid <contractor id> <amount in £>."""
    contractor_db: ContractorDB = context.bot_data["contractor_db"]
    dispatcher: NotificationDispatcher = context.bot_data["dispatcher"]

    args = context.args or []
    contractor_id = _parse_id(args)
    amount = _parse_pence(args[1]) if len(args) > 1 else None
    if contractor_id is None or amount is None:
        await update.message.reply_text("Usage: /paid <contractor id> <amount, e.g. 120.50>")
        return

    try:
        result = await notify_payment(contractor_db, dispatcher, contractor_id, amount)
    except BroadcastError as exc:
        await update.message.reply_text(f"❌ {exc}")
        return

    if result.success:
        await update.message.reply_text(f"💰 Payment notice for {templates.format_pence(amount)} sent.")
    else:
        await update.message.reply_text(f"❌ Payment notice not delivered: {result.error}")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


async def _post_init(app: Application) -> None:
    scheduler: ReminderScheduler = app.bot_data["scheduler"]
    scheduler.start(app.job_queue)


async def _post_shutdown(app: Application) -> None:
    scheduler: ReminderScheduler = app.bot_data["scheduler"]
    scheduler.stop()


def build_app(
    contractor_db: ContractorDB | None = None,
    activity_db: ActivityDB | None = None,
    report_db: ReportDB | None = None,
    transport: ChatTransport | None = None,
    transcriber: TranscriptionPort | None = None,
    query: QueryPort | None = None,
) -> Application:
    """Build the Telegram Application and wire every service into bot_data.

    Defaults: SQLite stores at settings.DATABASE_PATH, TelegramNotifier over
    the app's bot, WhisperTranscriber, and the LLM-backed QueryService.
    """
    from sitecrew.core.acknowledgment import AcknowledgmentHandler
    from sitecrew.core.conversation import ConversationMachine
    from sitecrew.core.direct_query import DirectQueryResolver
    from sitecrew.core.dispatcher import NotificationDispatcher
    from sitecrew.core.reminder_reply import ReminderReplyHandler
    from sitecrew.core.router import MessageRouter
    from sitecrew.core.scheduler import ReminderScheduler
    from sitecrew.data.db import ActivityDB, ContractorDB, ReportDB

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .concurrent_updates(True)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    contractor_db = contractor_db or ContractorDB()
    activity_db = activity_db or ActivityDB()
    report_db = report_db or ReportDB()

    if transport is None:
        from sitecrew.adapters.telegram_notifier import TelegramNotifier
        transport = TelegramNotifier(app.bot)

    if transcriber is None:
        from sitecrew.core.transcriber import WhisperTranscriber
        transcriber = WhisperTranscriber()

    if query is None:
        from sitecrew.core.query_service import QueryService
        query = QueryService(contractor_db, activity_db, report_db)

    dispatcher = NotificationDispatcher(transport)
    conversation = ConversationMachine(report_db, contractor_db)
    router = MessageRouter(
        contractor_db=contractor_db,
        conversation=conversation,
        acknowledgment=AcknowledgmentHandler(contractor_db),
        reminder_reply=ReminderReplyHandler(activity_db),
        direct_query=DirectQueryResolver(contractor_db, activity_db),
        query=query,
        transcriber=transcriber,
        transport=transport,
    )
    scheduler = ReminderScheduler(contractor_db, activity_db, report_db, dispatcher)

    app.bot_data["contractor_db"] = contractor_db
    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["conversation"] = conversation
    app.bot_data["router"] = router
    app.bot_data["scheduler"] = scheduler
    app.bot_data["registration"] = RegistrationService(contractor_db)

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("report", cmd_report))
    app.add_handler(CommandHandler("cancel", cmd_cancel))
    app.add_handler(CommandHandler("register", cmd_register))
    app.add_handler(CommandHandler("pending", cmd_pending))
    app.add_handler(CommandHandler("approve", cmd_approve))
    app.add_handler(CommandHandler("link", cmd_link))
    app.add_handler(CommandHandler("announce", cmd_announce))
    app.add_handler(CommandHandler("paid", cmd_paid))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("setreminder", cmd_setreminder))
    app.add_handler(CommandHandler("remindnow", cmd_remindnow))

    # Text messages (non-command)
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    # Voice messages
    app.add_handler(MessageHandler(filters.VOICE, handle_voice))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting SiteCrew Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
