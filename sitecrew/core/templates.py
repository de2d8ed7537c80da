"""Outbound message texts (Telegram Markdown)."""

from __future__ import annotations

from sitecrew.data.models import Assignment, ContractorProfile, Job

REPORT_BUTTON_LABEL = "📝 Report"
ON_SITE_REPLY = "on site"


def morning_checkin(first_name: str) -> str:
    return (
        "☀️ *Good morning!*\n\n"
        f"Hi {first_name}! Please confirm you are working today.\n\n"
        f"Reply *{ON_SITE_REPLY}* when you arrive, or tell me why you can't make it."
    )


def daily_report(first_name: str) -> str:
    return (
        "⏰ *Daily Reminder*\n\n"
        f"Hi {first_name}! 👋\n\n"
        "Please submit your progress report for today. "
        f"Tap *{REPORT_BUTTON_LABEL}* or send a voice message describing what you accomplished.\n\n"
        "Thank you! 🙏"
    )


def job_assigned(assignment: Assignment, job: Job | None) -> str:
    title = job.title if job else "Unknown"
    address = job.address if job and job.address else "N/A"
    lines = [
        "🔔 *New Job Assignment*",
        "",
        f"📍 Job: {title}",
        f"📌 Address: {address}",
    ]
    if job and job.post_code:
        lines.append(f"🏠 Postcode: {job.post_code}")
    lines.append(f"📅 Start: {assignment.start_date or 'N/A'}")
    lines.append(f"📅 End: {assignment.end_date or 'N/A'}")
    if assignment.special_instructions:
        lines += ["", "📝 Special Instructions:", assignment.special_instructions]
    lines += ["", '✅ Reply with "ACCEPT" to acknowledge this assignment.']
    return "\n".join(lines)


def welcome(first_name: str) -> str:
    return (
        f"👋 *Welcome to SiteCrew, {first_name}!*\n\n"
        "I'll check in with you each morning and remind you about your daily report.\n\n"
        f"• Tap *{REPORT_BUTTON_LABEL}* to submit a progress report\n"
        "• Reply *ACCEPT* to acknowledge a new job assignment\n"
        "• Ask me about your jobs, check-ins or reports\n"
        "• Voice messages work too 🎤"
    )


NOT_REGISTERED = (
    "Hi! I don't recognize your account yet. "
    "Send /register to sign up, or contact the admin to get registered."
)

AWAITING_APPROVAL = (
    "⏳ Your registration is waiting for admin approval. "
    "I'll let you know as soon as your account is active."
)
ALREADY_REGISTERED = "You are already registered! 👍"


def registration_received(first_name: str) -> str:
    return (
        f"✅ *Thanks, {first_name}!*\n\n"
        "Registration successful! An admin will approve your account soon."
    )


def new_registration(contractor: ContractorProfile) -> str:
    return (
        "🆕 *New contractor registration*\n\n"
        f"👤 {contractor.full_name} (#{contractor.id})\n"
        f"💬 Chat: {contractor.chat_id}\n\n"
        f"Approve with /approve {contractor.id}, or attach this chat to an existing "
        f"profile with /link <contractor id> {contractor.chat_id}"
    )


def format_pence(pence: int) -> str:
    return f"£{pence / 100:,.2f}"


def announcement(title: str, message: str) -> str:
    return f"📢 *Announcement: {title}*\n\n{message}"


def payment_processed(amount_pence: int, period: str) -> str:
    return (
        "💰 *Payment Processed*\n\n"
        f"✅ Amount: {format_pence(amount_pence)}\n"
        f"📅 Period: {period}\n\n"
        "Your payment has been processed successfully."
    )
