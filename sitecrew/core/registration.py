"""
SiteCrew Assistant — Contractor self-registration.

A chat nobody recognizes can /register itself. That creates a PENDING
contractor bound to the chat; the router keeps answering it with an
"awaiting approval" note until an admin either approves the profile or links
the chat to a contractor the job tracker already knows about.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sitecrew.core import templates
from sitecrew.data.models import ContractorStatus

if TYPE_CHECKING:
    from sitecrew.data.db import ContractorDB
    from sitecrew.data.models import ContractorProfile

logger = logging.getLogger(__name__)


class RegistrationError(ValueError):
    """The registration, approval or link request cannot be carried out."""


@dataclass
class RegistrationResult:
    contractor: ContractorProfile
    created: bool
    reply: str


class RegistrationService:
    def __init__(self, contractor_db: ContractorDB) -> None:
        self._contractors = contractor_db

    def register(self, chat_id: str, first_name: str, last_name: str = "") -> RegistrationResult:
        """Create a pending contractor for `chat_id` unless the chat is already known."""
        existing = self._contractors.get_by_chat_id(chat_id)
        if existing is not None:
            reply = templates.AWAITING_APPROVAL if existing.is_pending else templates.ALREADY_REGISTERED
            return RegistrationResult(existing, created=False, reply=reply)

        first_name = (first_name or "").strip()
        if not first_name:
            raise RegistrationError("Please tell me your name: /register <first name> <last name>")

        contractor = self._contractors.add_contractor(
            first_name,
            (last_name or "").strip(),
            chat_id=str(chat_id),
            status=ContractorStatus.PENDING,
        )
        logger.info("Chat %s self-registered as pending contractor #%d", chat_id, contractor.id)
        return RegistrationResult(
            contractor, created=True, reply=templates.registration_received(first_name),
        )

    def approve(self, contractor_id: int) -> ContractorProfile:
        contractor = self._contractors.get_contractor(contractor_id)
        if contractor is None:
            raise RegistrationError(f"No contractor #{contractor_id}.")
        if not contractor.is_pending:
            raise RegistrationError(f"{contractor.full_name} is already active.")

        self._contractors.set_status(contractor.id, ContractorStatus.ACTIVE)
        contractor.status = ContractorStatus.ACTIVE
        logger.info("Contractor #%d approved", contractor.id)
        return contractor

    def link(self, contractor_id: int, chat_id: str) -> ContractorProfile:
        """Attach `chat_id` to an existing contractor.

        A pending self-registration holding the chat gives it up; an active
        contractor holding it is never displaced.
        """
        target = self._contractors.get_contractor(contractor_id)
        if target is None:
            raise RegistrationError(f"No contractor #{contractor_id}.")

        holder = self._contractors.get_by_chat_id(chat_id)
        if holder is not None and holder.id == target.id:
            return target
        if holder is not None and not holder.is_pending:
            raise RegistrationError(f"Chat {chat_id} already belongs to {holder.full_name}.")
        if holder is not None:
            self._contractors.link_chat(holder.id, None)

        self._contractors.link_chat(target.id, str(chat_id))
        target.chat_id = str(chat_id)
        if target.is_pending:
            self._contractors.set_status(target.id, ContractorStatus.ACTIVE)
            target.status = ContractorStatus.ACTIVE
        return target
