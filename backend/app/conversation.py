"""
app/conversation.py
-------------------
Per-specialist consultation state for clients that keep the conversation
in-process (the console script, tests).  The HTTP API itself is stateless;
browser clients hold the same state on their side.

State machine:

    GREETING ──patient turn──▶ GATHERING ──closing turn──▶ CLOSING ──report──▶ REPORTED
        ▲                                                                          │
        └──────────────── switch_specialist() / reset() ◀─────────────────────────┘

  GREETING  → opening line emitted once per specialist selection
  GATHERING → each counted assistant reply increments question_count
  CLOSING   → entered when the patient signals they are done; every further
              message gets the same "request your report" line
  REPORTED  → report generated; only switch/reset leave this state
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from app.dialogue import (
    CLOSING_LINE,
    Decision,
    DecisionKind,
    DialogueRouter,
    REPEAT_LINE,
    opening_line,
)
from app.report import render_prescription
from app.specialists import SpecialistProfile

logger = logging.getLogger(__name__)


class TurnRole(str, enum.Enum):
    PATIENT = "patient"
    ASSISTANT = "assistant"


class ConsultationState(str, enum.Enum):
    GREETING = "greeting"
    GATHERING = "gathering"
    CLOSING = "closing"
    REPORTED = "reported"


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: str
    referral: str | None = None   # redirect target key, assistant turns only


class ConsultationSession:
    """
    One patient's conversation with one specialist at a time.

    Turns are append-only; the log is replaced, never edited, when the
    patient switches specialist or resets.
    """

    def __init__(self, router: DialogueRouter, specialty_key: str = "general") -> None:
        self.router = router
        self.profile: SpecialistProfile = router.catalog.get(specialty_key)
        self.state = ConsultationState.GREETING
        self.question_count = 0
        self._turns: list[ConversationTurn] = []

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def specialty_key(self) -> str:
        return self.profile.key

    def start(self) -> str:
        """Begin (or restart) the consultation; returns the opening line."""
        self._turns = []
        self.question_count = 0
        self.state = ConsultationState.GREETING
        line = opening_line(self.profile)
        self._turns.append(ConversationTurn(TurnRole.ASSISTANT, line))
        logger.info("Consultation started with %s", self.profile.key)
        return line

    def switch_specialist(self, specialty_key: str) -> str:
        self.profile = self.router.catalog.get(specialty_key)
        return self.start()

    def reset(self) -> str:
        return self.start()

    async def send(self, message: str) -> Decision:
        """
        Send one patient message and record the exchange.

        Nothing is recorded for blank input.  Once the patient has closed
        the conversation the router is no longer consulted.  A session that
        was never started is started first, so the log always opens with
        the persona's greeting.
        """
        if self.state in (ConsultationState.CLOSING, ConsultationState.REPORTED):
            return Decision(DecisionKind.CLOSING, CLOSING_LINE)

        if not message or not message.strip():
            return Decision(DecisionKind.REPEAT, REPEAT_LINE)

        if not self._turns:
            self.start()

        decision = await self.router.decide(message, self.profile.key)

        self._turns.append(ConversationTurn(TurnRole.PATIENT, message.strip()))
        # Soft suggestions are still the persona's answer; only redirects
        # are marked as referral turns (and left out of the report notes).
        self._turns.append(
            ConversationTurn(TurnRole.ASSISTANT, decision.message, referral=decision.redirect_to)
        )

        if decision.kind is DecisionKind.CLOSING:
            self.state = ConsultationState.CLOSING
        else:
            self.state = ConsultationState.GATHERING
            if decision.kind is not DecisionKind.REFERRAL:
                self.question_count += 1

        return decision

    def build_report(
        self,
        issued_at: datetime | None = None,
        *,
        clinic_name: str = "Rwanda Digital Health",
        emergency_number: str = "912",
    ) -> str:
        """Render the prescription for this conversation and mark it REPORTED."""
        report = render_prescription(
            self.profile,
            self._turns,
            issued_at or datetime.now(),
            clinic_name=clinic_name,
            emergency_number=emergency_number,
        )
        self.state = ConsultationState.REPORTED
        logger.info(
            "Report built: specialty=%s  turns=%d  questions=%d",
            self.profile.key, len(self._turns), self.question_count,
        )
        return report
