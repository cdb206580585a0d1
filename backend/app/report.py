"""
app/report.py
-------------
Plain-text prescription report assembled at the end of a consultation.

Layout:
  header (clinic) → date / time / specialist → PATIENT SYMPTOMS
  → CONSULTATION NOTES → PRESCRIBED MEDICINES → INSTRUCTIONS

Symptoms are the patient's own turns.  Consultation notes are the
assistant's turns minus referral turns and minus the persona's opening
line.  Medicines come from the specialist profile.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from app.specialists import SpecialistProfile

if TYPE_CHECKING:
    from app.conversation import ConversationTurn

_HEAVY_RULE = "═" * 50
_LIGHT_RULE = "─" * 50
_EMPTY_SECTION = "None recorded"


def _section(title: str, body: str) -> str:
    return f"{_LIGHT_RULE}\n{title}:\n{_LIGHT_RULE}\n{body or _EMPTY_SECTION}\n"


def _bullets(lines: Iterable[str]) -> str:
    return "\n".join(f"• {line}" for line in lines)


def _long_date(moment: datetime) -> str:
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year}"


def render_prescription(
    profile: SpecialistProfile,
    turns: Iterable["ConversationTurn"],
    issued_at: datetime,
    *,
    clinic_name: str = "Rwanda Digital Health",
    emergency_number: str = "912",
) -> str:
    """
    Render the downloadable prescription for one consultation.

    Args:
        profile:          Specialist the consultation was held with.
        turns:            The conversation, oldest first.
        issued_at:        Timestamp printed on the report.
        clinic_name:      Printed under the report title.
        emergency_number: Printed in the instructions.

    Returns:
        str: The report text, newline-terminated.
    """
    turns = list(turns)
    symptoms = [t.content for t in turns if t.role == "patient"]
    notes = [t.content for t in turns if t.role == "assistant" and not t.referral][1:]
    medicines = "\n".join(f"{i}. {m}" for i, m in enumerate(profile.medicines, start=1))

    instructions = _bullets([
        "Take all medicines as prescribed",
        "Complete full course of treatment",
        "Return if symptoms persist",
        f"Emergency: Call {emergency_number}",
    ])

    return (
        f"{_HEAVY_RULE}\n"
        f"{'MEDICAL PRESCRIPTION':^50}\n"
        f"{clinic_name:^50}\n"
        f"{_HEAVY_RULE}\n"
        "\n"
        f"Date: {_long_date(issued_at)}\n"
        f"Time: {issued_at:%I:%M %p}\n"
        f"Specialist: {profile.title}\n"
        "\n"
        f"{_section('PATIENT SYMPTOMS', _bullets(symptoms))}\n"
        f"{_section('CONSULTATION NOTES', _bullets(notes))}\n"
        f"{_section('PRESCRIBED MEDICINES', medicines)}\n"
        f"{_section('INSTRUCTIONS', instructions)}\n"
        f"{_HEAVY_RULE}\n"
    )


def report_filename(specialty_key: str, issued_at: datetime) -> str:
    """Download name, e.g. "prescription-eye-1760000000000.txt"."""
    return f"prescription-{specialty_key}-{int(issued_at.timestamp() * 1000)}.txt"
