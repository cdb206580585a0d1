"""
db/supabase_client.py
---------------------
Initializes and exposes a singleton Supabase client, plus the consultation
persistence helpers used by the API.

Public API:
    get_supabase_client()   → cached Client singleton
    record_consultation()   → insert one consultation into `consultations`
    list_consultations()    → a patient's consultations, newest first

Table `consultations`:
    id           bigint identity primary key
    patient_id   varchar not null   (identifier from the auth proxy)
    transcript   text not null
    ai_response  text not null
    symptoms     text null
    created_at   timestamptz default now()
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from app.config import get_settings

logger = logging.getLogger(__name__)

CONSULTATIONS_TABLE = "consultations"


@lru_cache()
def get_supabase_client() -> Client:
    """
    Return a cached Supabase client instance.

    The client is created once and reused for the lifetime of the process.
    Credentials are pulled from the app settings (loaded from .env).

    Raises:
        ValueError: If SUPABASE_URL or SUPABASE_KEY are not set.
    """
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_KEY must be set in your .env file."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


# ---------------------------------------------------------------------------
# Consultation persistence
# ---------------------------------------------------------------------------

def record_consultation(
    *,
    patient_id: str,
    transcript: str,
    ai_response: str,
    symptoms: str | None = None,
) -> Any | None:
    """
    Persist one consultation to the `consultations` table.

    Fire-and-forget from the caller's point of view: all DB errors are caught
    and logged, and the patient still gets their reply.

    Args:
        patient_id:  Identifier of the signed-in patient.
        transcript:  What the patient said.
        ai_response: The reply they were given.
        symptoms:    Optional free-text symptom summary.

    Returns:
        The new row id, or None if the insert failed.
    """
    row: dict[str, Any] = {
        "patient_id":  patient_id,
        "transcript":  transcript,
        "ai_response": ai_response,
    }
    if symptoms:
        row["symptoms"] = symptoms

    try:
        result = get_supabase_client().table(CONSULTATIONS_TABLE).insert(row).execute()
    except Exception as exc:
        logger.error("record_consultation DB error for patient=%s: %s", patient_id, exc)
        return None

    rows = result.data or []
    if not rows:
        logger.error("consultations insert returned no data for patient=%s", patient_id)
        return None

    consultation_id = rows[0].get("id")
    logger.info("Consultation saved: id=%s  patient=%s", consultation_id, patient_id)
    return consultation_id


def list_consultations(patient_id: str) -> list[dict[str, Any]]:
    """
    Return the patient's consultations, newest first.

    Returns an empty list (and logs) if the query fails.
    """
    try:
        result = (
            get_supabase_client()
            .table(CONSULTATIONS_TABLE)
            .select("*")
            .eq("patient_id", patient_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as exc:
        logger.error("list_consultations DB error for patient=%s: %s", patient_id, exc)
        return []

    return result.data or []
