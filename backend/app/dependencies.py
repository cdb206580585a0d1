"""
app/dependencies.py
-------------------
FastAPI dependencies shared by the routers.

Everything here is built once per process from the settings and cached;
tests swap any of it out through `app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Header, HTTPException

from app.config import get_settings
from app.dialogue import DialogueRouter, TextGenerator, stable_pick
from app.gemini import GeminiGenerator
from app.specialists import DEFAULT_CATALOG, SpecialistCatalog, load_catalog

logger = logging.getLogger(__name__)


@lru_cache()
def get_catalog() -> SpecialistCatalog:
    """The specialist catalog, from SPECIALISTS_FILE or the built-in one."""
    settings = get_settings()
    if settings.specialists_file:
        catalog = load_catalog(settings.specialists_file)
        logger.info(
            "Loaded %d specialists from %s", len(catalog), settings.specialists_file
        )
        return catalog
    return DEFAULT_CATALOG


@lru_cache()
def get_generator() -> TextGenerator | None:
    """The Gemini generator, or None when GEMINI_API_KEY is not set."""
    settings = get_settings()
    if not settings.gemini_api_key.strip():
        logger.warning("GEMINI_API_KEY not set - replies will use fallback responses")
        return None
    return GeminiGenerator(
        api_key=settings.gemini_api_key.strip(),
        model=settings.gemini_model,
        timeout=settings.generation_timeout_seconds,
    )


@lru_cache()
def get_dialogue_router() -> DialogueRouter:
    settings = get_settings()
    return DialogueRouter(
        get_catalog(),
        get_generator(),
        policy=settings.referral_policy,
        pick=stable_pick(settings.fallback_seed),
        language=settings.response_language,
    )


def require_patient(
    x_patient_id: str | None = Header(default=None, alias="x-patient-id"),
) -> str:
    """
    Identifier of the signed-in patient, set by the upstream auth proxy.

    Requests without it are rejected with HTTP 401 before any routing runs.
    """
    if not x_patient_id or not x_patient_id.strip():
        logger.warning("Request missing x-patient-id header - rejected")
        raise HTTPException(status_code=401, detail="Please sign in first.")
    return x_patient_id.strip()
