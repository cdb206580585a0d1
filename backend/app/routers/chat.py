"""
app/routers/chat.py
-------------------
Turn-by-turn specialist chat.

Flow:
  Browser (speech-to-text or typed input)
      │   POST /chat  { "message": "...", "specialty": "eye" }
      ▼
  DialogueRouter.decide()
      │   greeting / closing / referral / generated / fallback
      ▼
  { "message": "...", "redirectTo"?: "general",
    "referral"?: { "recommendedKey": "...", "recommendedTitle": "..." } }

The browser speaks `message` aloud and, when `redirectTo` is present, offers
a "switch specialist" button.  This endpoint always answers HTTP 200 with a
conversational sentence for signed-in patients.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.dependencies import get_catalog, get_dialogue_router, require_patient
from app.dialogue import DialogueRouter
from app.specialists import SpecialistCatalog

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Chat"])


class ChatRequest(BaseModel):
    message: str = Field("", description="Patient text, typed or transcribed.")
    specialty: str = Field("general", description="Key of the current specialist.")


@router.post("/chat", summary="One patient message → one assistant reply")
async def chat(
    body: ChatRequest,
    patient_id: str = Depends(require_patient),
    dialogue: DialogueRouter = Depends(get_dialogue_router),
) -> JSONResponse:
    decision = await dialogue.decide(body.message, body.specialty)

    logger.info(
        "Chat: patient=%s  specialty=%s  kind=%s  redirect=%s",
        patient_id, body.specialty, decision.kind.value, decision.redirect_to,
    )
    return JSONResponse(decision.to_payload())


@router.get("/specialists", summary="Available specialists in routing order")
async def specialists(
    catalog: SpecialistCatalog = Depends(get_catalog),
) -> JSONResponse:
    return JSONResponse({
        "specialists": [
            {"key": p.key, "title": p.title, "scope": list(p.scope)}
            for p in catalog
        ]
    })
