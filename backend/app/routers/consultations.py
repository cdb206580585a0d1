"""
app/routers/consultations.py
----------------------------
Saved consultations and the downloadable prescription report.

Routes:
  POST /consultations          → one-shot advice for a transcript, then saved
  GET  /consultations          → the patient's saved consultations
  POST /consultations/report   → prescription text for a finished chat

Storage failures never fail the request; they are logged by
db.supabase_client and the patient still gets their advice.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from app.config import get_settings
from app.conversation import ConversationTurn, TurnRole
from app.dependencies import get_catalog, get_generator, require_patient
from app.dialogue import TextGenerator
from app.prompts import build_advice_prompt
from app.report import render_prescription, report_filename
from app.specialists import SpecialistCatalog
from db import supabase_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/consultations", tags=["Consultations"])


class ConsultationRequest(BaseModel):
    transcript: str = ""


class TurnIn(BaseModel):
    role: Literal["patient", "assistant"]
    content: str
    referral: str | None = None


class ReportRequest(BaseModel):
    specialty: str = "general"
    turns: list[TurnIn] = Field(default_factory=list)


@router.post("", summary="Advice for a transcript, saved to history")
async def create_consultation(
    body: ConsultationRequest,
    patient_id: str = Depends(require_patient),
    generator: TextGenerator | None = Depends(get_generator),
) -> JSONResponse:
    transcript = body.transcript.strip()
    if not transcript:
        raise HTTPException(status_code=400, detail="No transcript provided")

    if generator is None:
        logger.error("POST /consultations: no generator configured")
        raise HTTPException(status_code=503, detail="AI advice is not available")

    settings = get_settings()
    try:
        ai_response = (
            await generator.generate(
                build_advice_prompt(transcript, settings.response_language)
            )
        ).strip()
    except Exception as exc:
        logger.error("Advice generation failed for patient=%s: %s", patient_id, exc)
        raise HTTPException(status_code=502, detail="Failed to process consultation")

    if not ai_response:
        ai_response = "I could not generate a response."

    consultation_id = supabase_client.record_consultation(
        patient_id=patient_id,
        transcript=transcript,
        ai_response=ai_response,
    )

    return JSONResponse({
        "success": True,
        "aiResponse": ai_response,
        "consultationId": consultation_id,
    })


@router.get("", summary="The patient's saved consultations, newest first")
async def get_consultations(
    patient_id: str = Depends(require_patient),
) -> JSONResponse:
    consultations = supabase_client.list_consultations(patient_id)
    return JSONResponse({"consultations": consultations})


@router.post("/report", summary="Prescription report for a finished chat")
async def consultation_report(
    body: ReportRequest,
    patient_id: str = Depends(require_patient),
    catalog: SpecialistCatalog = Depends(get_catalog),
) -> PlainTextResponse:
    settings = get_settings()
    profile = catalog.get(body.specialty)
    issued_at = datetime.now()

    turns = [
        ConversationTurn(TurnRole(t.role), t.content, referral=t.referral)
        for t in body.turns
    ]
    report = render_prescription(
        profile,
        turns,
        issued_at,
        clinic_name=settings.clinic_name,
        emergency_number=settings.emergency_number,
    )

    logger.info(
        "Report generated: patient=%s  specialty=%s  turns=%d",
        patient_id, profile.key, len(turns),
    )
    filename = report_filename(profile.key, issued_at)
    return PlainTextResponse(
        report,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
