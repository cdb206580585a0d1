# CRITICAL: This file contains medical safety guardrails.
# Do not modify the _STANDING_RULES text without explicit instruction.
"""
app/prompts.py
--------------
Prompt definitions for the MedRoute consultation assistant.

Two prompts live here:
  - build_consultation_prompt(): one turn of a specialist chat.  Rebuilt on
    every patient message with the persona, its allowed topics and the
    standing rules, so the model never drifts outside its specialty.
  - build_advice_prompt(): a one-shot advice request for a free-form
    transcript (used by POST /consultations).

Design principles:
  - Short, spoken-style replies (the UI reads them aloud)
  - Hard safety constraints baked in (no medicines, no diagnosis)
  - One follow-up question per turn, in a fixed topic order
"""

from __future__ import annotations

from app.specialists import SpecialistProfile

# Number of scope keywords shown to the model as the persona's specialty
PROMPT_SCOPE_TERMS = 6

# ---------------------------------------------------------------------------
# Standing rules for every consultation turn
# ---------------------------------------------------------------------------
_STANDING_RULES = """
STRICT RULES:
- Respond ONLY in {language}
- Do NOT recommend or mention any medicines
- Keep responses SHORT (1-2 sentences only)
- NEVER say "Hello", "Hi", or greetings after the first message
- Ask only ONE follow-up question at a time
- Be caring but concise
"""

_CONVERSATION_FLOW = """
CONVERSATION FLOW (ask 4-7 questions total):
1. First: Ask about duration (e.g., "How long have you had this?")
2. Second: Ask about severity (e.g., "How severe is it on a scale of 1-10?")
3. Third: Ask about triggers (e.g., "Does anything make it worse?")
4. Fourth: Ask about related symptoms (e.g., "Any other symptoms like fever or nausea?")
5. Fifth: Ask about previous treatments (e.g., "Have you tried anything for this?")
6. After 5+ questions: Ask "Is there anything else you'd like to tell me about your condition?"
7. When patient says "no", "nothing else", "that's all", "done": Say "Thank you for sharing. Click 'Get Prescription' to download your medical report."
"""

_REFERRAL_NOTE = (
    "NOTE: These symptoms are slightly outside your specialty. Provide what "
    "help you can, but mention that you recommend seeing our {title} for more "
    "specialized care related to these specific symptoms."
)

_REFERRAL_NOTE_FROM_GENERAL = (
    "NOTE: The patient's symptoms suggest they may benefit from seeing our "
    "{title}. After providing initial advice, mention that you recommend they "
    "also consult with the {title} for specialized care. Include this referral "
    "suggestion naturally in your response."
)

# ---------------------------------------------------------------------------
# One-shot advice prompt
# ---------------------------------------------------------------------------
ADVICE_SYSTEM_PROMPT = """
You are Kigali AI Medical Assistant, a friendly and knowledgeable healthcare advisor based in Rwanda. You provide helpful medical guidance while always encouraging users to seek professional medical care when needed.

IMPORTANT GUIDELINES:
1. Always be empathetic, warm, and professional
2. Provide general health information and guidance
3. Never diagnose conditions - only suggest possibilities
4. Always recommend consulting a healthcare professional for serious symptoms
5. Reference Rwandan healthcare resources when relevant (hospitals, clinics in Kigali)
6. Respond in clear, simple {language} that's easy to understand
7. If someone describes emergency symptoms, urge them to go to the nearest hospital immediately

CONTEXT: You are serving patients in Rwanda, primarily in Kigali. Common health concerns include malaria, respiratory infections, and general wellness questions.

DISCLAIMER TO INCLUDE: Always end your response with a brief note that this is AI-powered guidance and not a replacement for professional medical consultation.

Respond naturally and conversationally while being helpful and informative.
""".strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def allowed_topics(profile: SpecialistProfile) -> list[str]:
    """The scope terms the persona is told it may discuss."""
    return list(profile.scope[:PROMPT_SCOPE_TERMS])


def build_consultation_prompt(
    profile: SpecialistProfile,
    message: str,
    *,
    language: str = "English",
    referral: SpecialistProfile | None = None,
) -> str:
    """
    Build the prompt for one consultation turn.

    Args:
        profile:  The persona answering this turn.
        message:  The patient's raw message.
        language: The only language the model may reply in.
        referral: When set, the model is asked to recommend this specialist
                  alongside its answer (answer-then-suggest referrals).

    Returns:
        str: The complete prompt, ending with the patient's message.
    """
    prompt = (
        f"You are a {profile.title} in a voice medical consultation. "
        f"Your specialty: {', '.join(allowed_topics(profile))}.\n"
        f"{_STANDING_RULES.format(language=language)}"
        f"{_CONVERSATION_FLOW}"
    )

    if referral is not None:
        template = (
            _REFERRAL_NOTE_FROM_GENERAL if profile.key == "general" else _REFERRAL_NOTE
        )
        prompt += "\n" + template.format(title=referral.title) + "\n"

    prompt += (
        f'\nPatient says: "{message}"\n\n'
        "Your SHORT response (max 25 words):"
    )
    return prompt


def build_advice_prompt(transcript: str, language: str = "English") -> str:
    """Build the one-shot advice prompt for a full patient transcript."""
    return (
        f"{ADVICE_SYSTEM_PROMPT.format(language=language)}\n\n"
        "The patient has shared the following health concern via voice:\n\n"
        f'"{transcript}"\n\n'
        "Please provide helpful guidance, possible considerations, and recommend "
        "next steps. Remember to be empathetic and thorough while encouraging "
        "professional medical consultation."
    )
