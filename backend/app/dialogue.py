"""
app/dialogue.py
---------------
Specialist routing and dialogue decisions for one patient message.

For every incoming message the router decides, in this order:

  1. REPEAT    → blank input; ask the patient to say it again
  2. GREETING  → pure greeting ("hello doctor"); persona opening line
  3. CLOSING   → patient is done ("nothing else"); ask for the report
  4. REFERRAL  → symptoms match another specialist (see ReferralPolicy)
  5. GENERATED → reply from the generative-text service
  6. FALLBACK  → keyword-triggered canned reply when (5) is unavailable

The router never raises: every path ends in a displayable, non-empty
sentence.  Generative failures are logged and recovered with the fallback.

Usage:
    from app.dialogue import DialogueRouter
    from app.specialists import DEFAULT_CATALOG

    router = DialogueRouter(DEFAULT_CATALOG)          # no generator → fallback only
    decision = asyncio.run(router.decide("I have a fever", "eye"))
    decision.redirect_to                              # → "general"
"""

from __future__ import annotations

import enum
import logging
import zlib
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence

from app.prompts import build_consultation_prompt
from app.specialists import SpecialistCatalog, SpecialistProfile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fixed phrase sets
# ---------------------------------------------------------------------------

GREETING_PHRASES: tuple[str, ...] = (
    "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    "hi doctor", "hello doctor",
)

# Whole-message closing tokens
CLOSING_TOKENS: tuple[str, ...] = (
    "no", "nope", "not really", "nothing", "no other", "no concern",
)

# Closing phrases matched anywhere in the message.  Any addition must be
# re-checked with find_phrase_collisions() against every specialist scope.
CLOSING_PHRASES: tuple[str, ...] = (
    "that's all", "thats all", "done", "finished", "end", "stop", "nothing else",
)

AFFIRMATIONS: tuple[str, ...] = ("yes", "yeah", "yep", "ok")

REPEAT_LINE = "I didn't catch that. Please repeat."

CLOSING_LINE = (
    "Thank you for sharing all that information. I have a good understanding "
    "of your symptoms now. Please click 'Get Prescription' to receive your "
    "personalized medical report and recommendations."
)

GENERIC_FOLLOW_UPS: tuple[str, ...] = (
    "I see. Can you describe how this affects your daily activities?",
    "That's helpful. Are there any other symptoms you've noticed?",
    "Thank you for sharing. Has this happened before, or is this the first time?",
    "I understand. On a scale of 1-10, how would you rate the severity?",
)


def opening_line(profile: SpecialistProfile) -> str:
    """The line a persona opens every consultation with."""
    return f"Hello! I'm your {profile.title}. What symptoms are you experiencing today?"


def referral_line(profile: SpecialistProfile) -> str:
    return (
        f"Those symptoms are best handled by our {profile.title}. "
        f"Please switch to the {profile.title} to continue."
    )


def suggestion_line(profile: SpecialistProfile) -> str:
    return f"For these symptoms I'd also recommend seeing our {profile.title}."


# ---------------------------------------------------------------------------
# Decision model
# ---------------------------------------------------------------------------

class ReferralPolicy(str, enum.Enum):
    """What happens when the message matches a different specialist."""
    PREEMPT = "preempt"                          # redirect, no persona reply
    ANSWER_THEN_SUGGEST = "answer_then_suggest"  # persona answers + suggestion


class DecisionKind(str, enum.Enum):
    REPEAT = "repeat"
    GREETING = "greeting"
    CLOSING = "closing"
    REFERRAL = "referral"
    GENERATED = "generated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Referral:
    recommended_key: str
    recommended_title: str


@dataclass(frozen=True)
class Decision:
    """The router's answer to one patient message."""
    kind: DecisionKind
    message: str                       # reply to display / speak
    redirect_to: str | None = None     # hard redirect (PREEMPT)
    referral: Referral | None = None   # soft suggestion (ANSWER_THEN_SUGGEST)

    def to_payload(self) -> dict:
        """Serialise to the JSON shape returned by POST /chat."""
        payload: dict = {"message": self.message}
        if self.redirect_to:
            payload["redirectTo"] = self.redirect_to
        if self.referral:
            payload["referral"] = {
                "recommendedKey": self.referral.recommended_key,
                "recommendedTitle": self.referral.recommended_title,
            }
        return payload


# ---------------------------------------------------------------------------
# Generative-text capability
# ---------------------------------------------------------------------------

class GenerationError(Exception):
    """The generative-text service could not produce a reply."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        """Return generated text, or raise on any failure."""
        ...


# Chooses one option for a message; must be deterministic for a given input.
FollowUpPicker = Callable[[str, Sequence[str]], str]


def stable_pick(seed: int = 0) -> FollowUpPicker:
    """
    Build a picker that chooses by a CRC32 of the seed and the message.

    The same message always gets the same follow-up for a given seed.
    """
    def pick(message: str, options: Sequence[str]) -> str:
        digest = zlib.crc32(f"{seed}:{message}".encode("utf-8"))
        return options[digest % len(options)]

    return pick


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _normalise(message: str) -> str:
    return message.lower().strip()


def is_greeting_only(message: str) -> bool:
    """
    True only when the whole message is a greeting, optionally ending in a
    single "!" or ".".  "hello I have pain" is not a greeting.
    """
    text = _normalise(message)
    if text in GREETING_PHRASES:
        return True
    return any(text in (g + "!", g + ".") for g in GREETING_PHRASES)


def is_gratitude(message: str) -> bool:
    return "thank" in _normalise(message)


def is_end_of_conversation(message: str) -> bool:
    """
    True if the message is a closing token ("no", "nothing", ...) or contains
    a closing phrase ("that's all", "done", "stop", ...) anywhere.
    """
    text = _normalise(message)
    if text in CLOSING_TOKENS:
        return True
    return any(phrase in text for phrase in CLOSING_PHRASES)


def match_specialist(
    message: str, specialists: Iterable[SpecialistProfile]
) -> SpecialistProfile | None:
    """
    Return the first specialist (in iteration order) with a scope keyword
    inside the message, or None.  First match wins; keyword counts are not
    weighed.
    """
    text = message.lower()
    for profile in specialists:
        if any(keyword in text for keyword in profile.scope):
            return profile
    return None


def find_phrase_collisions(
    phrases: Iterable[str], specialists: Iterable[SpecialistProfile]
) -> list[tuple[str, str, str]]:
    """
    Find closing phrases that overlap a specialist keyword.

    A collision is any (phrase, specialist key, keyword) where one string is
    a substring of the other, e.g. a closing cue "back" against the
    orthopedic keyword "back".  Such a phrase would end consultations that
    are really symptom descriptions.
    """
    profiles = list(specialists)
    collisions: list[tuple[str, str, str]] = []
    for phrase in phrases:
        for profile in profiles:
            for keyword in profile.scope:
                if phrase in keyword or keyword in phrase:
                    collisions.append((phrase, profile.key, keyword))
    return collisions


# ---------------------------------------------------------------------------
# Fallback replies
# Keyword groups are checked in order; the FIRST group with a hit wins.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _FallbackRule:
    """A canned reply triggered by any of its keywords (substring match)."""
    triggers: tuple[str, ...]
    reply: str


_FALLBACK_RULES: tuple[_FallbackRule, ...] = (
    _FallbackRule(
        triggers=("night", "dark"),
        reply=(
            "Night vision problems can have several causes. How long have you "
            "been experiencing this? Do you also have trouble in dim lighting?"
        ),
    ),
    _FallbackRule(
        triggers=("severe", "bad", "worse"),
        reply=(
            "I'm sorry to hear it's severe. Have you experienced any other "
            "symptoms like pain, headaches, or sensitivity to light?"
        ),
    ),
    _FallbackRule(
        triggers=("started", "ago", "days", "week"),
        reply=(
            "Thank you for that information. Has it been getting progressively "
            "worse, or has it stayed the same since it started?"
        ),
    ),
    _FallbackRule(
        triggers=("pain",),
        reply=(
            "I understand you're in pain. Can you rate it from 1 to 10? "
            "Does anything make it better or worse?"
        ),
    ),
    _FallbackRule(
        triggers=("can't see", "cannot see", "don't see"),
        reply=(
            "Vision problems are concerning. Is the blurriness constant or "
            "does it come and go? Any pain or redness?"
        ),
    ),
    _FallbackRule(
        triggers=("blur", "blurry"),
        reply=(
            "Blurry vision can have many causes. Is it in one eye or both? "
            "Do you wear glasses or contacts?"
        ),
    ),
    _FallbackRule(
        triggers=("cry", "tear", "watery"),
        reply=(
            "Excessive tearing can have various causes like allergies or "
            "blocked tear ducts. Is there any itching, redness, or discharge?"
        ),
    ),
    _FallbackRule(
        triggers=("can't look", "cannot look", "look well"),
        reply=(
            "Can you describe what happens when you try to see? Is it blurry, "
            "double vision, or something else?"
        ),
    ),
    _FallbackRule(
        triggers=("disease", "problem", "issue", "trouble"),
        reply=(
            "I understand. Can you describe specifically what you're "
            "experiencing? For example, is it pain, blurriness, or something else?"
        ),
    ),
    _FallbackRule(
        triggers=("poor vision", "vision problem"),
        reply=(
            "Vision problems need careful evaluation. Is it constant or does it "
            "come and go? One eye or both?"
        ),
    ),
)

_GRATITUDE_REPLY = "You're welcome. Take care, and come back if you need anything."
_AFFIRMATION_REPLY = "Can you tell me more about that?"


def get_smart_response(
    message: str,
    profile: SpecialistProfile,
    pick: FollowUpPicker | None = None,
) -> str:
    """
    Deterministic canned reply for when no generated reply is available.

    Priority: greeting → closing → affirmation → gratitude → keyword groups
    → a generic follow-up chosen by `pick`.  Never returns an empty string.
    """
    text = _normalise(message)

    if is_greeting_only(message):
        return opening_line(profile)

    if is_end_of_conversation(message):
        return CLOSING_LINE

    if text in AFFIRMATIONS:
        return _AFFIRMATION_REPLY

    if is_gratitude(message):
        return _GRATITUDE_REPLY

    for rule in _FALLBACK_RULES:
        if any(trigger in text for trigger in rule.triggers):
            return rule.reply

    return (pick or stable_pick())(text, GENERIC_FOLLOW_UPS)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class DialogueRouter:
    """
    Classifies patient messages against the current specialist.

    Args:
        catalog:   Ordered specialist profiles; iteration order is routing
                   priority.
        generator: Generative-text capability, or None to always use the
                   fallback replies.
        policy:    How referrals interact with the persona's own reply.
        pick:      Follow-up picker for generic fallback replies.
        language:  The only language generated replies may use.
    """

    def __init__(
        self,
        catalog: SpecialistCatalog,
        generator: TextGenerator | None = None,
        *,
        policy: ReferralPolicy = ReferralPolicy.PREEMPT,
        pick: FollowUpPicker | None = None,
        language: str = "English",
    ) -> None:
        self.catalog = catalog
        self.generator = generator
        self.policy = policy
        self.pick = pick or stable_pick()
        self.language = language

        for phrase, key, keyword in find_phrase_collisions(CLOSING_PHRASES, catalog):
            logger.warning(
                "Closing phrase %r overlaps keyword %r of specialist %r - "
                "symptom messages may end the consultation",
                phrase, keyword, key,
            )

    # Classification shortcuts, so callers holding a router need no imports
    is_greeting_only = staticmethod(is_greeting_only)
    is_end_of_conversation = staticmethod(is_end_of_conversation)

    def match_specialist(self, message: str) -> SpecialistProfile | None:
        return match_specialist(message, self.catalog)

    def fallback_reply(self, message: str, specialty_key: str | None) -> str:
        return get_smart_response(message, self.catalog.get(specialty_key), self.pick)

    async def decide(self, message: str, specialty_key: str | None) -> Decision:
        """
        Decide the reply to one patient message.  Never raises.

        Args:
            message:       Raw patient text (typed or transcribed).
            specialty_key: Key of the persona the patient is talking to.
                           Unknown keys fall back to the default profile.
        """
        if not message or not message.strip():
            return Decision(DecisionKind.REPEAT, REPEAT_LINE)

        profile = self.catalog.get(specialty_key)
        greeting = is_greeting_only(message)
        closing = is_end_of_conversation(message)
        logger.debug(
            "Classifying message: specialty=%s  greeting=%s  closing=%s",
            profile.key, greeting, closing,
        )

        if greeting:
            return Decision(DecisionKind.GREETING, opening_line(profile))

        if closing:
            logger.info("End of conversation detected for specialty=%s", profile.key)
            return Decision(DecisionKind.CLOSING, CLOSING_LINE)

        matched = self.match_specialist(message)
        suggested: SpecialistProfile | None = None
        if matched is not None and matched.key != profile.key and not is_gratitude(message):
            logger.info(
                "Referral: specialty=%s → %s  policy=%s",
                profile.key, matched.key, self.policy.value,
            )
            if self.policy is ReferralPolicy.PREEMPT:
                return Decision(
                    DecisionKind.REFERRAL,
                    referral_line(matched),
                    redirect_to=matched.key,
                )
            suggested = matched

        referral = (
            Referral(suggested.key, suggested.title) if suggested is not None else None
        )

        generated = await self._generate(message, profile, suggested)
        if generated:
            return Decision(DecisionKind.GENERATED, generated, referral=referral)

        reply = get_smart_response(message, profile, self.pick)
        if suggested is not None:
            reply = f"{reply} {suggestion_line(suggested)}"
        return Decision(DecisionKind.FALLBACK, reply, referral=referral)

    async def _generate(
        self,
        message: str,
        profile: SpecialistProfile,
        suggested: SpecialistProfile | None,
    ) -> str | None:
        """Single attempt at a generated reply; None on any failure."""
        if self.generator is None:
            return None

        prompt = build_consultation_prompt(
            profile, message, language=self.language, referral=suggested,
        )
        try:
            text = await self.generator.generate(prompt)
        except Exception as exc:
            logger.warning(
                "Generation failed for specialty=%s - using fallback: %s",
                profile.key, exc,
            )
            return None

        text = (text or "").strip()
        if not text:
            logger.warning("Generator returned empty text - using fallback")
            return None
        return text
