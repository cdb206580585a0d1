"""
tests/test_dialogue.py
----------------------
Unit tests for the specialist routing and dialogue decisions
(app/dialogue.py).

Test coverage:
  1. Greeting detection - whole-message match only
  2. End-of-conversation detection - tokens and substring phrases
  3. Specialist matching - first match in catalog order
  4. Closing-phrase collisions against specialist scopes
  5. Fallback replies - priority order and determinism
  6. decide() - repeat / greeting / closing / referral / generated / fallback
  7. Referral policies - preempt vs answer-then-suggest

Run with:
    pytest tests/test_dialogue.py -v
"""

import asyncio
import logging

import pytest

from app import dialogue
from app.dialogue import (
    CLOSING_LINE,
    CLOSING_PHRASES,
    GENERIC_FOLLOW_UPS,
    REPEAT_LINE,
    Decision,
    DecisionKind,
    DialogueRouter,
    GenerationError,
    Referral,
    ReferralPolicy,
    find_phrase_collisions,
    get_smart_response,
    is_end_of_conversation,
    is_greeting_only,
    match_specialist,
    opening_line,
    stable_pick,
    suggestion_line,
)
from app.specialists import DEFAULT_CATALOG, SpecialistCatalog


# ===========================================================================
# Helpers
# ===========================================================================

class FakeGenerator:
    """Records prompts and returns a fixed reply."""

    def __init__(self, reply: str = "How long have you had this?") -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


class FailingGenerator:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        raise self.exc


def _decide(router: DialogueRouter, message: str, specialty: str) -> Decision:
    return asyncio.run(router.decide(message, specialty))


def _assert_displayable(decision: Decision) -> None:
    assert isinstance(decision.message, str) and decision.message.strip(), (
        "decide() must always return a non-empty message"
    )


# ===========================================================================
# Test Case 1 - Greeting detection
# ===========================================================================

class TestGreetingDetection:

    @pytest.mark.parametrize("message", [
        "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
        "hi doctor", "hello doctor",
    ])
    def test_pure_greetings(self, message):
        assert is_greeting_only(message)

    @pytest.mark.parametrize("message", ["hello!", "hi.", "Hello Doctor!", "  HEY  "])
    def test_case_whitespace_and_single_punctuation(self, message):
        assert is_greeting_only(message)

    @pytest.mark.parametrize("message", [
        "hello I have pain", "my eye hurts", "hi, my back hurts", "hello!!", "",
    ])
    def test_greeting_with_more_content_is_not_pure(self, message):
        assert not is_greeting_only(message)


# ===========================================================================
# Test Case 2 - End-of-conversation detection
# ===========================================================================

class TestEndOfConversation:

    @pytest.mark.parametrize("message", [
        "no", "nope", "not really", "nothing", "no other", "no concern",
        "that's all", "thats all", "done", "finished", "nothing else",
        "end", "stop",
    ])
    def test_closing_phrases(self, message):
        assert is_end_of_conversation(message)

    @pytest.mark.parametrize("message", [
        "No", "  Nope ", "That's all, thank you", "I think we're done here",
    ])
    def test_closing_inside_longer_text(self, message):
        assert is_end_of_conversation(message)

    @pytest.mark.parametrize("message", [
        "I have a stomach ache",
        "My knee hurts when I walk",
        "I have more pain today",
        "my eyes are watery",
        "I cough at night",
        "I feel dizzy and tired",
        "nothing helps the pain",
    ])
    def test_symptom_sentences_do_not_close(self, message):
        assert not is_end_of_conversation(message)

    def test_closing_substring_matches_inside_words(self):
        """Substring semantics are kept: "bend" contains the cue "end"."""
        assert is_end_of_conversation("it hurts when I bend my knee")

    @pytest.mark.parametrize("message", [
        "my tendon is sore",
        "my belly is tender",
        "pain near my appendix",
        "it started last weekend",
        "the bleeding stopped but it still hurts",
    ])
    def test_symptom_words_containing_closing_cues_end_the_consultation(self, message):
        """Known substring hits for "end" and "stop"; these close the visit today."""
        assert is_end_of_conversation(message)


# ===========================================================================
# Test Case 3 - Specialist matching
# ===========================================================================

class TestMatchSpecialist:

    @pytest.mark.parametrize("message, expected", [
        ("I have vision problems", "eye"),
        ("My back hurts a lot", "orthopedic"),
        ("I have difficulty breathing", "respiratory"),
        ("I have stomach pain and nausea", "digestive"),
        ("I have a fever", "general"),
        ("I get a migraine every morning", "neurology"),
    ])
    def test_symptoms_route_to_expected_specialist(self, message, expected):
        result = match_specialist(message, DEFAULT_CATALOG)
        assert result is not None
        assert result.key == expected

    def test_unrelated_message_matches_nothing(self):
        assert match_specialist("Hello doctor", DEFAULT_CATALOG) is None

    def test_case_insensitive(self):
        assert match_specialist("MY KNEE IS SWOLLEN", DEFAULT_CATALOG).key == "orthopedic"

    def test_catalog_order_is_pinned(self):
        assert DEFAULT_CATALOG.keys == (
            "general", "eye", "orthopedic", "neurology", "respiratory", "digestive",
        )

    def test_earliest_specialist_wins(self):
        """Both eye and knee keywords present → eye comes first in order."""
        assert match_specialist("my eye and my knee hurt", DEFAULT_CATALOG).key == "eye"

    def test_heartburn_routes_to_general_before_digestive(self):
        assert match_specialist("heartburn after meals", DEFAULT_CATALOG).key == "general"

    def test_reordered_catalog_changes_winner(self):
        profiles = DEFAULT_CATALOG.profiles
        reordered = SpecialistCatalog(
            profiles=(profiles[2], profiles[1], profiles[0]) + profiles[3:],
        )
        assert match_specialist("my eye and my knee hurt", reordered).key == "orthopedic"

    def test_repeated_calls_are_identical(self):
        results = {match_specialist("my chest and back hurt", DEFAULT_CATALOG).key
                   for _ in range(20)}
        assert results == {"orthopedic"}


# ===========================================================================
# Test Case 4 - Closing-phrase collisions
# ===========================================================================

class TestPhraseCollisions:

    def test_default_phrases_do_not_collide_with_any_scope(self):
        assert find_phrase_collisions(CLOSING_PHRASES, DEFAULT_CATALOG) == []

    def test_back_as_closing_cue_collides_with_orthopedic(self):
        collisions = find_phrase_collisions(["back"], DEFAULT_CATALOG)
        assert ("back", "orthopedic", "back") in collisions

    def test_router_warns_about_collisions(self, monkeypatch, caplog):
        monkeypatch.setattr(dialogue, "CLOSING_PHRASES", CLOSING_PHRASES + ("back",))
        with caplog.at_level(logging.WARNING, logger="app.dialogue"):
            DialogueRouter(DEFAULT_CATALOG)
        assert any("back" in record.getMessage() for record in caplog.records)


# ===========================================================================
# Test Case 5 - Fallback replies
# ===========================================================================

class TestSmartResponse:
    eye = DEFAULT_CATALOG.get("eye")

    def test_greeting_gets_opening_line(self):
        assert get_smart_response("hello", self.eye) == opening_line(self.eye)

    def test_closing_gets_report_line(self):
        assert get_smart_response("that's all", self.eye) == CLOSING_LINE

    @pytest.mark.parametrize("message", ["yes", "Yeah", "yep", "OK"])
    def test_affirmation(self, message):
        assert get_smart_response(message, self.eye) == "Can you tell me more about that?"

    def test_gratitude(self):
        assert get_smart_response("thanks a lot", self.eye).startswith("You're welcome")

    def test_night_rule_beats_severity_rule(self):
        reply = get_smart_response("it gets bad at night", self.eye)
        assert reply.startswith("Night vision problems")

    def test_severity_rule_beats_pain_rule(self):
        reply = get_smart_response("the pain is severe", self.eye)
        assert reply.startswith("I'm sorry to hear it's severe")

    def test_duration_mention(self):
        reply = get_smart_response("pain started two days ago", self.eye)
        assert "since it started" in reply

    def test_pain(self):
        assert "rate it from 1 to 10" in get_smart_response("my pain is sharp", self.eye)

    def test_blur(self):
        assert get_smart_response("everything is blurry", self.eye).startswith("Blurry vision")

    def test_tearing(self):
        assert get_smart_response("my eyes are watery", self.eye).startswith("Excessive tearing")

    def test_generic_follow_up_for_unmatched_text(self):
        assert get_smart_response("my eye itches", self.eye) in GENERIC_FOLLOW_UPS

    def test_same_message_same_follow_up(self):
        pick = stable_pick(7)
        first = get_smart_response("my eye itches", self.eye, pick)
        second = get_smart_response("my eye itches", self.eye, pick)
        assert first == second

    def test_stable_pick_single_option(self):
        assert stable_pick()("anything", ["only"]) == "only"


# ===========================================================================
# Test Case 6 - decide()
# ===========================================================================

class TestDecide:

    def test_empty_message_asks_to_repeat_without_lookup(self):
        router = DialogueRouter(DEFAULT_CATALOG)

        def _fail(message):
            raise AssertionError("specialist lookup must not run for empty input")

        router.match_specialist = _fail
        decision = _decide(router, "", "eye")
        assert decision.kind is DecisionKind.REPEAT
        assert decision.message == REPEAT_LINE

    @pytest.mark.parametrize("message", ["   ", "\n\t"])
    def test_whitespace_asks_to_repeat(self, message):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), message, "general")
        assert decision.message == REPEAT_LINE

    def test_fever_in_eye_redirects_to_general(self):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), "I have a fever", "eye")
        assert decision.kind is DecisionKind.REFERRAL
        assert decision.redirect_to == "general"
        assert "General Doctor" in decision.message

    @pytest.mark.parametrize("specialty", DEFAULT_CATALOG.keys)
    def test_hello_doctor_gets_persona_opening_line(self, specialty):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), "hello doctor", specialty)
        assert decision.kind is DecisionKind.GREETING
        assert decision.message == opening_line(DEFAULT_CATALOG.get(specialty))
        assert decision.redirect_to is None and decision.referral is None

    def test_nothing_else_gets_report_line(self):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), "nothing else", "orthopedic")
        assert decision.kind is DecisionKind.CLOSING
        assert decision.message == CLOSING_LINE

    def test_unknown_specialty_defaults_to_general(self):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), "hello", "dentist")
        assert "General Doctor" in decision.message

    def test_gratitude_suppresses_referral(self):
        decision = _decide(
            DialogueRouter(DEFAULT_CATALOG), "thank you, my back feels better", "eye"
        )
        assert decision.redirect_to is None
        assert decision.message.startswith("You're welcome")

    def test_same_specialty_match_is_not_a_referral(self):
        decision = _decide(DialogueRouter(DEFAULT_CATALOG), "my eye itches", "eye")
        assert decision.kind is DecisionKind.FALLBACK
        assert decision.redirect_to is None

    def test_fallback_path_is_pure(self):
        router = DialogueRouter(DEFAULT_CATALOG)
        first = _decide(router, "my eye itches", "eye")
        second = _decide(router, "my eye itches", "eye")
        assert first == second

    @pytest.mark.parametrize("message", ["", " ", "a" * 100_000, "pain " * 5000, "?!"])
    def test_never_empty_never_raises(self, message):
        _assert_displayable(_decide(DialogueRouter(DEFAULT_CATALOG), message, "general"))

    def test_generated_reply_used_when_available(self):
        generator = FakeGenerator("  How long have you had this?  ")
        router = DialogueRouter(DEFAULT_CATALOG, generator)
        decision = _decide(router, "my eye itches", "eye")
        assert decision.kind is DecisionKind.GENERATED
        assert decision.message == "How long have you had this?"
        assert len(generator.prompts) == 1

    def test_prompt_embeds_persona_topics_and_rules(self):
        generator = FakeGenerator()
        router = DialogueRouter(DEFAULT_CATALOG, generator, language="French")
        _decide(router, "my eye itches", "eye")
        prompt = generator.prompts[0]
        assert "You are a Eye Doctor" in prompt
        assert "Your specialty: eye, vision, sight, blind, blur, red eye." in prompt
        assert "Respond ONLY in French" in prompt
        assert "Do NOT recommend or mention any medicines" in prompt
        assert "ONE follow-up question" in prompt
        for topic in ("duration", "severity", "triggers", "related symptoms",
                      "previous treatments"):
            assert topic in prompt
        assert 'Patient says: "my eye itches"' in prompt

    def test_generator_not_called_for_greeting_or_referral(self):
        generator = FakeGenerator()
        router = DialogueRouter(DEFAULT_CATALOG, generator)
        _decide(router, "hello", "eye")
        _decide(router, "I have a fever", "eye")
        assert generator.prompts == []

    @pytest.mark.parametrize("exc", [
        GenerationError("quota exceeded"), RuntimeError("boom"), TimeoutError(),
    ])
    def test_generator_failure_falls_back(self, exc):
        generator = FailingGenerator(exc)
        router = DialogueRouter(DEFAULT_CATALOG, generator)
        decision = _decide(router, "my eye itches", "eye")
        assert decision.kind is DecisionKind.FALLBACK
        assert decision.message == router.fallback_reply("my eye itches", "eye")
        assert generator.calls == 1, "a failed generation must not be retried"

    def test_blank_generated_text_falls_back(self):
        router = DialogueRouter(DEFAULT_CATALOG, FakeGenerator("   "))
        decision = _decide(router, "my eye itches", "eye")
        assert decision.kind is DecisionKind.FALLBACK


# ===========================================================================
# Test Case 7 - Referral policies
# ===========================================================================

class TestAnswerThenSuggest:

    def _router(self, generator=None) -> DialogueRouter:
        return DialogueRouter(
            DEFAULT_CATALOG, generator, policy=ReferralPolicy.ANSWER_THEN_SUGGEST
        )

    def test_fallback_answer_carries_suggestion(self):
        decision = _decide(self._router(), "I have a fever", "eye")
        assert decision.kind is DecisionKind.FALLBACK
        assert decision.redirect_to is None
        assert decision.referral == Referral("general", "General Doctor")
        assert decision.message.endswith(suggestion_line(DEFAULT_CATALOG.get("general")))

    def test_generated_answer_prompt_mentions_other_specialist(self):
        generator = FakeGenerator()
        decision = _decide(self._router(generator), "I have a fever", "eye")
        assert decision.kind is DecisionKind.GENERATED
        assert decision.referral == Referral("general", "General Doctor")
        assert "slightly outside your specialty" in generator.prompts[0]
        assert "General Doctor" in generator.prompts[0]

    def test_general_persona_gets_consult_also_note(self):
        generator = FakeGenerator()
        _decide(self._router(generator), "my eye hurts", "general")
        assert "may benefit from seeing our Eye Doctor" in generator.prompts[0]


# ===========================================================================
# Serialisation
# ===========================================================================

class TestDecisionPayload:

    def test_plain_reply(self):
        payload = Decision(DecisionKind.FALLBACK, "Tell me more.").to_payload()
        assert payload == {"message": "Tell me more."}

    def test_redirect(self):
        payload = Decision(DecisionKind.REFERRAL, "Switch.", redirect_to="eye").to_payload()
        assert payload == {"message": "Switch.", "redirectTo": "eye"}

    def test_soft_referral(self):
        payload = Decision(
            DecisionKind.GENERATED, "Answer.", referral=Referral("eye", "Eye Doctor")
        ).to_payload()
        assert payload["referral"] == {
            "recommendedKey": "eye", "recommendedTitle": "Eye Doctor",
        }
