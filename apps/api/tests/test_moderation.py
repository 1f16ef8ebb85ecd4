import pytest

from conftest import FakeInference, FakeZeroShot
from services.errors import UpstreamError
from services.moderation import (
    REMEDIATION_FALLBACK,
    Compliant,
    Violation,
    classify_content,
    extract_haram_phrases,
    parse_moderation_answer,
    suggest_alternative,
)


def test_parse_moderation_answer_from_labeled_lines():
    raw = (
        "**Haram:** Yes\n"
        "Categories: gambling, interest\n"
        "Explanation: Promotes betting.\n"
        'Problematic phrases: - "place a bet"\n'
        '- "casino bonus"\n'
    )
    answer = parse_moderation_answer(raw)

    assert answer is not None
    assert answer.haram is True
    assert answer.categories == ["gambling", "interest"]
    assert answer.explanation == "Promotes betting."
    assert answer.problematic_phrases == ["place a bet", "casino bonus"]


def test_parse_moderation_answer_returns_none_without_verdict():
    assert parse_moderation_answer("I could not decide.") is None


def test_extract_haram_phrases_uses_three_word_window():
    text = "I want to drink wine and go to the casino tonight"
    phrases = extract_haram_phrases(text, ["alcohol", "gambling"])

    assert phrases == ["want to drink wine and go to", "go to the casino tonight"]


def test_extract_haram_phrases_dedupes_aliased_categories_and_matches_plurals():
    text = "Where can I buy cheap beers near me"
    phrases = extract_haram_phrases(text, ["intoxicants", "alcohol"])

    assert phrases == ["I buy cheap beers near me"]
    assert extract_haram_phrases(text, ["unknown category"]) == []


@pytest.mark.asyncio
async def test_primary_classifier_compliant():
    inference = FakeInference({"moderation": '{"haram": false, "categories": []}'})
    zero_shot = FakeZeroShot()

    result = await classify_content("A recipe for lentil soup", inference=inference, zero_shot=zero_shot)

    assert result == Compliant(source="primary")
    assert result.is_haram is False
    assert inference.calls[0]["json_mode"] is True
    assert zero_shot.calls == []


@pytest.mark.asyncio
async def test_primary_classifier_violation_extracts_phrases_when_model_lists_none():
    inference = FakeInference(
        {
            "moderation": (
                '{"haram": true, "categories": ["intoxicants"], '
                '"explanation": "Alcohol is prohibited.", "problematic_phrases": []}'
            )
        }
    )

    result = await classify_content(
        "Write a blog about pairing wine with steak",
        inference=inference,
        zero_shot=FakeZeroShot(),
    )

    assert isinstance(result, Violation)
    assert result.explanation == "Alcohol is prohibited."
    assert result.categories == ["intoxicants"]
    assert result.haram_phrases == ["blog about pairing wine with steak"]
    assert result.source == "primary"


@pytest.mark.asyncio
async def test_unparsable_primary_answer_falls_back_to_zero_shot():
    inference = FakeInference({"moderation": "I'm not sure how to answer that."})
    zero_shot = FakeZeroShot(
        scores={"gambling": 0.91, "haram content": 0.75, "halal content": 0.95, "pork": 0.10}
    )

    result = await classify_content("Tips to win at the casino", inference=inference, zero_shot=zero_shot)

    assert isinstance(result, Violation)
    assert result.source == "fallback"
    assert result.categories == ["gambling", "haram content"]
    assert result.haram_phrases == ["win at the casino"]
    assert "gambling" in result.explanation
    assert len(zero_shot.calls) == 1


@pytest.mark.asyncio
async def test_upstream_failure_falls_back_and_scores_below_threshold_are_compliant():
    inference = FakeInference({"moderation": UpstreamError("timeout")})
    zero_shot = FakeZeroShot(scores={"halal content": 0.88, "alcohol": 0.7, "gambling": 0.2})

    result = await classify_content("Plan a family picnic", inference=inference, zero_shot=zero_shot)

    assert result == Compliant(source="fallback")


@pytest.mark.asyncio
async def test_unavailable_primary_and_failing_fallback_leave_prompt_unclassified():
    inference = FakeInference(available=False)
    zero_shot = FakeZeroShot(error=UpstreamError("Zero-shot classifier unreachable"))

    result = await classify_content("Plan a family picnic", inference=inference, zero_shot=zero_shot)

    assert result == Compliant(source="unclassified")
    assert inference.calls == []


@pytest.mark.asyncio
async def test_suggest_alternative_strips_quotes_and_mentions_phrases():
    inference = FakeInference({"remediation": ' "Write a blog about pairing juice with steak" '})

    suggestion = await suggest_alternative(
        "Write a blog about pairing wine with steak",
        ["pairing wine"],
        inference=inference,
    )

    assert suggestion == "Write a blog about pairing juice with steak"
    assert "pairing wine" in inference.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_suggest_alternative_never_raises():
    failing = FakeInference({"remediation": UpstreamError("boom")})
    empty = FakeInference({"remediation": "   "})

    assert await suggest_alternative("bet on horses", [], inference=failing) == REMEDIATION_FALLBACK
    assert await suggest_alternative("bet on horses", [], inference=empty) == REMEDIATION_FALLBACK


def test_extract_haram_phrases_matches_keyword_prefixes():
    assert extract_haram_phrases("Write an essay about pornography addiction today", ["pornography"]) == [
        "an essay about pornography addiction today"
    ]
    assert extract_haram_phrases("Describe the best alcoholic drinks for a party", ["alcohol"]) == [
        "Describe the best alcoholic drinks for a"
    ]
    assert extract_haram_phrases("Tips for sports betting this weekend", ["gambling"]) == [
        "Tips for sports betting this weekend"
    ]


def test_extract_haram_phrases_short_stems_skip_unrelated_words():
    assert extract_haram_phrases("Choose between better options", ["gambling"]) == []
    assert extract_haram_phrases("A sextet played between sets", ["pornography"]) == []
