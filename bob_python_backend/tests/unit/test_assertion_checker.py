import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from bob_python_backend.errors import MalformedResponseError, TransportError
from bob_python_backend.schemas import Assertion, FactCheckResult, PoliticalBelief
from bob_python_backend.services.assertion_checker import (
    AssertionChecker,
    calculate_truthfulness_score,
    parse_assertions,
    parse_assertions_markdown,
    parse_fact_check,
)

MARKDOWN_REPLY = """Assertion 1:
Statement: The minimum wage was raised in 2009
Fact-checkable: yes
Model Confidence: 0.8
User Confidence: 0.9
Context: Federal minimum wage history

Assertion 2:
**Statement:** Taxes fund roads
**Fact-checkable:** Yes
**Model Confidence:** 0.7
**User Confidence:** 0.6
**Context:** Budget breakdowns
"""

JSON_REPLY = json.dumps(
    [
        {
            "statement": "The minimum wage was raised in 2009",
            "isFactCheckable": True,
            "modelConfidence": 0.8,
            "userConfidence": 0.9,
            "sourceContext": "Federal minimum wage history",
        },
        {
            "statement": "Taxes fund roads",
            "isFactCheckable": True,
            "modelConfidence": 0.7,
            "userConfidence": 0.6,
            "sourceContext": "Budget breakdowns",
        },
    ]
)

FACT_CHECK_REPLY = """Determination: true
Confidence: 0.9
Explanation: Confirmed by records: the change took effect in July 2009.
Sources:
- https://www.dol.gov/minimum-wage/history
- https://example.org/wage-report
"""


def _check(statement, is_true=True, confidence=1.0):
    return FactCheckResult(statement=statement, is_true=is_true, confidence=confidence, explanation="e", sources=["s"])


# ---------------------------------------------------------------------------
# Assertion parsing
# ---------------------------------------------------------------------------

def test_json_and_markdown_replies_yield_the_same_statements():
    from_json = parse_assertions(JSON_REPLY)
    from_markdown = parse_assertions(MARKDOWN_REPLY)

    assert [a.statement for a in from_json] == [a.statement for a in from_markdown]
    assert from_markdown[0].model_confidence == pytest.approx(0.8)
    assert from_markdown[0].user_confidence == pytest.approx(0.9)
    assert from_markdown[0].is_fact_checkable is True
    assert from_markdown[0].source_context == "Federal minimum wage history"
    assert from_markdown[1].model_confidence == pytest.approx(0.7)


def test_markdown_segments_default_missing_fields():
    result = parse_assertions_markdown("1. Statement: Inflation was 9% in 2022\n\n2. Claim: Rent went up")
    assert result.ok
    first, second = result.value
    assert first.statement == "Inflation was 9% in 2022"
    assert first.model_confidence == 0.5
    assert first.user_confidence == 0.5
    assert first.is_fact_checkable is False
    assert second.statement == "Rent went up"


def test_markdown_segment_with_out_of_range_confidence_is_discarded(caplog):
    reply = "Assertion 1:\nStatement: Bad one\nModel Confidence: 7\n\nAssertion 2:\nStatement: Good one\nModel Confidence: 0.4\n"
    assertions = parse_assertions(reply)
    assert [a.statement for a in assertions] == ["Good one"]
    assert "Discarding invalid assertion" in caplog.text


def test_invalid_json_items_are_skipped():
    reply = json.dumps([{"statement": ""}, {"statement": "Valid", "modelConfidence": 0.3}, "junk"])
    assertions = parse_assertions(reply)
    assert [a.statement for a in assertions] == ["Valid"]


def test_unparseable_reply_yields_no_assertions():
    assert parse_assertions("I could not find any claims.") == []


@pytest.mark.parametrize(
    "answer,expected",
    [
        ("Yes", True),
        ("true, via census data", True),
        ("No (not verifiable)", False),
        ("unverifiable", False),
        ("Not really", False),
    ],
)
def test_fact_checkable_answer_must_lead_with_yes(answer, expected):
    result = parse_assertions_markdown(f"Assertion 1:\nStatement: Rent went up\nFact-checkable: {answer}\n")
    assert result.value[0].is_fact_checkable is expected


# ---------------------------------------------------------------------------
# Fact-check parsing
# ---------------------------------------------------------------------------

def test_parse_fact_check_reads_all_fields():
    result = parse_fact_check(FACT_CHECK_REPLY, statement="wage")
    assert result.ok
    check = result.value
    assert check.statement == "wage"
    assert check.is_true is True
    assert check.confidence == pytest.approx(0.9)
    assert check.explanation == "Confirmed by records: the change took effect in July 2009."
    assert check.sources == ["https://www.dol.gov/minimum-wage/history", "https://example.org/wage-report"]


def test_parse_fact_check_is_case_insensitive_and_clamps_confidence():
    reply = "DETERMINATION: False\nconfidence: 4.2\nEXPLANATION: nope\n* source one\n"
    result = parse_fact_check(reply)
    assert result.ok
    assert result.value.is_true is False
    assert result.value.confidence == 1.0
    assert result.value.sources == ["source one"]


def test_parse_fact_check_defaults_unreadable_confidence():
    reply = "Determination: yes\nConfidence: unsure\nExplanation: fine\n- src\n"
    result = parse_fact_check(reply)
    assert result.ok
    assert result.value.is_true is True
    assert result.value.confidence == 0.5


def test_parse_fact_check_rejects_incomplete_reply():
    result = parse_fact_check("Determination: true\nConfidence: 0.9\nExplanation: ok\n")
    assert not result.ok
    assert "sources" in result.reason


# ---------------------------------------------------------------------------
# Truthfulness score
# ---------------------------------------------------------------------------

def test_truthfulness_is_neutral_without_checks(sample_based_score):
    assert calculate_truthfulness_score([], sample_based_score) == 50


def test_truthfulness_clamps_weighted_mainstream_score(sample_based_score, caplog):
    check = _check("orbits the sun", confidence=1.0)
    assert calculate_truthfulness_score([check], sample_based_score) == 100
    assert "exceeds 100" in caplog.text


def test_truthfulness_weights_contrarian_and_false_checks(sample_based_score):
    checks = [_check("Remote work", confidence=0.5), _check("something else", is_true=False, confidence=0.9)]
    # (0.5 * 100 * 0.8 + 0) / 2 = 20
    assert calculate_truthfulness_score(checks, sample_based_score) == 20


def test_truthfulness_rounds_halves_up(sample_based_score):
    checks = [_check("Remote work", confidence=0.5)] + [_check(f"false {n}", is_true=False) for n in range(15)]
    # 40 / 16 = 2.5
    assert calculate_truthfulness_score(checks, sample_based_score) == 3


# ---------------------------------------------------------------------------
# AssertionChecker
# ---------------------------------------------------------------------------

def _checker(replies):
    client = MagicMock()
    client.complete_text = AsyncMock(side_effect=replies)
    return AssertionChecker(client=client), client


@pytest.mark.asyncio
async def test_extract_assertions_sends_one_call_for_all_beliefs():
    checker, client = _checker([JSON_REPLY])
    beliefs = [PoliticalBelief(belief="a"), PoliticalBelief(belief="b")]

    assertions = await checker.extract_assertions(beliefs)

    assert len(assertions) == 2
    assert client.complete_text.await_count == 1
    user_message = client.complete_text.await_args.kwargs["messages"][1]["content"]
    assert "Belief: a" in user_message and "Belief: b" in user_message


@pytest.mark.asyncio
async def test_extract_assertions_returns_empty_on_upstream_failure():
    checker, _ = _checker(TransportError("down"))
    assert await checker.extract_assertions([PoliticalBelief(belief="a")]) == []


@pytest.mark.asyncio
async def test_fact_check_skips_unverifiable_and_incomplete_results(no_sleep):
    checker, client = _checker([FACT_CHECK_REPLY, "Determination: true"])
    assertions = [
        Assertion(statement="checkable one", isFactCheckable=True),
        Assertion(statement="opinion", isFactCheckable=False),
        Assertion(statement="checkable two", isFactCheckable=True),
    ]

    results = await checker.fact_check(assertions)

    assert [r.statement for r in results] == ["checkable one"]
    assert client.complete_text.await_count == 2


@pytest.mark.asyncio
async def test_fact_check_retries_three_times_then_skips(no_sleep):
    checker, client = _checker(MalformedResponseError("bad"))

    results = await checker.fact_check([Assertion(statement="x", isFactCheckable=True)])

    assert results == []
    assert client.complete_text.await_count == 3
    assert no_sleep == [1.0, 2.0]


@pytest.mark.asyncio
async def test_enhance_based_score_recomputes_truthfulness(sample_based_score):
    mainstream_reply = json.dumps(
        [{"statement": "orbits the sun", "isFactCheckable": True, "modelConfidence": 0.9, "userConfidence": 0.9}]
    )
    checker, client = _checker([mainstream_reply, "[]", FACT_CHECK_REPLY])

    enhanced = await checker.enhance_based_score(sample_based_score)

    assert len(enhanced.fact_checks) == 1
    # 0.9 * 100 * 1.2 = 108 -> clamped
    assert enhanced.truthfulness_score == 100
    assert enhanced.based_score == sample_based_score.based_score
    dumped = enhanced.model_dump(by_alias=True)
    assert dumped["factChecks"][0]["isTrue"] is True
