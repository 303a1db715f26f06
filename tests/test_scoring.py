"""Tests for LLM output validation and the scoring adapters."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from drill_eval.config.settings import BedrockConfig, S3Config
from drill_eval.domain.errors import ScoringError, ScoringValidationError
from drill_eval.services.llm_client import BedrockLlmClient, LlmCompletion, LlmInvocationError
from drill_eval.services.response_contract import ResponseContractError, ScoringOutput
from drill_eval.services.scoring import BedrockScoringService, OpenAIScoringService

VALID = {
    "score": 85,
    "feedback": "Specific and well structured.",
    "what_changed": "Added the latency numbers.",
    "practice_rule": "Quantify every claim.",
}


class _ScriptedBedrock:
    def __init__(self, *responses):
        self._responses = list(responses)
        self.calls = 0

    async def invoke(self, *, system_prompt, user_prompt):
        self.calls += 1
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _openai_client(*contents, refusal=None):
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        content = contents[len(calls) - 1]
        message = SimpleNamespace(content=content, refusal=refusal)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=message)],
            usage=SimpleNamespace(total_tokens=100),
        )

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


def test_contract_accepts_fenced_json():
    output = ScoringOutput.from_json("```json\n" + json.dumps(VALID) + "\n```")

    assert output.score == 85
    assert output.practice_rule == "Quantify every claim."


def test_contract_accepts_integral_float_score():
    assert ScoringOutput.from_payload({**VALID, "score": 85.0}).score == 85


@pytest.mark.parametrize(
    "overrides",
    [
        {"score": 150},
        {"score": -5},
        {"score": 85.5},
        {"score": "85"},
        {"feedback": ""},
        {"feedback": "   "},
        {"what_changed": "x" * 2001},
    ],
)
def test_contract_rejects_out_of_range_values(overrides):
    with pytest.raises(ScoringValidationError):
        ScoringOutput.from_payload({**VALID, **overrides})


def test_contract_rejects_missing_feedback():
    payload = {key: value for key, value in VALID.items() if key != "feedback"}

    with pytest.raises(ScoringValidationError):
        ScoringOutput.from_payload(payload)


def test_contract_distinguishes_unparseable_json():
    with pytest.raises(ResponseContractError):
        ScoringOutput.from_json("the score is 85")


def test_bedrock_scoring_sums_tokens_across_json_retries():
    client = _ScriptedBedrock(
        LlmCompletion(text="not json at all", tokens_used=40),
        LlmCompletion(text=json.dumps(VALID), tokens_used=60),
    )

    outcome = asyncio.run(BedrockScoringService(client, max_json_retries=2).score("answer"))

    assert client.calls == 2
    assert outcome.score == 85
    assert outcome.tokens_used == 100


def test_bedrock_scoring_gives_up_after_retry_budget():
    client = _ScriptedBedrock(
        LlmCompletion(text="nope"),
        LlmCompletion(text="still nope"),
    )

    with pytest.raises(ScoringValidationError):
        asyncio.run(BedrockScoringService(client, max_json_retries=1).score("answer"))
    assert client.calls == 2


def test_bedrock_schema_violation_is_not_retried():
    client = _ScriptedBedrock(
        LlmCompletion(text=json.dumps({**VALID, "score": 150})),
        LlmCompletion(text=json.dumps(VALID)),
    )

    with pytest.raises(ScoringValidationError):
        asyncio.run(BedrockScoringService(client, max_json_retries=2).score("answer"))
    assert client.calls == 1


def test_bedrock_invocation_error_is_transient():
    client = _ScriptedBedrock(LlmInvocationError("throttled"))

    with pytest.raises(ScoringError) as excinfo:
        asyncio.run(BedrockScoringService(client).score("answer"))
    assert not isinstance(excinfo.value, ScoringValidationError)


def test_blank_transcript_is_rejected_before_calling_provider():
    client = _ScriptedBedrock()

    with pytest.raises(ScoringValidationError):
        asyncio.run(BedrockScoringService(client).score("   "))
    assert client.calls == 0


def test_openai_scoring_requests_strict_json_schema():
    client, calls = _openai_client(json.dumps(VALID))

    outcome = asyncio.run(OpenAIScoringService(client, model="gpt-test").score("answer"))

    assert outcome.score == 85
    assert outcome.tokens_used == 100
    response_format = calls[0]["response_format"]
    assert response_format["type"] == "json_schema"
    assert response_format["json_schema"]["strict"] is True
    assert calls[0]["model"] == "gpt-test"


def test_openai_refusal_is_a_validation_failure():
    client, _ = _openai_client(None, refusal="I can't help with that.")

    with pytest.raises(ScoringValidationError):
        asyncio.run(OpenAIScoringService(client, model="gpt-test").score("answer"))


class _FakeConverse:
    def __init__(self, response=None, error=None):
        self.requests = []
        self._response = response
        self._error = error

    def converse(self, **kwargs):
        self.requests.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._response


def test_bedrock_client_joins_text_blocks_and_reads_usage():
    converse = _FakeConverse(
        {
            "output": {"message": {"content": [{"text": '{"score": 1,'}, {"text": '"x": 2}'}]}},
            "usage": {"totalTokens": 42},
        }
    )
    client = BedrockLlmClient(BedrockConfig(), S3Config(), client=converse)

    completion = asyncio.run(client.invoke(system_prompt="sys", user_prompt="user"))

    assert completion == LlmCompletion(text='{"score": 1,\n"x": 2}', tokens_used=42)
    assert converse.requests[0]["system"] == [{"text": "sys"}]


def test_bedrock_client_wraps_provider_errors():
    client = BedrockLlmClient(BedrockConfig(), S3Config(), client=_FakeConverse(error=RuntimeError("throttled")))

    with pytest.raises(LlmInvocationError):
        asyncio.run(client.invoke(system_prompt="sys", user_prompt="user"))
