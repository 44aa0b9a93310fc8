"""Tests for message classification."""

from __future__ import annotations

import json

import httpx
import pytest

from inbox_sync.core.config import LlmSettings
from inbox_sync.core.models import Category
from inbox_sync.intelligence import (
    KeywordClassifier,
    LLMClassifier,
    LLMError,
    OllamaClient,
    build_classifier,
)


@pytest.mark.parametrize(
    ("subject", "body", "expected"),
    [
        ("Re: Pricing", "We are interested, send details.", Category.INTERESTED),
        ("Out of office", "I am interested but away.", Category.OUT_OF_OFFICE),
        ("Re: intro", "Not interested, thanks.", Category.NOT_INTERESTED),
        ("Invite", "Meeting booked for Tuesday.", Category.MEETING_BOOKED),
        ("You are a WINNER", "Claim prize today", Category.SPAM),
        ("Hello", "Just saying hi.", Category.UNCATEGORIZED),
        ("", "", Category.UNCATEGORIZED),
    ],
)
def test_keyword_classifier_assigns_first_matching_category(
    subject: str, body: str, expected: Category
) -> None:
    assert KeywordClassifier().classify(subject, body) is expected


def test_keywords_match_whole_words_only() -> None:
    classifier = KeywordClassifier()

    assert classifier.classify("Recall notice", "Shoes from the zoo") is (
        Category.UNCATEGORIZED
    )


class StubLLM:
    provider_id = "stub"

    def __init__(self, response: str | Exception) -> None:
        self._response = response
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def test_llm_classifier_accepts_known_label() -> None:
    llm = StubLLM(" Meeting Booked.\n")

    category = LLMClassifier(llm).classify("Hello", "Just saying hi.")

    assert category is Category.MEETING_BOOKED
    assert "just saying hi." in llm.prompts[0]


@pytest.mark.parametrize("response", ["Maybe?", LLMError("timeout")])
def test_llm_classifier_falls_back_to_keywords(response: str | Exception) -> None:
    category = LLMClassifier(StubLLM(response)).classify("Re: Pricing", "interested")

    assert category is Category.INTERESTED


def test_build_classifier_honours_enabled_flag() -> None:
    assert isinstance(build_classifier(LlmSettings()), KeywordClassifier)
    assert isinstance(build_classifier(LlmSettings(enabled=True)), LLMClassifier)


def _ollama(handler, **kwargs) -> OllamaClient:
    settings = LlmSettings(enabled=True, base_url="http://ollama.test/", model="tiny")
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return OllamaClient(settings, client=client, sleep=lambda _: None, **kwargs)


def test_ollama_client_posts_prompt_and_returns_response() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"response": "Interested"})

    assert _ollama(handler).generate("label this") == "Interested"
    assert str(requests[0].url) == "http://ollama.test/api/generate"
    assert json.loads(requests[0].content)["model"] == "tiny"


def test_ollama_client_retries_then_raises() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503)

    with pytest.raises(LLMError):
        _ollama(handler, attempts=2).generate("label this")
    assert len(calls) == 2


def test_ollama_client_rejects_payload_without_response() -> None:
    with pytest.raises(LLMError):
        _ollama(lambda request: httpx.Response(200, json={"done": True})).generate("x")
