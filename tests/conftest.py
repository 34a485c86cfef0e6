"""
Shared fixtures: fake search/generation providers and a clean cache.
"""
import json

import httpx
import openai
import pytest

from price_advisor.core.cache import cache
from price_advisor.core.config import build_config, Settings
from price_advisor.data.base import EvidenceItem
from price_advisor.models.base import GenerationResult


def responses_envelope(text, annotations=None):
    """Responses-API shaped reply carrying one output_text part."""
    return {
        "output": [
            {"type": "web_search_call", "status": "completed"},
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text, "annotations": annotations or []}],
            },
        ]
    }


def api_status_error(status, message):
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status, request=request, json={"error": {"message": message}})
    return openai.APIStatusError(message, response=response, body={"message": message})


class FakeSearch:
    """Search client answering from a {query: [EvidenceItem]} table."""

    def __init__(self, table=None, fail=False):
        self.table = table or {}
        self.fail = fail
        self.queries = []

    async def search(self, query, max_results):
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("search exploded")
        return list(self.table.get(query, []))[:max_results]


class FakeGenerator:
    provider = "openai"

    def __init__(self, text, used_web_search=False, annotations=None):
        self.text = text
        self.used_web_search = used_web_search
        self.annotations = annotations
        self.calls = []

    async def generate(self, prompt, tier, api_key, use_web_search=True):
        self.calls.append({"prompt": prompt, "tier": tier, "api_key": api_key})
        return GenerationResult(
            envelope=responses_envelope(self.text, self.annotations),
            model=tier.model,
            used_web_search=self.used_web_search,
        )


class FakeResponses:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **payload):
        self.calls.append(payload)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeOpenAIClient:
    def __init__(self, outcomes):
        self.responses = FakeResponses(outcomes)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def config():
    return build_config(Settings())


@pytest.fixture
def bike_input():
    return {
        "category": "Bikes",
        "brand": "Royal Enfield",
        "model": "Classic 350",
        "city": "Pune",
        "state": "Maharashtra",
        "price": "1,45,000",
        "kmDriven": "18,500",
        "yearOfPurchase": "2021",
        "ownership": "1st owner",
    }


@pytest.fixture
def evidence():
    return [
        EvidenceItem("Classic 350 on OLX", "https://olx.in/item/1", "Rs 1,40,000, 2021 model"),
        EvidenceItem("Classic 350 on Quikr", "https://quikr.com/item/2", "Rs 1,35,000"),
    ]


@pytest.fixture
def good_reply():
    return json.dumps({
        "market_price_low": 130000,
        "market_price_high": 150000,
        "suggested_price": 140000,
        "confidence": "high",
        "why": "Well kept single-owner bike in line with Pune listings.",
        "old_vs_new": {"launch_mrp": 193000, "typical_used": 140000},
        "sources": [{"title": "OLX", "url": "https://olx.in/item/1"}],
    })
