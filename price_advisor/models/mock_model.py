import json
from typing import Any, Dict

from .base import GenerationClient, GenerationResult
from ..core.config import ModelTier
from ..core.utils import fnv1a_32, seeded_rand, money_band
from ..services.prompts import ComposedPrompt

class MockGeneration(GenerationClient):
    """
    Deterministic offline provider. Anchors on the asking price when there is
    one (else a seeded price) and answers in the Responses envelope shape,
    fenced like a chatty model would, so the whole reconcile path runs.
    """
    provider = "mock"

    async def generate(
        self,
        prompt: ComposedPrompt,
        tier: ModelTier,
        api_key: str | None,
        use_web_search: bool = True,
    ) -> GenerationResult:
        seed = fnv1a_32(prompt.search_intent or prompt.user)
        if prompt.reference_price:
            base = int(prompt.reference_price * (0.85 + seeded_rand(seed, 1)[0] * 0.2))
        else:
            base = int(5_000 + seeded_rand(seed, 1)[0] * 95_000)
        low, high = money_band(base, seed)

        reply = {
            "market_price_low": low,
            "market_price_high": high,
            "suggested_price": base,
            "confidence": "low",
            "why": "Offline estimate from the asking price and a typical resale spread.",
            "old_vs_new": {"launch_mrp": None, "typical_used": base},
            "sources": [],
        }
        text = "```json\n" + json.dumps(reply) + "\n```"
        envelope: Dict[str, Any] = {
            "output": [
                {"type": "message", "role": "assistant",
                 "content": [{"type": "output_text", "text": text, "annotations": []}]}
            ]
        }
        return GenerationResult(envelope=envelope, model=f"mock-{tier.name}", used_web_search=False)
