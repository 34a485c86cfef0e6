from dataclasses import dataclass
from typing import Any, Dict, Protocol

from ..core.config import AdvisorConfig, ModelTier
from ..services.prompts import ComposedPrompt

@dataclass(frozen=True)
class GenerationResult:
    envelope: Dict[str, Any]        # raw provider reply, as a plain dict
    model: str
    used_web_search: bool = False

class GenerationClient(Protocol):
    provider: str

    async def generate(
        self,
        prompt: ComposedPrompt,
        tier: ModelTier,
        api_key: str | None,
        use_web_search: bool = True,
    ) -> GenerationResult:
        """
        One provider call (plus at most one tool-less retry).
        Raises UpstreamError / QuotaExceeded on non-success answers.
        """
        ...

def select_model(plan_tier: str | None, config: AdvisorConfig) -> ModelTier:
    """Case-insensitive tier lookup; unknown or missing tiers get the cheapest model."""
    name = (plan_tier or "").strip().lower()
    return config.tier(name) or config.tier(config.default_tier) or config.tiers[0]
