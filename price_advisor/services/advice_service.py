import logging
from dataclasses import dataclass
from typing import Any, Mapping

from ..core.config import AdvisorConfig, build_config, settings
from ..data.base import SearchClient
from ..data.search_client import build_queries, gather_evidence, search_client
from ..models.base import GenerationClient, select_model
from ..models.mock_model import MockGeneration
from ..models.openai_model import openai_generation
from ..schemas import AdviceMeta, AdviceResponse, PriceAdvice
from .normalizer import normalize_listing
from .prompts import compose_prompt
from .reconciler import reconcile_reply

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Credentials:
    openai_api_key: str | None = None
    search_api_key: str | None = None

def emit_result(
    advice: PriceAdvice,
    provider: str,
    model: str,
    meta: AdviceMeta,
    currency: str = "INR",
) -> AdviceResponse:
    """Wrap a reconciled record with provenance."""
    return AdviceResponse(ok=True, provider=provider, model=model, currency=currency, result=advice, meta=meta)

class PriceAdviceService:
    """
    Orchestrates:
      raw input → listing → evidence → prompt → provider → reconciled advice
    Holds only immutable configuration and stateless clients, so one instance
    can serve concurrent requests.
    """
    def __init__(
        self,
        config: AdvisorConfig | None = None,
        generator: GenerationClient | None = None,
        search: SearchClient | None = None,
    ):
        self.config = config or build_config()
        if generator is None:
            generator = MockGeneration() if settings.GENERATION_PROVIDER == "mock" else openai_generation()
        self.generator = generator
        # None means "decide per request from the credentials"
        self.search = search

    def _search_for(self, credentials: Credentials) -> SearchClient:
        return self.search if self.search is not None else search_client(credentials.search_api_key)

    async def produce_advice(
        self,
        listing_raw: Mapping[str, Any] | None,
        plan_tier: str | None,
        credentials: Credentials,
    ) -> AdviceResponse:
        cfg = self.config
        # 1) Validate + coerce input
        listing = normalize_listing(listing_raw, cfg.required_fields)

        # 2) Evidence (never raises; empty on any failure)
        queries = build_queries(listing)
        evidence = await gather_evidence(
            self._search_for(credentials), queries, cfg.search_max_results, cfg.snippet_chars
        )

        # 3) Prompt
        prompt = compose_prompt(listing, evidence, cfg.prompt_template)

        # 4) Provider call
        tier = select_model(plan_tier, cfg)
        logger.info("plan %r → model %s (%d evidence item(s))", plan_tier, tier.model, len(evidence))
        generation = await self.generator.generate(
            prompt, tier, credentials.openai_api_key, use_web_search=cfg.use_provider_web_search
        )

        # 5) Reconcile
        reconciled = reconcile_reply(
            generation.envelope,
            cfg,
            evidence=evidence,
            used_web_search=generation.used_web_search,
            category=listing.category,
        )

        # 6) Emit
        meta = AdviceMeta(
            query=prompt.search_intent,
            used_web_search=generation.used_web_search,
            evidence_count=len(evidence),
            template=cfg.prompt_template,
            repairs=reconciled.repairs,
        )
        return emit_result(reconciled.advice, self.generator.provider, generation.model, meta, cfg.currency)
