import os
from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict

class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Basic
    ENV: str = os.getenv("ENV", "dev")
    DEFAULT_CURRENCY: str = os.getenv("CURRENCY", "INR")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "43200"))

    # Generation provider
    GENERATION_PROVIDER: str = os.getenv("GENERATION_PROVIDER", "openai")  # openai | mock
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
    GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "15"))
    MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "900"))
    USE_PROVIDER_WEB_SEARCH: bool = os.getenv("USE_PROVIDER_WEB_SEARCH", "true").lower() == "true"
    PROMPT_TEMPLATE: str = os.getenv("PROMPT_TEMPLATE", "comparables")  # comparables | quick_sale

    # Plan tier -> model
    MODEL_FREE: str = os.getenv("MODEL_FREE", "gpt-4o-mini")
    MODEL_PRO: str = os.getenv("MODEL_PRO", "gpt-5-mini")
    MODEL_VIP: str = os.getenv("MODEL_VIP", "gpt-5")

    # Search provider
    TAVILY_API_KEY: str | None = os.getenv("TAVILY_API_KEY")
    SEARCH_BASE_URL: str = os.getenv("SEARCH_BASE_URL", "https://api.tavily.com")
    SEARCH_MAX_RESULTS: int = int(os.getenv("SEARCH_MAX_RESULTS", "6"))
    SEARCH_SNIPPET_CHARS: int = int(os.getenv("SEARCH_SNIPPET_CHARS", "500"))
    SEARCH_TIMEOUT_SECONDS: float = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "10"))

    # Reconciliation policy
    REQUIRED_FIELDS_POLICY: str = os.getenv("REQUIRED_FIELDS_POLICY", "category")
    SUGGESTED_UPPER_WEIGHT: float = float(os.getenv("SUGGESTED_UPPER_WEIGHT", "0.6"))
    FALLBACK_BAND_SPREAD: float = float(os.getenv("FALLBACK_BAND_SPREAD", "0.10"))
    MAX_SOURCES: int = int(os.getenv("MAX_SOURCES", "6"))

    # Security
    API_KEY: str | None = os.getenv("API_KEY")
    RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_RPM", "60"))
    ALLOW_CLIENT_OPENAI_KEY: bool = os.getenv("ALLOW_CLIENT_OPENAI_KEY", "false").lower() == "true"

    # CORS
    ALLOW_ORIGINS: str = os.getenv(
        "ALLOW_ORIGINS",
        "https://bechobazaar.com,https://www.bechobazaar.com,https://bechobazaarui.netlify.app",
    )

    # Cache
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()


# Required-field policies. Handler variants disagreed on what a request must
# carry, so each set gets a name and the deployment picks one.
REQUIRED_FIELD_POLICIES: dict[str, tuple[str, ...]] = {
    "category": ("category",),
    "category_price": ("category", "asking_price"),
    "category_location": ("category", "brand", "city", "state"),
}


@dataclass(frozen=True)
class ModelTier:
    name: str
    model: str
    temperature: float | None = None
    reasoning_effort: str | None = None


@dataclass(frozen=True)
class AdvisorConfig:
    """
    Immutable pipeline configuration, built once from Settings and handed to
    the service at construction.
    """
    tiers: tuple[ModelTier, ...]
    default_tier: str = "free"
    required_fields: tuple[str, ...] = ("category",)
    prompt_template: str = "comparables"
    max_output_tokens: int = 900
    use_provider_web_search: bool = True
    search_max_results: int = 6
    snippet_chars: int = 500
    suggested_upper_weight: float = 0.6
    fallback_band_spread: float = 0.10
    max_sources: int = 6
    currency: str = "INR"

    def tier(self, name: str) -> ModelTier | None:
        for t in self.tiers:
            if t.name == name:
                return t
        return None


def build_config(s: Settings = settings) -> AdvisorConfig:
    policy = s.REQUIRED_FIELDS_POLICY.strip().lower()
    if policy not in REQUIRED_FIELD_POLICIES:
        raise ValueError(f"Unknown REQUIRED_FIELDS_POLICY {s.REQUIRED_FIELDS_POLICY!r}")
    return AdvisorConfig(
        tiers=(
            ModelTier("free", s.MODEL_FREE, temperature=0.2),
            ModelTier("pro", s.MODEL_PRO, reasoning_effort="medium"),
            ModelTier("vip", s.MODEL_VIP, reasoning_effort="medium"),
        ),
        required_fields=REQUIRED_FIELD_POLICIES[policy],
        prompt_template=s.PROMPT_TEMPLATE,
        max_output_tokens=s.MAX_OUTPUT_TOKENS,
        use_provider_web_search=s.USE_PROVIDER_WEB_SEARCH,
        search_max_results=s.SEARCH_MAX_RESULTS,
        snippet_chars=s.SEARCH_SNIPPET_CHARS,
        suggested_upper_weight=s.SUGGESTED_UPPER_WEIGHT,
        fallback_band_spread=s.FALLBACK_BAND_SPREAD,
        max_sources=s.MAX_SOURCES,
        currency=s.DEFAULT_CURRENCY,
    )
