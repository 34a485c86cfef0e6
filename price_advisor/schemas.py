from typing import Any, Literal
from pydantic import BaseModel, Field, model_validator

Confidence = Literal["low", "medium", "high"]

class AdviceRequest(BaseModel):
    # Raw form payload; validated by the normalizer, not here
    input: dict[str, Any] = Field(default_factory=dict)

class OldVsNew(BaseModel):
    launch_mrp: int | None = None
    typical_used: int | None = None

class SourceRef(BaseModel):
    title: str = ""
    url: str

class PriceAdvice(BaseModel):
    market_price_low: int = Field(gt=0)
    market_price_high: int = Field(gt=0)
    suggested_price: int = Field(gt=0)
    confidence: Confidence = "medium"
    why: str
    old_vs_new: OldVsNew = Field(default_factory=OldVsNew)
    sources: list[SourceRef] = Field(default_factory=list, max_length=6)

    @model_validator(mode="after")
    def _band_is_ordered(self):
        if not (self.market_price_low <= self.suggested_price <= self.market_price_high):
            raise ValueError("suggested_price must lie inside [market_price_low, market_price_high]")
        return self

class AdviceMeta(BaseModel):
    query: str = ""
    used_web_search: bool = False
    evidence_count: int = 0
    template: str = "comparables"
    repairs: list[str] = Field(default_factory=list)

class AdviceResponse(BaseModel):
    ok: bool = True
    provider: str
    model: str
    currency: str = "INR"
    result: PriceAdvice
    meta: AdviceMeta = Field(default_factory=AdviceMeta)

class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    code: str = "ERROR"
    details: dict[str, Any] | None = None
