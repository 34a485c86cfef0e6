"""
Reconcile a generation-provider reply into a PriceAdvice.

Steps:
  envelope → text (first matching extractor) → cleaned JSON → dict
  dict → repaired PriceAdvice (band order, clamped suggestion, defaults, sources)

Everything here is pure: the same envelope and evidence always give the same
advice. The provider's numbers are never trusted as-is, but a reply with no
usable price at all is a ParseError, never a made-up number.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..core.config import AdvisorConfig
from ..core.errors import ParseError
from ..core.metrics import RECONCILE_REPAIRS
from ..core.utils import clean_text, positive_int
from ..data.base import EvidenceItem
from ..schemas import OldVsNew, PriceAdvice, SourceRef

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("low", "medium", "high")
SOURCES_HARD_CAP = 6

_SMART_QUOTES = str.maketrans({
    "“": '"', "”": '"', "„": '"', "‟": '"', "″": '"',
    "‘": "'", "’": "'", "‚": "'", "‛": "'", "′": "'",
})

# ----- Envelope → text -----

Extractor = Callable[[Mapping[str, Any]], Optional[str]]

def _from_content_parts(envelope: Mapping[str, Any]) -> Optional[str]:
    """Responses API: output[*].content[*].text, joined in order."""
    chunks = []
    for item in envelope.get("output") or []:
        if not isinstance(item, Mapping):
            continue
        for part in item.get("content") or []:
            if isinstance(part, Mapping) and isinstance(part.get("text"), str):
                chunks.append(part["text"])
    return "\n".join(chunks) or None

def _from_output_text(envelope: Mapping[str, Any]) -> Optional[str]:
    text = envelope.get("output_text")
    return text if isinstance(text, str) else None

def _from_chat_message(envelope: Mapping[str, Any]) -> Optional[str]:
    """Chat Completions: choices[0].message.content."""
    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        return None
    message = choices[0].get("message")
    if not isinstance(message, Mapping):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None

# Priority order matters: first non-empty match wins
EXTRACTORS: tuple[Extractor, ...] = (_from_content_parts, _from_output_text, _from_chat_message)

def extract_text(envelope: Mapping[str, Any]) -> str:
    if not isinstance(envelope, Mapping):
        return ""
    for extractor in EXTRACTORS:
        text = extractor(envelope)
        if text and text.strip():
            return text.strip()
    return ""

def extract_citations(envelope: Mapping[str, Any]) -> list[SourceRef]:
    """url_citation annotations attached to output text, deduped by url."""
    out: list[SourceRef] = []
    seen: set[str] = set()
    if not isinstance(envelope, Mapping):
        return out
    for item in envelope.get("output") or []:
        if not isinstance(item, Mapping):
            continue
        for part in item.get("content") or []:
            if not isinstance(part, Mapping):
                continue
            for ann in part.get("annotations") or []:
                if not isinstance(ann, Mapping) or ann.get("type") != "url_citation":
                    continue
                url = clean_text(ann.get("url"))
                if url and url not in seen:
                    seen.add(url)
                    out.append(SourceRef(title=clean_text(ann.get("title")), url=url))
    return out

# ----- Text → dict -----

def clean_reply(text: str) -> str:
    """Drop code fences, straighten smart quotes, keep the outermost {...}."""
    cleaned = text.replace("```json", "").replace("```JSON", "").replace("```", "")
    cleaned = cleaned.translate(_SMART_QUOTES).strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return ""
    return cleaned[start:end + 1]

def parse_reply(text: str) -> dict:
    candidate = clean_reply(text or "")
    if not candidate:
        raise ParseError("Failed to parse JSON from model response: no JSON object found")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse JSON from model response: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ParseError("Failed to parse JSON from model response: not an object")
    return parsed

# ----- dict → PriceAdvice -----

@dataclass(frozen=True)
class Reconciled:
    advice: PriceAdvice
    repairs: list[str] = field(default_factory=list)

def _first_positive(*values: Any) -> int | None:
    for v in values:
        n = positive_int(v)
        if n is not None:
            return n
    return None

def _sub(parsed: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = parsed.get(key)
    return value if isinstance(value, Mapping) else {}

def _source_refs(raw: Any) -> list[SourceRef]:
    if not isinstance(raw, list):
        return []
    refs = []
    for entry in raw:
        if isinstance(entry, Mapping):
            url = clean_text(entry.get("url"))
            title = clean_text(entry.get("title"))
        elif isinstance(entry, str):
            url, title = clean_text(entry), ""
        else:
            continue
        if url:
            refs.append(SourceRef(title=title, url=url))
    return refs

def _dedupe(refs: Iterable[SourceRef]) -> list[SourceRef]:
    seen: set[str] = set()
    out = []
    for r in refs:
        if r.url not in seen:
            seen.add(r.url)
            out.append(r)
    return out

def fallback_why(category: str, n_sources: int) -> str:
    item = category.lower() if category else "item"
    if n_sources:
        return (f"Estimated from {n_sources} comparable source(s) and typical resale "
                f"depreciation for a used {item}.")
    return (f"Estimated from typical resale depreciation for a used {item}; "
            f"no comparable listings were available, so treat the band as indicative.")

def reconcile(
    parsed: Mapping[str, Any],
    config: AdvisorConfig,
    evidence: Sequence[EvidenceItem] = (),
    citations: Sequence[SourceRef] = (),
    grounded: bool = False,
    category: str = "",
) -> Reconciled:
    """
    Repair a parsed reply against the PriceAdvice invariants.

    Accepts the canonical keys and the older price_band / suggestion / notes /
    old_sold_samples shape. `grounded` says whether any outside evidence
    (search results or provider web search) backed the estimate; without it
    confidence is capped at "medium".
    """
    repairs: list[str] = []
    band = _sub(parsed, "price_band")

    low = _first_positive(parsed.get("market_price_low"), band.get("low"), parsed.get("low"))
    high = _first_positive(parsed.get("market_price_high"), band.get("high"), parsed.get("high"))
    suggested = _first_positive(parsed.get("suggested_price"), parsed.get("suggestion"))
    market = _first_positive(parsed.get("market_price"))

    if low is None and high is None:
        center = suggested or market
        if center is None:
            raise ParseError("Model response did not contain a usable price")
        spread = config.fallback_band_spread
        low = max(1, int(round(center * (1 - spread))))
        high = max(low, int(round(center * (1 + spread))))
        repairs.append("band_from_point")
    elif low is None or high is None:
        low = high = low or high
        repairs.append("band_one_sided")

    if low > high:
        low, high = high, low
        repairs.append("band_swapped")

    if suggested is None:
        w = config.suggested_upper_weight
        suggested = int(round(low * (1 - w) + high * w))
        repairs.append("suggested_default")
    if suggested < low or suggested > high:
        suggested = min(max(suggested, low), high)
        repairs.append("suggested_clamped")

    confidence = clean_text(parsed.get("confidence")).lower()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "medium"
        repairs.append("confidence_default")
    if confidence == "high" and not grounded:
        confidence = "medium"
        repairs.append("confidence_capped")

    old_new = _sub(parsed, "old_vs_new")
    old_vs_new = OldVsNew(
        launch_mrp=positive_int(old_new.get("launch_mrp")),
        typical_used=positive_int(old_new.get("typical_used")),
    )

    sources = _dedupe(_source_refs(parsed.get("sources")) or _source_refs(parsed.get("old_sold_samples")))
    if not sources:
        backfill = list(citations) + [SourceRef(title=e.title, url=e.url) for e in evidence if e.url]
        sources = _dedupe(backfill)
        if sources:
            repairs.append("sources_backfilled")
    cap = max(0, min(config.max_sources, SOURCES_HARD_CAP))
    if len(sources) > cap:
        sources = sources[:cap]
        repairs.append("sources_truncated")

    why = clean_text(parsed.get("why")) or clean_text(
        " ".join(clean_text(parsed.get(k)) for k in ("notes", "condition_note"))
    )
    if not why:
        why = fallback_why(category, len(sources))
        repairs.append("why_default")

    for kind in repairs:
        RECONCILE_REPAIRS.labels(kind=kind).inc()
    if repairs:
        logger.info("reconciled provider reply with repairs: %s", ", ".join(repairs))

    advice = PriceAdvice(
        market_price_low=low,
        market_price_high=high,
        suggested_price=suggested,
        confidence=confidence,
        why=why,
        old_vs_new=old_vs_new,
        sources=sources,
    )
    return Reconciled(advice=advice, repairs=repairs)

def reconcile_reply(
    envelope: Mapping[str, Any],
    config: AdvisorConfig,
    evidence: Sequence[EvidenceItem] = (),
    used_web_search: bool = False,
    category: str = "",
) -> Reconciled:
    """Full path from raw provider envelope to a repaired PriceAdvice."""
    text = extract_text(envelope)
    if not text:
        raise ParseError("Model response contained no text output")
    citations = extract_citations(envelope)
    return reconcile(
        parse_reply(text),
        config,
        evidence=evidence,
        citations=citations,
        grounded=bool(evidence) or used_web_search or bool(citations),
        category=category,
    )
