import asyncio
import json
import logging
from typing import Iterable, List, Optional

import httpx

from .base import EvidenceItem, ListingDescription, SearchClient
from ..core.cache import cache
from ..core.config import settings
from ..core.metrics import SEARCH_CALLS

logger = logging.getLogger(__name__)

class NullSearch(SearchClient):
    """
    Used when no search credential is configured. Always empty, never an error.
    """
    async def search(self, query: str, max_results: int) -> List[EvidenceItem]:
        SEARCH_CALLS.labels(outcome="disabled").inc()
        return []

class TavilySearch(SearchClient):
    """
    Tavily web search. Best-effort: transport errors and non-2xx answers
    degrade to an empty result list.
    """
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.tavily.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str, max_results: int) -> List[EvidenceItem]:
        body = {"query": query, "max_results": max_results, "include_answer": False}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(
                    f"{self.base_url}/search",
                    json=body,
                    headers={"x-api-key": self.api_key, "Authorization": f"Bearer {self.api_key}"},
                )
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("search failed for %r: %s", query, exc)
            SEARCH_CALLS.labels(outcome="error").inc()
            return []

        hits = data.get("results") if isinstance(data, dict) else None
        if not isinstance(hits, list):
            hits = []
        SEARCH_CALLS.labels(outcome="ok").inc()
        items = []
        for h in hits:
            if not isinstance(h, dict):
                continue
            items.append(EvidenceItem(
                title=str(h.get("title") or ""),
                url=str(h.get("url") or ""),
                snippet=str(h.get("content") or h.get("snippet") or ""),
            ))
        return items[:max_results]

def search_client(api_key: str | None = None) -> SearchClient:
    """
    Factory: Tavily when a key is available, otherwise the silent null client.
    """
    key = api_key or settings.TAVILY_API_KEY
    if key:
        return TavilySearch(key, settings.SEARCH_BASE_URL, settings.SEARCH_TIMEOUT_SECONDS)
    return NullSearch()

def build_queries(listing: ListingDescription) -> list[str]:
    """
    One query per facet: current used-market price first, launch/new price
    second. Property listings search by locality instead.
    """
    if listing.domain == "property":
        p = listing.property_info
        parts = [p.bhk, p.property_type or listing.sub_category, listing.area, listing.city, "price"]
        return [" ".join(x for x in parts if x)]

    name = listing.item_name or listing.sub_category or listing.category
    queries = [" ".join(x for x in (name, "used price", listing.locality) if x)]
    if listing.brand or listing.model:
        launch = " ".join(x for x in (listing.brand, listing.model, "launch price India") if x)
        queries.append(launch)
    return queries

async def _cached_search(client: SearchClient, query: str, max_results: int) -> List[EvidenceItem]:
    key = f"search:{max_results}:{query.lower()}"
    hit = cache.get(key)
    if hit:
        return [EvidenceItem(**i) for i in json.loads(hit)]
    items = await client.search(query, max_results)
    if items:
        cache.set(key, json.dumps([i.__dict__ for i in items]))
    return items

def merge_evidence(batches: Iterable[List[EvidenceItem]], limit: int, snippet_chars: int) -> List[EvidenceItem]:
    """
    Merge per-query batches in order, dedupe by url (first seen wins),
    drop url-less hits, truncate snippets and cap the total.
    """
    seen: set[str] = set()
    merged: List[EvidenceItem] = []
    for batch in batches:
        for item in batch:
            url = item.url.strip()
            if not url or url in seen:
                continue
            seen.add(url)
            merged.append(EvidenceItem(
                title=item.title.strip(),
                url=url,
                snippet=item.snippet.strip()[:snippet_chars],
            ))
            if len(merged) >= limit:
                return merged
    return merged

async def gather_evidence(
    client: SearchClient,
    queries: list[str],
    limit: int = 6,
    snippet_chars: int = 500,
) -> List[EvidenceItem]:
    """Run all facet queries concurrently and merge the results."""
    if not queries:
        return []
    results = await asyncio.gather(
        *(_cached_search(client, q, limit) for q in queries),
        return_exceptions=True,
    )
    batches = []
    for q, res in zip(queries, results):
        if isinstance(res, BaseException):
            logger.warning("search for %r raised %s; ignoring", q, res)
            continue
        batches.append(res)
    evidence = merge_evidence(batches, limit, snippet_chars)
    logger.info("gathered %d evidence item(s) from %d query(ies)", len(evidence), len(queries))
    return evidence
