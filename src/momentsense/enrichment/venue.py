"""Venue enrichment from Wikipedia.

Looks a venue up in the encyclopedia and derives the facts a narrative can
use: founding year, notable claims, a coarse category and a fame score.

Lookup strategy (cache-then-fallback-search):
1. Normalized query in the venue cache -> return the cached value.
2. Race up to three query variants against the search API; the first
   non-empty hit wins and the other calls are cancelled.
3. Fetch the winning page's intro extract, categories and URL.
4. Derive enrichment from the extract.
5. On any failure, fall back to deterministic mock data.
6. Cache whatever was produced.

PRIVACY: only the venue name (and optional destination hint) is sent.

Example:
    >>> async with httpx.AsyncClient() as http:
    ...     enricher = VenueEnricher(WikipediaClient(http), VenueCache())
    ...     outcome = await enricher.lookup("Senso-ji Temple")
    >>> outcome.unwrap().category
    <VenueCategory.LANDMARK: 'landmark'>
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Iterable, TypeVar

import httpx
from pydantic import BaseModel, Field

from momentsense.core.cache import VenueCache, venue_cache_key
from momentsense.core.models import VenueCategory, VenueEnrichment, VenueOrigin
from momentsense.enrichment.mocks import get_mock_venue_data
from momentsense.enrichment.outcome import MOCK_VENUE, WIKIPEDIA, Degraded, Ok, Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Text Analysis
# =============================================================================

FOUNDED_YEAR_PATTERNS = [
    re.compile(
        r"(?:founded|established|built|constructed|created|opened)\s+(?:in\s+)?(\d{3,4})",
        re.IGNORECASE,
    ),
    re.compile(r"(?:dates?\s+(?:back\s+)?to|since)\s+(\d{3,4})", re.IGNORECASE),
    re.compile(r"(\d{3,4})\s*(?:CE|AD|BC)?"),
]

UNIQUE_CLAIM_PATTERNS = [
    # Superlatives
    re.compile(
        r"\b(?:the\s+)?(?:oldest|largest|tallest|first|only|most\s+\w+)"
        r"(?:\s+\w+){1,5}(?:\s+in\s+(?:the\s+)?\w+)?",
        re.IGNORECASE,
    ),
    # Notable for
    re.compile(r"\b(?:known\s+for|famous\s+for|renowned\s+for)(?:\s+\w+){1,8}", re.IGNORECASE),
    # Heritage listings
    re.compile(r"\b(?:UNESCO|World\s+Heritage|National\s+Treasure)(?:\s+\w+){0,4}", re.IGNORECASE),
]

MIN_CLAIM_LENGTH = 10
MAX_CLAIM_LENGTH = 100
MAX_CLAIMS = 3

# Ordered: the first category with a matching keyword wins
CATEGORY_KEYWORDS: list[tuple[VenueCategory, tuple[str, ...]]] = [
    (
        VenueCategory.LANDMARK,
        (
            "temple", "shrine", "mosque", "church", "cathedral", "synagogue", "museum",
            "gallery", "monument", "memorial", "statue", "landmark", "historic",
            "heritage", "tower", "castle", "palace",
        ),
    ),
    (
        VenueCategory.DINING,
        (
            "restaurant", "dining", "eatery", "bistro", "cafe", "ramen", "bar", "pub",
            "tavern", "izakaya", "cocktail", "food", "cuisine",
        ),
    ),
    (
        VenueCategory.ACCOMMODATION,
        ("hotel", "resort", "inn", "ryokan", "hostel", "lodging", "accommodation"),
    ),
    (
        VenueCategory.NATURE,
        (
            "park", "garden", "botanical", "nature reserve", "beach", "coast", "shore",
            "bay", "mountain", "peak", "summit", "hiking", "trail", "forest", "lake",
            "river", "waterfall",
        ),
    ),
    (VenueCategory.SHOPPING, ("market", "bazaar", "shopping", "mall", "arcade", "store", "shop")),
    (VenueCategory.EVENT, ("theatre", "theater", "cinema", "concert", "arena", "stadium", "festival")),
    (VenueCategory.TRANSIT, ("station", "airport", "terminal", "port", "hub")),
]

SIGNIFICANT_CATEGORY_KEYWORDS = (
    "unesco",
    "world heritage",
    "national treasure",
    "landmark",
    "historic",
    "monument",
    "famous",
    "iconic",
    "notable",
)

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def extract_founded_year(text: str, current_year: int | None = None) -> int | None:
    """Find the founding year in article text.

    Patterns are tried in order ("founded in 628", "dates back to 1200",
    then any bare 3-4 digit year); the first match that is a plausible
    year (not in the future) wins.
    """
    current_year = current_year or datetime.now().year
    for pattern in FOUNDED_YEAR_PATTERNS:
        match = pattern.search(text)
        if match:
            year = int(match.group(1))
            if 0 < year <= current_year:
                return year
    return None


def extract_unique_claims(text: str) -> list[str]:
    """Pull up to three notable phrases (superlatives, "known for", heritage) from text."""
    claims: list[str] = []
    for pattern in UNIQUE_CLAIM_PATTERNS:
        for match in pattern.finditer(text):
            claim = match.group(0).strip()
            if MIN_CLAIM_LENGTH < len(claim) < MAX_CLAIM_LENGTH:
                formatted = claim[0].upper() + claim[1:]
                if formatted not in claims:
                    claims.append(formatted)
    return claims[:MAX_CLAIMS]


def infer_venue_category(categories: Iterable[str], text: str) -> VenueCategory:
    haystack = f"{' '.join(categories)} {text}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return category
    return VenueCategory.OTHER


def calculate_fame_score(
    has_article: bool,
    extract_length: int,
    categories: Iterable[str],
    founded_year: int | None,
    current_year: int | None = None,
) -> float:
    """Estimate venue notability in [0, 1] from encyclopedia signals.

    Args:
        has_article: Whether an article exists at all.
        extract_length: Length of the intro extract in characters.
        categories: Article category titles.
        founded_year: Founding year if known.
        current_year: Override for the current year (tests).

    Returns:
        0.1 without an article; otherwise 0.3 plus bonuses for a long
        extract, significant categories, heritage listing and age, capped
        at 1.0 and rounded to two decimals.

    Example:
        >>> calculate_fame_score(True, 0, [], None)
        0.3
    """
    if not has_article:
        return 0.1

    score = 0.3

    if extract_length > 500:
        score += 0.1
    if extract_length > 1500:
        score += 0.1

    category_text = " ".join(categories).lower()
    if any(keyword in category_text for keyword in SIGNIFICANT_CATEGORY_KEYWORDS):
        score += 0.1
    if "world heritage" in category_text or "unesco" in category_text:
        score += 0.1

    current_year = current_year or datetime.now().year
    if founded_year is not None and founded_year < current_year - 100:
        score += 0.1

    return min(1.0, round(score, 2))


def summarize_significance(extract: str) -> str | None:
    """First two sentences of an extract."""
    sentences = _SENTENCE_BREAK.split(extract.strip())
    summary = " ".join(sentences[:2]).strip()
    return summary or None


def build_search_strategies(query: str) -> list[str]:
    """Full query, first word, first two words; de-duplicated in that order."""
    strategies = [query]
    words = query.split()
    if len(words) > 1:
        strategies.append(words[0])
        strategies.append(" ".join(words[:2]))
    return list(dict.fromkeys(strategies))


async def first_success(candidates: list[Awaitable[T | None]]) -> T | None:
    """Resolve with the first truthy result among concurrent candidates.

    Candidates that raise or return a falsy value are ignored. When several
    finish together the earliest-listed wins. Unfinished candidates are
    cancelled before returning.
    """
    tasks = [asyncio.ensure_future(candidate) for candidate in candidates]
    order = {task: index for index, task in enumerate(tasks)}
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=order.__getitem__):
                if task.cancelled():
                    continue
                error = task.exception()
                if error is not None:
                    logger.debug(f"Search candidate failed: {type(error).__name__}")
                    continue
                result = task.result()
                if result:
                    return result
        return None
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


# =============================================================================
# Wikipedia API
# =============================================================================


class SearchHit(BaseModel):
    pageid: int
    title: str


class _SearchQuery(BaseModel):
    search: list[SearchHit] = Field(default_factory=list)


class WikipediaSearchResponse(BaseModel):
    query: _SearchQuery | None = None


class _PageCategory(BaseModel):
    title: str


class WikipediaPage(BaseModel):
    pageid: int | None = None
    title: str
    extract: str | None = None
    description: str | None = None
    categories: list[_PageCategory] = Field(default_factory=list)
    fullurl: str | None = None
    missing: Any = None

    @property
    def exists(self) -> bool:
        return self.missing is None and self.pageid is not None and self.pageid >= 0


class _PageQuery(BaseModel):
    pages: dict[str, WikipediaPage] = Field(default_factory=dict)


class WikipediaPageResponse(BaseModel):
    query: _PageQuery | None = None


@dataclass(frozen=True)
class WikipediaArticle:
    title: str
    extract: str
    description: str | None
    categories: list[str] = field(default_factory=list)
    page_url: str | None = None


class WikipediaClient:
    """Thin async client for the MediaWiki action API."""

    DEFAULT_API_URL = "https://en.wikipedia.org/w/api.php"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_url: str = DEFAULT_API_URL,
        search_timeout: float = 8.0,
        page_timeout: float = 8.0,
        user_agent: str = "MomentSense/0.1",
    ) -> None:
        self._http = http
        self.api_url = api_url
        self.search_timeout = search_timeout
        self.page_timeout = page_timeout
        self._headers = {"Accept": "application/json", "User-Agent": user_agent}

    async def _query(self, params: dict[str, str], timeout: float) -> Any:
        async def call() -> Any:
            response = await self._http.get(
                self.api_url,
                params={**params, "action": "query", "format": "json"},
                headers=self._headers,
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        return await asyncio.wait_for(call(), timeout)

    async def search(self, query: str) -> SearchHit | None:
        """Top search hit for ``query``, or None."""
        data = await self._query(
            {"list": "search", "srsearch": query, "srlimit": "1"},
            self.search_timeout,
        )
        parsed = WikipediaSearchResponse.model_validate(data)
        if parsed.query is None or not parsed.query.search:
            return None
        return parsed.query.search[0]

    async def search_with_fallbacks(self, query: str) -> SearchHit | None:
        """Race all query variants; first non-empty hit wins."""
        strategies = build_search_strategies(query)
        return await first_success([self.search(strategy) for strategy in strategies])

    async def fetch_page(self, title: str) -> WikipediaArticle | None:
        data = await self._query(
            {
                "titles": title,
                "prop": "extracts|info|categories|description",
                "exintro": "1",
                "explaintext": "1",
                "inprop": "url",
                "cllimit": "20",
            },
            self.page_timeout,
        )
        parsed = WikipediaPageResponse.model_validate(data)
        if parsed.query is None or not parsed.query.pages:
            return None

        page = next(iter(parsed.query.pages.values()))
        if not page.exists:
            return None

        categories = [
            c.title.removeprefix("Category:")
            for c in page.categories
            if "Articles" not in c.title and "Pages" not in c.title
        ]
        return WikipediaArticle(
            title=page.title,
            extract=page.extract or "",
            description=page.description,
            categories=categories,
            page_url=page.fullurl,
        )


# =============================================================================
# Venue Enricher
# =============================================================================


class VenueLookupError(Exception):
    """The encyclopedia had no usable article for a venue."""

    pass


def build_enrichment(article: WikipediaArticle, current_year: int | None = None) -> VenueEnrichment:
    founded_year = extract_founded_year(article.extract, current_year)
    return VenueEnrichment(
        verified_name=article.title,
        category=infer_venue_category(article.categories, article.extract),
        description=article.description,
        founded_year=founded_year,
        historical_significance=summarize_significance(article.extract),
        unique_claims=extract_unique_claims(article.extract),
        fame_score=calculate_fame_score(
            True, len(article.extract), article.categories, founded_year, current_year
        ),
        wikipedia_url=article.page_url,
        origin=VenueOrigin.WIKIPEDIA,
    )


class VenueEnricher:
    """Cache-then-fallback-search venue lookup. Never raises."""

    def __init__(
        self,
        wikipedia: WikipediaClient,
        cache: VenueCache,
        venue_ttl_seconds: float = 86400.0,
    ) -> None:
        self.wikipedia = wikipedia
        self.cache = cache
        self.venue_ttl_seconds = venue_ttl_seconds
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def lookup(self, venue_name: str, destination: str | None = None) -> Outcome[VenueEnrichment]:
        query = f"{venue_name} {destination}" if destination else venue_name
        key = venue_cache_key(query)

        cached = self.cache.get(key)
        if cached is not None:
            self._logger.debug(f"Venue cache hit: {key}")
            if cached.origin == VenueOrigin.MOCK:
                return Degraded("cached_mock", fallback=cached, service=MOCK_VENUE)
            return Ok(cached, service=WIKIPEDIA, cached=True)

        try:
            enrichment = await self._fetch(query)
        except Exception as e:
            reason = "not_found" if isinstance(e, VenueLookupError) else type(e).__name__
            self._logger.warning(f"Venue lookup degraded to mock data: {reason}")
            mock = get_mock_venue_data(venue_name)
            self.cache.put(key, mock)
            return Degraded(reason, fallback=mock, service=MOCK_VENUE)

        self.cache.put(key, enrichment, ttl_seconds=self.venue_ttl_seconds)
        return Ok(enrichment, service=WIKIPEDIA)

    async def _fetch(self, query: str) -> VenueEnrichment:
        hit = await self.wikipedia.search_with_fallbacks(query)
        if hit is None:
            raise VenueLookupError(f"No search result for {query!r}")

        article = await self.wikipedia.fetch_page(hit.title)
        if article is None:
            raise VenueLookupError(f"No page for {hit.title!r}")

        return build_enrichment(article)
