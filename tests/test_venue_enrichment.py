"""Tests for venue enrichment: text analysis, Wikipedia client, mocks and the enricher."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from momentsense.core.cache import VenueCache, normalize_key, venue_cache_key
from momentsense.core.models import VenueCategory, VenueOrigin
from momentsense.enrichment.mocks import (
    FAMOUS_VENUE_MOCKS,
    get_mock_venue_data,
    get_mock_venue_enrichment,
    stable_hash,
)
from momentsense.enrichment.outcome import MOCK_VENUE, WIKIPEDIA, Degraded, Ok, cloud_calls
from momentsense.enrichment.venue import (
    VenueEnricher,
    WikipediaArticle,
    WikipediaClient,
    build_enrichment,
    build_search_strategies,
    calculate_fame_score,
    extract_founded_year,
    extract_unique_claims,
    first_success,
    infer_venue_category,
    summarize_significance,
)

# =============================================================================
# Text Analysis
# =============================================================================


class TestFoundedYear:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("The temple was founded in 628 by two fishermen.", 628),
            ("Established 1889 for the World's Fair.", 1889),
            ("The market dates back to 1200 and still trades.", 1200),
            ("Tokyo's oldest temple, completed 645 CE.", 645),
            ("A modern cafe with no history.", None),
        ],
    )
    def test_extraction(self, text: str, expected: int | None) -> None:
        assert extract_founded_year(text, current_year=2024) == expected

    def test_future_years_rejected(self) -> None:
        assert extract_founded_year("Opened in 2090 as planned.", current_year=2024) is None


class TestUniqueClaims:
    def test_superlative_and_known_for(self) -> None:
        text = (
            "It is the oldest temple in Tokyo. The district is known for its "
            "Kaminarimon gate and giant lantern."
        )
        claims = extract_unique_claims(text)

        assert claims[0] == "The oldest temple in Tokyo"
        assert "Known for its Kaminarimon gate and giant lantern" in claims

    def test_heritage_listing(self) -> None:
        claims = extract_unique_claims("The shrine is a UNESCO World Heritage Site since 1994.")
        assert any(claim.startswith("UNESCO") for claim in claims)

    def test_length_bounds_and_cap(self) -> None:
        text = (
            "The first one. The oldest bridge in town. The largest market in Asia. "
            "The tallest tower in Europe. The only ferry in the bay."
        )
        claims = extract_unique_claims(text)

        assert len(claims) == 3
        assert all(10 < len(claim) < 100 for claim in claims)

    def test_words_inside_other_words_do_not_match(self) -> None:
        assert extract_unique_claims("A commonly visited spot with a quiet garden.") == []

    def test_no_claims(self) -> None:
        assert extract_unique_claims("A quiet street.") == []


class TestCategoryAndFame:
    @pytest.mark.parametrize(
        "categories,text,expected",
        [
            (["Buddhist temples in Tokyo"], "", VenueCategory.LANDMARK),
            ([], "A ramen shop in Kanda", VenueCategory.DINING),
            (["Hotels in Kyoto"], "", VenueCategory.ACCOMMODATION),
            ([], "A botanical garden by the lake", VenueCategory.NATURE),
            (["Shopping malls"], "", VenueCategory.SHOPPING),
            ([], "A concert hall", VenueCategory.EVENT),
            (["Railway stations in Japan"], "", VenueCategory.TRANSIT),
            ([], "Something else entirely", VenueCategory.OTHER),
        ],
    )
    def test_category(self, categories: list[str], text: str, expected: VenueCategory) -> None:
        assert infer_venue_category(categories, text) == expected

    def test_fame_without_article(self) -> None:
        assert calculate_fame_score(False, 5000, ["UNESCO World Heritage Sites"], 600) == 0.1

    def test_fame_minimal_article(self) -> None:
        assert calculate_fame_score(True, 100, [], None, current_year=2024) == 0.3

    def test_fame_all_bonuses(self) -> None:
        score = calculate_fame_score(
            True,
            2000,
            ["World Heritage Sites in Japan", "Historic temples"],
            628,
            current_year=2024,
        )
        assert score == 0.8

    def test_fame_grows_with_extract_length(self) -> None:
        lengths = [0, 500, 501, 1500, 1501, 5000]
        scores = [calculate_fame_score(True, n, [], None, current_year=2024) for n in lengths]

        assert scores == sorted(scores)
        assert scores[2] > scores[1]
        assert scores[4] > scores[3]

    @pytest.mark.parametrize("extract_length", [100, 800, 2000])
    def test_fame_grows_with_age(self, extract_length: int) -> None:
        years = [None, 2020, 1925, 1923, 628]
        scores = [calculate_fame_score(True, extract_length, [], year, current_year=2024) for year in years]

        assert scores == sorted(scores)
        assert scores[3] > scores[2]

    @pytest.mark.parametrize(
        "extract_length,founded_year",
        [(100, None), (800, 2000), (2000, 628)],
    )
    def test_significant_category_raises_fame(self, extract_length: int, founded_year: int | None) -> None:
        plain = calculate_fame_score(True, extract_length, ["Buildings in Tokyo"], founded_year, current_year=2024)
        significant = calculate_fame_score(
            True, extract_length, ["Historic buildings in Tokyo"], founded_year, current_year=2024
        )

        assert significant > plain

    def test_summary_is_two_sentences(self) -> None:
        text = "First sentence. Second sentence! Third sentence?"
        assert summarize_significance(text) == "First sentence. Second sentence!"
        assert summarize_significance("   ") is None

    def test_search_strategies(self) -> None:
        assert build_search_strategies("Senso-ji Temple") == ["Senso-ji Temple", "Senso-ji"]
        assert build_search_strategies("Senso-ji Temple Tokyo") == [
            "Senso-ji Temple Tokyo",
            "Senso-ji",
            "Senso-ji Temple",
        ]
        assert build_search_strategies("Louvre") == ["Louvre"]

    def test_build_enrichment(self) -> None:
        article = WikipediaArticle(
            title="Kinkaku-ji",
            extract="Kinkaku-ji is a Zen Buddhist temple in Kyoto. It was built in 1397.",
            description="Buddhist temple in Kyoto",
            categories=["Buddhist temples in Kyoto"],
            page_url="https://en.wikipedia.org/wiki/Kinkaku-ji",
        )
        enrichment = build_enrichment(article, current_year=2024)

        assert enrichment.verified_name == "Kinkaku-ji"
        assert enrichment.category == VenueCategory.LANDMARK
        assert enrichment.founded_year == 1397
        assert enrichment.fame_score == 0.4
        assert enrichment.origin == VenueOrigin.WIKIPEDIA


# =============================================================================
# First Success Race
# =============================================================================


class TestFirstSuccess:
    """Tests for the search race."""

    @pytest.mark.asyncio
    async def test_first_truthy_result_wins_and_losers_are_cancelled(self) -> None:
        cancelled: list[str] = []

        async def candidate(name: str, delay: float, result: str | None) -> str | None:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                cancelled.append(name)
                raise
            return result

        winner = await first_success(
            [
                candidate("slow", 1.0, "slow"),
                candidate("empty", 0.0, None),
                candidate("fast", 0.01, "fast"),
            ]
        )

        assert winner == "fast"
        assert cancelled == ["slow"]

    @pytest.mark.asyncio
    async def test_failures_are_ignored(self) -> None:
        async def boom() -> str:
            raise RuntimeError("search failed")

        async def ok() -> str:
            await asyncio.sleep(0.01)
            return "hit"

        assert await first_success([boom(), ok()]) == "hit"

    @pytest.mark.asyncio
    async def test_none_when_all_fail(self) -> None:
        async def empty() -> None:
            return None

        assert await first_success([empty(), empty()]) is None

    @pytest.mark.asyncio
    async def test_earlier_candidate_wins_ties(self) -> None:
        async def immediate(value: str) -> str:
            return value

        assert await first_success([immediate("full query"), immediate("first word")]) == "full query"


# =============================================================================
# Wikipedia Client
# =============================================================================


class TestWikipediaClient:
    """Tests for the MediaWiki client against canned responses."""

    @pytest.mark.asyncio
    async def test_search(self, http_client: httpx.AsyncClient, fake_services) -> None:
        client = WikipediaClient(http_client)
        hit = await client.search("Senso-ji Temple")

        assert hit is not None
        assert hit.title == "Sensō-ji"

        request = fake_services.requests[0]
        assert request.url.params["action"] == "query"
        assert request.url.params["format"] == "json"
        assert request.url.params["srsearch"] == "Senso-ji Temple"
        assert request.headers["user-agent"].startswith("MomentSense")

    @pytest.mark.asyncio
    async def test_search_no_results(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.search_results = []
        assert await WikipediaClient(http_client).search("Nowhere") is None

    @pytest.mark.asyncio
    async def test_fetch_page_filters_maintenance_categories(self, http_client: httpx.AsyncClient) -> None:
        article = await WikipediaClient(http_client).fetch_page("Sensō-ji")

        assert article is not None
        assert article.categories == ["Buddhist temples in Tokyo", "National Treasures of Japan"]
        assert article.page_url == "https://en.wikipedia.org/wiki/Sens%C5%8D-ji"
        assert article.description == "Buddhist temple in Tokyo, Japan"

    @pytest.mark.asyncio
    async def test_missing_page(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.page = {"title": "Nowhere", "missing": ""}
        assert await WikipediaClient(http_client).fetch_page("Nowhere") is None

    @pytest.mark.asyncio
    async def test_http_error_raises(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.fail_wikipedia = True
        with pytest.raises(httpx.HTTPStatusError):
            await WikipediaClient(http_client).search("Senso-ji")


# =============================================================================
# Mock Venue Data
# =============================================================================


class TestMockVenueData:
    def test_famous_venue_substring_match(self) -> None:
        mock = get_mock_venue_data("senso-ji temple, asakusa")
        assert mock is FAMOUS_VENUE_MOCKS["Senso-ji"]
        assert mock.origin == VenueOrigin.MOCK

    def test_synthetic_data_is_deterministic(self) -> None:
        first = get_mock_venue_enrichment("Quiet Bench By The Canal")
        second = get_mock_venue_enrichment("Quiet Bench By The Canal")

        assert first == second
        assert first.origin == VenueOrigin.MOCK
        assert 0.5 <= first.fame_score <= 0.99
        assert 1900 <= first.founded_year <= 2024
        assert first.wikipedia_url.endswith("Quiet_Bench_By_The_Canal")

    def test_hash_is_stable(self) -> None:
        assert stable_hash("Kikanbo") == stable_hash("Kikanbo")
        assert stable_hash("Kikanbo") != stable_hash("Kikanbo Ramen")

    def test_fame_varies_by_name(self) -> None:
        names = [
            "Quiet Bench By The Canal",
            "Kikanbo Ramen",
            "Blue Door Bakery",
            "Harbor Night Market",
            "Old Mill Guesthouse",
            "Cedar Hill Lookout",
            "Lantern Alley Bar",
            "Riverside Tram Stop",
        ]
        scores = {get_mock_venue_enrichment(name).fame_score for name in names}

        assert len(scores) > 1
        assert all(0.5 <= score <= 0.99 for score in scores)


# =============================================================================
# Venue Enricher
# =============================================================================


class TestVenueEnricher:
    """Tests for cache-then-search lookup and mock fallback."""

    @pytest.mark.asyncio
    async def test_successful_lookup(self, http_client: httpx.AsyncClient) -> None:
        cache = VenueCache()
        enricher = VenueEnricher(WikipediaClient(http_client), cache)

        outcome = await enricher.lookup("Senso-ji Temple")

        assert isinstance(outcome, Ok)
        assert outcome.service == WIKIPEDIA
        assert outcome.cached is False
        venue = outcome.value
        assert venue.verified_name == "Sensō-ji"
        assert venue.category == VenueCategory.LANDMARK
        assert venue.founded_year == 645
        assert venue.fame_score == 0.5
        assert "Oldest temple" in venue.unique_claims
        assert cache.get(normalize_key("Senso-ji Temple")) == venue

    @pytest.mark.asyncio
    async def test_second_lookup_served_from_cache(self, http_client: httpx.AsyncClient, fake_services) -> None:
        enricher = VenueEnricher(WikipediaClient(http_client), VenueCache())

        await enricher.lookup("Senso-ji Temple")
        calls_after_first = len(fake_services.requests)
        outcome = await enricher.lookup("senso-ji   temple")

        assert isinstance(outcome, Ok)
        assert outcome.cached is True
        assert len(fake_services.requests) == calls_after_first

    @pytest.mark.asyncio
    async def test_non_ascii_names_do_not_share_cache_entries(
        self, http_client: httpx.AsyncClient, fake_services
    ) -> None:
        cache = VenueCache()
        enricher = VenueEnricher(WikipediaClient(http_client), cache)

        await enricher.lookup("浅草寺")
        calls_after_first = len(fake_services.requests)
        outcome = await enricher.lookup("東京タワー")

        assert isinstance(outcome, Ok)
        assert outcome.cached is False
        assert len(fake_services.requests) > calls_after_first
        assert cache.get("") is None
        assert cache.get(venue_cache_key("浅草寺")) is not None
        assert cache.get(venue_cache_key("東京タワー")) is not None

        repeat = await enricher.lookup("浅草寺")
        assert repeat.cached is True

    @pytest.mark.asyncio
    async def test_destination_is_part_of_query(self, http_client: httpx.AsyncClient, fake_services) -> None:
        enricher = VenueEnricher(WikipediaClient(http_client), VenueCache())
        await enricher.lookup("Senso-ji", destination="Tokyo")

        queries = {r.url.params.get("srsearch") for r in fake_services.wikipedia_requests()}
        assert "Senso-ji Tokyo" in queries

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_mock(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.fail_wikipedia = True
        cache = VenueCache()
        enricher = VenueEnricher(WikipediaClient(http_client), cache)

        outcome = await enricher.lookup("Senso-ji Temple")

        assert isinstance(outcome, Degraded)
        assert outcome.service == MOCK_VENUE
        assert outcome.reason == "not_found"
        assert outcome.fallback.verified_name == "Senso-ji"
        assert outcome.fallback.origin == VenueOrigin.MOCK

    @pytest.mark.asyncio
    async def test_cached_mock_stays_degraded(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.search_results = []
        enricher = VenueEnricher(WikipediaClient(http_client), VenueCache())

        first = await enricher.lookup("Quiet Bench By The Canal")
        second = await enricher.lookup("Quiet Bench By The Canal")

        assert isinstance(first, Degraded)
        assert isinstance(second, Degraded)
        assert second.reason == "cached_mock"
        assert second.fallback == first.fallback
        assert cloud_calls(second) == [MOCK_VENUE]

    @pytest.mark.asyncio
    async def test_mock_uses_default_ttl(self, http_client: httpx.AsyncClient, fake_services) -> None:
        fake_services.search_results = []
        now = [0.0]
        cache = VenueCache(default_ttl_seconds=300, clock=lambda: now[0])
        enricher = VenueEnricher(WikipediaClient(http_client), cache, venue_ttl_seconds=86400)

        await enricher.lookup("Quiet Bench")
        now[0] = 301
        assert cache.get(normalize_key("Quiet Bench")) is None


class TestCloudCalls:
    def test_order_and_deduplication(self) -> None:
        outcomes = [
            Ok("venue", service=WIKIPEDIA),
            Degraded("no_api_key"),
            None,
            Ok("again", service=WIKIPEDIA),
            Degraded("timeout", fallback="mock", service=MOCK_VENUE),
        ]
        assert cloud_calls(*outcomes) == [WIKIPEDIA, MOCK_VENUE]
