"""Tests for the live fetch adapters, with HTTP faked by httpx.MockTransport."""

import asyncio
import json
from urllib.parse import unquote

import httpx
import pytest

from property_ingest.errors import AdapterAuthError, AdapterRunFailed, AdapterTransientError
from property_ingest.models import SearchFilters
from property_ingest.services.adapters import ApifyAdapter, ScraperApiAdapter, build_adapter
from property_ingest.services.adapters.rightmove_urls import location_identifier, search_url_variants
from property_ingest.services.normalizer import normalize

# Rendered pages below this length are treated as error stubs
PADDING = "<!-- " + "x" * 1200 + " -->"


# =============================================================================
# Apify
# =============================================================================


class ApifyServer:
    """Scripted Apify API: run statuses are served in order."""

    def __init__(self, statuses=("SUCCEEDED",), items=(), auth_status=200):
        self.statuses = list(statuses)
        self.items = list(items)
        self.auth_status = auth_status
        self.requests = []

    def paths(self):
        return [request.url.path for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/users/me"):
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"error": {"message": "User was not found"}})
            return httpx.Response(200, json={"data": {"username": "tester"}})
        if request.method == "POST" and path.endswith("/runs"):
            return httpx.Response(201, json={"data": {"id": "run-1", "status": "READY"}})
        if path.endswith("/actor-runs/run-1"):
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(200, json={"data": {"id": "run-1", "status": status}})
        if path.endswith("/actor-runs/run-1/dataset/items"):
            return httpx.Response(200, json=self.items)
        return httpx.Response(404)


def run_apify(settings, server, action):
    async def scenario():
        async with ApifyAdapter(settings, transport=httpx.MockTransport(server)) as adapter:
            return await action(adapter)

    return asyncio.run(scenario())


class TestApifyAdapter:
    """Start, poll and collect an actor run."""

    def test_search_collects_dataset(self, settings):
        server = ApifyServer(
            statuses=["RUNNING", "RUNNING", "SUCCEEDED"],
            items=[{"id": 1, "price": 100000}, {"id": 2, "price": 200000}, "junk"],
        )

        listings = run_apify(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

        assert [item["id"] for item in listings.items] == [1, 2]
        assert listings.total_results is None

        start = next(r for r in server.requests if r.method == "POST")
        actor_input = json.loads(start.content)
        assert "REGION^Bristol" in unquote(actor_input["listUrls"][0]["url"])
        assert start.headers["Authorization"] == "Bearer test-token"

    def test_auth_failure_on_details(self, settings):
        """A rejected token fails fast and no run is started."""
        settings = settings.model_copy(update={"apify_api_token": "invalid"})
        server = ApifyServer(auth_status=401)

        with pytest.raises(AdapterAuthError):
            run_apify(settings, server, lambda a: a.fetch_details("123456"))

        assert not any(path.endswith("/runs") for path in server.paths())

    def test_missing_token(self, settings):
        settings = settings.model_copy(update={"apify_api_token": None})
        server = ApifyServer()

        with pytest.raises(AdapterAuthError):
            run_apify(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))
        assert server.requests == []

    @pytest.mark.parametrize("status", ["FAILED", "ABORTED", "TIMED-OUT"])
    def test_failed_run(self, settings, status):
        server = ApifyServer(statuses=["RUNNING", status])

        with pytest.raises(AdapterRunFailed) as excinfo:
            run_apify(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

        assert excinfo.value.status == status
        assert isinstance(excinfo.value, AdapterTransientError)
        assert status in excinfo.value.message

    def test_poll_budget_exhausted(self, settings):
        server = ApifyServer(statuses=["RUNNING"])

        with pytest.raises(AdapterTransientError) as excinfo:
            run_apify(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

        assert not isinstance(excinfo.value, AdapterRunFailed)
        polls = [p for p in server.paths() if p.endswith("/actor-runs/run-1")]
        assert len(polls) == settings.apify_max_poll_attempts

    def test_credentials_checked_once(self, settings):
        server = ApifyServer(items=[{"id": 1}])

        async def twice(adapter):
            await adapter.fetch_search(SearchFilters(location="Bristol"))
            await adapter.fetch_search(SearchFilters(location="Leeds"))

        run_apify(settings, server, twice)

        assert sum(path.endswith("/users/me") for path in server.paths()) == 1

    def test_upstream_error_is_transient(self, settings):
        def handler(request):
            if request.url.path.endswith("/users/me"):
                return httpx.Response(200, json={"data": {"username": "tester"}})
            return httpx.Response(502, text="Bad gateway")

        with pytest.raises(AdapterTransientError):
            run_apify(settings, handler, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

    @pytest.mark.parametrize(
        "item, expected",
        [
            ({"id": 1, "status": {"published": True, "archived": False}}, True),
            ({"id": 1, "status": {"published": True, "archived": True}}, False),
            ({"id": 1, "isActive": False}, False),
        ],
    )
    def test_check_status(self, settings, item, expected):
        server = ApifyServer(items=[item])

        assert run_apify(settings, server, lambda a: a.check_status("1")) is expected

    def test_check_status_missing_listing(self, settings):
        assert run_apify(settings, ApifyServer(items=[]), lambda a: a.check_status("1")) is False

    def test_diagnostics(self, settings):
        ok = run_apify(settings, ApifyServer(), lambda a: a.check_credentials())
        bad = run_apify(settings, ApifyServer(auth_status=401), lambda a: a.check_credentials())

        assert ok.success is True
        assert "tester" in ok.message
        assert bad.success is False


# =============================================================================
# ScraperAPI
# =============================================================================


def property_card(property_id, address, price, info, image=None):
    img = f'<div class="propertyCard-img"><img src="{image}"></div>' if image else ""
    return f"""
    <div class="propertyCard" id="property-{property_id}">
      <a class="propertyCard-link" href="/properties/{property_id}#/"></a>
      <address class="propertyCard-address">{address}</address>
      <div class="propertyCard-priceValue">{price}</div>
      <div class="propertyCard-description">{info}</div>
      {img}
    </div>
    """


HOUSE_CARD = property_card(
    "123456",
    "1 High Street, Bristol BS1 4DJ",
    "£325,000",
    "3 bedroom semi-detached house for sale",
    "https://media.example/1.jpg",
)
FLAT_CARD = property_card("654321", "Flat 4, Harbourside, Bristol BS1 5TY", "£210,000", "Flat for sale")

RESULTS_PAGE = f"""
<html><body>
  <div class="searchHeader-resultCount">30</div>
  {HOUSE_CARD}
  {FLAT_CARD}
  {PADDING}
</body></html>
"""


class ScraperApiServer:
    """Scripted ScraperAPI: canned responses keyed by a substring of the target URL."""

    def __init__(self, pages=None, account_status=200):
        self.pages = pages or {}
        self.account_status = account_status
        self.targets = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/account":
            if self.account_status != 200:
                return httpx.Response(self.account_status, text="Unauthorized")
            return httpx.Response(200, json={"requestCount": 5, "requestLimit": 1000})

        target = request.url.params["url"]
        self.targets.append(target)
        for marker, response in self.pages.items():
            if marker in target:
                return response
        return httpx.Response(200, text="<html>short</html>")


def run_scraper(settings, server, action):
    async def scenario():
        async with ScraperApiAdapter(settings, transport=httpx.MockTransport(server)) as adapter:
            return await action(adapter)

    return asyncio.run(scenario())


class TestScraperApiAdapter:
    """Rendered HTML search and details."""

    def test_falls_back_through_url_variants(self, settings):
        """Short page, then a 500, then the region grammar succeeds."""
        server = ScraperApiServer(
            pages={
                "locationIdentifier": httpx.Response(200, text=RESULTS_PAGE),
                "radius": httpx.Response(500, text="Internal error"),
            }
        )

        listings = run_scraper(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

        assert len(server.targets) == 3
        assert listings.total_results == 30
        assert [item["id"] for item in listings.items] == ["123456", "654321"]

        first, second = (normalize(item, default_bedrooms=1) for item in listings.items)
        assert first.price == 325000
        assert first.bedrooms == 3
        assert first.property_type == "Semi-Detached"
        assert first.postcode == "BS1 4DJ"
        assert first.main_image_url == "https://media.example/1.jpg"
        assert first.source_url.startswith("https://www.rightmove.co.uk/properties/123456")
        assert second.bedrooms == 1
        assert second.property_type == "Flat"

    def test_all_variants_fail(self, settings):
        server = ScraperApiServer()

        with pytest.raises(AdapterTransientError):
            run_scraper(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))
        assert len(server.targets) == 3

    def test_page_without_cards_is_skipped(self, settings):
        empty = f"<html><body><p>No results</p>{PADDING}</body></html>"
        server = ScraperApiServer(
            pages={
                "locationIdentifier": httpx.Response(200, text=RESULTS_PAGE),
                "keywords": httpx.Response(200, text=empty),
            }
        )

        listings = run_scraper(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))

        assert len(listings.items) == 2
        assert len(server.targets) == 3

    def test_rejected_key_stops_immediately(self, settings):
        server = ScraperApiServer(pages={"keywords": httpx.Response(403, text="Forbidden")})

        with pytest.raises(AdapterAuthError):
            run_scraper(settings, server, lambda a: a.fetch_search(SearchFilters(location="Bristol")))
        assert len(server.targets) == 1

    def test_missing_key(self, settings):
        settings = settings.model_copy(update={"scraper_api_key": None})

        with pytest.raises(AdapterAuthError):
            run_scraper(settings, ScraperApiServer(), lambda a: a.fetch_search(SearchFilters(location="Bristol")))

    def test_details_from_page_model(self, settings):
        model = {
            "propertyData": {
                "id": "123456",
                "address": {"displayAddress": "1 High Street, Bristol", "outcode": "BS1", "incode": "4DJ"},
                "prices": {"primaryPrice": "£325,000"},
                "bedrooms": 3,
            }
        }
        page = f"<html><script>window.PAGE_MODEL = {json.dumps(model)}</script>{PADDING}</html>"
        server = ScraperApiServer(pages={"/properties/123456": httpx.Response(200, text=page)})

        raw = run_scraper(settings, server, lambda a: a.fetch_details("123456"))
        prop = normalize(raw)

        assert raw["isActive"] is True
        assert prop.id == "123456"
        assert prop.price == 325000
        assert prop.postcode == "BS1 4DJ"
        assert prop.address == "1 High Street, Bristol"

    def test_details_from_markup(self, settings):
        page = f"""
        <html><body>
          <h1><address>22 Church Lane, Bath BA1 1AA</address></h1>
          <div class="price-text">£499,950</div>
          <div class="property-description">A fine cottage.</div>
          <ul class="property-features"><li>Garden</li><li>Parking</li></ul>
          <div class="agent-name">Bath Estates</div>
          <a href="tel:01225000000" class="agent-phone">01225 000000</a>
          {PADDING}
        </body></html>
        """
        adapter = ScraperApiAdapter(settings)
        try:
            raw = adapter.parse_details(page, "https://www.rightmove.co.uk/properties/9", "9")
        finally:
            asyncio.run(adapter.close())

        prop = normalize(raw)
        assert prop.address == "22 Church Lane, Bath BA1 1AA"
        assert prop.price == 499950
        assert prop.features == ["Garden", "Parking"]
        assert prop.agent.name == "Bath Estates"
        assert prop.agent.phone == "01225 000000"
        assert prop.is_active is True

    def test_details_not_found(self, settings):
        server = ScraperApiServer(pages={"/properties/": httpx.Response(404, text="Not found")})

        assert run_scraper(settings, server, lambda a: a.fetch_details("1")) is None

    def test_check_status(self, settings):
        removed = f"<html><body>This property has been removed by the agent.{PADDING}</body></html>"
        live = f"<html><body>For sale{PADDING}</body></html>"
        server = ScraperApiServer(
            pages={
                "/properties/1": httpx.Response(200, text=removed),
                "/properties/2": httpx.Response(200, text=live),
                "/properties/3": httpx.Response(410, text="Gone"),
            }
        )

        async def statuses(adapter):
            return [await adapter.check_status(pid) for pid in ("1", "2", "3")]

        assert run_scraper(settings, server, statuses) == [False, True, False]


class TestSearchUrls:
    """Search URL grammars."""

    def test_location_identifier(self):
        assert location_identifier("SW1") == "OUTCODE^SW1"
        assert location_identifier("OUTCODE%5E1234") == "OUTCODE^1234"
        assert location_identifier("Bristol?_bypass_cache=123") == "REGION^Bristol"

    def test_variants(self):
        filters = SearchFilters(location="Bristol", min_beds=2, page=3)

        simple, detailed, region = search_url_variants("https://www.rightmove.co.uk", filters, 1.0, 24)

        assert simple.startswith("https://www.rightmove.co.uk/property-for-sale/find.html?")
        assert "keywords=Bristol" in simple and "minBedrooms" not in simple
        assert "index=48" in detailed and "minBedrooms=2" in detailed
        assert "locationIdentifier=REGION%5EBristol" in region

    def test_build_adapter(self, settings):
        async def build():
            adapter = build_adapter(settings.model_copy(update={"fetch_adapter": "scraperapi"}))
            await adapter.close()
            return adapter

        assert isinstance(asyncio.run(build()), ScraperApiAdapter)
