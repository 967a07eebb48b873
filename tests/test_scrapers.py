from __future__ import annotations

import httpx
import pytest

from app.core.exceptions import StrategyError
from app.scrapers.base import MISSING_REQUIRED_CAP, score_confidence
from app.scrapers.boards.generic import GenericHtmlExtractor
from app.scrapers.boards.greenhouse import GreenhouseApiExtractor, GreenhouseHtmlExtractor
from app.scrapers.boards.lever import LeverApiExtractor
from app.scrapers.boards.meta_tags import PREVIEW_ONLY_CAP, MetaTagExtractor
from app.scrapers.cleaner import HtmlCleaner
from app.scrapers.detector import BoardInfo, BoardType, detect_board, resolve_embedded_board
from app.scrapers.registry import get_extractors, list_extractors
from app.scrapers.text import infer_remote_type, parse_salary

from conftest import JOB_PAGE_HTML, FakeSite, json_response


# ── Board detection ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "url,board,slug,job_id",
    [
        ("https://boards.greenhouse.io/twilio/jobs/4567890", BoardType.GREENHOUSE, "twilio", "4567890"),
        ("https://jobs.lever.co/netflix/abc-123", BoardType.LEVER, "netflix", "abc-123"),
        ("https://www.acme.com/careers?gh_jid=998", BoardType.GREENHOUSE, None, "998"),
        ("https://jobs.ashbyhq.com/linear/5f1c", BoardType.ASHBY, "linear", "5f1c"),
        ("https://www.linkedin.com/jobs/view/3812345678/", BoardType.LINKEDIN, None, "3812345678"),
        ("https://example.org/about", BoardType.UNKNOWN, None, None),
    ],
)
def test_detect_board(url, board, slug, job_id):
    info = detect_board(url)
    assert info.board is board
    assert info.company_slug == slug
    assert info.job_id == job_id


def test_detect_board_workday_slug_and_flags():
    info = detect_board("https://acme.wd5.myworkdayjobs.com/en-US/External/job/Nairobi/Engineer_R123")
    assert info.board is BoardType.WORKDAY
    assert info.company_slug == "acme"
    assert not info.api_supported
    assert detect_board("https://www.indeed.com/viewjob?jk=1").limited_extraction


EMBED_PAGE = """
<html><body>
<div id="grnhse_app"></div>
<script src="https://boards.greenhouse.io/embed/job_board/js?for=acme"></script>
</body></html>
"""


def test_embedded_board_script_supplies_the_slug():
    info = resolve_embedded_board(detect_board("https://www.acme.com/careers?gh_jid=998"), EMBED_PAGE)

    assert info.board is BoardType.GREENHOUSE
    assert info.company_slug == "acme"
    assert info.job_id == "998"
    assert GreenhouseApiExtractor.applies_to(info)


@pytest.mark.parametrize(
    "url,html",
    [
        ("https://www.acme.com/careers?gh_jid=998", "<html><body>No embed here</body></html>"),
        ("https://boards.greenhouse.io/twilio/jobs/1", EMBED_PAGE),
        ("https://jobs.lever.co/netflix/abc-123", EMBED_PAGE),
    ],
)
def test_embedded_board_resolution_leaves_other_urls_alone(url, html):
    info = detect_board(url)
    assert resolve_embedded_board(info, html) is info


def test_api_extractors_need_a_board_with_a_public_api():
    workable = BoardInfo(url="https://apply.workable.com/acme/j/1", board=BoardType.WORKABLE, company_slug="acme", job_id="1")
    assert not workable.api_supported
    assert not GreenhouseApiExtractor.applies_to(workable)
    assert GreenhouseApiExtractor.applies_to(detect_board("https://boards.greenhouse.io/twilio/jobs/1"))


# ── Text helpers ─────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "text,expected",
    [
        ("$120k - $150k", (120000, 150000, "USD")),
        ("Salary: 90,000 to 110,000 EUR", (90000, 110000, "EUR")),
        ("£45,000 per annum", (45000, 45000, "GBP")),
        ("Competitive salary", None),
        ("Call 555-1234 to apply", None),
        (None, None),
    ],
)
def test_parse_salary(text, expected):
    assert parse_salary(text) == expected


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Hybrid - London", "hybrid"),
        ("Remote (EU time zones)", "remote"),
        ("On-site in Berlin", "on_site"),
        ("Berlin, Germany", None),
        (None, None),
    ],
)
def test_infer_remote_type(text, expected):
    assert infer_remote_type(text) == expected


def test_score_confidence_caps_when_required_field_missing():
    full = {"title": "Engineer", "company_name": "Acme", "description": "Build things", "location": "Remote"}
    assert score_confidence(full) == pytest.approx(0.7)

    no_company = {k: v for k, v in full.items() if k != "company_name"}
    assert score_confidence(no_company) <= MISSING_REQUIRED_CAP
    assert score_confidence({}) == 0.0


# ── Cleaner ──────────────────────────────────────────────────────────────────


def test_cleaner_keeps_main_content_and_drops_chrome():
    text = HtmlCleaner().clean(JOB_PAGE_HTML)
    assert "Senior Backend Engineer" in text
    assert "5+ years of Python" in text
    assert "Home | Jobs" not in text
    assert "Acme Corp 2026" not in text


def test_cleaner_drops_hidden_and_ad_nodes():
    html = (
        "<html><body><article>"
        + "<p>" + "Real posting text. " * 10 + "</p>"
        + "<div style='display: none'>hidden tracking pixel</div>"
        + "<div class='ad-banner'>Buy now</div>"
        + "<!-- internal note -->"
        + "</article></body></html>"
    )
    text = HtmlCleaner().clean(html)
    assert "Real posting text." in text
    assert "hidden tracking pixel" not in text
    assert "Buy now" not in text
    assert "internal note" not in text


def test_cleaner_truncates_and_handles_empty():
    long_html = "<main><p>" + "word " * 500 + "</p></main>"
    assert len(HtmlCleaner(max_chars=200).clean(long_html)) <= 200
    assert HtmlCleaner().clean("") == ""
    assert HtmlCleaner().clean(None) == ""


# ── Selector extractors ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_generic_extractor_reads_conventional_markup():
    url = "https://careers.acme.example.com/jobs/123"
    result = await GenericHtmlExtractor(detect_board(url)).extract(url, JOB_PAGE_HTML)

    assert result.kind == "html"
    assert result.data["title"] == "Senior Backend Engineer"
    assert result.data["company_name"] == "Acme Corp"
    assert result.data["location"] == "Nairobi, Kenya (Hybrid)"
    assert result.data["remote_type"] == "hybrid"
    assert result.data["requirements"] == "5+ years of Python\nPostgreSQL experience"
    assert result.data["benefits"] == "Medical cover\nLearning budget"
    assert "responsibilities" not in result.data
    assert result.field_results["title"].selector_matched == "h1.job-title"
    assert result.field_results["responsibilities"].success is False
    assert result.confidence == pytest.approx(0.875)


@pytest.mark.asyncio
async def test_generic_extractor_raises_with_diagnostics_when_nothing_matches():
    url = "https://careers.acme.example.com/jobs/123"
    with pytest.raises(StrategyError) as excinfo:
        await GenericHtmlExtractor(detect_board(url)).extract(url, "<html><body><p>x</p></body></html>")

    error = excinfo.value
    assert error.field_results["title"]["success"] is False
    assert "h1" in error.selectors_tried["title"]


@pytest.mark.asyncio
async def test_greenhouse_html_extractor_cleans_company_name():
    url = "https://boards.greenhouse.io/twilio/jobs/4567890"
    html = """
    <html><head><title>Job Application for Platform Engineer at Twilio</title></head>
    <body>
      <h1 class="app-title">Platform Engineer</h1>
      <span class="company-name">at Twilio</span>
      <div class="location">Remote - Kenya</div>
      <div id="content">
        <p>Build the platform.</p>
        <h3>What you'll do</h3><ul><li>Own deploys</li></ul>
        <h3>Qualifications</h3><ul><li>Go or Python</li></ul>
      </div>
    </body></html>
    """
    result = await GreenhouseHtmlExtractor(detect_board(url)).extract(url, html)

    assert result.data["title"] == "Platform Engineer"
    assert result.data["company_name"] == "Twilio"
    assert result.data["remote_type"] == "remote"
    assert result.data["responsibilities"] == "Own deploys"
    assert result.data["requirements"] == "Go or Python"
    assert result.provider == "greenhouse"


# ── API extractors ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_greenhouse_api_extractor_maps_posting():
    url = "https://boards.greenhouse.io/twilio/jobs/4567890"
    site = FakeSite(
        pages={
            "https://boards-api.greenhouse.io/v1/boards/twilio/jobs/4567890": json_response(
                {
                    "id": 4567890,
                    "title": "Software Engineer",
                    "company_name": "Twilio",
                    "location": {"name": "Nairobi, Kenya"},
                    "content": "&lt;p&gt;Build things&lt;/p&gt;&lt;h3&gt;Requirements&lt;/h3&gt;"
                    "&lt;ul&gt;&lt;li&gt;Python&lt;/li&gt;&lt;/ul&gt;",
                }
            )
        }
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(site))

    result = await GreenhouseApiExtractor(detect_board(url), client=client).extract(url, "")

    assert result.kind == "api"
    assert result.data["title"] == "Software Engineer"
    assert result.data["company_name"] == "Twilio"
    assert result.data["remote_type"] == "on_site"
    assert result.data["requirements"] == "Python"
    assert "Build things" in result.data["description"]
    assert result.confidence == pytest.approx(0.825)
    await client.aclose()


@pytest.mark.asyncio
async def test_api_extractor_http_error_is_strategy_error():
    url = "https://boards.greenhouse.io/twilio/jobs/1"
    client = httpx.AsyncClient(transport=httpx.MockTransport(FakeSite()))

    with pytest.raises(StrategyError, match="404"):
        await GreenhouseApiExtractor(detect_board(url), client=client).extract(url, "")
    await client.aclose()


@pytest.mark.asyncio
async def test_lever_api_extractor_maps_lists_and_workplace_type():
    url = "https://jobs.lever.co/netflix/abc-123"
    site = FakeSite(
        default=json_response(
            {
                "id": "abc-123",
                "text": "Data Engineer",
                "categories": {"location": "Amsterdam"},
                "descriptionPlain": "Move data around.",
                "lists": [
                    {"text": "Requirements", "content": "<li>SQL</li><li>Spark</li>"},
                    {"text": "What you'll do", "content": "<li>Pipelines</li>"},
                ],
                "workplaceType": "hybrid",
            }
        )
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(site))

    result = await LeverApiExtractor(detect_board(url), client=client).extract(url, "")

    assert result.data["company_name"] == "Netflix"
    assert result.data["remote_type"] == "hybrid"
    assert result.data["requirements"] == "SQL\nSpark"
    assert result.data["responsibilities"] == "Pipelines"
    assert site.requests[0].url.params["mode"] == "json"
    await client.aclose()


# ── Limited sources ──────────────────────────────────────────────────────────

LINKEDIN_PREVIEW = """
<html><head>
<title>Acme hiring Senior Engineer in Berlin, Germany | LinkedIn</title>
<meta property="og:title" content="Acme hiring Senior Engineer in Berlin, Germany | LinkedIn">
<meta property="og:site_name" content="LinkedIn">
<meta property="og:description" content="Join Acme to build the payments platform used by millions.">
</head><body><div class="authwall">Sign in to see more</div></body></html>
"""

INDEED_WITH_POSTING = """
<html><head>
<meta property="og:title" content="Data Engineer - Globex - Austin, TX | Indeed.com">
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "JobPosting",
 "title": "Data Engineer",
 "hiringOrganization": {"@type": "Organization", "name": "Globex"},
 "description": "&lt;p&gt;Own the warehouse.&lt;/p&gt;",
 "jobLocation": {"@type": "Place", "address": {"addressLocality": "Austin", "addressRegion": "TX", "addressCountry": "US"}},
 "jobLocationType": "TELECOMMUTE",
 "baseSalary": {"@type": "MonetaryAmount", "currency": "USD",
                "value": {"@type": "QuantitativeValue", "minValue": 120000, "maxValue": 150000, "unitText": "YEAR"}}}
</script>
</head><body></body></html>
"""


@pytest.mark.asyncio
async def test_meta_tags_extractor_reads_a_linkedin_preview():
    url = "https://www.linkedin.com/jobs/view/3812345678/"

    result = await MetaTagExtractor(detect_board(url)).extract(url, LINKEDIN_PREVIEW)

    assert result.data["title"] == "Senior Engineer"
    assert result.data["company_name"] == "Acme"
    assert result.data["location"] == "Berlin, Germany"
    assert result.data["description"].startswith("Join Acme")
    assert result.limited is True
    assert result.summary()["limited"] is True
    # Preview-only pages stay below the acceptance threshold
    assert result.confidence == pytest.approx(PREVIEW_ONLY_CAP)


@pytest.mark.asyncio
async def test_meta_tags_extractor_prefers_job_posting_json_ld():
    url = "https://www.indeed.com/viewjob?jk=5b2c"

    result = await MetaTagExtractor(detect_board(url)).extract(url, INDEED_WITH_POSTING)

    assert result.data["title"] == "Data Engineer"
    assert result.data["company_name"] == "Globex"
    assert result.data["description"] == "Own the warehouse."
    assert result.data["location"] == "Austin, TX, US"
    assert result.data["remote_type"] == "remote"
    assert (result.data["salary_min"], result.data["salary_max"]) == (120000, 150000)
    assert result.data["salary_currency"] == "USD"
    assert result.field_results["title"].selector_matched == "json_ld:JobPosting"
    assert result.limited is True
    assert result.confidence == pytest.approx(0.8)


def test_meta_tags_extractor_only_runs_on_limited_boards():
    assert MetaTagExtractor.applies_to(detect_board("https://www.glassdoor.com/job-listing/x-JV_IC1.htm?jl=1"))
    assert not MetaTagExtractor.applies_to(detect_board("https://boards.greenhouse.io/twilio/jobs/1"))


# ── Registry ─────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "url,names",
    [
        ("https://boards.greenhouse.io/twilio/jobs/1", ["greenhouse_api", "greenhouse_html", "generic_html"]),
        ("https://www.acme.com/careers?gh_jid=998", ["greenhouse_html", "generic_html"]),
        ("https://acme.wd5.myworkdayjobs.com/External/job/X_1", ["workday_html", "generic_html"]),
        ("https://www.linkedin.com/jobs/view/3812345678/", ["meta_tags", "generic_html"]),
        ("https://example.org/jobs/9", ["generic_html"]),
    ],
)
def test_get_extractors_order(url, names):
    assert [e.name for e in get_extractors(detect_board(url))] == names


def test_list_extractors_includes_fallback():
    listing = list_extractors()
    assert listing["greenhouse"] == ["greenhouse_api", "greenhouse_html"]
    assert listing["indeed"] == ["meta_tags"]
    assert listing["*"] == ["generic_html"]
