"""
Greenhouse extractors.

Greenhouse is an Applicant Tracking System (ATS) used by hundreds of companies.
Every board exposes a PUBLIC JSON API - no auth needed.

API docs: https://developers.greenhouse.io/job-board.html

Example API call for a single posting:
  GET https://boards-api.greenhouse.io/v1/boards/twilio/jobs/4567890

Hosted pages (boards.greenhouse.io/<slug>/jobs/<id>) are simple server-rendered
HTML, so the selector extractor is a solid second choice when the API refuses
(closed postings, embedded boards without a slug).
"""
import re
import time
from html import unescape
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from app.scrapers.base import APIExtractor, ExtractionResult, SelectorExtractor
from app.scrapers.text import infer_remote_type, section_after_heading, strip_html


class GreenhouseApiExtractor(APIExtractor):
    """Single-posting lookup on the Greenhouse job board API."""

    name = "greenhouse_api"
    API_BASE = "https://boards-api.greenhouse.io/v1/boards"

    async def extract(self, url: str, html: str) -> ExtractionResult:
        """
        The API returns:
        {
            "id": 4567890,
            "title": "Software Engineer",
            "company_name": "Twilio",
            "absolute_url": "https://boards.greenhouse.io/twilio/jobs/4567890",
            "location": {"name": "Nairobi, Kenya"},
            "content": "&lt;p&gt;Job description HTML...&lt;/p&gt;",
            "departments": [{"name": "Engineering"}],
            "offices": [{"name": "Nairobi"}]
        }

        Notice: content is HTML-escaped HTML.
        """
        started = time.monotonic()
        slug, job_id = self.board_info.company_slug, self.board_info.job_id
        raw = await self.fetch_json(f"{self.API_BASE}/{slug}/jobs/{job_id}")
        return self.build_result(self._map_job(raw or {}), started)

    def _map_job(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Translate their schema to ours."""
        location_data = raw.get("location") or {}
        location = (location_data.get("name") or "").strip()

        content_html = unescape(raw.get("content") or "")
        soup = BeautifulSoup(content_html, "lxml") if content_html else None

        return {
            "title": (raw.get("title") or "").strip(),
            "company_name": raw.get("company_name") or self._company_from_slug(),
            "location": location,
            "remote_type": infer_remote_type(location) or ("on_site" if location else None),
            "description": strip_html(content_html),
            "requirements": section_after_heading(soup, ("requirement", "qualification", "what you'll need", "what you bring")) if soup else None,
            "responsibilities": section_after_heading(soup, ("responsibilit", "what you'll do", "the role")) if soup else None,
            "benefits": section_after_heading(soup, ("benefit", "perks", "what we offer")) if soup else None,
        }

    def _company_from_slug(self) -> Optional[str]:
        slug = self.board_info.company_slug
        return slug.replace("-", " ").title() if slug else None


class GreenhouseHtmlExtractor(SelectorExtractor):
    """Selectors for boards.greenhouse.io / job-boards.greenhouse.io pages."""

    name = "greenhouse_html"

    SELECTORS = {
        "title": ["h1.app-title", ".job__title h1", "h1.section-header", "h1"],
        "company_name": [".company-name", "meta[property='og:site_name']", "title"],
        "location": [".location", ".job__location", "[class*='location']"],
        "description": ["#content", ".job__description", "[class*='description']"],
        "requirements": ["heading:requirement|qualification|what you'll need|what you bring"],
        "responsibilities": ["heading:responsibilit|what you'll do|the role"],
        "benefits": ["heading:benefit|perks|what we offer"],
    }

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        if field_name == "company_name":
            if selector == "title":
                # "Job Application for Software Engineer at Twilio"
                match = re.search(r"\bat\s+(.+)$", value)
                return match.group(1).strip() if match else None
            # Older boards render "at Twilio"
            return re.sub(r"^at\s+", "", value).strip()
        return value
