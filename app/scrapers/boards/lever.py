"""
Lever extractors.

Lever is another major ATS, used by companies like Netflix, Figma, Shopify.
Like Greenhouse, they expose a PUBLIC JSON API per company - no auth needed.

API docs: https://github.com/lever/postings-api

Example API call for a single posting:
  GET https://api.lever.co/v0/postings/netflix/abc123-def456

KEY DIFFERENCE from Greenhouse:
  - Lever has a `workplaceType` field (Greenhouse doesn't)
  - Requirements/responsibilities come as `lists` sections
  - The API never returns the company name; hosted pages carry it in the
    logo alt text and the <title>
"""
import time
from typing import Any, Dict, List, Optional

from app.scrapers.base import APIExtractor, ExtractionResult, SelectorExtractor
from app.scrapers.text import infer_remote_type, strip_html

_REQUIREMENT_WORDS = ("requirement", "qualification", "you have", "you bring", "you'll need")
_RESPONSIBILITY_WORDS = ("responsibilit", "you'll do", "you will do", "the role")
_BENEFIT_WORDS = ("benefit", "perks", "we offer")


class LeverApiExtractor(APIExtractor):
    """Single-posting lookup on the Lever postings API."""

    name = "lever_api"
    API_BASE = "https://api.lever.co/v0/postings"

    async def extract(self, url: str, html: str) -> ExtractionResult:
        """
        The API returns one posting:
        {
            "id": "abc123-def456",
            "text": "Software Engineer",
            "categories": {"location": "Nairobi, Kenya", "commitment": "Full-time", "team": "Engineering"},
            "descriptionPlain": "We are looking for...",
            "lists": [{"text": "Requirements", "content": "<li>5+ years...</li>"}],
            "additionalPlain": "Benefits...",
            "workplaceType": "remote"
        }
        """
        started = time.monotonic()
        slug, job_id = self.board_info.company_slug, self.board_info.job_id
        raw = await self.fetch_json(f"{self.API_BASE}/{slug}/{job_id}", params={"mode": "json"})
        if not isinstance(raw, dict):
            raw = {}
        return self.build_result(self._map_posting(raw), started)

    def _map_posting(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        categories = raw.get("categories") or {}
        location = categories.get("location") or ""
        lists = raw.get("lists") or []

        description = raw.get("descriptionPlain") or strip_html(raw.get("description"))
        slug = self.board_info.company_slug

        return {
            "title": (raw.get("text") or "").strip(),
            "company_name": slug.replace("-", " ").title() if slug else None,
            "location": location,
            "remote_type": self._map_workplace_type(raw.get("workplaceType") or "", location),
            "description": (description or "").strip(),
            "requirements": self._list_section(lists, _REQUIREMENT_WORDS),
            "responsibilities": self._list_section(lists, _RESPONSIBILITY_WORDS),
            "benefits": self._list_section(lists, _BENEFIT_WORDS)
            or (raw.get("additionalPlain") or "").strip()
            or None,
        }

    # ─── Helper methods ───────────────────────────────────────────

    @staticmethod
    def _list_section(lists: List[Dict[str, Any]], words) -> Optional[str]:
        for section in lists:
            heading = (section.get("text") or "").lower()
            if any(w in heading for w in words):
                content = section.get("content") or ""
                items = [strip_html(item) for item in content.split("</li>")]
                text = "\n".join(item for item in items if item)
                if text:
                    return text
        return None

    @staticmethod
    def _map_workplace_type(workplace_type: str, location: str) -> Optional[str]:
        """
        Map Lever's workplaceType to our remote_type values.

        Lever uses: "remote", "onsite", "hybrid", or sometimes empty.
        """
        wt = workplace_type.lower()
        if wt == "remote":
            return "remote"
        if wt == "hybrid":
            return "hybrid"
        if wt == "onsite":
            return "on_site"
        # Fallback: check location string
        return infer_remote_type(location)


class LeverHtmlExtractor(SelectorExtractor):
    """Selectors for jobs.lever.co hosted postings."""

    name = "lever_html"

    SELECTORS = {
        "title": [".posting-headline h2", "meta[property='og:title']", "h2"],
        "company_name": [".main-header-logo img", "title"],
        "location": [".posting-categories .location", ".sort-by-location", "[class*='location']"],
        "remote_type": [".posting-categories .workplaceTypes"],
        "description": ["[data-qa='job-description']", ".section-wrapper.page-full-width", ".content"],
        "requirements": ["heading:requirement|qualification|you have|you bring"],
        "responsibilities": ["heading:responsibilit|you'll do|you will do|the role"],
        "benefits": ["heading:benefit|perks|we offer"],
    }

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        if field_name == "company_name" and selector == "title":
            # "Netflix - Senior Software Engineer"
            return value.split(" - ")[0].strip() if " - " in value else None
        if field_name == "remote_type":
            return infer_remote_type(value)
        return value
