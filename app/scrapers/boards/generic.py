"""
Generic HTML extractor - last structured step for every board.

Works on any career page with conventional markup (job-title / location /
description classes, schema-ish data attributes, OpenGraph tags). Each
field is sanity-checked so cookie banners or whole-page dumps are not
mistaken for a title or a company name.
"""
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from app.scrapers.base import FieldResult, SelectorExtractor

_COOKIE_TEXT = re.compile(r"cookie|consent|privacy|accept all", re.IGNORECASE)
_LOCATION_PATTERNS = (
    re.compile(r"\bLocation\s*[:\-]\s*([^\n|•]{3,80})", re.IGNORECASE),
    re.compile(r"\bBased in\s+([A-Z][^\n.|•]{2,60})"),
)

# Upper bounds on believable field lengths
_MAX_LENGTH = {"title": 200, "company_name": 100, "location": 200}


class GenericHtmlExtractor(SelectorExtractor):
    name = "generic_html"

    SELECTORS = {
        "title": [
            "h1.job-title",
            "[data-job-title]",
            "[class*='job-title']",
            "[id*='job-title']",
            "h1",
            "meta[property='og:title']",
        ],
        "company_name": [
            "[data-company]",
            "[class*='company-name']",
            "[itemprop='hiringOrganization'] [itemprop='name']",
            "meta[property='og:site_name']",
            "meta[name='company']",
        ],
        "location": [
            "[data-location]",
            "[class*='job-location']",
            "[itemprop='jobLocation']",
            "[class*='location']",
            "address",
        ],
        "description": [
            "[class*='job-description']",
            "[id*='job-description']",
            "[itemprop='description']",
            "[class*='description']",
            "article",
            "main",
        ],
        "requirements": ["heading:requirement|qualification|what you'll need|what you bring|skills"],
        "responsibilities": ["heading:responsibilit|what you'll do|duties|the role"],
        "benefits": ["heading:benefit|perks|what we offer"],
    }

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        limit = _MAX_LENGTH.get(field_name)
        if limit and not 2 < len(value) < limit:
            return None
        if field_name == "title" and _COOKIE_TEXT.search(value):
            return None
        return value

    def post_process(
        self,
        soup: BeautifulSoup,
        data: Dict[str, Any],
        field_results: Dict[str, FieldResult],
        selectors_tried: Dict[str, List[str]],
    ) -> None:
        if "location" not in data:
            selectors_tried["location"].append("text_pattern_search")
            text = soup.get_text("\n")
            for pattern in _LOCATION_PATTERNS:
                match = pattern.search(text)
                if match:
                    data["location"] = match.group(1).strip()
                    field_results["location"] = FieldResult(
                        success=True,
                        value=data["location"],
                        selector_matched="text_pattern_search",
                        confidence=0.5,
                    )
                    break
        super().post_process(soup, data, field_results, selectors_tried)
