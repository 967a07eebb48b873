"""
Meta-tag extractor for aggregators (LinkedIn, Indeed, Glassdoor).

Logged-out visitors get a login wall instead of the posting body, so the
page markup is useless. What survives is the head: OpenGraph and Twitter
tags, the <title>, the meta description and sometimes a JSON-LD
JobPosting block. Results are flagged `limited` so operators know the
listing was built from a preview.
"""
import json
import re
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from app.scrapers.base import ExtractionResult, FieldResult, SelectorExtractor
from app.scrapers.detector import BoardInfo
from app.scrapers.text import infer_remote_type, squish, strip_html

# Without a JobPosting block the description is a teaser at best
PREVIEW_ONLY_CAP = 0.6

_BOARD_SUFFIX = re.compile(r"\s*[|\-]\s*(LinkedIn|Indeed(\.com)?|Glassdoor)\s*$", re.IGNORECASE)
_BOARD_NAMES = {"linkedin", "indeed", "indeed.com", "glassdoor"}
# "Acme hiring Senior Engineer in Berlin, Germany"
_HIRING = re.compile(r"^(?P<company>.+?) hiring (?P<title>.+?)(?: in (?P<location>.+))?$")
# "Senior Engineer at Acme" / "Senior Engineer - Acme"
_TITLE_AT = re.compile(r"^(?P<title>.+?)\s+(?:at|-)\s+(?P<company>.+)$")


class MetaTagExtractor(SelectorExtractor):
    name = "meta_tags"

    SELECTORS = {
        "title": ["meta[property='og:title']", "meta[name='twitter:title']", "title"],
        "company_name": ["meta[property='og:site_name']"],
        "description": [
            "meta[property='og:description']",
            "meta[name='twitter:description']",
            "meta[name='description']",
        ],
    }

    @classmethod
    def applies_to(cls, board_info: BoardInfo) -> bool:
        return board_info.limited_extraction

    async def extract(self, url: str, html: str) -> ExtractionResult:
        self._has_posting = False
        result = await super().extract(url, html)
        result.limited = True
        return result

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        if field_name == "title":
            return _BOARD_SUFFIX.sub("", value) or None
        if field_name == "company_name" and value.lower() in _BOARD_NAMES:
            return None
        return value

    def post_process(
        self,
        soup: BeautifulSoup,
        data: Dict[str, Any],
        field_results: Dict[str, FieldResult],
        selectors_tried: Dict[str, List[str]],
    ) -> None:
        posting = _job_posting(soup)
        self._has_posting = posting is not None
        if posting:
            for name, value in _posting_fields(posting).items():
                selectors_tried.setdefault(name, []).append("json_ld:JobPosting")
                if value:
                    data[name] = value
                    field_results[name] = FieldResult(
                        success=True, value=value, selector_matched="json_ld:JobPosting", confidence=0.9
                    )

        if data.get("title") and not posting:
            self._split_title(data, field_results, selectors_tried)
        super().post_process(soup, data, field_results, selectors_tried)

    def confidence_for(self, data: Dict[str, Any]) -> float:
        score = super().confidence_for(data)
        if self._has_posting:
            return score
        return min(score, PREVIEW_ONLY_CAP)

    @staticmethod
    def _split_title(
        data: Dict[str, Any],
        field_results: Dict[str, FieldResult],
        selectors_tried: Dict[str, List[str]],
    ) -> None:
        match = _HIRING.match(data["title"]) or _TITLE_AT.match(data["title"])
        if not match:
            return
        parts = match.groupdict()
        data["title"] = squish(parts["title"])
        for name, key in (("company_name", "company"), ("location", "location")):
            selectors_tried.setdefault(name, []).append("title_pattern")
            value = squish(parts.get(key))
            if value and not data.get(name):
                data[name] = value
                field_results[name] = FieldResult(
                    success=True, value=value, selector_matched="title_pattern", confidence=0.6
                )


def _json_ld_items(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            payload = json.loads(script.string or "")
        except ValueError:
            continue
        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            if not isinstance(item, dict):
                continue
            yield item
            for nested in item.get("@graph", []) or []:
                if isinstance(nested, dict):
                    yield nested


def _job_posting(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for item in _json_ld_items(soup):
        kind = item.get("@type")
        kinds = kind if isinstance(kind, list) else [kind]
        if "JobPosting" in kinds:
            return item
    return None


def _posting_fields(posting: Dict[str, Any]) -> Dict[str, Any]:
    organization = posting.get("hiringOrganization") or {}
    company = organization.get("name") if isinstance(organization, dict) else organization

    fields: Dict[str, Any] = {
        "title": squish(posting.get("title")),
        "company_name": squish(company) if isinstance(company, str) else None,
        "description": strip_html(posting.get("description")),
        "location": _posting_location(posting.get("jobLocation")),
    }
    if str(posting.get("jobLocationType", "")).upper() == "TELECOMMUTE":
        fields["remote_type"] = "remote"
    elif fields["location"]:
        fields["remote_type"] = infer_remote_type(fields["location"])

    salary = posting.get("baseSalary")
    if isinstance(salary, dict):
        value = salary.get("value") if isinstance(salary.get("value"), dict) else {}
        fields["salary_min"] = _to_int(value.get("minValue", value.get("value")))
        fields["salary_max"] = _to_int(value.get("maxValue"))
        fields["salary_currency"] = salary.get("currency")
    return fields


def _posting_location(location: Any) -> Optional[str]:
    if isinstance(location, list):
        location = location[0] if location else None
    if not isinstance(location, dict):
        return None
    address = location.get("address") or {}
    if isinstance(address, str):
        return squish(address) or None
    parts = [address.get(key) for key in ("addressLocality", "addressRegion", "addressCountry")]
    parts = [squish(p if isinstance(p, str) else (p or {}).get("name")) for p in parts]
    return ", ".join(p for p in parts if p) or None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(float(value)) if value is not None else None
    except (TypeError, ValueError):
        return None
