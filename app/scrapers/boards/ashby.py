"""
Ashby extractor (jobs.ashbyhq.com).

Ashby uses React with generated class names like `_title_ud4nd_34`, but also
ships stable semantic classes such as `ashby-job-posting-heading`.
The description holds requirements/responsibilities as free-form h2
sections, which the AI extractor parses better, so confidence is capped
unless those sections were found.
"""
from typing import Any, Dict, Optional

from app.scrapers.base import SelectorExtractor

# Keeps metadata-only passes below the usual acceptance threshold
METADATA_ONLY_CAP = 0.65


class AshbyHtmlExtractor(SelectorExtractor):
    name = "ashby_html"

    SELECTORS = {
        "title": [".ashby-job-posting-heading", "h1[class*='_title_']", "h1", "meta[property='og:title']"],
        "company_name": [".ashby-job-posting-header img", "[class*='_navLogoWordmarkImage_']", "title"],
        "location": [
            ".ashby-job-posting-left-pane [class*='_section_'] p",
            "[class*='_section_'] p",
        ],
        "description": [
            ".ashby-job-posting-right-pane",
            "[class*='_details_']",
            "[class*='_content_']",
            "meta[name='description']",
        ],
        "requirements": ["heading:requirement|qualification|you have|you bring"],
        "responsibilities": ["heading:responsibilit|you'll do|you will do"],
    }

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        if field_name == "company_name" and selector == "title":
            # "Senior Engineer @ Acme"
            return value.split("@")[-1].strip() if "@" in value else None
        return value

    def confidence_for(self, data: Dict[str, Any]) -> float:
        score = super().confidence_for(data)
        if data.get("requirements") or data.get("responsibilities"):
            return score
        return min(score, METADATA_ONLY_CAP)
