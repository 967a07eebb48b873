"""
Workday extractor.

Workday career sites (<company>.wdN.myworkdayjobs.com) render the posting
client-side, but the server response already carries stable
`data-automation-id` hooks once the page has been prerendered or
proxied, plus OpenGraph tags on every page.
"""
import re
from typing import Optional

from app.scrapers.base import SelectorExtractor
from app.scrapers.text import infer_remote_type


class WorkdayHtmlExtractor(SelectorExtractor):
    name = "workday_html"

    SELECTORS = {
        "title": ["[data-automation-id='jobPostingHeader']", "meta[property='og:title']", "h1"],
        "company_name": ["meta[property='og:site_name']", "title"],
        "location": [
            "[data-automation-id='locations'] dd",
            "[data-automation-id='locations']",
        ],
        "remote_type": ["[data-automation-id='remoteType'] dd", "[data-automation-id='remoteType']"],
        "description": [
            "[data-automation-id='jobPostingDescription']",
            "meta[property='og:description']",
            "meta[name='description']",
        ],
        "requirements": ["heading:qualification|requirement|what you bring"],
        "responsibilities": ["heading:responsibilit|what you'll do|key duties"],
        "benefits": ["heading:benefit|what we offer"],
    }

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        if field_name == "location":
            # "locations" blocks start with the label itself
            return re.sub(r"^locations?\s*", "", value, flags=re.IGNORECASE).strip() or None
        if field_name == "company_name" and selector == "title":
            # "Senior Engineer - Acme Careers" / "Acme Careers"
            tail = value.split(" - ")[-1]
            return re.sub(r"\s*careers?$", "", tail, flags=re.IGNORECASE).strip() or None
        if field_name == "remote_type":
            return infer_remote_type(value)
        return value
