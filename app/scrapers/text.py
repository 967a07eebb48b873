"""
Text helpers shared by the extractors.

Everything here works on plain strings or BeautifulSoup nodes and has no
I/O, so the extractors stay easy to test with inline HTML.
"""
import re
from html import unescape
from typing import Iterable, Optional, Tuple

from bs4 import BeautifulSoup, Tag

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
CURRENCY_CODES = {"USD", "EUR", "GBP", "CAD", "AUD", "CHF", "PLN", "INR", "KES"}

_MONEY_SIGNAL = re.compile(
    r"\b(salary|compensation|pay|remuneration|total\s+comp|ote|base)\b|[$€£]|\b(usd|eur|gbp|pln|chf|cad|aud)\b",
    re.IGNORECASE,
)
_SALARY_RANGE = re.compile(
    r"(?P<cur>[$€£])?\s*(?P<min>\d[\d,\.]*\s*[kK]?)\s*(?:-|–|—|\bto\b)\s*"
    r"(?P<cur2>[$€£])?\s*(?P<max>\d[\d,\.]*\s*[kK]?)\s*(?P<code>[A-Z]{3})?",
)
_SALARY_SINGLE = re.compile(
    r"(?P<cur>[$€£])\s*(?P<amount>\d[\d,\.]*\s*[kK]?)\s*(?P<code>[A-Z]{3})?",
)

_REMOTE = re.compile(r"\b(remote|work from home|wfh|distributed|anywhere)\b", re.IGNORECASE)
_HYBRID = re.compile(r"\b(hybrid|partially remote)\b", re.IGNORECASE)
_ON_SITE = re.compile(r"\b(on.?site|on.?premise|in.?office|in.?person)\b", re.IGNORECASE)


def squish(text: Optional[str]) -> str:
    """Collapse whitespace runs into single spaces."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def strip_html(html: Optional[str]) -> str:
    """Remove HTML tags and decode entities. Keep it readable."""
    if not html:
        return ""
    text = re.sub(r"<[^>]+>", " ", unescape(html))
    return squish(unescape(text))


def infer_remote_type(text: Optional[str]) -> Optional[str]:
    """'hybrid', 'remote', 'on_site' or None, from free text."""
    if not text:
        return None
    if _HYBRID.search(text):
        return "hybrid"
    if _REMOTE.search(text):
        return "remote"
    if _ON_SITE.search(text):
        return "on_site"
    return None


def _to_amount(raw: str) -> Optional[int]:
    raw = raw.strip().replace(" ", "")
    multiplier = 1
    if raw[-1:] in ("k", "K"):
        multiplier = 1000
        raw = raw[:-1]
    # "120,000" / "120.000" are thousands separators; "120.5k" is a decimal
    if multiplier == 1:
        raw = raw.replace(",", "").replace(".", "")
    else:
        raw = raw.replace(",", ".")
    try:
        return int(float(raw) * multiplier)
    except ValueError:
        return None


def parse_salary(text: Optional[str]) -> Optional[Tuple[Optional[int], Optional[int], Optional[str]]]:
    """
    Parse "$120k - $150k", "90,000 to 110,000 EUR", "£45,000" into
    (min, max, currency). Returns None when the text has no money signal.
    """
    if not text or not _MONEY_SIGNAL.search(text):
        return None

    match = _SALARY_RANGE.search(text)
    if match:
        low = _to_amount(match.group("min"))
        high = _to_amount(match.group("max"))
        symbol = match.group("cur") or match.group("cur2")
        code = match.group("code")
        currency = CURRENCY_SYMBOLS.get(symbol) if symbol else None
        if code and code.upper() in CURRENCY_CODES:
            currency = code.upper()
        if low and high and low <= high and high >= 1000:
            return low, high, currency

    match = _SALARY_SINGLE.search(text)
    if match:
        amount = _to_amount(match.group("amount"))
        code = match.group("code")
        currency = CURRENCY_SYMBOLS.get(match.group("cur"))
        if code and code.upper() in CURRENCY_CODES:
            currency = code.upper()
        if amount and amount >= 1000:
            return amount, amount, currency

    return None


def section_after_heading(soup: BeautifulSoup, keywords: Iterable[str]) -> Optional[str]:
    """
    Text of the block that follows a heading matching one of `keywords`.

    Job pages usually look like <h3>Requirements</h3><ul>...</ul>; list items
    are joined with newlines, other content is squished.
    """
    wanted = [k.lower() for k in keywords]
    for heading in soup.find_all(["h1", "h2", "h3", "h4", "strong", "b"]):
        label = squish(heading.get_text()).lower().rstrip(":")
        if not label or len(label) > 80 or not any(k in label for k in wanted):
            continue

        parts = []
        # <strong> inside a <p>: walk siblings of the paragraph instead
        anchor: Tag = heading.parent if heading.name in ("strong", "b") and heading.parent.name == "p" else heading
        for sibling in anchor.find_next_siblings():
            if sibling.name in ("h1", "h2", "h3", "h4"):
                break
            if sibling.find(["strong", "b"]) and sibling.name == "p" and len(squish(sibling.get_text())) < 80:
                break
            items = sibling.find_all("li") if sibling.name in ("ul", "ol") else []
            if items:
                parts.extend(squish(li.get_text(" ")) for li in items)
            else:
                text = squish(sibling.get_text(" "))
                if text:
                    parts.append(text)
        text = "\n".join(p for p in parts if p)
        if text:
            return text
    return None
