"""
HTML cleaner - turns a fetched page into compact text for the AI extractor.

Drops chrome (scripts, navigation, ads, share widgets, hidden nodes),
picks the element that most likely holds the posting, normalizes
whitespace and truncates to a character budget (~3 chars per token).
"""
import re
from typing import Optional

from bs4 import BeautifulSoup, Comment, Tag

from app.core.config import settings

MIN_CONTENT_LENGTH = 100

_NOISE_TAGS = ("script", "style", "noscript", "template", "svg", "iframe", "nav", "header", "footer")
_NOISE_TOKEN = re.compile(
    r"(^|[-_\s])(ads?|advert\w*|tracking|analytics|social|share|sharing|cookie\w*|banner)($|[-_\s])",
    re.IGNORECASE,
)
_HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)

# Tried in order; the first match with enough text wins
_MAIN_CONTENT_SELECTORS = (
    "main, article, [role='main']",
    ".content, #content, .main-content, .job-content, .job-description",
    "#root, #app, #__next",
    "[class*='job-description'], [class*='job-details'], [class*='job-posting'], [id*='job-description']",
    "[class*='posting'], [class*='container'], [class*='content']",
)


class HtmlCleaner:
    def __init__(self, max_chars: Optional[int] = None):
        self.max_chars = max_chars or settings.cleaned_html_max_chars

    def clean(self, html: Optional[str]) -> str:
        if not html or not html.strip():
            return ""

        soup = BeautifulSoup(html, "lxml")
        self._remove_noise(soup)
        main = self._main_content(soup)
        text = self._normalize_whitespace(main.get_text("\n"))
        return self._truncate(text)

    # ─── Steps ────────────────────────────────────────────────

    @staticmethod
    def _is_noise(tag: Tag) -> bool:
        if tag.has_attr("hidden") or tag.get("aria-hidden") == "true":
            return True
        if _HIDDEN_STYLE.search(tag.get("style") or ""):
            return True
        tokens = " ".join(tag.get("class") or []) + " " + (tag.get("id") or "")
        return bool(_NOISE_TOKEN.search(tokens))

    def _remove_noise(self, soup: BeautifulSoup) -> None:
        for tag in soup(_NOISE_TAGS):
            if not tag.decomposed:
                tag.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        for tag in soup.find_all(self._is_noise):
            # An ancestor may already have taken this node with it
            if not tag.decomposed:
                tag.decompose()

    @staticmethod
    def _main_content(soup: BeautifulSoup) -> Tag:
        for selector in _MAIN_CONTENT_SELECTORS:
            node = soup.select_one(selector)
            if node and len(node.get_text(strip=True)) >= MIN_CONTENT_LENGTH:
                return node

        body = soup.body or soup
        divs = body.find_all("div")
        if divs:
            largest = max(divs, key=lambda d: len(d.get_text(strip=True)))
            if len(largest.get_text(strip=True)) >= MIN_CONTENT_LENGTH:
                return largest
        return body

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        text = re.sub(r"[ \t\r\f\v]+", " ", text)
        lines = [line.strip() for line in text.split("\n")]
        text = "\n".join(lines)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def _truncate(self, text: str) -> str:
        if len(text) <= self.max_chars:
            return text
        truncated = text[: self.max_chars]
        # Prefer ending on a sentence boundary if one is reasonably close
        cut = truncated.rfind(". ")
        if cut > self.max_chars * 0.8:
            truncated = truncated[: cut + 1]
        return truncated
