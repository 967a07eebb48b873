"""
Base extractor classes.

An extractor turns a job page (or a board API) into a partial job-listing
record plus a confidence score. All board-specific extractors inherit from
one of:

  - SelectorExtractor: parses the fetched HTML with BeautifulSoup using
    per-field CSS selector lists. HTML-based, so its passes are recorded
    as HtmlScrapingLog diagnostics.
  - APIExtractor: asks the board's public JSON API for the posting.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup, Tag

from app.core.config import settings
from app.core.exceptions import StrategyError
from app.scrapers.detector import BoardInfo
from app.scrapers.text import infer_remote_type, parse_salary, section_after_heading, squish

REQUIRED_FIELDS = ("title", "company_name", "description")

# Weighted score emphasizing must-have fields; sums to 1.0
CONFIDENCE_WEIGHTS = {
    "title": 0.25,
    "company_name": 0.25,
    "description": 0.15,
    "location": 0.05,
    "requirements": 0.075,
    "responsibilities": 0.075,
    "benefits": 0.05,
    "salary_min": 0.05,
    "remote_type": 0.05,
}

# Ceiling applied when a required field is missing so the chain keeps going
MISSING_REQUIRED_CAP = 0.5

MAX_FIELD_CHARS = 20_000


def _present(value: Any) -> bool:
    return value not in (None, "", [], {})


def score_confidence(data: Dict[str, Any]) -> float:
    """Weighted field-presence score in [0, 1]."""
    score = sum(w for name, w in CONFIDENCE_WEIGHTS.items() if _present(data.get(name)))
    if any(not _present(data.get(name)) for name in REQUIRED_FIELDS):
        score = min(score, MISSING_REQUIRED_CAP)
    return max(0.0, min(1.0, score))


@dataclass
class FieldResult:
    """Outcome for one field of one HTML pass."""

    success: bool
    value: Any = None
    selector_matched: Optional[str] = None
    confidence: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, str) and len(value) > 500:
            value = value[:500] + "..."
        return {
            "success": self.success,
            "value": value,
            "selector_matched": self.selector_matched,
            "confidence": self.confidence,
        }


@dataclass
class ExtractionResult:
    """What a strategy produced: the record, its confidence and diagnostics."""

    extractor: str
    kind: str  # 'api', 'html', 'ai'
    data: Dict[str, Any]
    confidence: float
    provider: Optional[str] = None
    model: Optional[str] = None
    field_results: Dict[str, FieldResult] = field(default_factory=dict)
    selectors_tried: Dict[str, List[str]] = field(default_factory=dict)
    duration_ms: Optional[int] = None
    limited: bool = False  # built from a page preview, not the full posting

    @property
    def extracted_fields(self) -> List[str]:
        return sorted(name for name, value in self.data.items() if _present(value))

    @property
    def missing_fields(self) -> List[str]:
        return [name for name in REQUIRED_FIELDS if not _present(self.data.get(name))]

    def summary(self) -> Dict[str, Any]:
        """Compact, JSON-safe view for event payloads."""
        return {
            "extractor": self.extractor,
            "kind": self.kind,
            "confidence": self.confidence,
            "provider": self.provider,
            "model": self.model,
            "extracted_fields": self.extracted_fields,
            "missing_fields": self.missing_fields,
            "title": self.data.get("title"),
            "company": self.data.get("company_name"),
            "location": self.data.get("location"),
            "limited": self.limited,
        }


class BaseExtractor(ABC):
    """
    Base class for all structured extractors.

    Subclasses set `name`/`kind` and implement `extract()`. `applies_to()`
    lets an extractor opt out for URLs it cannot handle (e.g. an API
    extractor without a job id).
    """

    name: str = "base"
    kind: str = "html"

    def __init__(self, board_info: BoardInfo):
        self.board_info = board_info

    @classmethod
    def applies_to(cls, board_info: BoardInfo) -> bool:
        return True

    @abstractmethod
    async def extract(self, url: str, html: str) -> ExtractionResult:
        """Produce a result or raise StrategyError."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.board_info.board.value}>"


class SelectorExtractor(BaseExtractor):
    """
    Selectors-first HTML extractor.

    SELECTORS maps a field to CSS selectors tried in order. A selector of
    the form "heading:a|b" looks for a heading containing "a" or "b" and
    takes the block that follows it. The first non-empty match wins.
    """

    kind = "html"
    SELECTORS: Dict[str, List[str]] = {}

    async def extract(self, url: str, html: str) -> ExtractionResult:
        if not html or not html.strip():
            raise StrategyError(f"{self.name}: no HTML provided")

        start = time.monotonic()
        soup = BeautifulSoup(html, "lxml")
        selectors_tried: Dict[str, List[str]] = {}
        field_results: Dict[str, FieldResult] = {}
        data: Dict[str, Any] = {}

        for name, selectors in self.SELECTORS.items():
            result = self._pick(soup, name, selectors, selectors_tried)
            field_results[name] = result
            if result.success:
                data[name] = result.value

        self.post_process(soup, data, field_results, selectors_tried)

        if not any(_present(v) for v in data.values()):
            raise StrategyError(
                f"{self.name}: selectors matched nothing",
                field_results={k: v.as_dict() for k, v in field_results.items()},
                selectors_tried=selectors_tried,
            )

        return ExtractionResult(
            extractor=self.name,
            kind=self.kind,
            data=data,
            confidence=self.confidence_for(data),
            provider=self.board_info.board.value,
            field_results=field_results,
            selectors_tried=selectors_tried,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def confidence_for(self, data: Dict[str, Any]) -> float:
        return score_confidence(data)

    def clean_value(self, field_name: str, value: str, selector: str) -> Optional[str]:
        """Hook for board quirks ("at Company", "Title @ Company"...)."""
        return value

    def post_process(
        self,
        soup: BeautifulSoup,
        data: Dict[str, Any],
        field_results: Dict[str, FieldResult],
        selectors_tried: Dict[str, List[str]],
    ) -> None:
        """Derive salary and remote type from what the selectors found."""
        if "remote_type" not in data:
            tried = selectors_tried.setdefault("remote_type", [])
            tried.append("text_pattern:location")
            remote = infer_remote_type(data.get("location"))
            if not remote:
                tried.append("text_pattern:page")
                remote = infer_remote_type(soup.get_text(" ")[:20_000])
            field_results["remote_type"] = FieldResult(
                success=remote is not None,
                value=remote,
                selector_matched="text_pattern" if remote else None,
                confidence=0.6 if remote else 0.0,
            )
            if remote:
                data["remote_type"] = remote

        if "salary_min" not in data:
            tried = selectors_tried.setdefault("salary", [])
            salary = None
            for selector in ("[class*='salary']", "[class*='compensation']", "[data-salary]"):
                tried.append(selector)
                node = soup.select_one(selector)
                if node:
                    salary = parse_salary(node.get_text(" "))
                    if salary:
                        break
            if not salary and data.get("description"):
                tried.append("text_pattern:description")
                salary = parse_salary(data["description"])
            low, high, currency = salary or (None, None, None)
            for name, value in (("salary_min", low), ("salary_max", high), ("salary_currency", currency)):
                field_results[name] = FieldResult(
                    success=value is not None,
                    value=value,
                    selector_matched=tried[-1] if value is not None else None,
                    confidence=0.7 if value is not None else 0.0,
                )
                if value is not None:
                    data[name] = value

    # ─── Helpers ──────────────────────────────────────────────

    def _pick(
        self,
        soup: BeautifulSoup,
        field_name: str,
        selectors: List[str],
        selectors_tried: Dict[str, List[str]],
    ) -> FieldResult:
        tried = selectors_tried.setdefault(field_name, [])
        for selector in selectors:
            tried.append(selector)
            if selector.startswith("heading:"):
                raw = section_after_heading(soup, selector[len("heading:"):].split("|"))
            else:
                raw = self._node_text(soup.select_one(selector), field_name)
            if not raw:
                continue
            value = self.clean_value(field_name, raw, selector)
            if value:
                return FieldResult(
                    success=True,
                    value=value[:MAX_FIELD_CHARS],
                    selector_matched=selector,
                    confidence=0.9 if len(tried) == 1 else 0.75,
                )
        return FieldResult(success=False)

    @staticmethod
    def _node_text(node: Optional[Tag], field_name: str) -> Optional[str]:
        if node is None:
            return None
        for attr in ("content", "alt", "aria-label"):
            if node.get(attr):
                return squish(node[attr])
        if field_name in ("description", "requirements", "responsibilities", "benefits"):
            text = node.get_text("\n")
            lines = [squish(line) for line in text.split("\n")]
            return "\n".join(line for line in lines if line) or None
        return squish(node.get_text(" ")) or None


class APIExtractor(BaseExtractor):
    """
    Extractor backed by a board's public JSON API.

    Network failures are strategy failures: the chain simply moves on.
    """

    kind = "api"

    def __init__(self, board_info: BoardInfo, client: Optional[httpx.AsyncClient] = None):
        super().__init__(board_info)
        self._client = client

    @classmethod
    def applies_to(cls, board_info: BoardInfo) -> bool:
        return board_info.api_supported and bool(board_info.company_slug and board_info.job_id)

    async def fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(
                    timeout=settings.scrape_timeout_seconds,
                    headers={"User-Agent": settings.scrape_user_agent},
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            raise StrategyError(f"{self.name}: API request timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise StrategyError(
                f"{self.name}: API request failed: {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise StrategyError(f"{self.name}: API request failed: {exc}") from exc

    def build_result(self, data: Dict[str, Any], started: float) -> ExtractionResult:
        data = {k: v for k, v in data.items() if _present(v)}
        if not data:
            raise StrategyError(f"{self.name}: API returned no usable fields")
        return ExtractionResult(
            extractor=self.name,
            kind=self.kind,
            data=data,
            confidence=score_confidence(data),
            provider=self.board_info.board.value,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
