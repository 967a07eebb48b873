"""
Job extraction prompt and response validation.

The LLM gets cleaned page text and must answer with ONE JSON object. The
answer is validated by ExtractedJobData; anything that does not parse or
validate is a ProviderResponseInvalid so the AI extractor moves on to the
next provider.
"""
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.config import settings
from app.core.exceptions import ProviderResponseInvalid
from app.core.logging import get_logger
from app.scrapers.base import MISSING_REQUIRED_CAP, REQUIRED_FIELDS, score_confidence
from app.scrapers.text import infer_remote_type, parse_salary, squish

logger = get_logger(__name__)

REMOTE_TYPES = ("remote", "hybrid", "on_site")


def _truncate(text: str, max_chars: int) -> str:
    """Truncate text to max_chars, appending indicator if truncated."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n... [truncated]"


def _safe_parse_json(raw: str) -> Optional[Dict[str, Any]]:
    """Parse JSON from an LLM reply, tolerating a markdown code fence."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning("llm_json_parse_error", error=str(exc), raw_head=text[:200])
        return None
    if not isinstance(parsed, dict):
        logger.warning("llm_json_not_dict", raw_type=type(parsed).__name__)
        return None
    return parsed


class ExtractedJobData(BaseModel):
    """Shape of a valid LLM answer."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    company_name: Optional[str] = None
    location: Optional[str] = None
    remote_type: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = Field(default=None, max_length=10)
    description: Optional[str] = None
    requirements: Optional[Union[str, List[str]]] = None
    responsibilities: Optional[Union[str, List[str]]] = None
    benefits: Optional[Union[str, List[str]]] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("title", "company_name", "location", "description", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("remote_type", mode="before")
    @classmethod
    def normalize_remote_type(cls, v: Any) -> Optional[str]:
        if not v:
            return None
        value = str(v).strip().lower().replace("-", "_").replace(" ", "_")
        if value in REMOTE_TYPES:
            return value
        return infer_remote_type(str(v))

    @field_validator("salary_min", "salary_max", mode="before")
    @classmethod
    def coerce_salary(cls, v: Any) -> Optional[int]:
        if v in (None, ""):
            return None
        if isinstance(v, (int, float)):
            return int(v)
        parsed = parse_salary("$" + str(v).strip().lstrip("$€£"))
        return parsed[0] if parsed else None

    @field_validator("salary_currency", mode="before")
    @classmethod
    def upper_currency(cls, v: Any) -> Optional[str]:
        if not v:
            return None
        return str(v).strip().upper()[:10]

    def to_listing_data(self) -> Dict[str, Any]:
        """Fields in JobListing shape, empty values dropped."""
        data = self.model_dump(exclude={"confidence"})
        return {k: v for k, v in data.items() if v not in (None, "", [])}

    def score(self) -> float:
        """
        Model-reported confidence when present, otherwise field presence.
        A missing required field caps the score either way.
        """
        data = self.to_listing_data()
        if self.confidence is None:
            return score_confidence(data)
        if any(not data.get(name) for name in REQUIRED_FIELDS):
            return min(self.confidence, MISSING_REQUIRED_CAP)
        return self.confidence


class JobExtractionPrompt:
    """Builds the system/user prompts for one extraction call."""

    SYSTEM = (
        "You are a job posting extraction engine. "
        "Read the job page text and extract the posting's details. "
        "Return ONLY a JSON object with these exact keys:\n"
        '  "title": string,\n'
        '  "company_name": string,\n'
        '  "location": string or null,\n'
        '  "remote_type": one of "remote", "hybrid", "on_site", or null,\n'
        '  "salary_min": integer or null (annual, no currency symbol),\n'
        '  "salary_max": integer or null,\n'
        '  "salary_currency": ISO 4217 code or null,\n'
        '  "description": string (the role summary),\n'
        '  "requirements": array of strings,\n'
        '  "responsibilities": array of strings,\n'
        '  "benefits": array of strings,\n'
        '  "confidence": number between 0 and 1 (how sure you are this page is one job posting '
        "and the fields are correct).\n"
        "Use null for anything the page does not state. Do not invent values."
    )

    def __init__(self, url: str, page_text: str, max_chars: Optional[int] = None):
        self.url = url
        self.page_text = _truncate(squish(page_text), max_chars or settings.llm_max_input_chars)

    @property
    def system(self) -> str:
        return self.SYSTEM

    @property
    def user(self) -> str:
        return f"Job page URL: {self.url}\n\nPage text:\n{self.page_text}"

    @property
    def input_chars(self) -> int:
        return len(self.page_text)

    @staticmethod
    def parse(raw: str, provider: Optional[str] = None) -> ExtractedJobData:
        """Validate an LLM reply; raise ProviderResponseInvalid when unusable."""
        parsed = _safe_parse_json(raw)
        if parsed is None:
            raise ProviderResponseInvalid("Response is not a JSON object", provider=provider)
        try:
            extracted = ExtractedJobData.model_validate(parsed)
        except ValidationError as exc:
            raise ProviderResponseInvalid(
                f"Response failed validation: {exc.error_count()} error(s)", provider=provider
            ) from exc
        if not extracted.to_listing_data():
            raise ProviderResponseInvalid("Response contained no fields", provider=provider)
        return extracted
