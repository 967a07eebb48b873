"""
Scrapers package - fetching, cleaning, board detection and structured extractors.
"""
from app.scrapers.base import (
    APIExtractor,
    BaseExtractor,
    ExtractionResult,
    FieldResult,
    SelectorExtractor,
    score_confidence,
)
from app.scrapers.cleaner import HtmlCleaner
from app.scrapers.detector import BoardInfo, BoardType, detect_board
from app.scrapers.fetcher import FetchResult, HtmlFetcher
from app.scrapers.registry import EXTRACTOR_REGISTRY, get_extractors, list_extractors

__all__ = [
    "APIExtractor",
    "BaseExtractor",
    "ExtractionResult",
    "FieldResult",
    "SelectorExtractor",
    "score_confidence",
    "HtmlCleaner",
    "BoardInfo",
    "BoardType",
    "detect_board",
    "FetchResult",
    "HtmlFetcher",
    "EXTRACTOR_REGISTRY",
    "get_extractors",
    "list_extractors",
]
