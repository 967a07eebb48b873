"""
Extractor registry - maps a job board to its structured extractors.

HOW THE REGISTRY WORKS:
  1. The detector classifies a listing URL into a BoardType
  2. We look up the board -> ordered list of extractor classes
  3. Classes that cannot handle this URL (applies_to() is False) are skipped
  4. The generic HTML extractor always runs last as the structured safety net

Order inside a list is the fallback priority: public APIs before selectors.

To add a board:
  1. Create the class in app/scrapers/boards/
  2. Import it below
  3. Add one entry here
"""
from typing import Dict, List, Optional, Type

import httpx

from app.scrapers.base import APIExtractor, BaseExtractor
from app.scrapers.boards.ashby import AshbyHtmlExtractor
from app.scrapers.boards.generic import GenericHtmlExtractor
from app.scrapers.boards.greenhouse import GreenhouseApiExtractor, GreenhouseHtmlExtractor
from app.scrapers.boards.lever import LeverApiExtractor, LeverHtmlExtractor
from app.scrapers.boards.meta_tags import MetaTagExtractor
from app.scrapers.boards.workday import WorkdayHtmlExtractor
from app.scrapers.detector import BoardInfo, BoardType

# ─── Registry ─────────────────────────────────────────────────────
EXTRACTOR_REGISTRY: Dict[BoardType, List[Type[BaseExtractor]]] = {
    BoardType.GREENHOUSE: [GreenhouseApiExtractor, GreenhouseHtmlExtractor],
    BoardType.LEVER: [LeverApiExtractor, LeverHtmlExtractor],
    BoardType.WORKDAY: [WorkdayHtmlExtractor],
    BoardType.ASHBY: [AshbyHtmlExtractor],
    BoardType.LINKEDIN: [MetaTagExtractor],
    BoardType.INDEED: [MetaTagExtractor],
    BoardType.GLASSDOOR: [MetaTagExtractor],
}

FALLBACK_EXTRACTOR: Type[BaseExtractor] = GenericHtmlExtractor


def get_extractors(
    board_info: BoardInfo,
    client: Optional[httpx.AsyncClient] = None,
) -> List[BaseExtractor]:
    """
    Instantiate the structured extractors for a URL, in priority order.

    Args:
        board_info: Result of detect_board() for the listing URL
        client: Optional shared httpx client for API extractors
    """
    classes = list(EXTRACTOR_REGISTRY.get(board_info.board, []))
    classes.append(FALLBACK_EXTRACTOR)

    extractors: List[BaseExtractor] = []
    for cls in classes:
        if not cls.applies_to(board_info):
            continue
        if issubclass(cls, APIExtractor):
            extractors.append(cls(board_info, client=client))
        else:
            extractors.append(cls(board_info))
    return extractors


def list_extractors() -> Dict[str, List[str]]:
    """Board -> extractor names, for the admin API."""
    listing = {board.value: [cls.name for cls in classes] for board, classes in EXTRACTOR_REGISTRY.items()}
    listing["*"] = [FALLBACK_EXTRACTOR.name]
    return listing
