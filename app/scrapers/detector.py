"""
Job board detection from a listing URL.

Knowing the board lets the pipeline pick board-specific extractors (public
APIs for Greenhouse/Lever, tuned selectors for the rest) before falling back
to generic parsing and AI.
"""
import enum
import re
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import parse_qs, urlparse


class BoardType(str, enum.Enum):
    GREENHOUSE = "greenhouse"
    LEVER = "lever"
    WORKDAY = "workday"
    ASHBY = "ashby"
    WORKABLE = "workable"
    SMARTRECRUITERS = "smartrecruiters"
    JOBVITE = "jobvite"
    ICIMS = "icims"
    BAMBOOHR = "bamboohr"
    LINKEDIN = "linkedin"
    INDEED = "indeed"
    GLASSDOOR = "glassdoor"
    UNKNOWN = "unknown"


# Checked in order; first host fragment that matches wins
_HOST_PATTERNS = (
    (BoardType.GREENHOUSE, "greenhouse.io"),
    (BoardType.LEVER, "lever.co"),
    (BoardType.WORKDAY, "myworkdayjobs.com"),
    (BoardType.WORKDAY, "workday.com"),
    (BoardType.ASHBY, "ashbyhq.com"),
    (BoardType.WORKABLE, "workable.com"),
    (BoardType.SMARTRECRUITERS, "smartrecruiters.com"),
    (BoardType.JOBVITE, "jobvite.com"),
    (BoardType.ICIMS, "icims.com"),
    (BoardType.BAMBOOHR, "bamboohr.com"),
    (BoardType.LINKEDIN, "linkedin.com"),
    (BoardType.INDEED, "indeed.com"),
    (BoardType.GLASSDOOR, "glassdoor.com"),
)

API_SUPPORTED_BOARDS = frozenset({BoardType.GREENHOUSE, BoardType.LEVER})

# Aggregators that hide most of the posting behind login walls
LIMITED_EXTRACTION_BOARDS = frozenset({BoardType.LINKEDIN, BoardType.INDEED, BoardType.GLASSDOOR})

# Careers pages that embed a Greenhouse board load its script with the board slug
_GREENHOUSE_EMBED = re.compile(r"embed/job_board/js\?for=([A-Za-z0-9_-]+)")

_JOB_ID_PATTERNS = (
    re.compile(r"/jobs?/(\d+)"),
    re.compile(r"/positions?/(\d+)"),
    re.compile(r"/careers?/(\d+)"),
    re.compile(r"/job/([^/?#]+)"),
    re.compile(r"/position/([^/?#]+)"),
)


@dataclass(frozen=True)
class BoardInfo:
    """What we know about a listing URL before fetching it."""

    url: str
    board: BoardType
    company_slug: Optional[str] = None
    job_id: Optional[str] = None

    @property
    def api_supported(self) -> bool:
        return self.board in API_SUPPORTED_BOARDS

    @property
    def limited_extraction(self) -> bool:
        return self.board in LIMITED_EXTRACTION_BOARDS


def detect_board(url: str) -> BoardInfo:
    """Classify `url` and pull out the company slug / job id where the board has them."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    query = parse_qs(parsed.query)

    board = BoardType.UNKNOWN
    for candidate, fragment in _HOST_PATTERNS:
        if fragment in host:
            board = candidate
            break
    if board is BoardType.UNKNOWN and "gh_jid" in query:
        # Greenhouse embedded on a company careers page
        board = BoardType.GREENHOUSE

    segments = [s for s in parsed.path.split("/") if s]
    return BoardInfo(
        url=url,
        board=board,
        company_slug=_company_slug(board, host, segments, query),
        job_id=_job_id(board, url, segments, query),
    )


def _company_slug(board: BoardType, host: str, segments, query) -> Optional[str]:
    if board is BoardType.GREENHOUSE:
        if host.startswith(("boards.", "job-boards.")) and segments:
            return segments[0]
        if "for" in query:  # embed/job_app?for=<slug>
            return query["for"][0]
        return None
    if board in (BoardType.LEVER, BoardType.WORKABLE, BoardType.ASHBY) and segments:
        return segments[0]
    if board is BoardType.WORKDAY:
        # <company>.wd5.myworkdayjobs.com
        return host.split(".")[0] or None
    return None


def _job_id(board: BoardType, url: str, segments, query) -> Optional[str]:
    if board is BoardType.LEVER and len(segments) >= 2:
        return segments[1]
    if board is BoardType.ASHBY and len(segments) >= 2:
        return segments[1]
    if board is BoardType.LINKEDIN:
        match = re.search(r"/jobs/view/(\d+)", url)
        if match:
            return match.group(1)
        return query.get("currentJobId", [None])[0]
    if "gh_jid" in query:
        return query["gh_jid"][0]
    if "job_id" in query:
        return query["job_id"][0]
    for pattern in _JOB_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def resolve_embedded_board(board_info: BoardInfo, html: Optional[str]) -> BoardInfo:
    """
    Fill in the Greenhouse board slug of a company careers page.

    A `?gh_jid=` URL on the company's own domain only tells us the job id;
    the board slug lives in the embed script tag of the fetched page. With
    both known the Greenhouse API extractor can run.
    """
    if board_info.board is not BoardType.GREENHOUSE or board_info.company_slug or not board_info.job_id:
        return board_info
    match = _GREENHOUSE_EMBED.search(html or "")
    if not match:
        return board_info
    return replace(board_info, company_slug=match.group(1))
