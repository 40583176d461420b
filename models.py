"""Data types shared between the scraper, the orchestrator and the bot."""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class Chapter:
    """One chapter in reading order"""
    title: str
    content: str


@dataclass
class ScrapeResult:
    """What a site adapter hands back after scraping"""
    title: str
    chapters: List[Chapter] = field(default_factory=list)
    cover_image: Optional[str] = None


@dataclass
class NovelInfo:
    """Preview shown before committing to a full scrape"""
    title: str
    description: str
    cover_image: str = ''
    rating: str = ''


@dataclass
class SessionEntry:
    session_id: str
    source_url: str
    created_at: float
    expires_at: float


@dataclass
class PendingRange:
    """Marks a chat whose next free-text message is a chapter count"""
    chat_id: Any
    session_id: str
    prompt_message_ref: Any
    created_at: float
    expires_at: float
