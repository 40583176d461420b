"""
Metadata Fetcher

Best-effort preview of a novel page (title, short description, cover, rating)
shown before the user commits to a full scrape. Never raises: on any network
or parse failure a fixed fallback is returned.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import List
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from config import METADATA_TIMEOUT, NOVEL_INFO_PROFILE
from models import NovelInfo
from scraper import USER_AGENTS

logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'Novel'
NO_DESCRIPTION = 'No description available'

FALLBACK_INFO = NovelInfo(title=DEFAULT_TITLE,
                          description='Unable to fetch description',
                          cover_image='',
                          rating='')

RATING_SELECTOR = '.rating-value, .score, .rating'


@dataclass(frozen=True)
class InfoProfile:
    """Description thresholds and selector order for the preview"""
    min_length: int
    max_length: int
    description_selectors: List[str] = field(default_factory=list)
    cover_selectors: List[str] = field(default_factory=list)


DETAILED = InfoProfile(
    min_length=30,
    max_length=500,
    description_selectors=[
        '.novel-intro', '.description', "[class*='desc']", '.synopsis',
        '.summary', '.novel-summary', '#summary', '.entry-content p',
    ],
    cover_selectors=[
        '.novel-cover img', '.book-cover img', '.cover img', '.pic img',
        '.cover-art-container img', '.summary_image img', '.fic_image img',
        'img[alt*="cover" i]', '.thumbnail img', 'meta[property="og:image"]',
    ],
)

COMPACT = InfoProfile(
    min_length=20,
    max_length=300,
    description_selectors=[
        '.description', '.summary', '.synopsis', '[itemprop="description"]',
        '.book-intro', '.desc-text', '.entry-content p',
    ],
    cover_selectors=[
        'meta[property="og:image"]', '.cover img', '.book-img img', '.novel-cover img',
    ],
)

PROFILES = {'detailed': DETAILED, 'compact': COMPACT}


def _collapse(text: str) -> str:
    return ' '.join(text.split())


def extract_title(soup: BeautifulSoup) -> str:
    """First non-empty <h1>, then <title>, then a fixed default"""
    for tag in soup.find_all('h1'):
        text = _collapse(tag.get_text(' ', strip=True))
        if text:
            return text
    if soup.title:
        text = _collapse(soup.title.get_text(' ', strip=True))
        if text:
            return text
    return DEFAULT_TITLE


def _repeats_title(text: str, title: str) -> bool:
    lowered = text.lower()
    title = title.lower()
    return bool(title) and (lowered == title or lowered.startswith(title))


def extract_description(soup: BeautifulSoup, title: str, profile: InfoProfile) -> str:
    for sel in profile.description_selectors:
        el = soup.select_one(sel)
        if not el:
            continue
        text = _collapse(el.get_text(' ', strip=True))
        if len(text) > profile.min_length and not _repeats_title(text, title):
            return text[:profile.max_length]
    return NO_DESCRIPTION


def extract_cover(soup: BeautifulSoup, page_url: str, profile: InfoProfile) -> str:
    for sel in profile.cover_selectors:
        el = soup.select_one(sel)
        if not el:
            continue
        src = el.get('src') or el.get('data-src') or el.get('content')
        if src:
            return urljoin(page_url, src.strip())
    return ''


def extract_rating(soup: BeautifulSoup) -> str:
    el = soup.select_one(RATING_SELECTOR)
    return _collapse(el.get_text(' ', strip=True)) if el else ''


def fetch_novel_info(url: str, profile: InfoProfile = None,
                     timeout: int = METADATA_TIMEOUT) -> NovelInfo:
    """Fetch and scan a novel page for its preview"""
    profile = profile or PROFILES.get(NOVEL_INFO_PROFILE, DETAILED)
    try:
        headers = {'User-Agent': random.choice(USER_AGENTS)}
        # Error pages are still parsed
        resp = requests.get(url, headers=headers, timeout=timeout)
        soup = BeautifulSoup(resp.text, 'html.parser')

        title = extract_title(soup)
        info = NovelInfo(title=title,
                         description=extract_description(soup, title, profile),
                         cover_image=extract_cover(soup, url, profile),
                         rating=extract_rating(soup))
        logger.info(f"[Info] {title} (cover: {'yes' if info.cover_image else 'no'})")
        return info
    except Exception as e:
        logger.error(f"[Info] fetch_novel_info error for {url}: {e}")
        return NovelInfo(**vars(FALLBACK_INFO))
