"""Site Registry: which adapter handles a URL"""

from dataclasses import dataclass
from typing import Callable, List, Tuple
from urllib.parse import urlparse

import adapters
from models import ScrapeResult

Adapter = Callable[[str, int, Callable[[int, int], None]], ScrapeResult]


@dataclass(frozen=True)
class SiteVariant:
    name: str
    adapter: Adapter


# Ordered: first hostname token that matches wins.
# 'freewebnovel' must come before 'webnovel'.
SITE_VARIANTS: List[Tuple[str, SiteVariant]] = [
    ('freewebnovel', SiteVariant('FreeWebNovel', adapters.FreeWebNovelScraper.scrape_novel)),
    ('readlightnovel', SiteVariant('ReadLightNovel', adapters.ReadLightNovelScraper.scrape_novel)),
    ('archiveofourown', SiteVariant('Archive of Our Own', adapters.ArchiveOfOurOwnScraper.scrape_novel)),
    ('fanfiction.net', SiteVariant('FanFiction.net', adapters.FanFictionScraper.scrape_novel)),
    ('scribblehub', SiteVariant('ScribbleHub', adapters.ScribbleHubScraper.scrape_novel)),
    ('novelupdates', SiteVariant('Novel Updates', adapters.NovelUpdatesScraper.scrape_novel)),
    ('wuxiaworld', SiteVariant('Wuxiaworld', adapters.WuxiaworldScraper.scrape_novel)),
    ('boxnovel', SiteVariant('BoxNovel', adapters.BoxNovelScraper.scrape_novel)),
    ('novelfull', SiteVariant('NovelFull', adapters.NovelFullScraper.scrape_novel)),
    ('mtlnovel', SiteVariant('MTLNovel', adapters.MTLNovelScraper.scrape_novel)),
    ('royalroad', SiteVariant('Royal Road', adapters.RoyalRoadScraper.scrape_novel)),
    ('wattpad', SiteVariant('Wattpad', adapters.WattpadScraper.scrape_novel)),
    ('webnovel', SiteVariant('WebNovel', adapters.WebNovelScraper.scrape_novel)),
]

GENERIC = SiteVariant('Generic', adapters.GenericScraper.scrape_novel)


def detect_site(url: str) -> SiteVariant:
    """Resolve a URL to its site variant. Never fails; unknown hosts are Generic."""
    try:
        domain = (urlparse(url).hostname or '').lower()
    except ValueError:
        return GENERIC
    for token, variant in SITE_VARIANTS:
        if token in domain:
            return variant
    return GENERIC
