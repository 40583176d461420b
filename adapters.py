"""
Per-site adapters.

Each adapter declares where its site keeps the table of contents and the
chapter text; the shared download flow lives in scraper.NovelScraper.
A few sites need their chapter list built differently and override
toc_url() or collect_chapter_links().
"""

import logging
import re
from typing import List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from scraper import NovelScraper

logger = logging.getLogger(__name__)


class FreeWebNovelScraper(NovelScraper):
    name = 'FreeWebNovel'
    title_selectors = ['h1.tit', '.book-name', '.novel-title']
    cover_selectors = ['.pic img', '.book-img img']
    toc_selectors = ['#idData li a', '.m-newest2 ul li a', '.chapter-list a']
    content_selectors = ['#article', '.txt', '#chapter-content']
    chapter_title_selectors = ['span.chapter', 'h1.tit']


class ReadLightNovelScraper(NovelScraper):
    name = 'ReadLightNovel'
    title_selectors = ['.block-title h1']
    cover_selectors = ['.novel-cover img']
    toc_selectors = ['.chapter-chs li a', '.tab-content a[href*="chapter"]']
    content_selectors = ['.chapter-content3 .desc', '#chapterhidden', '.chapter-content3']
    sort_by_number = True


class ArchiveOfOurOwnScraper(NovelScraper):
    name = 'Archive of Our Own'
    title_selectors = ['h2.title.heading', 'h2.title']
    toc_selectors = ['ol.chapter.index li a', 'ol.index li a']
    content_selectors = ['#chapters .userstuff.module', '#chapters .userstuff', 'div.userstuff']
    chapter_title_selectors = ['#chapters h3.title', 'h2.title.heading']

    def toc_url(self, url: str) -> str:
        match = re.search(r'/works/(\d+)', url)
        if not match:
            return url
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}/works/{match.group(1)}/navigate"

    def collect_chapter_links(self, soup: BeautifulSoup, url: str) -> List[str]:
        links = self._links_from_selectors(soup, url, self.toc_selectors)
        if links:
            # Skip the "proceed" interstitial on adult works
            return [f"{link}?view_adult=true" for link in links]
        # One-shot works have no chapter index
        match = re.search(r'/works/\d+', url)
        return [urljoin(url, match.group(0)) + '?view_adult=true'] if match else []

    def extract_title(self, soup: BeautifulSoup) -> str:
        # The navigate page heading reads "Chapter Index for <title> by <author>"
        heading = soup.select_one('h2.heading a') or soup.select_one('h2.heading')
        if heading:
            return heading.get_text(' ', strip=True)
        return super().extract_title(soup)


class FanFictionScraper(NovelScraper):
    name = 'FanFiction.net'
    title_selectors = ['#profile_top b.xcontrast_txt']
    cover_selectors = ['#profile_top img.cimage']
    content_selectors = ['#storytext']

    def collect_chapter_links(self, soup: BeautifulSoup, url: str) -> List[str]:
        match = re.search(r'/s/(\d+)', url)
        if not match:
            return []
        parsed = urlparse(url)
        base = f"{parsed.scheme}://{parsed.netloc}/s/{match.group(1)}"
        select = soup.select_one('select#chap_select')
        if not select:
            return [f"{base}/1/"]
        links = []
        for option in select.find_all('option'):
            value = option.get('value')
            if value and f"{base}/{value}/" not in links:
                links.append(f"{base}/{value}/")
        return links

    def extract_chapter_title(self, soup: BeautifulSoup, chapter_num: int) -> str:
        selected = soup.select_one('select#chap_select option[selected]')
        if selected:
            return selected.get_text(strip=True)
        return f"Chapter {chapter_num}"


class ScribbleHubScraper(NovelScraper):
    name = 'ScribbleHub'
    title_selectors = ['.fic_title']
    cover_selectors = ['.fic_image img']
    toc_selectors = ['.toc_ol li a.toc_a', '.toc_ol li a']
    content_selectors = ['#chp_raw', '.chp_raw']
    chapter_title_selectors = ['.chapter-title']
    newest_first = True


class NovelUpdatesScraper(NovelScraper):
    # Release listings point at the translator's site; the generic
    # content selectors do the rest
    name = 'Novel Updates'
    title_selectors = ['.seriestitlenu']
    cover_selectors = ['.seriesimg img']
    toc_selectors = ['#myTable a.chp-release']
    newest_first = True


class WuxiaworldScraper(NovelScraper):
    name = 'Wuxiaworld'
    title_selectors = ['h1', '.novel-title']
    toc_selectors = ['.chapter-item a', 'a[href*="/chapter-"]']
    content_selectors = ['.chapter-content', '#chapter-content', '.fr-view']
    sort_by_number = True


class BoxNovelScraper(NovelScraper):
    name = 'BoxNovel'
    title_selectors = ['.post-title h1', '.post-title h3']
    cover_selectors = ['.summary_image img']
    toc_selectors = ['.wp-manga-chapter a', '.version-chap a']
    content_selectors = ['.reading-content .text-left', '.reading-content']
    chapter_title_selectors = ['#chapter-heading', '.breadcrumb li.active']
    newest_first = True


class NovelFullScraper(NovelScraper):
    name = 'NovelFull'
    title_selectors = ['h3.title', '.col-info-desc h3']
    cover_selectors = ['.book img']
    toc_selectors = ['#list-chapter .list-chapter li a', '.list-chapter li a']
    content_selectors = ['#chapter-content', '#chr-content']
    chapter_title_selectors = ['a.chapter-title', '.chapter-title']


class MTLNovelScraper(NovelScraper):
    name = 'MTLNovel'
    title_selectors = ['h1.entry-title', 'h1']
    cover_selectors = ['.nov-head amp-img', '.nov-head img']
    toc_selectors = ['.ch-list a.ch-link', '.ch-list a']
    content_selectors = ['.par.fontsize-16', '.post-content']
    chapter_title_selectors = ['h1.main-title', 'h1']
    newest_first = True

    def toc_url(self, url: str) -> str:
        if url.rstrip('/').endswith('chapter-list'):
            return url
        return url.rstrip('/') + '/chapter-list/'


class RoyalRoadScraper(NovelScraper):
    name = 'Royal Road'
    title_selectors = ['.fic-header h1', 'h1.font-white']
    cover_selectors = ['.cover-art-container img', '.fic-header img.thumbnail']
    toc_selectors = ['#chapters tbody tr td a[href*="/chapter/"]', '.chapter-row a[href*="/chapter/"]']
    content_selectors = ['.chapter-inner.chapter-content', '.chapter-content']
    chapter_title_selectors = ['.fic-header h1', 'h1']


class WattpadScraper(NovelScraper):
    name = 'Wattpad'
    title_selectors = ['.story-info__title', 'h1']
    cover_selectors = ['.story-cover img', '.cover img']
    toc_selectors = ['.table-of-contents li a', 'a.story-parts__part', '[data-testid="toc"] a']
    content_selectors = ['.part-content pre', 'pre']
    chapter_title_selectors = ['h1.h2', 'h1']


class WebNovelScraper(NovelScraper):
    name = 'WebNovel'
    title_selectors = ['.det-info h1', 'h1']
    cover_selectors = ['.det-info img.g_thumb', 'i.g_thumb img']
    toc_selectors = ['.volume-item li a', '.j_catalog_list li a']
    content_selectors = ['.cha-words', '.cha-content']
    chapter_title_selectors = ['.cha-tit h1', 'h1']

    def toc_url(self, url: str) -> str:
        if url.rstrip('/').endswith('/catalog'):
            return url
        return url.rstrip('/') + '/catalog'


class GenericScraper(NovelScraper):
    """Fallback for unknown sites: any 'chapter-N' style link, sorted by number"""
    name = 'Generic'
    toc_selectors = ['.chapter-list a', '#chapter-list a', '.list-chapter a', '.chapters a']
    sort_by_number = True
