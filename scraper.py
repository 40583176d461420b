import logging
import os
import random
import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import ALL_CHAPTERS, REQUEST_TIMEOUT, SCRAPER_DEBUG, SCRAPER_WORKERS
from models import Chapter, ScrapeResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Rotating User Agents (one is picked per scraper instance)
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0',
]

# Tried after the site's own selectors
GENERIC_CONTENT_SELECTORS = [
    '#chapter-content', '#chr-content', '.chapter-content', '.reading-content',
    '.chr-c', '.chapter__content', '.content-inner', '.entry-content', 'article',
]

JUNK_SELECTORS = ('script, style, .ads, .adsbygoogle, .navigation, .chapter-nav, '
                  '.prev-next, .nav-buttons, .bookmark, .report, img, iframe, noscript')

# Lines dropped from extracted chapter text
NAV_LINES = {'NEXT', 'PREVIOUS', 'PREV', 'NEXT CHAPTER', 'PREVIOUS CHAPTER',
             'TABLE OF CONTENTS', 'CHAPTERS LIST', 'BOOKMARK', 'REPORT', 'OPTIONS'}


def no_limit(limit: Optional[int]) -> bool:
    """999 (or anything above it) means 'all chapters'"""
    return limit is None or limit >= ALL_CHAPTERS


class NovelScraper:
    """Base site adapter.

    Subclasses mostly just declare selectors. The shared flow is:
    fetch the table of contents, collect chapter links, apply the chapter
    limit, download chapters on a small thread pool and report progress as
    each one completes. Chapter order always follows the table of contents.
    """

    name = 'Generic'
    title_selectors: List[str] = []
    cover_selectors: List[str] = []
    toc_selectors: List[str] = []
    content_selectors: List[str] = []
    chapter_title_selectors: List[str] = []
    # Some sites list the newest chapter first
    newest_first = False
    # Sort collected links by the number in their URL
    sort_by_number = False

    def __init__(self, parallel_workers: int = SCRAPER_WORKERS):
        self.headers = {'User-Agent': random.choice(USER_AGENTS)}
        self.session = requests.Session()
        self.session.headers.update(self._get_random_headers())
        self.debug_mode = SCRAPER_DEBUG

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD", "OPTIONS"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.max_retries = 3
        self.parallel_workers = max(1, parallel_workers)

    @classmethod
    def scrape_novel(cls, url: str, limit: int, progress: ProgressCallback) -> ScrapeResult:
        """Uniform adapter entry point used by the site registry"""
        return cls().scrape(url, limit, progress)

    # === Main flow ===

    def scrape(self, url: str, limit: int = ALL_CHAPTERS,
               progress: Optional[ProgressCallback] = None) -> ScrapeResult:
        logger.info(f"[SCRAPER] {self.name}: scraping {url} (limit={limit})")
        resp = self.fetch(self.toc_url(url))
        soup = BeautifulSoup(resp.content, 'html.parser')

        title = self.extract_title(soup)
        cover = self.extract_cover(soup, url)

        links = self.collect_chapter_links(soup, url)
        logger.info(f"[SCRAPER] Collected {len(links)} chapter links for {url}")
        if not links:
            self._debug_dump_html(url, resp.text, 'no_chapter_links')
            return ScrapeResult(title=title, chapters=[], cover_image=cover)

        if self.sort_by_number:
            links = sorted(links, key=lambda x: self._extract_chapter_number(x))
        elif self.newest_first:
            links = list(reversed(links))

        if not no_limit(limit):
            links = links[:max(0, limit)]

        chapters = self.download_chapters(links, progress)
        return ScrapeResult(title=title, chapters=chapters, cover_image=cover)

    def download_chapters(self, links: List[str],
                          progress: Optional[ProgressCallback] = None) -> List[Chapter]:
        total = len(links)
        if progress:
            progress(0, total)

        results: List[Optional[Chapter]] = [None] * total
        completed = 0
        with ThreadPoolExecutor(max_workers=self.parallel_workers) as executor:
            future_to_index = {
                executor.submit(self._download_chapter, link, i + 1): i
                for i, link in enumerate(links)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Chapter download failed: {e}")
                completed += 1
                if progress:
                    progress(completed, total)

        chapters = [c for c in results if c is not None]
        failed = total - len(chapters)
        if failed:
            logger.warning(f"[SCRAPER] {failed} of {total} chapters failed to download")
        return chapters

    # === Hooks for subclasses ===

    def toc_url(self, url: str) -> str:
        """URL of the page that lists chapters (usually the novel page itself)"""
        return url

    def collect_chapter_links(self, soup: BeautifulSoup, url: str) -> List[str]:
        links = self._links_from_selectors(soup, url, self.toc_selectors)
        if not links:
            logger.debug("[CHAPTERS] No site-specific links found, using generic fallback")
            links = self._generic_chapter_links(soup, url)
        return links

    def extract_title(self, soup: BeautifulSoup) -> str:
        for sel in self.title_selectors + ['h1', 'title']:
            tag = soup.select_one(sel)
            if tag:
                text = ' '.join(tag.get_text(' ', strip=True).split())
                if text:
                    return re.sub(r'\s+[-|]\s+(Read|Free|Novel).*$', '', text, flags=re.I) or text
        return 'Unknown Novel'

    def extract_cover(self, soup: BeautifulSoup, url: str) -> Optional[str]:
        for sel in self.cover_selectors + ['meta[property="og:image"]']:
            el = soup.select_one(sel)
            if not el:
                continue
            src = el.get('content') or el.get('src') or el.get('data-src')
            if src and 'placeholder' not in src.lower():
                return urljoin(url, src)
        return None

    def extract_content(self, soup: BeautifulSoup) -> str:
        for sel in self.content_selectors + GENERIC_CONTENT_SELECTORS:
            content_div = soup.select_one(sel)
            if not content_div:
                continue
            for junk in content_div.select(JUNK_SELECTORS):
                junk.decompose()
            text = content_div.get_text(separator='\n\n', strip=True)
            if text:
                return self._clean_text(text)
        return ''

    def extract_chapter_title(self, soup: BeautifulSoup, chapter_num: int) -> str:
        for sel in self.chapter_title_selectors + ['h1', 'h2']:
            tag = soup.select_one(sel)
            if tag:
                text = ' '.join(tag.get_text(' ', strip=True).split())
                if text:
                    return text
        return f"Chapter {chapter_num}"

    # === HTTP ===

    def fetch(self, url: str, referer: Optional[str] = None) -> requests.Response:
        """GET with retries and rotating headers.

        Raises the last error once every attempt failed, so timeouts reach
        the caller as requests.exceptions.Timeout.
        """
        last_error: Optional[Exception] = None
        domain = urlparse(url).netloc.lower()
        for attempt in range(self.max_retries):
            headers = self._get_random_headers(for_site=domain if attempt else None)
            if referer:
                headers['Referer'] = referer
            try:
                resp = self.session.get(url, headers=headers, timeout=REQUEST_TIMEOUT,
                                        allow_redirects=True)
                if resp.status_code == 200:
                    logger.debug(f"[FETCH] ✓ {url}")
                    return resp
                logger.warning(f"[FETCH] Attempt {attempt + 1}: HTTP {resp.status_code} for {url}")
                last_error = requests.exceptions.HTTPError(
                    f"HTTP {resp.status_code} for {url}", response=resp)
                if resp.status_code == 404:
                    break
            except requests.exceptions.Timeout as e:
                logger.warning(f"[FETCH] Attempt {attempt + 1}: Timeout for {url}")
                last_error = e
            except requests.exceptions.ConnectionError as e:
                logger.warning(f"[FETCH] Attempt {attempt + 1}: Connection error for {url}: {e}")
                last_error = e
            time.sleep(1 + attempt * 0.5)

        logger.error(f"[FETCH] ✗ All attempts failed for {url}")
        raise last_error

    def _download_chapter(self, url: str, chapter_num: int) -> Optional[Chapter]:
        """Download and parse a single chapter; None if it couldn't be fetched"""
        try:
            resp = self.fetch(url)
        except requests.exceptions.RequestException as e:
            logger.warning(f"[Chapter] Failed to fetch chapter {chapter_num} ({url}): {e}")
            return None

        soup = BeautifulSoup(resp.content, 'html.parser')
        title = self.extract_chapter_title(soup, chapter_num)
        content = self.extract_content(soup)
        if not content:
            logger.warning(f"[Chapter] Extracted EMPTY content for chapter {chapter_num} from {url}")
            self._debug_dump_html(url, resp.text, f"empty_content_chapter_{chapter_num}")
            return None

        # Drop a duplicated heading at the top of the text
        lines = content.split('\n')
        if lines and lines[0].strip().lower() == title.lower():
            content = '\n'.join(lines[1:]).lstrip('\n')

        logger.info(f"[Chapter] Chapter {chapter_num}: {len(content)} chars")
        return Chapter(title=title, content=content)

    # === Helpers ===

    def _links_from_selectors(self, soup: BeautifulSoup, url: str,
                              selectors: List[str]) -> List[str]:
        links: List[str] = []
        for sel in selectors:
            for a in soup.select(sel):
                href = a.get('href')
                if not href or href.startswith(('#', 'javascript:')):
                    continue
                full = urljoin(url, href)
                if full not in links:
                    links.append(full)
            if links:
                break
        return links

    def _generic_chapter_links(self, soup: BeautifulSoup, url: str) -> List[str]:
        links: List[str] = []
        for a in soup.find_all('a', href=True):
            href = a['href']
            if re.search(r'chapter[-_]?\d+|/ch[-_]?\d+|/c\d+', href.lower()):
                full = urljoin(url, href)
                if full not in links:
                    links.append(full)
        return sorted(links, key=self._extract_chapter_number)

    def _clean_text(self, text: str) -> str:
        text = text.replace('\xa0', ' ')
        cleaned = []
        for line in text.split('\n'):
            stripped = line.strip()
            if stripped.upper() in NAV_LINES:
                continue
            if not stripped and cleaned and cleaned[-1] == '':
                continue
            cleaned.append(stripped)
        return re.sub(r'\n{3,}', '\n\n', '\n'.join(cleaned)).strip()

    def _extract_chapter_number(self, url: str) -> int:
        """Extract chapter number from URL for sorting"""
        match = re.search(r'chapter[-_]?(\d+)', url, re.IGNORECASE)
        if match:
            return int(match.group(1))
        match = re.search(r'/(\d+)(?:\.html)?/?$', url)
        if match:
            return int(match.group(1))
        match = re.search(r'/c(\d+)', url, re.IGNORECASE)
        if match:
            return int(match.group(1))
        return 999999  # No number found, push to end of list

    def _get_random_headers(self, for_site: str = None) -> dict:
        """Browser-like headers with this instance's User-Agent"""
        headers = {
            'User-Agent': self.headers['User-Agent'],
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1',
        }
        if for_site:
            headers['Referer'] = f'https://{for_site}/'
        return headers

    def _debug_dump_html(self, url: str, html: str, tag: str) -> None:
        """Dump HTML to debug/<domain>/<timestamp>_<tag>.html when SCRAPER_DEBUG=1"""
        if not self.debug_mode or not html:
            return
        try:
            domain = urlparse(url).netloc or 'unknown-domain'
            out_dir = os.path.join(os.getcwd(), 'debug', domain)
            os.makedirs(out_dir, exist_ok=True)
            out_path = os.path.join(out_dir, f"{int(time.time())}_{tag}.html")
            with open(out_path, 'w', encoding='utf-8') as f:
                f.write(html[:2_000_000])
            logger.info(f"[DEBUG] HTML dumped: {out_path}")
        except OSError as e:
            logger.debug(f"[DEBUG] Failed to dump HTML: {e}")
