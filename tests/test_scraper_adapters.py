"""Adapter tests: table of contents, chapter text and limits on static HTML"""

import pytest
import requests
from bs4 import BeautifulSoup

import scraper
from adapters import (ArchiveOfOurOwnScraper, FanFictionScraper, GenericScraper,
                      MTLNovelScraper, RoyalRoadScraper, ScribbleHubScraper)
from scraper import NovelScraper, no_limit


class FakeResponse:
    def __init__(self, html, status_code=200):
        self.text = html
        self.content = html.encode('utf-8')
        self.status_code = status_code


def chapter_page(heading, *paragraphs):
    body = ''.join(f'<p>{p}</p>' for p in paragraphs)
    return (f'<html><body><h1>{heading}</h1>'
            f'<div class="chapter-inner chapter-content">{body}'
            f'<script>var ads = 1;</script><div class="ads">BUY NOW</div><p>Next Chapter</p>'
            f'</div></body></html>')


ROYALROAD_TOC = """
<html><head><meta property="og:image" content="https://www.royalroadcdn.com/cover.jpg"></head>
<body><div class="fic-header"><h1>The Wandering Inn</h1></div>
<table id="chapters"><tbody>
  <tr><td><a href="/fiction/1/twi/chapter/101/1-00">1.00</a></td></tr>
  <tr><td><a href="/fiction/1/twi/chapter/102/1-01">1.01</a></td></tr>
  <tr><td><a href="/fiction/1/twi/chapter/103/1-02">1.02</a></td></tr>
</tbody></table></body></html>
"""

BASE = "https://www.royalroad.com"

ROYALROAD_PAGES = {
    f"{BASE}/fiction/1/twi": ROYALROAD_TOC,
    f"{BASE}/fiction/1/twi/chapter/101/1-00": chapter_page("1.00", "The inn was empty.", "Erin sighed."),
    f"{BASE}/fiction/1/twi/chapter/102/1-01": chapter_page("1.01", "Goblins arrived."),
    f"{BASE}/fiction/1/twi/chapter/103/1-02": chapter_page("1.02", "It rained."),
}


@pytest.fixture
def serve(monkeypatch):
    """Route NovelScraper.fetch to an in-memory site"""
    fetched = []

    def install(pages):
        def fake_fetch(self, url, referer=None):
            fetched.append(url)
            if url not in pages:
                raise requests.exceptions.HTTPError(f"HTTP 404 for {url}")
            return FakeResponse(pages[url])

        monkeypatch.setattr(NovelScraper, 'fetch', fake_fetch)
        return fetched

    return install


def test_no_limit_sentinel():
    assert no_limit(999)
    assert no_limit(1500)
    assert no_limit(None)
    assert not no_limit(200)


def test_royalroad_scrape_in_toc_order(serve):
    serve(ROYALROAD_PAGES)
    reports = []

    result = RoyalRoadScraper.scrape_novel(f"{BASE}/fiction/1/twi", 999,
                                           lambda c, t: reports.append((c, t)))

    assert result.title == "The Wandering Inn"
    assert result.cover_image == "https://www.royalroadcdn.com/cover.jpg"
    assert [c.title for c in result.chapters] == ["1.00", "1.01", "1.02"]
    assert result.chapters[0].content == "The inn was empty.\n\nErin sighed."
    assert reports[0] == (0, 3)
    assert [c for c, _ in reports] == [0, 1, 2, 3]


def test_chapter_text_is_cleaned(serve):
    serve(ROYALROAD_PAGES)
    result = RoyalRoadScraper.scrape_novel(f"{BASE}/fiction/1/twi", 1, lambda c, t: None)
    content = result.chapters[0].content
    assert "ads" not in content
    assert "BUY NOW" not in content
    assert "Next Chapter" not in content


def test_limit_takes_first_chapters(serve):
    fetched = serve(ROYALROAD_PAGES)
    result = RoyalRoadScraper.scrape_novel(f"{BASE}/fiction/1/twi", 2, lambda c, t: None)
    assert [c.title for c in result.chapters] == ["1.00", "1.01"]
    assert f"{BASE}/fiction/1/twi/chapter/103/1-02" not in fetched


def test_failed_chapter_is_skipped(serve):
    pages = dict(ROYALROAD_PAGES)
    del pages[f"{BASE}/fiction/1/twi/chapter/102/1-01"]
    serve(pages)
    reports = []

    result = RoyalRoadScraper.scrape_novel(f"{BASE}/fiction/1/twi", 999,
                                           lambda c, t: reports.append((c, t)))

    assert [c.title for c in result.chapters] == ["1.00", "1.02"]
    assert reports[-1] == (3, 3)


def test_no_links_gives_empty_result(serve):
    serve({"https://example.org/novel": "<html><h1>Lonely</h1><p>nothing here</p></html>"})
    result = GenericScraper.scrape_novel("https://example.org/novel", 999, lambda c, t: None)
    assert result.title == "Lonely"
    assert result.chapters == []


def test_generic_sorts_by_chapter_number(serve):
    toc = """<h1>Mystery Novel</h1>
    <a href="/n/chapter-10">Ten</a><a href="/n/chapter-2">Two</a>
    <a href="/n/chapter-1">One</a><a href="/about">About</a>"""
    pages = {"https://example.org/n": toc}
    for n in (1, 2, 10):
        pages[f"https://example.org/n/chapter-{n}"] = (
            f"<h1>Chapter {n}</h1><div class='entry-content'><p>Body {n}</p></div>")
    serve(pages)

    result = GenericScraper.scrape_novel("https://example.org/n", 999, lambda c, t: None)

    assert [c.content for c in result.chapters] == ["Body 1", "Body 2", "Body 10"]


def test_newest_first_sites_are_reversed(serve):
    toc = """<div class="fic_title">Reverse</div><ol class="toc_ol">
      <li><a class="toc_a" href="https://www.scribblehub.com/read/1/chapter/3/">3</a></li>
      <li><a class="toc_a" href="https://www.scribblehub.com/read/1/chapter/2/">2</a></li>
      <li><a class="toc_a" href="https://www.scribblehub.com/read/1/chapter/1/">1</a></li></ol>"""
    pages = {"https://www.scribblehub.com/series/1/reverse/": toc}
    for n in (1, 2, 3):
        pages[f"https://www.scribblehub.com/read/1/chapter/{n}/"] = (
            f"<div class='chapter-title'>Part {n}</div><div id='chp_raw'><p>Text {n}</p></div>")
    serve(pages)

    result = ScribbleHubScraper.scrape_novel("https://www.scribblehub.com/series/1/reverse/", 2,
                                             lambda c, t: None)

    assert [c.title for c in result.chapters] == ["Part 1", "Part 2"]


def test_fanfiction_links_from_chapter_select():
    page = """<select id="chap_select"><option value="1">1. Start</option>
      <option value="2" selected>2. Middle</option><option value="3">3. End</option></select>"""
    soup = BeautifulSoup(page, 'html.parser')
    links = FanFictionScraper().collect_chapter_links(soup, "https://www.fanfiction.net/s/555/2/Title")
    assert links == ["https://www.fanfiction.net/s/555/1/",
                     "https://www.fanfiction.net/s/555/2/",
                     "https://www.fanfiction.net/s/555/3/"]
    assert FanFictionScraper().extract_chapter_title(soup, 2) == "2. Middle"


def test_fanfiction_oneshot():
    soup = BeautifulSoup("<div id='storytext'>Once.</div>", 'html.parser')
    links = FanFictionScraper().collect_chapter_links(soup, "https://www.fanfiction.net/s/9/1/")
    assert links == ["https://www.fanfiction.net/s/9/1/"]


def test_ao3_reads_the_navigate_page():
    ao3 = ArchiveOfOurOwnScraper()
    assert ao3.toc_url("https://archiveofourown.org/works/123/chapters/456") == \
        "https://archiveofourown.org/works/123/navigate"
    soup = BeautifulSoup(
        '<ol class="chapter index"><li><a href="/works/123/chapters/1">1</a></li></ol>', 'html.parser')
    assert ao3.collect_chapter_links(soup, "https://archiveofourown.org/works/123/navigate") == \
        ["https://archiveofourown.org/works/123/chapters/1?view_adult=true"]


def test_mtlnovel_chapter_list_url():
    mtl = MTLNovelScraper()
    assert mtl.toc_url("https://www.mtlnovel.com/some-novel/") == \
        "https://www.mtlnovel.com/some-novel/chapter-list/"
    assert mtl.toc_url("https://www.mtlnovel.com/some-novel/chapter-list/") == \
        "https://www.mtlnovel.com/some-novel/chapter-list/"


def test_toc_timeout_propagates(monkeypatch):
    def timeout(self, url, referer=None):
        raise requests.exceptions.Timeout("Read timed out")

    monkeypatch.setattr(NovelScraper, 'fetch', timeout)
    with pytest.raises(requests.exceptions.Timeout):
        RoyalRoadScraper.scrape_novel(f"{BASE}/fiction/1/twi", 999, lambda c, t: None)


def test_fetch_gives_up_on_404(monkeypatch):
    calls = []
    novel_scraper = NovelScraper()

    def fake_get(url, **kwargs):
        calls.append(url)
        return FakeResponse("gone", status_code=404)

    monkeypatch.setattr(novel_scraper.session, 'get', fake_get)
    monkeypatch.setattr(scraper.time, 'sleep', lambda s: None)

    with pytest.raises(requests.exceptions.HTTPError):
        novel_scraper.fetch("https://example.org/missing")
    assert len(calls) == 1


def test_fetch_retries_timeouts(monkeypatch):
    novel_scraper = NovelScraper()
    attempts = []

    def fake_get(url, **kwargs):
        attempts.append(url)
        if len(attempts) < 3:
            raise requests.exceptions.Timeout("timed out")
        return FakeResponse("<h1>ok</h1>")

    monkeypatch.setattr(novel_scraper.session, 'get', fake_get)
    monkeypatch.setattr(scraper.time, 'sleep', lambda s: None)

    assert novel_scraper.fetch("https://example.org/slow").status_code == 200
    assert len(attempts) == 3
