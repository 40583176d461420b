"""Conversation flow tests: links, buttons, custom chapter counts"""

import asyncio

import pytest

from conversation import (HINT_TEXT, INVALID_COUNT_TEXT, INVALID_URL_TEXT, RANGE_PROMPT_TEXT,
                          SESSION_EXPIRED_ACK, SESSION_EXPIRED_TEXT, WELCOME_TEXT,
                          ConversationHandler, build_info_text, cap_typed_count, clamp_chapter_limit,
                          parse_callback_data, parse_chapter_count)
from models import NovelInfo
from orchestrator import ScrapeOrchestrator, ScrapeState
from sessions import SessionStore
from sites import SiteVariant

URL = "https://www.royalroad.com/fiction/12345"


class SpyOrchestrator:
    def __init__(self):
        self.runs = []

    async def run(self, chat_id, url, chapter_limit, display=None):
        self.runs.append((chat_id, url, chapter_limit, display))


class AckRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, text, alert=False):
        self.calls.append((text, alert))


def fake_info(url):
    return NovelInfo(title='Mother of Learning',
                     description='A young mage is caught in a time loop and must escape it.',
                     cover_image='https://example.org/cover.jpg',
                     rating='4.8')


@pytest.fixture
def store(clock):
    return SessionStore(session_ttl=3600, pending_ttl=600, clock=clock)


@pytest.fixture
def spy():
    return SpyOrchestrator()


@pytest.fixture
def handler(store, spy, transport, resolver):
    return ConversationHandler(store, spy, transport, info_fetcher=fake_info, resolver=resolver)


# === Parsing ===

def test_parse_callback_data():
    assert parse_callback_data('sc_999_s_12') == ('sc', 999, 's_12')
    assert parse_callback_data('sc_50_s_3') == ('sc', 50, 's_3')
    assert parse_callback_data('cr_s_7') == ('cr', None, 's_7')
    assert parse_callback_data('sc_abc_s_1') is None
    assert parse_callback_data('sc_10') is None
    assert parse_callback_data('zz_s_1') is None
    assert parse_callback_data('') is None


def test_parse_chapter_count():
    assert parse_chapter_count('50') == 50
    assert parse_chapter_count(' 25 chapters please') == 25
    assert parse_chapter_count('abc') is None
    assert parse_chapter_count('-5') is None


def test_button_limit_keeps_all_chapters_sentinel():
    assert clamp_chapter_limit(500) == 200
    assert clamp_chapter_limit(200) == 200
    assert clamp_chapter_limit(7) == 7
    assert clamp_chapter_limit(999) == 999


def test_typed_count_is_always_capped():
    assert cap_typed_count(7) == 7
    assert cap_typed_count(500) == 200
    assert cap_typed_count(999) == 200
    assert cap_typed_count(1000) == 200


def test_info_text_omits_empty_parts():
    text = build_info_text(NovelInfo(title='Novel', description='', rating=''))
    assert text == "📚 **Novel**\n\n*Select option or enter custom chapter count:*"


# === Text messages ===

def test_help_command(handler, transport):
    asyncio.run(handler.handle_text(1, '!help'))
    assert transport.messages[-1].text == WELCOME_TEXT


def test_plain_text_without_pending_gets_hint(handler, transport):
    asyncio.run(handler.handle_text(1, 'hello there'))
    assert transport.messages[-1].text == HINT_TEXT


def test_link_shows_preview_with_buttons(handler, transport, store):
    asyncio.run(handler.handle_text(1, f"please get {URL} thanks"))

    loading, preview = transport.messages
    assert loading.text == "⏳ Fetching **Fake Site** info..."
    assert loading.deleted
    assert preview.image_url == 'https://example.org/cover.jpg'
    assert preview.text.startswith("📚 **Mother of Learning**")
    assert "🌟 *Rating:* 4.8" in preview.text
    assert preview.buttons == [("✏️ Custom Range", "cr_s_1"), ("📖 All Chapters", "sc_999_s_1")]
    assert store.lookup_session('s_1') == URL


def test_preview_falls_back_to_text_when_photo_fails(handler, transport):
    transport.fail_photos = True
    asyncio.run(handler.handle_text(1, URL))
    preview = transport.messages[-1]
    assert preview.image_url is None
    assert preview.buttons[1][1] == "sc_999_s_1"


def test_invalid_url_creates_no_session(handler, transport, store):
    asyncio.run(handler.handle_text(1, "https://:80/novel"))
    assert transport.messages[-1].text == INVALID_URL_TEXT
    assert len(store) == 0


def test_invalid_count_keeps_marker(handler, transport, store, spy):
    sid = store.create_session(URL)
    store.set_pending_range(1, sid)

    asyncio.run(handler.handle_text(1, 'abc'))

    assert transport.messages[-1].text == INVALID_COUNT_TEXT
    assert store.get_pending_range(1).session_id == sid
    assert spy.runs == []


def test_zero_is_not_a_count(handler, transport, store):
    store.set_pending_range(1, store.create_session(URL))
    asyncio.run(handler.handle_text(1, '0'))
    assert transport.messages[-1].text == INVALID_COUNT_TEXT
    assert store.get_pending_range(1) is not None


def test_large_count_is_clamped(handler, transport, store, spy):
    store.set_pending_range(1, store.create_session(URL))

    asyncio.run(handler.handle_text(1, '500'))

    chat_id, url, limit, display = spy.runs[0]
    assert (chat_id, url, limit) == (1, URL, 200)
    assert display.text == "⏳ Starting scrape..."
    assert store.get_pending_range(1) is None


@pytest.mark.parametrize("reply", ['999', '1000'])
def test_typed_all_chapters_value_is_capped(handler, store, spy, reply):
    store.set_pending_range(1, store.create_session(URL))

    asyncio.run(handler.handle_text(1, reply))

    assert spy.runs[0][2] == 200


def test_count_for_expired_session(handler, transport, store, spy, clock):
    sid = store.create_session(URL)
    clock.advance(3500)
    store.set_pending_range(1, sid)
    clock.advance(200)

    asyncio.run(handler.handle_text(1, '20'))

    assert transport.messages[-1].text == SESSION_EXPIRED_TEXT
    assert spy.runs == []
    assert store.get_pending_range(1) is None


# === Buttons ===

def test_custom_range_button(handler, transport, store):
    sid = store.create_session(URL)
    ack = AckRecorder()

    asyncio.run(handler.handle_button(1, f"cr_{sid}", "preview-msg", ack))

    assert ack.calls == [("📝 Send the number of chapters", False)]
    assert transport.messages[-1].text == RANGE_PROMPT_TEXT
    pending = store.get_pending_range(1)
    assert pending.session_id == sid
    assert pending.prompt_message_ref == "preview-msg"


def test_all_chapters_button(handler, store, spy):
    sid = store.create_session(URL)
    ack = AckRecorder()

    asyncio.run(handler.handle_button(1, f"sc_999_{sid}", "preview-msg", ack))

    assert ack.calls == [("⏳ Starting to scrape...", False)]
    assert spy.runs == [(1, URL, 999, "preview-msg")]


def test_button_for_expired_session(handler, store, spy, clock):
    sid = store.create_session(URL)
    clock.advance(3600)
    ack = AckRecorder()

    asyncio.run(handler.handle_button(1, f"sc_999_{sid}", "preview-msg", ack))

    assert ack.calls == [(SESSION_EXPIRED_ACK, True)]
    assert spy.runs == []


def test_link_to_delivered_book(store, transport, adapter, assembler, clock):
    """Whole flow with the real orchestrator: link, All Chapters, document"""
    resolver = lambda url: SiteVariant('Fake Site', adapter)
    orchestrator = ScrapeOrchestrator(transport, assembler, resolver=resolver, clock=clock)
    handler = ConversationHandler(store, orchestrator, transport,
                                  info_fetcher=fake_info, resolver=resolver)

    async def scenario():
        await handler.handle_text(1, URL)
        preview = transport.messages[-1]
        payload = preview.buttons[1][1]
        await handler.handle_button(1, payload, preview, AckRecorder())
        return preview

    preview = asyncio.run(scenario())

    assert orchestrator.states[1] == ScrapeState.DONE
    assert "Chapters: 12" in preview.text
    assert len(transport.documents) == 1
