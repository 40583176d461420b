"""
Conversation flow: turns inbound chat text and button presses into
metadata previews, pending-range prompts and orchestrator runs.

Button payloads are short so they fit platform limits:
    cr_<session>          ask for a custom chapter count
    sc_<limit>_<session>  start scraping with <limit> chapters (999 = all)
Session ids contain '_' themselves, so everything after the fixed fields is
joined back together.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional, Tuple
from urllib.parse import urlparse

from config import ALL_CHAPTERS, MAX_CHAPTERS
from exceptions import InvalidURLError
from metadata import NO_DESCRIPTION, fetch_novel_info
from models import NovelInfo
from orchestrator import ChatTransport, ScrapeOrchestrator
from sessions import SessionStore
from sites import SiteVariant, detect_site

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'https?://\S+')

CUSTOM_RANGE = 'cr'
SELECT_COUNT = 'sc'

COMMANDS = {'!start', '!help', 'start', 'help'}

WELCOME_TEXT = (
    "👋 **Welcome to the Novel to EPUB bot!**\n\n"
    "Send me a link to a web novel and I'll turn it into an e-book.\n\n"
    "**How it works:**\n"
    "1. Paste the novel's URL\n"
    "2. Pick **📖 All Chapters** or **✏️ Custom Range**\n"
    "3. Wait for the progress bar to fill up\n\n"
    "Supported: Royal Road, ScribbleHub, Wuxiaworld, NovelFull, FreeWebNovel, "
    "BoxNovel, MTLNovel, WebNovel, Wattpad, Archive of Our Own, FanFiction.net "
    "and most other novel sites.\n\n"
    f"Custom ranges are limited to {MAX_CHAPTERS} chapters."
)
HINT_TEXT = ("💬 Send a novel link and I'll help you convert it to EPUB!\n\n"
             "Example: https://royalroad.com/fiction/12345")
INVALID_URL_TEXT = "❌ Invalid URL. Please send a valid website link."
INVALID_COUNT_TEXT = "❌ Please enter a valid number of chapters (e.g., 50)"
SESSION_EXPIRED_TEXT = "❌ Session expired. Please send the novel URL again."
SESSION_EXPIRED_ACK = "❌ Session expired. Please send the URL again."
RANGE_PROMPT_TEXT = f"📝 How many chapters do you want? (1-{MAX_CHAPTERS})\n\nExample: 50"

Ack = Callable[..., Awaitable[None]]


def validate_url(url: str) -> str:
    """Raise InvalidURLError unless the URL has an http(s) scheme and a host"""
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as e:
        raise InvalidURLError(f"Invalid URL: {url}") from e
    if parsed.scheme not in ('http', 'https') or not host:
        raise InvalidURLError(f"Invalid URL: {url}")
    return url


def parse_chapter_count(text: str) -> Optional[int]:
    """Leading integer of a reply ("50", "50 chapters"); None if there is none"""
    match = re.match(r'\s*(\d+)', text or '')
    return int(match.group(1)) if match else None


def cap_typed_count(count: int) -> int:
    """Typed replies never mean "all chapters", so 999 is capped too"""
    return min(count, MAX_CHAPTERS)


def clamp_chapter_limit(limit: int) -> int:
    """Cap a button limit; the all-chapters sentinel passes through"""
    if limit >= ALL_CHAPTERS:
        return ALL_CHAPTERS
    return min(limit, MAX_CHAPTERS)


def parse_callback_data(data: str) -> Optional[Tuple[str, Optional[int], str]]:
    """Split a button payload into (action, limit, session_id).

    >>> parse_callback_data('sc_999_s_12')
    ('sc', 999, 's_12')
    """
    parts = (data or '').split('_')
    if parts[0] == CUSTOM_RANGE and len(parts) >= 2:
        return CUSTOM_RANGE, None, '_'.join(parts[1:])
    if parts[0] == SELECT_COUNT and len(parts) >= 3 and parts[1].isdigit():
        return SELECT_COUNT, int(parts[1]), '_'.join(parts[2:])
    return None


def build_info_text(info: NovelInfo) -> str:
    text = f"📚 **{info.title}**\n\n"
    if info.description and info.description != NO_DESCRIPTION:
        text += f"{info.description}\n\n"
    if info.rating:
        text += f"🌟 *Rating:* {info.rating}\n\n"
    text += "*Select option or enter custom chapter count:*"
    return text


def selection_buttons(session_id: str):
    return [("✏️ Custom Range", f"{CUSTOM_RANGE}_{session_id}"),
            ("📖 All Chapters", f"{SELECT_COUNT}_{ALL_CHAPTERS}_{session_id}")]


class ConversationHandler:

    def __init__(self,
                 store: SessionStore,
                 orchestrator: ScrapeOrchestrator,
                 transport: ChatTransport,
                 info_fetcher: Callable[[str], NovelInfo] = fetch_novel_info,
                 resolver: Callable[[str], SiteVariant] = detect_site):
        self.store = store
        self.orchestrator = orchestrator
        self.transport = transport
        self.info_fetcher = info_fetcher
        self.resolver = resolver

    async def handle_text(self, chat_id: Any, text: str) -> None:
        text = (text or '').strip()
        if not text:
            return

        if text.lower() in COMMANDS:
            await self.transport.send_message(chat_id, WELCOME_TEXT)
            return

        match = URL_PATTERN.search(text)
        if match:
            await self.handle_url(chat_id, match.group(0))
            return

        if text.startswith('!'):
            return  # Someone else's command

        pending = self.store.get_pending_range(chat_id)
        if pending is None:
            await self.transport.send_message(chat_id, HINT_TEXT)
            return

        count = parse_chapter_count(text)
        if count is None or count <= 0:
            await self.transport.send_message(chat_id, INVALID_COUNT_TEXT)
            return

        self.store.clear_pending_range(chat_id)
        url = self.store.lookup_session(pending.session_id)
        if url is None:
            await self.transport.send_message(chat_id, SESSION_EXPIRED_TEXT)
            return

        limit = cap_typed_count(count)
        logger.info(f"[Chat] {chat_id}: custom range {count} -> {limit} for {pending.session_id}")
        status = await self.transport.send_message(chat_id, "⏳ Starting scrape...")
        await self.orchestrator.run(chat_id, url, limit, display=status)

    async def handle_url(self, chat_id: Any, url: str) -> None:
        """Preview a novel and offer the chapter selection buttons"""
        try:
            validate_url(url)
        except InvalidURLError as e:
            logger.info(f"[Chat] {chat_id}: {e}")
            await self.transport.send_message(chat_id, INVALID_URL_TEXT)
            return

        site = self.resolver(url)
        loading = await self.transport.send_message(chat_id, f"⏳ Fetching **{site.name}** info...")

        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(None, self.info_fetcher, url)
        session_id = self.store.create_session(url)
        logger.info(f"[Chat] {chat_id}: {site.name} preview '{info.title}' ({session_id})")

        try:
            await self.transport.delete_message(loading)
        except Exception as e:
            logger.warning(f"[Chat] Could not delete loading message: {e}")

        text = build_info_text(info)
        buttons = selection_buttons(session_id)
        if info.cover_image:
            try:
                await self.transport.send_photo(chat_id, info.cover_image, text, buttons)
                return
            except Exception as e:
                logger.warning(f"[Chat] Cover photo failed, sending text instead: {e}")
        await self.transport.send_message(chat_id, text, buttons)

    async def handle_button(self, chat_id: Any, data: str, message_ref: Any, ack: Ack) -> None:
        """Handle a button press. `ack(text, alert=False)` answers the press itself."""
        parsed = parse_callback_data(data)
        if parsed is None:
            logger.warning(f"[Chat] {chat_id}: unknown button payload {data!r}")
            await ack("❌ Unknown action")
            return

        action, limit, session_id = parsed
        if action == CUSTOM_RANGE:
            self.store.set_pending_range(chat_id, session_id, message_ref)
            await ack("📝 Send the number of chapters")
            await self.transport.send_message(chat_id, RANGE_PROMPT_TEXT)
            return

        url = self.store.lookup_session(session_id)
        if url is None:
            await ack(SESSION_EXPIRED_ACK, alert=True)
            return

        await ack("⏳ Starting to scrape...")
        await self.orchestrator.run(chat_id, url, clamp_chapter_limit(limit), display=message_ref)
