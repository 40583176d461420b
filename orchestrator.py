"""
Scrape Orchestrator

Drives one scrape from URL to delivered file for a chat:

    IDLE -> CONNECTING -> SCRAPING -> ASSEMBLING -> DELIVERING -> DONE
                 \\            \\            \\            \\
                  `------------`------------`------------`--> FAILED

The site adapter and the assembler are blocking, so both run on executor
threads. The adapter reports progress through a plain callable; each report
is handed back to the event loop with call_soon_threadsafe and rendered by a
single consumer task, throttled by progress.ProgressThrottle.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from config import BOOK_CATEGORY, PROGRESS_INTERVAL
from exceptions import AssemblyError, NoChaptersFoundError, classify_error, format_error
from progress import ProgressThrottle, format_file_size, format_time, render_progress
from sites import SiteVariant, detect_site

logger = logging.getLogger(__name__)

Buttons = List[Tuple[str, str]]

BUSY_TEXT = "⚠️ A scrape is already running in this chat. Please wait for it to finish."


class ScrapeState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    SCRAPING = 'scraping'
    ASSEMBLING = 'assembling'
    DELIVERING = 'delivering'
    DONE = 'done'
    FAILED = 'failed'


class ChatTransport(ABC):
    """Outbound side of a chat platform.

    Message refs are opaque: whatever send_* returns is what edit_message
    and delete_message receive.
    """

    @abstractmethod
    async def send_message(self, chat_id: Any, text: str, buttons: Optional[Buttons] = None) -> Any:
        ...

    @abstractmethod
    async def send_photo(self, chat_id: Any, image_url: str, caption: str,
                         buttons: Optional[Buttons] = None) -> Any:
        ...

    @abstractmethod
    async def edit_message(self, ref: Any, text: str) -> None:
        ...

    @abstractmethod
    async def delete_message(self, ref: Any) -> None:
        ...

    @abstractmethod
    async def send_document(self, chat_id: Any, path: str, caption: str) -> Any:
        ...


@dataclass
class ScrapeOutcome:
    state: ScrapeState
    chapter_count: int = 0
    title: Optional[str] = None
    error_kind: Optional[str] = None
    rejected: bool = False


class ScrapeOrchestrator:

    def __init__(self,
                 transport: ChatTransport,
                 assembler: Callable[..., str],
                 resolver: Callable[[str], SiteVariant] = detect_site,
                 clock: Callable[[], float] = time.monotonic,
                 progress_interval: float = PROGRESS_INTERVAL,
                 category: str = BOOK_CATEGORY):
        self.transport = transport
        self.assembler = assembler
        self.resolver = resolver
        self.category = category
        self.progress_interval = progress_interval
        self._clock = clock
        self._active: Set[Any] = set()
        self.states: Dict[Any, ScrapeState] = {}

    def is_busy(self, chat_id: Any) -> bool:
        return chat_id in self._active

    def _set_state(self, chat_id: Any, state: ScrapeState) -> None:
        previous = self.states.get(chat_id, ScrapeState.IDLE)
        self.states[chat_id] = state
        logger.info(f"[Orchestrator] Chat {chat_id}: {previous.name} -> {state.name}")

    async def _show(self, chat_id: Any, display: Any, text: str) -> Any:
        """Replace the status display, or post a new message when there is none
        or the edit fails. Returns the ref now showing the status."""
        if display is not None:
            try:
                await self.transport.edit_message(display, text)
                return display
            except Exception as e:
                logger.warning(f"[Orchestrator] Status edit failed, sending new message: {e}")
        return await self.transport.send_message(chat_id, text)

    async def _try_edit(self, display: Any, text: str) -> None:
        try:
            await self.transport.edit_message(display, text)
        except Exception as e:
            logger.warning(f"[Orchestrator] Status update failed: {e}")

    async def run(self, chat_id: Any, url: str, chapter_limit: int,
                  display: Any = None) -> ScrapeOutcome:
        """Scrape, assemble and deliver. Never raises for scrape failures;
        they end in FAILED with the error shown in the chat."""
        if chat_id in self._active:
            logger.info(f"[Orchestrator] Chat {chat_id}: rejected {url}, scrape already running")
            await self.transport.send_message(chat_id, BUSY_TEXT)
            return ScrapeOutcome(state=self.states.get(chat_id, ScrapeState.IDLE), rejected=True)

        self._active.add(chat_id)
        try:
            return await self._run(chat_id, url, chapter_limit, display)
        finally:
            self._active.discard(chat_id)

    async def _run(self, chat_id: Any, url: str, chapter_limit: int, display: Any) -> ScrapeOutcome:
        started = self._clock()
        site = self.resolver(url)
        loop = asyncio.get_running_loop()
        logger.info(f"[Orchestrator] Chat {chat_id}: {site.name} scrape of {url} (limit={chapter_limit})")

        try:
            self._set_state(chat_id, ScrapeState.CONNECTING)
            display = await self._show(chat_id, display, f"⏳ Connecting to **{site.name}**...")

            # === SCRAPING ===
            self._set_state(chat_id, ScrapeState.SCRAPING)
            queue: asyncio.Queue = asyncio.Queue()

            def report(current: int, total: int) -> None:
                # Called from the adapter's worker threads
                loop.call_soon_threadsafe(queue.put_nowait, (current, total))

            consumer = asyncio.create_task(
                self._render_progress(queue, display, site.name, self._clock()))
            try:
                result = await loop.run_in_executor(None, site.adapter, url, chapter_limit, report)
            finally:
                queue.put_nowait(None)
                await consumer

            chapters = result.chapters if result else []
            if not chapters:
                raise NoChaptersFoundError(f"No chapters found at {url}")
            title = result.title or 'Novel'
            count = len(chapters)
            logger.info(f"[Orchestrator] Chat {chat_id}: scraped {count} chapters of '{title}'")

            # === ASSEMBLING ===
            self._set_state(chat_id, ScrapeState.ASSEMBLING)
            await self._try_edit(display, f"📦 Building e-book from {count} chapters...")
            try:
                path = await loop.run_in_executor(
                    None, self.assembler, title, self.category, chapters, result.cover_image)
            except Exception as e:
                raise AssemblyError(str(e)) from e

            # === DELIVERING ===
            self._set_state(chat_id, ScrapeState.DELIVERING)
            size = os.path.getsize(path)
            elapsed = self._clock() - started
            display = await self._show(
                chat_id, display,
                f"✅ **Done!**\n\n📚 {title}\n📖 Chapters: {count}\n"
                f"💾 Size: {format_file_size(size)}\n⏱️ Time: {format_time(elapsed)}")
            await self.transport.send_document(chat_id, path, f"📚 {title} ({count} chapters)")
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"[Orchestrator] Could not remove {path}: {e}")

            self._set_state(chat_id, ScrapeState.DONE)
            return ScrapeOutcome(state=ScrapeState.DONE, chapter_count=count, title=title)

        except Exception as e:
            kind = classify_error(e)
            self._set_state(chat_id, ScrapeState.FAILED)
            logger.error(f"[Orchestrator] Chat {chat_id}: {kind} failure for {url}: {e}")
            try:
                await self._show(chat_id, display, format_error(kind, e))
            except Exception as send_error:
                logger.error(f"[Orchestrator] Could not report failure to chat {chat_id}: {send_error}")
            return ScrapeOutcome(state=ScrapeState.FAILED, error_kind=kind)

    async def _render_progress(self, queue: asyncio.Queue, display: Any,
                               site_name: str, started: float) -> ProgressThrottle:
        """Drain progress reports until the None sentinel, rendering the throttled ones"""
        throttle = ProgressThrottle(self.progress_interval, self._clock)
        while True:
            item = await queue.get()
            if item is None:
                break
            current, total = item
            if not throttle.should_render(current, total):
                continue
            text = render_progress(site_name, current, total, self._clock() - started)
            await self._try_edit(display, text)
        logger.debug(f"[Orchestrator] Rendered {throttle.render_count} progress updates")
        return throttle
