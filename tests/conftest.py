"""
Pytest configuration and fixtures: fake clock, chat transport, site adapter
and assembler for exercising the chat flow without Discord or the network.
"""

import itertools
import os

import pytest

from models import Chapter, ScrapeResult
from orchestrator import ChatTransport
from sites import SiteVariant


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeMessage:
    def __init__(self, ref_id, chat_id, text, buttons=None, image_url=None):
        self.id = ref_id
        self.chat_id = chat_id
        self.text = text
        self.buttons = buttons
        self.image_url = image_url
        self.deleted = False


class FakeTransport(ChatTransport):
    """Records everything sent to the chat"""

    def __init__(self):
        self._ids = itertools.count(1)
        self.messages = []
        self.edits = []
        self.documents = []
        self.fail_edits = False
        self.fail_photos = False

    async def send_message(self, chat_id, text, buttons=None):
        msg = FakeMessage(next(self._ids), chat_id, text, buttons)
        self.messages.append(msg)
        return msg

    async def send_photo(self, chat_id, image_url, caption, buttons=None):
        if self.fail_photos:
            raise RuntimeError("photo rejected")
        msg = FakeMessage(next(self._ids), chat_id, caption, buttons, image_url=image_url)
        self.messages.append(msg)
        return msg

    async def edit_message(self, ref, text):
        if self.fail_edits:
            raise RuntimeError("message to edit not found")
        self.edits.append((ref, text))
        ref.text = text

    async def delete_message(self, ref):
        ref.deleted = True

    async def send_document(self, chat_id, path, caption):
        with open(path, 'rb') as f:
            data = f.read()
        self.documents.append((chat_id, os.path.basename(path), caption, data))
        return FakeMessage(next(self._ids), chat_id, caption)

    def texts(self):
        """Every text the chat has seen, sends and edits, in order"""
        return [m.text for m in self.messages] + [text for _, text in self.edits]


class FakeAdapter:
    """Site adapter returning canned chapters and reporting progress like NovelScraper"""

    def __init__(self, count=12, title='Test Novel', error=None):
        self.count = count
        self.title = title
        self.error = error
        self.calls = []
        self.reports = []

    def __call__(self, url, limit, progress):
        self.calls.append((url, limit))
        if self.error:
            raise self.error
        count = self.count if limit >= 999 else min(limit, self.count)
        chapters = [Chapter(title=f'Chapter {i}', content=f'Text of chapter {i}.')
                    for i in range(1, count + 1)]
        progress(0, count)
        self.reports.append((0, count))
        for done in range(1, count + 1):
            progress(done, count)
            self.reports.append((done, count))
        return ScrapeResult(title=self.title, chapters=chapters)


class FakeAssembler:
    """Writes a small file per call and remembers what it was given"""

    def __init__(self, output_dir, error=None):
        self.output_dir = output_dir
        self.error = error
        self.calls = []

    def __call__(self, title, category, chapters, cover_image=None):
        self.calls.append((title, category, list(chapters)))
        if self.error:
            raise self.error
        path = os.path.join(str(self.output_dir), f'book_{len(self.calls)}.epub')
        with open(path, 'wb') as f:
            f.write(b'x' * 2048)
        return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def assembler(tmp_path):
    return FakeAssembler(tmp_path)


@pytest.fixture
def resolver(adapter):
    """Resolves every URL to the fake adapter"""
    return lambda url: SiteVariant('Fake Site', adapter)
