import asyncio
import socket

import requests

# Longest error detail shown to a user
MAX_ERROR_LENGTH = 200

NO_CHAPTERS = 'no_chapters'
TIMEOUT = 'timeout'
ASSEMBLY = 'assembly'
GENERIC = 'generic'


class NovelBotError(Exception):
    """Base exception for novel processing errors."""
    pass


class InvalidURLError(NovelBotError):
    """Raised when a message contains something that isn't a usable URL."""
    pass


class NoChaptersFoundError(NovelBotError):
    """Raised when an adapter finds nothing to download."""
    pass


class AssemblyError(NovelBotError):
    """Raised when the e-book file could not be built."""
    pass


class ConfigurationError(NovelBotError):
    """Raised when a required setting is missing at startup."""
    pass


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (requests.exceptions.Timeout, asyncio.TimeoutError,
                        socket.timeout, TimeoutError)):
        return True
    text = str(exc).lower()
    return 'timeout' in text or 'timed out' in text or 'etimedout' in text


def classify_error(exc: BaseException) -> str:
    """Map an exception from the scrape/assemble/deliver path to a failure kind"""
    if isinstance(exc, NoChaptersFoundError):
        return NO_CHAPTERS
    if isinstance(exc, AssemblyError):
        return ASSEMBLY
    if _is_timeout(exc):
        return TIMEOUT
    return GENERIC


def format_error(kind: str, exc: BaseException) -> str:
    """User-facing text for a classified failure"""
    detail = str(exc)[:MAX_ERROR_LENGTH]
    if kind == NO_CHAPTERS:
        return ("❌ No chapters found. The site may not be supported "
                "or the URL format is wrong.")
    if kind == TIMEOUT:
        return ("❌ Connection timed out. The site may be blocking "
                "requests or responding too slowly. Try again later.")
    if kind == ASSEMBLY:
        return f"❌ Failed to build the e-book: {detail}"
    return f"❌ Error: {detail}"
