"""Progress bar, time formatting and ETA helpers for the live status message"""

import time
from typing import Callable, Optional

from config import PROGRESS_BAR_WIDTH, PROGRESS_INTERVAL

FILLED = '█'
EMPTY = '░'


def percent(current: int, total: int) -> int:
    """round(100 * current / total), halves rounded up"""
    if total <= 0:
        return 0
    return int(100 * current / total + 0.5)


def create_progress_bar(current: int, total: int, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Fixed-width bar, e.g. ████░░░░░░"""
    filled = 0
    if total > 0:
        filled = min(width, max(0, int(width * current / total)))
    return FILLED * filled + EMPTY * (width - filled)


def estimate_eta(elapsed: float, current: int, total: int) -> float:
    """Seconds remaining: average time per chapter so far times chapters left"""
    remaining = max(0, total - current)
    return (elapsed / max(1, current)) * remaining


def format_time(seconds: float) -> str:
    """Format seconds: 45s, 2m 05s, 1h 02m"""
    seconds = int(max(0, seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def render_progress(site_name: str, current: int, total: int, elapsed: float) -> str:
    """Status text for one progress snapshot"""
    eta = estimate_eta(elapsed, current, total)
    return (f"⏳ **Scraping from {site_name}...**\n\n"
            f"{create_progress_bar(current, total)} {percent(current, total)}%\n"
            f"📖 Chapter {current}/{total}\n"
            f"⏱️ Elapsed: {format_time(elapsed)} | ETA: {format_time(eta)}")


class ProgressThrottle:
    """Decides which progress reports actually get rendered.

    A report renders when at least `interval` seconds passed since the last
    render, or when it is the final one (current == total). The final report
    renders once even if the adapter repeats it.
    """

    def __init__(self, interval: float = PROGRESS_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last_render: Optional[float] = None
        self.final_rendered = False
        self.render_count = 0

    def should_render(self, current: int, total: int) -> bool:
        now = self._clock()
        is_final = total > 0 and current >= total
        if is_final:
            if self.final_rendered:
                return False
            self.final_rendered = True
        elif self._last_render is not None and now - self._last_render < self.interval:
            return False
        self._last_render = now
        self.render_count += 1
        return True
