# quran_playback/utils/progress.py
"""
Progress reporting utilities.
"""
import sys
import time
from typing import TextIO


class ProgressReporter:
    """Single-line console progress bar."""

    def __init__(self, total: int, desc: str = "", unit: str = "items", stream: TextIO = None):
        self.total = total
        self.current = 0
        self.desc = desc
        self.unit = unit
        self.stream = stream or sys.stdout
        self.start_time = time.time()
        self._last_print = 0.0

    def update(self, n: int = 1):
        """Update progress by n items."""
        self.current += n

        # Rate limit output
        now = time.time()
        if now - self._last_print < 0.5 and self.current < self.total:
            return
        self._last_print = now

        self._print_progress()

    def _print_progress(self):
        pct = 100 * self.current / self.total if self.total > 0 else 0
        elapsed = time.time() - self.start_time

        if self.current > 0:
            eta = elapsed * (self.total - self.current) / self.current
            eta_str = f"ETA: {eta:.0f}s"
        else:
            eta_str = "ETA: --"

        bar_width = 30
        filled = int(bar_width * self.current / self.total) if self.total > 0 else 0
        bar = "█" * filled + "░" * (bar_width - filled)

        self.stream.write(f"\r{self.desc}: |{bar}| {self.current}/{self.total} {self.unit} ({pct:.1f}%) {eta_str}")
        self.stream.flush()

    def finish(self):
        """Mark as complete."""
        self.current = self.total
        self._print_progress()
        elapsed = time.time() - self.start_time
        self.stream.write(f"\n  Completed in {elapsed:.1f}s\n")
        self.stream.flush()
