"""
Progress reporting utilities for terminal output.

Provides clean, updating progress indicators instead of log spam. A single
reporter may be shared by several worker threads (the two page retrieval
tasks report into the same volume progress), so every mutation is taken
under a lock.
"""

import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol, TextIO


class ProgressSink(Protocol):
    """What pipeline stages and page sources report progress into."""

    def increase_total(self, n: int) -> None: ...

    def advance(self, n: int = 1) -> None: ...

    def cancel(self, label: str) -> None: ...

    def done(self) -> None: ...


@dataclass
class ProgressStats:
    """Statistics for progress tracking."""

    total: int
    current: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate(self) -> float:
        """Items per second."""
        if self.elapsed == 0:
            return 0
        return self.current / self.elapsed

    @property
    def eta(self) -> float | None:
        """Estimated time remaining in seconds."""
        if self.rate == 0 or self.current == 0:
            return None
        remaining = self.total - self.current
        return remaining / self.rate

    @property
    def percent(self) -> float:
        """Completion percentage."""
        if self.total == 0:
            return 100.0
        return min(100.0, (self.current / self.total) * 100)


def format_time(seconds: float | None) -> str:
    """Format seconds as human-readable time."""
    if seconds is None:
        return "--:--"

    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


class ProgressReporter:
    """Thread-safe progress bar with a growable total.

    Usage:
        progress = ProgressReporter(desc="Volume: 3", unit="pages")
        progress.increase_total(len(pages))
        for page in pages:
            process(page)
            progress.advance()
        progress.done()

    The first of done()/cancel() finishes the bar; later calls are ignored.
    """

    def __init__(
        self,
        total: int = 0,
        desc: str = "Progress",
        unit: str = "items",
        stream: TextIO | None = None,
    ):
        """Initialize progress reporter.

        Args:
            total: Initial number of items to process
            desc: Description prefix for progress line
            unit: Unit name for items (e.g., "pages", "images")
            stream: Output stream (defaults to stderr, or stdout if only
                stdout is a terminal)
        """
        self.stats = ProgressStats(total=total)
        self.desc = desc
        self.unit = unit
        if stream is None:
            # Check both stderr and stdout for TTY (some terminals only have one)
            self._is_tty = sys.stderr.isatty() or sys.stdout.isatty()
            self._output = sys.stderr if sys.stderr.isatty() else sys.stdout
        else:
            self._is_tty = stream.isatty()
            self._output = stream
        self._last_line_len = 0
        self._lock = threading.Lock()
        self.finished = False
        self.cancelled: str | None = None

    def __enter__(self):
        self.stats.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.cancel("Error")
        else:
            self.done()

    def increase_total(self, n: int) -> None:
        """Grow the expected number of items by n."""
        with self._lock:
            self.stats.total += n

    def advance(self, n: int = 1) -> None:
        """Mark n more items as completed."""
        with self._lock:
            if self.finished:
                return
            self.stats.current += n
            self._render()

    def cancel(self, label: str) -> None:
        """Finish the bar with a label explaining why it stopped."""
        with self._lock:
            if self.finished:
                return
            self.finished = True
            self.cancelled = label
            self._end_line()
            self._output.write(f"✗ {self.desc}: {label}\n")
            self._output.flush()

    def done(self) -> None:
        """Finish progress and print summary."""
        with self._lock:
            if self.finished:
                return
            self.finished = True
            self._end_line()
            elapsed_str = format_time(self.stats.elapsed)
            self._output.write(
                f"✓ {self.desc}: {self.stats.current} {self.unit} ({elapsed_str})\n"
            )
            self._output.flush()

    def _end_line(self) -> None:
        # Move past the carriage-return line
        if self._is_tty and self._last_line_len:
            self._output.write("\n")

    def _render(self) -> None:
        """Render the progress line. Caller holds the lock."""
        stats = self.stats

        bar_width = 20
        filled = int(bar_width * stats.percent / 100)
        bar = "█" * filled + "░" * (bar_width - filled)

        parts = [
            f"{self.desc}: [{bar}]",
            f"{stats.current}/{stats.total}",
            f"({stats.percent:.0f}%)",
            f"[{format_time(stats.elapsed)}<{format_time(stats.eta)}]",
        ]
        if stats.rate >= 1:
            parts.append(f"{stats.rate:.1f} {self.unit}/s")

        line = " ".join(parts)

        if self._is_tty:
            # Use carriage return to overwrite line, pad with spaces to clear old content
            clear = " " * max(0, self._last_line_len - len(line))
            self._output.write(f"\r{line}{clear}")
            self._output.flush()
            self._last_line_len = len(line)
        else:
            # Non-TTY: just print periodic updates (every 10%)
            if stats.current == 1 or stats.current == stats.total or stats.current % max(1, stats.total // 10) == 0:
                self._output.write(line + "\n")
                self._output.flush()


class NullProgress:
    """Progress sink that discards everything."""

    def increase_total(self, n: int) -> None:
        pass

    def advance(self, n: int = 1) -> None:
        pass

    def cancel(self, label: str) -> None:
        pass

    def done(self) -> None:
        pass
