"""Human-readable summaries of finished renderer processes.

Used for operational logging only; none of this reaches HTTP responses.
"""

import os
import signal
import sys

from .interfaces import RenderOutcome

_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_bytes(n: int) -> str:
    """Format a byte count with binary units, e.g. ``1.50MiB``."""
    magnitude = abs(n)
    if magnitude < 1024:
        return f"{n}B"
    value = float(n)
    for unit in _UNITS:
        value /= 1024
        if abs(value) < 1024 or unit == _UNITS[-1]:
            return f"{value:.2f}{unit}"
    raise AssertionError("unreachable")


def format_duration(seconds: float) -> str:
    ms = round(seconds * 1000)
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.3f}s"


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def exit_reason(outcome: RenderOutcome) -> str:
    """``exit code N``, or ``exit code 128+S (SIGNAME)`` for signal deaths."""
    if outcome.spawn_error is not None:
        return str(outcome.spawn_error)
    status = outcome.wait_status
    if status is None:
        return "n/a"
    if os.WIFEXITED(status):
        return f"exit code {os.WEXITSTATUS(status)}"
    if os.WIFSIGNALED(status):
        signum = os.WTERMSIG(status)
        return f"exit code {128 + signum} ({_signal_name(signum)})"
    return f"wait status {status}"


def max_rss(rusage) -> int:
    # ru_maxrss is in kilobytes on Linux and in bytes on macOS
    if sys.platform == "darwin":
        return rusage.ru_maxrss
    return rusage.ru_maxrss << 10


def process_stats(outcome: RenderOutcome) -> str:
    """CPU, wall time and peak memory of a finished process."""
    r = outcome.rusage
    if r is None:
        return "n/a"
    parts = [
        f"sys: {format_duration(r.ru_stime)}",
        f"user: {format_duration(r.ru_utime)}",
        f"wall: {format_duration(outcome.wall_time)}",
    ]
    if r.ru_maxrss:
        parts.append(f"maxRSS: {format_bytes(max_rss(r))}")
    return ", ".join(parts)


def summary(outcome: RenderOutcome) -> str:
    text = f"{exit_reason(outcome)} / {process_stats(outcome)}"
    if outcome.killed:
        text += f" (killed: {outcome.killed})"
    return text
