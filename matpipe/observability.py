"""
Observability utilities for matpipe.

This module provides:
- Logging configuration for the ``matpipe`` logger hierarchy
- An execution profiler used to time pipeline steps
"""

import logging
import time
from contextlib import contextmanager
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from collections import defaultdict
import json

from .config import DEFAULT_LOG_LEVEL


# ============================================================================
# Logging Configuration
# ============================================================================

def configure_logging(level: str = DEFAULT_LOG_LEVEL, log_file: Optional[str] = None):
    """
    Configure logging for the matpipe package.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs

    Returns:
        The configured ``matpipe`` logger
    """
    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown logging level: {level}")

    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    matpipe_logger = logging.getLogger('matpipe')
    matpipe_logger.setLevel(logging.DEBUG if log_file else log_level)

    for handler in list(matpipe_logger.handlers):
        matpipe_logger.removeHandler(handler)
        handler.close()

    # Console handler (stderr, so it never mixes with matrix output)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    matpipe_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(detailed_formatter)
        matpipe_logger.addHandler(file_handler)

    matpipe_logger.propagate = False

    return matpipe_logger


# ============================================================================
# Performance Profiling
# ============================================================================

@dataclass
class ProfileEntry:
    """Single profile measurement."""
    name: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self):
        """Mark this entry as complete and calculate duration."""
        self.end_time = time.perf_counter()
        self.duration = self.end_time - self.start_time

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'duration': self.duration,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'metadata': self.metadata
        }


class ExecutionProfiler:
    """
    Profiler for tracking execution performance.

    Example:
        profiler = ExecutionProfiler()

        with profiler.profile("mat_add_mat", shape=(2, 2)):
            ...

        print(profiler.format_summary())
    """

    def __init__(self):
        self.entries: List[ProfileEntry] = []
        self.aggregated: Dict[str, List[float]] = defaultdict(list)

    @contextmanager
    def profile(self, name: str, **metadata):
        """
        Context manager for profiling a code block.

        The entry is recorded even when the block raises.

        Args:
            name: Name of the operation being profiled
            **metadata: Additional metadata to attach
        """
        entry = ProfileEntry(
            name=name,
            start_time=time.perf_counter(),
            metadata=metadata
        )

        try:
            yield entry
        finally:
            entry.complete()
            self.entries.append(entry)
            self.aggregated[name].append(entry.duration)

    def get_summary(self) -> Dict[str, Dict[str, float]]:
        """
        Get aggregated statistics for all profiled operations.

        Returns:
            Dictionary mapping operation names to count/total/mean/min/max
        """
        summary = {}
        for name, durations in self.aggregated.items():
            if durations:
                summary[name] = {
                    'count': len(durations),
                    'total': sum(durations),
                    'mean': sum(durations) / len(durations),
                    'min': min(durations),
                    'max': max(durations)
                }
        return summary

    def format_summary(self) -> str:
        summary = self.get_summary()
        lines = [
            "=" * 72,
            "PIPELINE PROFILE SUMMARY",
            "=" * 72,
            f"{'Operation':<32} {'Count':>8} {'Total (s)':>14} {'Mean (s)':>14}",
            "-" * 72,
        ]
        for name, stats in sorted(summary.items(), key=lambda x: x[1]['total'], reverse=True):
            lines.append(f"{name:<32} {stats['count']:>8} {stats['total']:>14.6f} {stats['mean']:>14.6f}")
        total_time = sum(stats['total'] for stats in summary.values())
        total_count = sum(stats['count'] for stats in summary.values())
        lines.append("=" * 72)
        lines.append(f"{'TOTAL':<32} {total_count:>8} {total_time:>14.6f}")
        lines.append("=" * 72)
        return "\n".join(lines)

    def save_json(self, filepath: str):
        """
        Save profiling results to a JSON file.

        Args:
            filepath: Path to save JSON data
        """
        data = {
            'summary': self.get_summary(),
            'entries': [entry.to_dict() for entry in self.entries]
        }

        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2, default=str)

    def reset(self):
        """Clear all profiling data."""
        self.entries.clear()
        self.aggregated.clear()

