"""
DRIVER DIAGRAM MUTATION LOG - What Changed, and When

Records every structural change of a diagram (node created/edited/deleted,
connection drawn/removed, bulk replacement by an import) as a MutationEvent.

Architecture:
- MutationLogger: Core logging interface
- FileLogger: Optional newline-delimited JSON mirror, one file per day
- EventBuffer: In-memory ring buffer for recent events

Usage:
    logger = MutationLogger()
    logger.log_node_created("3", "primary")
    logger.log_edge_created("1", "3")

    for event in logger.get_events_for_node("3"):
        print(f"{event.timestamp}: {event.mutation_type}")
"""
import msgspec
from typing import Optional, List, Any, Dict, Callable
from datetime import datetime, timezone
from dataclasses import dataclass
from pathlib import Path
from collections import deque
import io
import logging
import threading

from viz.core import MutationType, MutationEvent

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the mutation logger."""
    enable_file_log: bool = False       # Mirror events to JSONL files
    log_path: Optional[Path] = None     # Directory for log files
    buffer_size: int = 10000            # In-memory buffer size

    def __post_init__(self):
        if self.log_path is None:
            self.log_path = Path("./workspace/logs")


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent mutation events.

    Provides O(1) append and O(n) query for filtering.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque[MutationEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_last(self, n: int) -> List[MutationEvent]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if len(items) >= n else items

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        """Events about a node, including connections it takes part in."""
        with self._lock:
            return [
                e for e in self._buffer
                if node_id in (e.node_id, e.source_id, e.target_id)
            ]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    File-based event logger.

    Writes events as newline-delimited JSON for easy parsing.
    Rotates logs daily.
    """

    def __init__(self, log_path: Path):
        self._log_path = log_path
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        log_path.mkdir(parents=True, exist_ok=True)

    def write(self, event: MutationEvent) -> None:
        """Write an event to the log file."""
        with self._lock:
            self._ensure_file()
            try:
                line = self._encoder.encode(event).decode("utf-8") + "\n"
                self._current_file.write(line)
                self._current_file.flush()
            except OSError as e:
                logger.warning(f"Failed to write mutation log: {e}")

    def _ensure_file(self) -> None:
        """Ensure we have a valid file handle for today."""
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        if self._current_date != today:
            if self._current_file:
                self._current_file.close()

            filepath = self._log_path / f"mutations_{today}.jsonl"
            self._current_file = open(filepath, "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        with self._lock:
            if self._current_file:
                self._current_file.close()
                self._current_file = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Read events from a specific date's log."""
        filepath = self._log_path / f"mutations_{date}.jsonl"

        if not filepath.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=MutationEvent)

        with open(filepath, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except msgspec.DecodeError as e:
                    logger.warning(f"Skipping unreadable log line {filepath.name}:{line_no}: {e}")

        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Main logging interface for diagram mutations.

    Events always go to the in-memory buffer, and to JSONL files when
    file logging is enabled. Subscribers are called synchronously.
    """

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or LoggerConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None

        if self.config.enable_file_log and self.config.log_path:
            self._file_logger = FileLogger(self.config.log_path)

        self._subscribers: List[Callable[[MutationEvent], None]] = []

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _emit(self, mutation_type: MutationType, **fields) -> MutationEvent:
        event = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Mutation subscriber failed: {e}")

        return event

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_node_created(self, node_id: str, level: str) -> MutationEvent:
        return self._emit(MutationType.NODE_CREATED, node_id=node_id, level=level)

    def log_node_updated(self, node_id: str, level: str, field: str) -> MutationEvent:
        return self._emit(MutationType.NODE_UPDATED, node_id=node_id, level=level, field=field)

    def log_node_deleted(self, node_id: str, level: str) -> MutationEvent:
        return self._emit(MutationType.NODE_DELETED, node_id=node_id, level=level)

    def log_edge_created(self, source_id: str, target_id: str) -> MutationEvent:
        return self._emit(MutationType.EDGE_CREATED, source_id=source_id, target_id=target_id)

    def log_edge_deleted(self, source_id: str, target_id: str) -> MutationEvent:
        return self._emit(MutationType.EDGE_DELETED, source_id=source_id, target_id=target_id)

    def log_bulk_replace(self, node_count: int, edge_count: int) -> MutationEvent:
        """Log a wholesale replacement of the diagram (import, clear-all)."""
        return self._emit(
            MutationType.BULK_REPLACE,
            node_count=node_count,
            edge_count=edge_count,
        )

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.get_by_type(mutation_type)

    def get_node_timeline(self, node_id: str) -> List[Dict[str, Any]]:
        """Simplified list of mutations touching a node, oldest first."""
        return [
            {
                "time": e.timestamp,
                "type": e.mutation_type,
                "field": e.field,
                "edge": (e.source_id, e.target_id) if e.source_id else None,
            }
            for e in self.get_events_for_node(node_id)
        ]

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

_global_logger: Optional[MutationLogger] = None


def get_logger() -> MutationLogger:
    """Get or create the global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = MutationLogger()
    return _global_logger


def configure_logger(config: LoggerConfig) -> MutationLogger:
    """Configure and return a new global logger."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = MutationLogger(config)
    return _global_logger
