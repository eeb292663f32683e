"""
Event logger for thermodo.
Writes session events to a log file.
"""

import json
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import threading

from thermodo.core.models import AnalyzerResult


class EventLogger:
    """Logger for thermodo session events."""

    LEVELS = ["debug", "info", "warning", "error"]

    def __init__(
        self,
        log_file: str = "thermodo_events.log",
        log_format: str = "text",
        include_timestamps: bool = True,
        log_level: str = "info",
    ):
        """
        Initialize the event logger.

        Args:
            log_file: Path to the log file
            log_format: Log format (text or json)
            include_timestamps: Whether to include timestamps
            log_level: Logging level (debug, info, warning, error)
        """
        if log_level not in self.LEVELS:
            raise ValueError(f"Unknown log level: {log_level}")
        self.log_file = Path(log_file)
        self.log_format = log_format
        self.include_timestamps = include_timestamps
        self.log_level = log_level
        self._lock = threading.Lock()
        self._ensure_log_file()

    @classmethod
    def from_config(cls, logging_config: Dict[str, Any]) -> Optional["EventLogger"]:
        """Create a logger from the ``logging`` config section, or None if disabled."""
        if not logging_config.get("enabled", False):
            return None
        return cls(
            log_file=logging_config.get("file", "thermodo_events.log"),
            log_format=logging_config.get("format", "text"),
            include_timestamps=logging_config.get("timestamps", True),
            log_level=logging_config.get("level", "info"),
        )

    def _ensure_log_file(self) -> None:
        """Ensure log file directory exists."""
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_file.exists():
            self.log_file.touch()

    def _get_timestamp(self) -> str:
        """Get current timestamp string."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

    def _format_text(
        self,
        level: str,
        event: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Format a log entry as text."""
        parts = []
        if self.include_timestamps:
            parts.append(f"[{self._get_timestamp()}]")
        parts.append(f"[{level.upper()}]")
        parts.append(f"{event}:")
        parts.append(content)
        if metadata:
            parts.append(f"| {metadata}")
        return " ".join(parts)

    def _format_json(
        self,
        level: str,
        event: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Format a log entry as JSON."""
        entry = {
            "level": level,
            "event": event,
            "content": content,
        }
        if self.include_timestamps:
            entry["timestamp"] = self._get_timestamp()
        if metadata:
            entry["metadata"] = metadata
        return json.dumps(entry)

    def _write(self, entry: str) -> None:
        """Write an entry to the log file."""
        with self._lock:
            with open(self.log_file, "a") as f:
                f.write(entry + "\n")

    def _should_log(self, level: str) -> bool:
        """Check if the level should be logged."""
        return self.LEVELS.index(level) >= self.LEVELS.index(self.log_level)

    def log(
        self,
        event: str,
        content: str,
        level: str = "info",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an event.

        Args:
            event: Event type (e.g., "reading", "device_detected")
            content: Content of the log entry
            level: Log level
            metadata: Optional additional metadata
        """
        if not self._should_log(level):
            return

        if self.log_format == "json":
            entry = self._format_json(level, event, content, metadata)
        else:
            entry = self._format_text(level, event, content, metadata)

        self._write(entry)

    def log_session_start(self, analyzer: str) -> None:
        """Log a session start."""
        self.log("session_start", "Session started", "info", {"analyzer": analyzer})

    def log_session_stop(self) -> None:
        """Log a session stop."""
        self.log("session_stop", "Session stopped", "info")

    def log_measuring_started(self) -> None:
        self.log("measuring_started", "Measuring started", "debug")

    def log_measuring_stopped(self) -> None:
        self.log("measuring_stopped", "Measuring stopped", "debug")

    def log_reading(self, result: AnalyzerResult) -> None:
        """Log a temperature reading."""
        if math.isnan(result.temperature):
            content = f"Undetermined temperature at {result.resistance:.2f} ohm"
        else:
            content = f"{result.temperature:.2f} C"
        self.log("reading", content, "info", result.to_dict())

    def log_device_detected(self, detected: bool) -> None:
        """Log a presence detection outcome."""
        content = "Sensor detected" if detected else "No sensor detected"
        self.log("device_detected", content, "info", {"detected": detected})

    def log_device_unplugged(self) -> None:
        self.log("device_unplugged", "Sensor unplugged", "info")

    def log_error(self, error: str) -> None:
        """Log an error."""
        self.log("error", error, "error")

    def get_entries(self) -> List[str]:
        """Read and return all log entries."""
        if not self.log_file.exists():
            return []
        with open(self.log_file, "r") as f:
            return f.readlines()

    def clear_log(self) -> None:
        """Clear the log file."""
        with self._lock:
            self.log_file.write_text("")
