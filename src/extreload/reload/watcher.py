"""Build output watching.

Turns bursts of file changes in a build output directory into a single
"build completed" event once the output has settled.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from extreload.domain import utc_now
from extreload.events import EventBus, EventType

logger = logging.getLogger(__name__)


@dataclass
class FileChange:
    """Represents a detected file change."""

    path: Path
    change_type: str  # "modified", "created", "deleted"
    detected_at: datetime = field(default_factory=utc_now)


class BuildWatcher:
    """Watches a build output directory and publishes BUILD_COMPLETED.

    Scans periodically and compares modification times and content
    hashes. Changes are collected until no new ones arrive for
    ``debounce_seconds``; the whole batch then counts as one build.
    """

    def __init__(
        self,
        output_dir: str | Path,
        event_bus: EventBus,
        patterns: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ):
        self.output_dir = Path(output_dir)
        self.event_bus = event_bus
        self.patterns = patterns or ["*.js", "*.json", "*.html", "*.css"]
        self.ignore_patterns = ignore_patterns or [".map", ".tmp", "~"]

        self._file_states: dict[Path, tuple[float, str]] = {}  # path -> (mtime, hash)
        self._initialized = False

    def _should_ignore(self, path: Path) -> bool:
        path_str = str(path)
        return any(pattern in path_str for pattern in self.ignore_patterns)

    def _matches_pattern(self, path: Path) -> bool:
        return any(path.match(pattern) for pattern in self.patterns)

    def _compute_hash(self, path: Path) -> str:
        """Compute SHA256 hash of file content."""
        return hashlib.sha256(path.read_bytes()).hexdigest()

    def _scan_files(self) -> dict[Path, tuple[float, str]]:
        files: dict[Path, tuple[float, str]] = {}

        if not self.output_dir.exists():
            return files

        for path in self.output_dir.rglob("*"):
            if not path.is_file():
                continue
            if self._should_ignore(path) or not self._matches_pattern(path):
                continue

            try:
                files[path] = (path.stat().st_mtime, self._compute_hash(path))
            except OSError as e:
                # Bundlers replace files while we read them
                logger.debug(f"Error scanning {path}: {e}")

        return files

    def initialize(self) -> None:
        """Record the current output so only later builds are reported."""
        self._file_states = self._scan_files()
        self._initialized = True
        logger.info(f"Watching {self.output_dir} ({len(self._file_states)} files)")

    def detect_changes(self) -> list[FileChange]:
        """Detect changes since the last scan.

        Returns:
            List of FileChange objects describing detected changes.
        """
        if not self._initialized:
            self.initialize()
            return []

        current_files = self._scan_files()
        changes: list[FileChange] = []

        for path, (_mtime, file_hash) in current_files.items():
            if path not in self._file_states:
                changes.append(FileChange(path=path, change_type="created"))
            elif file_hash != self._file_states[path][1]:
                changes.append(FileChange(path=path, change_type="modified"))

        for path in self._file_states:
            if path not in current_files:
                changes.append(FileChange(path=path, change_type="deleted"))

        self._file_states = current_files
        return changes

    async def watch_loop(
        self,
        poll_interval: float = 0.5,
        debounce_seconds: float = 1.0,
    ) -> None:
        """Publish one BUILD_COMPLETED event per settled batch of changes.

        Args:
            poll_interval: Seconds between directory scans.
            debounce_seconds: Quiet time required before a batch counts as a build.
        """
        self.initialize()
        pending_changes: list[FileChange] = []
        last_change_time: datetime | None = None

        while True:
            changes = self.detect_changes()

            if changes:
                pending_changes.extend(changes)
                last_change_time = utc_now()

            if (
                pending_changes
                and last_change_time
                and (utc_now() - last_change_time).total_seconds() > debounce_seconds
            ):
                logger.info(f"Build completed ({len(pending_changes)} files changed)")
                await self.event_bus.emit(
                    EventType.BUILD_COMPLETED,
                    {"files": sorted({str(c.path) for c in pending_changes})},
                )
                pending_changes = []
                last_change_time = None

            await asyncio.sleep(poll_interval)
