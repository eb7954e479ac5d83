"""Diagnostics sinks for fingerprint breakdowns and error reporting."""

from __future__ import annotations

import logging
import re
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from stepcache.core.fingerprint.engine import Fingerprint

_diag_logger = logging.getLogger("stepcache.diagnostics")

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_.-]+")


class NullDiagnostics:
    """Discards every message."""

    def message(self, level: int, text: str) -> None:
        return None


class LoggingDiagnostics:
    """Forwards messages up to ``verbosity`` to the ``stepcache.diagnostics`` logger."""

    def __init__(self, verbosity: int = 1, logger: logging.Logger | None = None) -> None:
        self.verbosity = verbosity
        self.logger = logger or _diag_logger

    def message(self, level: int, text: str) -> None:
        if level <= self.verbosity:
            self.logger.info(text)


class DiagnosticsWriter:
    """Writes diagnostic information for cache investigation.

    Creates a diagnostics directory with:
    - error-summary.txt: Human-readable error description
    - stack-trace.txt: Full Python stack trace
    - fingerprint-<name>.yaml: Component breakdown of a fingerprint
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def _ensure_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def write_error(
        self,
        error_type: str,
        message: str,
        context: dict[str, Any],
    ) -> Path:
        """Write human-readable error summary.

        Args:
            error_type: Type/class of error
            message: Error message
            context: Additional context (file paths, etc.)

        Returns:
            Path to written file
        """
        self._ensure_dir()

        timestamp = datetime.now(UTC).isoformat()

        lines = [
            "=" * 60,
            "STEPCACHE ERROR",
            "=" * 60,
            "",
            f"Timestamp: {timestamp}",
            f"Error Type: {error_type}",
            "",
            "Message:",
            f"  {message}",
            "",
        ]

        if context:
            lines.append("Context:")
            for key, value in context.items():
                lines.append(f"  {key}: {value}")
            lines.append("")

        output_path = self.output_dir / "error-summary.txt"
        output_path.write_text("\n".join(lines), encoding="utf-8")
        return output_path

    def write_stack_trace(self) -> Path:
        """Write current exception stack trace.

        Call this from within an except block.
        """
        self._ensure_dir()

        exc_info = sys.exc_info()
        if exc_info[0] is None:
            trace_text = "No exception currently being handled."
        else:
            trace_text = "".join(traceback.format_exception(*exc_info))

        output_path = self.output_dir / "stack-trace.txt"
        output_path.write_text(trace_text, encoding="utf-8")
        return output_path

    def write_breakdown(self, name: str, fingerprint: Fingerprint) -> Path:
        """Write the component breakdown of ``fingerprint`` as YAML."""
        self._ensure_dir()

        document = {
            "step": name,
            "fingerprint": fingerprint.value,
            "components": [
                {"category": c.category, "name": c.name, "hash": c.value}
                for c in fingerprint.components
            ],
            "omitted": list(fingerprint.omitted),
        }
        safe_name = _UNSAFE_FILENAME.sub("_", name)
        output_path = self.output_dir / f"fingerprint-{safe_name}.yaml"
        output_path.write_text(
            yaml.safe_dump(document, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
        return output_path


__all__ = ["DiagnosticsWriter", "LoggingDiagnostics", "NullDiagnostics"]
