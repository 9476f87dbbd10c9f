"""Logging setup and session transcripts."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Route graphfill's loggers to a rich console handler.

    Args:
        verbose: Show debug messages
        console: Console to write to (defaults to stderr)
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    package_logger = logging.getLogger("graphfill")
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False


class SessionLogger:
    """Writes a transcript of completion attempts for a session."""

    def __init__(self, project_root: Path, run_id: Optional[str] = None):
        """Initialize session logger.

        Args:
            project_root: Project root directory
            run_id: Optional run ID (generated if not provided)
        """
        self.project_root = project_root
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")

        self.log_dir = project_root / ".graphfill" / "runs" / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.transcript_path = self.log_dir / "transcript.ndjson"

    def _append(self, entry: dict[str, Any]) -> None:
        entry = {"ts": datetime.now().isoformat(), **entry}
        with open(self.transcript_path, "a") as f:
            f.write(json.dumps(entry) + "\n")

    def log_retrieval(self, document_uri: str, identifiers: list[str], snippet_count: int, duration_ms: float) -> None:
        """Record a context lookup.

        Args:
            document_uri: Document the lookup was made for
            identifiers: Identifiers sent to the engine
            snippet_count: Snippets returned
            duration_ms: Time taken
        """
        self._append({
            "event": "retrieval",
            "uri": document_uri,
            "identifiers": identifiers,
            "snippets": snippet_count,
            "duration_ms": round(duration_ms, 1),
        })

    def log_completion(
        self,
        document_uri: str,
        prompt_chars: int,
        packed_snippets: int,
        completions: list[dict[str, Any]],
    ) -> None:
        """Record a finished completion attempt.

        Args:
            document_uri: Document being completed
            prompt_chars: Length of the rendered prompt
            packed_snippets: Snippets that fit in the prompt
            completions: Final result of each branch
        """
        self._append({
            "event": "completion",
            "uri": document_uri,
            "prompt_chars": prompt_chars,
            "packed_snippets": packed_snippets,
            "completions": completions,
        })

    def get_log_path(self) -> str:
        """Get the path to the log directory.

        Returns:
            Absolute path to log directory
        """
        return str(self.log_dir.absolute())
