"""Build errors for Folio.

Every failure the user can fix by editing a file is reported as a
``BuildError`` carrying the offending source path. Checks that run over the
whole site collect their findings into a single ``ValidationError`` so one
build reports every broken link and missing image at once.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class ValidationError(Exception):
    """One or more problems found while checking the built site.

    Attributes:
        issues: The individual problems, each tied to a source file.
    """

    def __init__(self, issues: Iterable[BuildError]):
        self.issues = list(issues)
        noun = "issue" if len(self.issues) == 1 else "issues"
        super().__init__(f"Site validation failed with {len(self.issues)} {noun}")
