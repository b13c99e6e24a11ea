# report.py
'''
Diagnostics produced while checking the signatures of a VEO.

A DiagnosticLog belongs to exactly one verification run. Every record is
mirrored to the logger so the log file keeps the same trail as the caller.
'''

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    location: Optional[str]
    message: str

    def __str__(self) -> str:
        if self.location:
            return f"{self.severity.value.capitalize()}: {self.location}: {self.message}"
        return f"{self.severity.value.capitalize()}: {self.message}"

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "severity": self.severity.value,
            "location": self.location,
            "message": self.message,
        }


class DiagnosticLog:
    """Collects the diagnostics of one verification run."""

    def __init__(self, veo_name: str = ""):
        self.veo_name = veo_name
        self.records: List[Diagnostic] = []

    def _add(self, severity: Severity, level: int, message: str,
             location: Optional[str], exc: Optional[BaseException]) -> Diagnostic:
        if exc is not None:
            message = f"{message}: {str(exc) or type(exc).__name__}"
        diagnostic = Diagnostic(severity, location, message)
        self.records.append(diagnostic)
        logger.log(level, f"[{self.veo_name}] {diagnostic}")
        return diagnostic

    def error(self, message: str, location: Optional[str] = None,
              exc: Optional[BaseException] = None) -> Diagnostic:
        return self._add(Severity.ERROR, logging.ERROR, message, location, exc)

    def warning(self, message: str, location: Optional[str] = None,
                exc: Optional[BaseException] = None) -> Diagnostic:
        return self._add(Severity.WARNING, logging.WARNING, message, location, exc)

    def info(self, message: str, location: Optional[str] = None,
             exc: Optional[BaseException] = None) -> Diagnostic:
        return self._add(Severity.INFO, logging.INFO, message, location, exc)

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.records)

    def errors(self) -> List[Diagnostic]:
        return [d for d in self.records if d.severity is Severity.ERROR]


class ResultSummary:
    """
    Results of several verification runs, used by the command line front end
    to print a closing summary of which VEOs failed and why.
    """

    def __init__(self):
        self.results: Dict[str, bool] = {}
        self._errors: Counter = Counter()

    def record(self, veo_name: str, passed: bool, diagnostics: List[Diagnostic]):
        self.results[veo_name] = passed
        for d in diagnostics:
            if d.severity is Severity.ERROR:
                self._errors[d.message] += 1

    @property
    def failed_files(self) -> List[str]:
        return [name for name, passed in self.results.items() if not passed]

    def error_counts(self) -> Dict[str, int]:
        return dict(self._errors)

    def report_lines(self) -> List[str]:
        lines = [f"Checked {len(self.results)} VEO(s), {len(self.failed_files)} failed signature checks."]
        for name in self.failed_files:
            lines.append(f"  FAILED: {name}")
        for message, count in self._errors.most_common():
            lines.append(f"  ({count}x) {message}")
        return lines
