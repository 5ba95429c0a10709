"""Validation report: flagged issues with location and severity."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Tuple

Point = Tuple[float, float]


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class IssueCode(str, Enum):
    METADATA_INCOMPLETE = "MetadataIncomplete"
    AMBIGUOUS_REGION = "AmbiguousRegion"
    IMPOSSIBLE_GEOMETRY = "ImpossibleGeometry"
    PROCESSING_TIMEOUT = "ProcessingTimeout"


@dataclass(frozen=True)
class Issue:
    code: IssueCode
    severity: Severity
    message: str
    stage: str | None = None
    entity_ids: Tuple[str, ...] = ()
    coordinates: Tuple[Point, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "stage": self.stage,
            "entityIds": list(self.entity_ids),
            "coordinates": [[float(x), float(y)] for x, y in self.coordinates],
        }


@dataclass(frozen=True)
class ValidationReport:
    issues: Tuple[Issue, ...] = field(default_factory=tuple)

    @classmethod
    def from_issues(cls, issues: Iterable[Issue]) -> "ValidationReport":
        return cls(issues=tuple(issues))

    def __bool__(self) -> bool:
        return bool(self.issues)

    def __len__(self) -> int:
        return len(self.issues)

    @property
    def max_severity(self) -> Severity | None:
        if not self.issues:
            return None
        return max((issue.severity for issue in self.issues), key=lambda s: s.rank)

    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)

    def by_code(self, code: IssueCode) -> list[Issue]:
        return [issue for issue in self.issues if issue.code is code]

    def for_entity(self, entity_id: str) -> list[Issue]:
        return [issue for issue in self.issues if entity_id in issue.entity_ids]

    def to_dict(self) -> dict[str, Any]:
        counts: dict[str, int] = {}
        for issue in self.issues:
            counts[issue.code.value] = counts.get(issue.code.value, 0) + 1
        return {
            "summary": {
                "total_issues": len(self.issues),
                "by_code": dict(sorted(counts.items())),
                "max_severity": self.max_severity.value if self.max_severity else None,
            },
            "issues": [issue.to_dict() for issue in self.issues],
        }
