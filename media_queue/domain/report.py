"""
Data structures for summarizing the outcome of a batch.

A batch of N files can fail in N different ways. Showing one error per file is
unusable, so failures are sorted into a fixed set of categories, counted, and
reduced to a single message by `BatchReport.summary()`.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..config.common import REPORT_MESSAGES


class FailureCategory(Enum):
    ACCESS_DENIED = "access_denied"
    PATH_NOT_FOUND = "path_not_found"
    INSUFFICIENT_SPACE = "insufficient_space"
    OTHER = "other"


# Message id shown when every failure of a batch falls into one category.
CATEGORY_MESSAGE_KEYS = {
    FailureCategory.ACCESS_DENIED: "conversionFilesNoWriteAccess",
    FailureCategory.PATH_NOT_FOUND: "conversionFilesPathNotFound",
    FailureCategory.INSUFFICIENT_SPACE: "notEnoughSpace",
    FailureCategory.OTHER: "conversionFilesFailed",
}
COMBINED_MESSAGE_KEY = "conversionFilesCantBeSaved"


@dataclass(frozen=True)
class ClassifiedFailure:
    """The cause of a job's failure, reduced to a report category."""

    category: FailureCategory
    error_type: str
    message: str

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.error_type}: {self.message}"


@dataclass(frozen=True)
class ReportMessage:
    """A presentation-ready message. `key` identifies it for localization layers."""

    key: str
    title: str
    text: str
    count: int

    @classmethod
    def build(cls, key: str, count: int) -> "ReportMessage":
        template = REPORT_MESSAGES[key]
        return cls(
            key=key,
            title=template["title"],
            text=template["text"].replace("{0}", str(count)),
            count=count,
        )


@dataclass
class BatchReport:
    """
    The finalized outcome of a batch.

    Attributes:
        batch_id: Id of the batch this report belongs to.
        failures: Number of failed jobs per category. Only categories that
                  occurred are present.
        succeeded_paths: Output files of every completed job.
        canceled_count: Jobs that were canceled. Not counted as failures.
        failed_jobs: Job id -> classified failure, for detailed logs.
        advisories: Non-fatal notices, e.g. a hardware encoder fallback.
    """

    batch_id: str
    failures: Dict[FailureCategory, int] = field(default_factory=dict)
    succeeded_paths: List[Path] = field(default_factory=list)
    canceled_count: int = 0
    failed_jobs: Dict[str, ClassifiedFailure] = field(default_factory=dict)
    advisories: List[str] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())

    @property
    def has_failures(self) -> bool:
        return self.failure_count > 0

    def summary(self) -> Optional[ReportMessage]:
        """
        Selects the single message to present for this batch.

        If failures span more than one category, one combined message cites the
        total number of failures. Otherwise the category-specific message with
        that category's count is used. Returns None if nothing failed.
        """
        occurred = {category: count for category, count in self.failures.items() if count > 0}
        if not occurred:
            return None
        if len(occurred) > 1:
            return ReportMessage.build(COMBINED_MESSAGE_KEY, sum(occurred.values()))
        category, count = next(iter(occurred.items()))
        return ReportMessage.build(CATEGORY_MESSAGE_KEYS[category], count)

    def to_dict(self) -> Dict:
        """Plain-data form used by the YAML batch log."""
        summary = self.summary()
        return {
            "batch_id": self.batch_id,
            "succeeded": [str(p) for p in self.succeeded_paths],
            "failures": {category.value: count for category, count in self.failures.items()},
            "failed_jobs": {job_id: str(failure) for job_id, failure in self.failed_jobs.items()},
            "canceled": self.canceled_count,
            "advisories": list(self.advisories),
            "summary": summary.text if summary else None,
        }
