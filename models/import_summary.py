"""Import options and the summary returned by preview and execute."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

STATUS_IMPORTED = "imported"
STATUS_DUPLICATE = "duplicate"
STATUS_ERRORED = "errored"


@dataclass
class ImportOptions:
    """Caller options shared by preview and execute.

    Attributes:
        skip_duplicates: Classify rows matching an existing trade as duplicates.
        default_commission: Commission used when a row has none.
        field_mapping: Canonical field name to candidate header names, replacing
            the defaults for the fields it names.
        create_missing_strategies: Create strategies named in the file that the
            owner does not have yet (execute only).
    """

    skip_duplicates: bool = True
    default_commission: Optional[Decimal] = None
    field_mapping: Optional[Dict[str, List[str]]] = None
    create_missing_strategies: bool = False


@dataclass(frozen=True)
class RowIssue:
    row_number: int
    raw_text: str
    reason: str
    severity: str = SEVERITY_ERROR


@dataclass(frozen=True)
class RowOutcome:
    row_number: int
    status: str
    symbol: Optional[str] = None


@dataclass(frozen=True)
class ImportSummary:
    """Counts and per-row diagnostics for one preview or execute call.

    Every row lands in exactly one of imported, duplicate or errored, so
    total == imported + duplicate + errored. skipped counts rows that were
    neither imported nor errored.
    """

    total: int
    imported: int
    duplicate: int
    errored: int
    issues: Tuple[RowIssue, ...] = ()
    rows: Tuple[RowOutcome, ...] = ()
    dry_run: bool = True
    data_import_id: Optional[int] = None

    @property
    def skipped(self) -> int:
        return self.total - self.imported - self.errored

    @property
    def errors(self) -> List[RowIssue]:
        return [i for i in self.issues if i.severity == SEVERITY_ERROR]

    @property
    def warnings(self) -> List[RowIssue]:
        return [i for i in self.issues if i.severity == SEVERITY_WARNING]

    def counts(self) -> dict:
        return {
            "total": self.total,
            "imported": self.imported,
            "skipped": self.skipped,
            "duplicate": self.duplicate,
            "errored": self.errored,
        }


@dataclass
class SummaryBuilder:
    """Mutable accumulator the import engine fills before freezing a summary."""

    dry_run: bool = True
    issues: List[RowIssue] = field(default_factory=list)
    rows: Dict[int, RowOutcome] = field(default_factory=dict)

    def record(self, row_number: int, status: str, symbol: Optional[str] = None) -> None:
        self.rows[row_number] = RowOutcome(row_number, status, symbol)

    def error(self, row_number: int, raw_text: str, reason: str) -> None:
        self.issues.append(RowIssue(row_number, raw_text, reason, SEVERITY_ERROR))

    def warn(self, row_number: int, raw_text: str, reason: str) -> None:
        self.issues.append(RowIssue(row_number, raw_text, reason, SEVERITY_WARNING))

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.rows.values() if outcome.status == status)

    def build(self, data_import_id: Optional[int] = None) -> ImportSummary:
        ordered_rows = tuple(self.rows[n] for n in sorted(self.rows))
        ordered_issues = tuple(sorted(self.issues, key=lambda i: i.row_number))
        return ImportSummary(
            total=len(ordered_rows),
            imported=self.count(STATUS_IMPORTED),
            duplicate=self.count(STATUS_DUPLICATE),
            errored=self.count(STATUS_ERRORED),
            issues=ordered_issues,
            rows=ordered_rows,
            dry_run=self.dry_run,
            data_import_id=data_import_id,
        )
