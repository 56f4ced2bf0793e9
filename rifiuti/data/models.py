"""Data models for decoded recycle bin artifacts."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from ..config.data_models import BinType
from ..errors import ExitStatus, RecordErrorKind
from ..utils.timestamps import epoch_to_datetime

# Marks a size field known to be corrupted
BROKEN_SIZE = 0xFFFFFFFFFFFFFFFF


class OsGuess(Enum):
    """Windows releases that can be told apart from recycle bin artifacts."""
    UNKNOWN = "Unknown"
    WIN95 = "Windows 95"
    NT4 = "Windows NT 4.0"
    WIN98 = "Windows 98"
    ME = "Windows ME"
    WIN2K = "Windows 2000"
    XP_03 = "Windows XP or 2003"
    WIN2K_03 = "Windows 2000, XP or 2003"
    VISTA = "Windows Vista - 8.1"
    WIN10 = "Windows 10 or above"


class VersionKind(Enum):
    """Whether a bin version is a real number or a sentinel."""
    KNOWN = "known"
    NOT_FOUND = "not_found"
    INCONSISTENT = "inconsistent"


@dataclass(frozen=True)
class BinVersion:
    """Format version of a recycle bin, or a sentinel explaining its absence."""
    kind: VersionKind
    number: Optional[int] = None

    @classmethod
    def known(cls, number: int) -> 'BinVersion':
        return cls(VersionKind.KNOWN, number)

    @classmethod
    def not_found(cls) -> 'BinVersion':
        return cls(VersionKind.NOT_FOUND)

    @classmethod
    def inconsistent(cls) -> 'BinVersion':
        return cls(VersionKind.INCONSISTENT)

    @property
    def is_known(self) -> bool:
        return self.kind is VersionKind.KNOWN

    def __str__(self) -> str:
        if self.kind is VersionKind.KNOWN:
            return str(self.number)
        if self.kind is VersionKind.NOT_FOUND:
            return "??? (empty folder)"
        return "??? (inconsistent)"


@dataclass
class RecordIssue:
    """A non-fatal problem found while decoding a record or index file."""
    kind: RecordErrorKind
    message: str
    source: Optional[str] = None
    # "legacy" or "unicode" for path conversion problems
    path_kind: Optional[str] = None


@dataclass
class BinMetadata:
    """Run-level facts about the recycle bin being decoded.

    Attributes:
        bin_type: INFO2 file or $Recycle.bin folder
        source_path: Path supplied by the user
        version: Format version, or NOT_FOUND / INCONSISTENT sentinel
        record_size: INFO2 record size (280 or 800), None for folders
        os_guess: Windows release most likely to have produced the artifact
        has_unicode_path: Records carry a UTF-16 path
        keep_deleted_entry: Format tells whether the trashed file is gone
        fill_junk: Padding after unicode path holds uninitialised memory
        is_empty: Valid bin without any record
    """
    bin_type: BinType
    source_path: str
    version: BinVersion = field(default_factory=BinVersion.not_found)
    record_size: Optional[int] = None
    os_guess: OsGuess = OsGuess.UNKNOWN
    has_unicode_path: bool = False
    keep_deleted_entry: bool = False
    fill_junk: bool = False
    is_empty: bool = True


@dataclass
class RecycleRecord:
    """One deleted item, normalised across INFO2 and $I formats.

    Attributes:
        index_key: Chronological number (INFO2) or $I file basename
        deletion_epoch: Deletion time as Unix epoch seconds (UTC)
        size: Original file size, ``BROKEN_SIZE`` when the field is corrupt
        unicode_path: Path decoded from UTF-16, already escaped for output
        legacy_path: Path decoded from the legacy code page (INFO2 only)
        version: Format version declared by the $I file (folders only)
        drive_letter: Drive of the original file (INFO2 only)
        purged: Trashed payload no longer in the bin (INFO2 only)
        meta: Back reference to run-level metadata, not owned
        issues: Non-fatal problems found while decoding
    """
    index_key: Union[int, str]
    deletion_epoch: int
    size: int
    unicode_path: str = ""
    legacy_path: Optional[str] = None
    version: Optional[int] = None
    drive_letter: Optional[str] = None
    purged: bool = False
    meta: Optional[BinMetadata] = field(default=None, repr=False, compare=False)
    issues: List[RecordIssue] = field(default_factory=list)

    @property
    def deletion_time(self) -> Optional[datetime]:
        """Deletion time in UTC, None when not representable."""
        return epoch_to_datetime(self.deletion_epoch)

    @property
    def size_is_broken(self) -> bool:
        return self.size == BROKEN_SIZE

    @property
    def path(self) -> str:
        """Path shown in reports: unicode path when the format has one."""
        if self.meta is not None and not self.meta.has_unicode_path:
            return self.legacy_path or ""
        return self.unicode_path

    def add_issue(self, kind: RecordErrorKind, message: str,
                  path_kind: Optional[str] = None) -> None:
        self.issues.append(RecordIssue(kind, message, str(self.index_key), path_kind))


@dataclass
class DecodeResult:
    """Records decoded from one run, with problems not tied to a record.

    Attributes:
        meta: Run-level metadata, referenced by every record
        records: Decoded records in output order
        file_issues: Problems with whole files (truncation, failed validation)
    """
    meta: BinMetadata
    records: List[RecycleRecord] = field(default_factory=list)
    file_issues: List[RecordIssue] = field(default_factory=list)

    @property
    def record_issues(self) -> List[RecordIssue]:
        return [issue for record in self.records for issue in record.issues]

    @property
    def exit_status(self) -> ExitStatus:
        """Exit status implied by the non-fatal problems found."""
        if self.file_issues:
            return ExitStatus.BROKEN_FILE
        if self.record_issues:
            return ExitStatus.USER_ENCODING
        return ExitStatus.SUCCESS

    def has_issue(self, kind: RecordErrorKind, path_kind: Optional[str] = None) -> bool:
        return any(issue.kind is kind and (path_kind is None or issue.path_kind == path_kind)
                   for issue in self.record_issues)
