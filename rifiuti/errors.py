"""
Error domains and exit statuses for the recycle bin decoders.

Fatal problems are raised as ``RifiutiError`` subclasses and carry the exit
status the driver should return. Per-record problems never raise; they are
recorded as ``RecordIssue`` values (see ``rifiuti.data.models``) tagged with a
``RecordErrorKind``. Miscellaneous problems from live system probing are
raised as ``MiscError`` and degraded by the caller.
"""

from enum import Enum, IntEnum


class ExitStatus(IntEnum):
    """Process exit statuses"""
    SUCCESS = 0
    ARG = 1
    OPEN_FILE = 2
    WRITE_FILE = 3
    BROKEN_FILE = 4
    USER_ENCODING = 5
    NO_LIVE = 6
    INTERNAL = 64


class RecordErrorKind(Enum):
    """Non-fatal problems attached to a single record or index file"""
    DRIVE_LETTER = "drive_letter"
    DUBIOUS_TIME = "dubious_time"
    DUBIOUS_PATH = "dubious_path"
    CONV_PATH = "conv_path"
    IDX_SIZE_INVALID = "idx_size_invalid"
    VER_UNSUPPORTED = "ver_unsupported"


class MiscErrorKind(Enum):
    """Problems while probing a live system"""
    GET_SID = "get_sid"
    ENUMERATE_MNT = "enumerate_mnt"


# Exception hierarchy for fatal run errors
class RifiutiError(Exception):
    """Base exception for fatal run errors"""
    exit_status = ExitStatus.INTERNAL


class ArgumentError(RifiutiError):
    """Nonsensical or conflicting arguments"""
    exit_status = ExitStatus.ARG


class OpenFileError(RifiutiError):
    """Input does not exist, is unreadable or of the wrong kind"""
    exit_status = ExitStatus.OPEN_FILE


class WriteFileError(RifiutiError):
    """Output could not be written or moved into place"""
    exit_status = ExitStatus.WRITE_FILE


class BrokenFileError(RifiutiError):
    """Input fails format validation"""
    exit_status = ExitStatus.BROKEN_FILE


class TruncatedDataError(BrokenFileError):
    """Field access beyond the end of the validated data"""
    pass


class InconsistentVersionError(BrokenFileError):
    """Index files in one folder declare different format versions"""
    pass


class LiveModeUnsupportedError(RifiutiError):
    """Live system inspection is not possible on this platform"""
    exit_status = ExitStatus.NO_LIVE


class MiscError(Exception):
    """Recoverable problem while probing a live system"""

    def __init__(self, kind: MiscErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
