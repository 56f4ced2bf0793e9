"""
Rifiuti - $Recycle.bin Index File Parser
========================================

Decoder for the per-file index records (``$Ixxxxxx.xxx``) kept in
``X:\\$Recycle.Bin\\<SID>`` folders since Windows Vista. Each trashed item
has a small ``$I`` index file paired with a ``$R`` file holding the payload;
only the index file is decoded.

Index file layout::

    0x00  u64        version (1 = Vista - 8.1, 2 = Windows 10 and later)
    0x08  u64        original file size
    0x10  u64        deletion FILETIME
    0x18  520 bytes  UTF-16LE path, null padded           (version 1)
    0x18  u32        path length in UTF-16 code units     (version 2)
    0x1C  variable   UTF-16LE path, null terminated       (version 2)

Version 1 files are always 544 bytes, except for a rare 543 byte variant
where the size field only occupies 7 bytes and every later field starts one
byte earlier. Version 2 files are exactly ``28 + 2 * path length`` bytes.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..config.data_models import BinType, RunConfig
from ..data.models import (
    BROKEN_SIZE, BinMetadata, BinVersion, DecodeResult, OsGuess, RecordIssue,
    RecycleRecord
)
from ..errors import (
    BrokenFileError, InconsistentVersionError, OpenFileError, RecordErrorKind
)
from ..utils.byte_reader import FieldReader
from ..utils.path_conversion import UTF16_ENCODING, WIN_PATH_MAX, convert_path
from ..utils.timestamps import epoch_to_datetime, filetime_to_epoch
from .bin_discovery import discover, list_index_files
from .live_bins import enumerate_drive_bins

logger = logging.getLogger(__name__)

VERSION_OFFSET = 0x0
FILESIZE_OFFSET = 0x8
FILETIME_OFFSET = 0x10
VERSION1_FILENAME_OFFSET = 0x18
VERSION2_NAMELENGTH_OFFSET = 0x18
VERSION2_FILENAME_OFFSET = 0x1C

FORMAT_VISTA = 1
FORMAT_WIN10 = 2

VERSION1_FILE_SIZE = VERSION1_FILENAME_OFFSET + WIN_PATH_MAX * 2

# Source path shown in reports of live system inspection
LIVE_SOURCE_LABEL = "(current system)"

OS_GUESS_BY_VERSION = {
    FORMAT_VISTA: OsGuess.VISTA,
    FORMAT_WIN10: OsGuess.WIN10,
}


class IndexFileError(BrokenFileError):
    """A single index file fails validation; other files may still decode."""

    def __init__(self, kind: RecordErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def reconcile_versions(records: Iterable[RecycleRecord]) -> BinVersion:
    """
    Derive the folder version from the versions of its index files.

    Returns:
        NOT_FOUND when there is no record, INCONSISTENT when files
        disagree, otherwise the single shared version
    """
    versions = {record.version for record in records}
    if not versions:
        return BinVersion.not_found()
    if len(versions) > 1:
        logger.debug(f"Versions found: {sorted(versions)}")
        return BinVersion.inconsistent()
    return BinVersion.known(versions.pop())


def sort_records(records: List[RecycleRecord]) -> None:
    """Order records by deletion time, then index file name."""
    records.sort(key=lambda r: (r.deletion_epoch, r.index_key))


class RecycleBinParser:
    """Parser for $Recycle.bin folders and individual $I index files.

    Example:
        >>> parser = RecycleBinParser(config)
        >>> result = parser.parse_recycle_bin_directory("C:/$Recycle.Bin/S-1-5-21-...")
        >>> for record in result.records:
        ...     print(record.index_key, record.path)
    """

    def __init__(self, config: RunConfig):
        self.config = config

    def validate_index_file(self, data: bytes, name: str) -> int:
        """
        Check version and size of an index file.

        Returns:
            Declared format version

        Raises:
            IndexFileError: Unknown version or unexpected file size
        """
        size = len(data)
        if size <= VERSION1_FILENAME_OFFSET:
            raise IndexFileError(
                RecordErrorKind.IDX_SIZE_INVALID,
                f"File '{name}' is truncated, or probably not a $Recycle.bin index file.")

        reader = FieldReader(data)
        version = reader.u64(VERSION_OFFSET)
        logger.debug(f"version={version}")

        if version == FORMAT_VISTA:
            expected = VERSION1_FILE_SIZE
            # See parse_index_bytes() for the 543 byte variant
            if size in (expected, expected - 1):
                return version
        elif version == FORMAT_WIN10:
            if size < VERSION2_FILENAME_OFFSET:
                raise IndexFileError(
                    RecordErrorKind.IDX_SIZE_INVALID,
                    f"File '{name}' is truncated, or probably not a $Recycle.bin index file.")
            namelength = reader.u32(VERSION2_NAMELENGTH_OFFSET)
            # Fixed header length + file name length in UTF-16 encoding
            expected = VERSION2_FILENAME_OFFSET + namelength * 2
            if size == expected:
                return version
        else:
            raise IndexFileError(
                RecordErrorKind.VER_UNSUPPORTED,
                f"File '{name}' is not supported, or it is probably not a "
                f"$Recycle.bin index file.")

        logger.debug(f"File size = {size}, expected {expected}")
        raise IndexFileError(
            RecordErrorKind.IDX_SIZE_INVALID,
            f"Index file '{name}' expected size and real size do not match.")

    def parse_index_bytes(self, data: bytes, name: str) -> RecycleRecord:
        """
        Decode the content of one index file.

        Args:
            data: Complete file content
            name: Basename of the index file, used as record key

        Returns:
            Decoded record without run metadata attached
        """
        version = self.validate_index_file(data, name)
        reader = FieldReader(data)

        # In rare cases a version 1 index file is 543 bytes. The size field
        # then only occupies 7 bytes and is very likely wrong anyway.
        erroneous = version == FORMAT_VISTA and len(data) == VERSION1_FILE_SIZE - 1
        shift = 1 if erroneous else 0

        if erroneous:
            logger.debug(f"'{name}' is a 543 byte index file, size is unreliable")
            size = BROKEN_SIZE
        else:
            size = reader.u64(FILESIZE_OFFSET)
        logger.debug(f"filesize={size}")

        filetime = reader.u64(FILETIME_OFFSET - shift)

        record = RecycleRecord(
            index_key=name,
            deletion_epoch=filetime_to_epoch(filetime),
            size=size,
            version=version,
        )

        if epoch_to_datetime(record.deletion_epoch) is None:
            message = f"({name}) Deletion time 0x{filetime:016X} is out of range."
            logger.warning(message)
            record.add_issue(RecordErrorKind.DUBIOUS_TIME, message)

        if version == FORMAT_VISTA:
            offset = VERSION1_FILENAME_OFFSET - shift
            namelength = WIN_PATH_MAX
        else:
            offset = VERSION2_FILENAME_OFFSET
            namelength = reader.u32(VERSION2_NAMELENGTH_OFFSET)
        logger.debug(f"namelength={namelength}")

        raw = reader.bytes_at(offset, len(reader) - offset)
        converted = convert_path(raw, UTF16_ENCODING, self.config.output_format, namelength)
        if converted.had_errors:
            message = (f"({name}) Error converting file name from UTF-16 encoding "
                       f"to UTF-8 encoding. {converted.describe_errors()}")
            logger.warning(message)
            record.add_issue(RecordErrorKind.CONV_PATH, message, "unicode")
        if not converted.text:
            message = f"({name}) File name is empty."
            logger.warning(message)
            record.add_issue(RecordErrorKind.DUBIOUS_PATH, message)
        record.unicode_path = converted.text

        return record

    def parse_i_file(self, i_file_path: Union[str, Path]) -> RecycleRecord:
        """
        Read and decode a single $I index file.

        Raises:
            OpenFileError: File can't be read
            IndexFileError: File fails validation
        """
        i_file_path = Path(i_file_path)
        try:
            data = i_file_path.read_bytes()
        except OSError as e:
            raise OpenFileError(
                f"Error opening file '{i_file_path.name}' for reading: "
                f"{e.strerror or e}") from e

        logger.debug(f"Start populating record for '{i_file_path.name}'...")
        record = self.parse_index_bytes(data, i_file_path.name)
        logger.debug(f"Parsing done for '{i_file_path.name}'")
        return record

    def parse_index_files(self, index_files: List[Path], source_path: str,
                          meta: Optional[BinMetadata] = None) -> DecodeResult:
        """
        Decode index files and reconcile their versions.

        Files failing validation are skipped and reported as file issues.

        Args:
            index_files: Files found by discovery
            source_path: Path reported in output
            meta: Existing metadata to fill in, created when omitted

        Raises:
            BrokenFileError: Index files exist but none could be decoded
            InconsistentVersionError: Index files disagree on format version
        """
        if meta is None:
            meta = BinMetadata(bin_type=BinType.DIRECTORY, source_path=source_path,
                               has_unicode_path=True)
        result = DecodeResult(meta=meta)

        for i_file_path in index_files:
            try:
                record = self.parse_i_file(i_file_path)
            except IndexFileError as e:
                logger.warning(f"{e} Skipped.")
                result.file_issues.append(RecordIssue(e.kind, str(e), str(i_file_path)))
                continue
            except OpenFileError as e:
                logger.warning(f"{e} Skipped.")
                result.file_issues.append(
                    RecordIssue(RecordErrorKind.IDX_SIZE_INVALID, str(e), str(i_file_path)))
                continue
            record.meta = meta
            result.records.append(record)

        if index_files and not result.records:
            raise BrokenFileError("No valid recycle bin index file found.")

        self.finalize(result)
        return result

    def finalize(self, result: DecodeResult) -> None:
        """Reconcile versions, guess OS and sort records of a finished run."""
        meta = result.meta
        meta.version = reconcile_versions(result.records)
        if not meta.version.is_known and result.records:
            raise InconsistentVersionError(
                "Index files come from multiple versions of Windows. "
                "Please check each file independently.")

        meta.is_empty = not result.records
        if meta.version.is_known:
            meta.os_guess = OS_GUESS_BY_VERSION.get(meta.version.number, OsGuess.UNKNOWN)

        sort_records(result.records)
        logger.info(f"Parsed {len(result.records)} record(s) from '{meta.source_path}'")

    def parse_recycle_bin_directory(self, recycle_bin_path: Union[str, Path]) -> DecodeResult:
        """
        Decode a $Recycle.bin folder, or a single index file.

        Raises:
            OpenFileError: Path is not a recycle bin folder or index file
            BrokenFileError: See ``parse_index_files``
        """
        index_files = discover(recycle_bin_path, BinType.DIRECTORY)
        return self.parse_index_files(index_files, str(recycle_bin_path))

    def parse_live_system(self) -> DecodeResult:
        """
        Decode the current user's recycle bin on every drive of this system.

        Raises:
            LiveModeUnsupportedError: Live inspection is not possible here
        """
        index_files = []
        for bin_path in enumerate_drive_bins():
            logger.info(f"Inspecting '{bin_path}'")
            index_files.extend(list_index_files(bin_path))
        return self.parse_index_files(index_files, LIVE_SOURCE_LABEL)


def parse_recycle_bin(path: Union[str, Path], config: RunConfig) -> DecodeResult:
    """Parse a $Recycle.bin folder or index file with the given run configuration."""
    return RecycleBinParser(config).parse_recycle_bin_directory(path)
