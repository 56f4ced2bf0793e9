"""
Rifiuti - INFO2 Recycle Bin Parser
==================================

Decoder for the single-file recycle bin index used from Windows 95 up to
Windows XP / Server 2003 (``C:\\RECYCLER\\<SID>\\INFO2`` or
``C:\\RECYCLED\\INFO2``).

Layout
------
A 20 byte header followed by fixed size records::

    0x00  u32  version (0 = 95, 2 = NT4, 4 = 98, 5 = ME/2000/XP/2003)
    0x04  u32  kept entry count
    0x08  u32  total entry count (meaningful on 95 / NT4 only)
    0x0C  u32  record size (280 or 800)
    0x10  u32  total size of trashed files

Each record::

    0x000  260 bytes  legacy path in ANSI code page, null terminated
    0x104  u32        index number, chronological
    0x108  u32        drive number (0 = A ... 25 = Z, 26 = '\\')
    0x10C  u64        deletion FILETIME
    0x114  u32        file size
    0x118  520 bytes  UTF-16LE path (800 byte records only)

Record size, not version, tells whether unicode paths are present.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from ..config.data_models import BinType, RunConfig
from ..data.models import (
    BinMetadata, BinVersion, DecodeResult, OsGuess, RecordIssue, RecycleRecord
)
from ..errors import (
    ArgumentError, BrokenFileError, OpenFileError, RecordErrorKind
)
from ..utils.byte_reader import FieldReader
from ..utils.path_conversion import UTF16_ENCODING, WIN_PATH_MAX, convert_path
from ..utils.timestamps import epoch_to_datetime, filetime_to_epoch

logger = logging.getLogger(__name__)

# Header
VERSION_OFFSET = 0x0
KEPT_ENTRY_OFFSET = 0x4
TOTAL_ENTRY_OFFSET = 0x8
RECORD_SIZE_OFFSET = 0xC
FILESIZE_SUM_OFFSET = 0x10
RECORD_START_OFFSET = 0x14

# Record
LEGACY_PATH_OFFSET = 0x0
RECORD_INDEX_OFFSET = 0x104
DRIVE_LETTER_OFFSET = 0x108
FILETIME_OFFSET = 0x10C
FILESIZE_OFFSET = 0x114
UNICODE_PATH_OFFSET = 0x118

LEGACY_RECORD_SIZE = 280
UNICODE_RECORD_SIZE = 800

VERSION_WIN95 = 0
VERSION_NT4 = 2
VERSION_WIN98 = 4
VERSION_ME_03 = 5

# 0-25 => A-Z, 26 => '\', 27 or above is erroneous
DRIVE_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ\\?"

LEGACY_ENCODING_GUIDANCE = (
    "This INFO2 file was produced on a legacy system without Unicode file "
    "name (Windows ME or earlier). Please specify codepage of concerned "
    "system with '-l' or '--legacy-filename' option.\n\n"
    "For example, if recycle bin is expected to come from West European "
    "versions of Windows, use '-l CP1252' option; or in case of Japanese "
    "Windows, use '-l CP932'."
)


def guess_os(version: int, record_size: int) -> OsGuess:
    """Initial OS guess from header fields, refined after scanning records."""
    if version == VERSION_WIN95:
        return OsGuess.WIN95
    if version == VERSION_NT4:
        return OsGuess.NT4
    if version == VERSION_WIN98:
        return OsGuess.WIN98
    if version == VERSION_ME_03:
        return OsGuess.ME if record_size == LEGACY_RECORD_SIZE else OsGuess.WIN2K_03
    return OsGuess.UNKNOWN


class Info2Parser:
    """Decoder for INFO2 recycle bin index files.

    Example:
        >>> parser = Info2Parser(config)
        >>> result = parser.parse_file("RECYCLER/S-1-5-21-.../INFO2")
        >>> print(f"{len(result.records)} records, {result.meta.os_guess.value}")
    """

    def __init__(self, config: RunConfig):
        self.config = config

    def validate_header(self, data: bytes) -> Tuple[int, int]:
        """
        Check INFO2 header for a supported version and record size.

        Args:
            data: File content, at least the header

        Returns:
            Tuple of (version, record size)

        Raises:
            BrokenFileError: Header is too short or combination unsupported
            ArgumentError: Legacy records but no code page was supplied
        """
        if len(data) < RECORD_START_OFFSET:
            raise BrokenFileError(
                f"File size less than minimum allowed ({RECORD_START_OFFSET} bytes)")

        header = FieldReader(data, 0, RECORD_START_OFFSET)
        version = header.u32(VERSION_OFFSET)
        record_size = header.u32(RECORD_SIZE_OFFSET)
        logger.debug(f"version={version}, record size={record_size}")

        # Only meaningful for 95 and NT4, junk memory on later versions
        if version in (VERSION_WIN95, VERSION_NT4):
            logger.debug(f"total entry={header.u32(TOTAL_ENTRY_OFFSET)}")

        # Version is not a reliable indicator, size is
        if record_size == LEGACY_RECORD_SIZE:
            # ME still uses 280 byte records
            if version not in (VERSION_WIN95, VERSION_WIN98, VERSION_ME_03):
                raise BrokenFileError(
                    "Unsupported file version, or probably not an INFO2 file at all.")
            if not self.config.legacy_encoding:
                raise ArgumentError(LEGACY_ENCODING_GUIDANCE)
        elif record_size == UNICODE_RECORD_SIZE:
            if version not in (VERSION_NT4, VERSION_ME_03):
                raise BrokenFileError(
                    "Unsupported file version, or probably not an INFO2 file at all.")
        else:
            raise BrokenFileError(
                f"Invalid record size {record_size}, probably not an INFO2 file at all.")

        return version, record_size

    def parse_file(self, path: Union[str, Path]) -> DecodeResult:
        """
        Read and decode an INFO2 file.

        Raises:
            OpenFileError: File can't be read
            BrokenFileError, ArgumentError: See ``validate_header``
        """
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise OpenFileError(
                f"Error opening file '{path}' for reading: {e.strerror or e}") from e
        return self.parse_bytes(data, str(path))

    def parse_bytes(self, data: bytes, source_path: str) -> DecodeResult:
        """
        Decode INFO2 content.

        Args:
            data: Complete file content
            source_path: Path reported in output

        Returns:
            DecodeResult with records in on-disk (chronological) order
        """
        version, record_size = self.validate_header(data)

        meta = BinMetadata(
            bin_type=BinType.INFO2,
            source_path=source_path,
            version=BinVersion.known(version),
            record_size=record_size,
            os_guess=guess_os(version, record_size),
            has_unicode_path=(record_size == UNICODE_RECORD_SIZE),
            # Keeping deleted entry is only available since 98
            keep_deleted_entry=(version >= VERSION_WIN98),
        )
        result = DecodeResult(meta=meta)

        logger.debug(f"Start populating record for '{source_path}'...")
        offset = RECORD_START_OFFSET
        while offset < len(data):
            remaining = len(data) - offset
            if remaining < record_size:
                message = f"Premature end of file, last record ({remaining} bytes) discarded"
                logger.warning(message)
                result.file_issues.append(
                    RecordIssue(RecordErrorKind.IDX_SIZE_INVALID, message, source_path))
                break

            record = self.populate_record(FieldReader(data, offset, record_size), meta)
            result.records.append(record)
            offset += record_size

        meta.is_empty = not result.records

        if not meta.is_empty and meta.os_guess is OsGuess.WIN2K_03:
            meta.os_guess = OsGuess.WIN2K if meta.fill_junk else OsGuess.XP_03

        logger.info(f"Parsed {len(result.records)} record(s) from '{source_path}'")
        return result

    def populate_record(self, reader: FieldReader, meta: BinMetadata) -> RecycleRecord:
        """Decode one fixed size record."""
        fmt = self.config.output_format

        index = reader.u32(RECORD_INDEX_OFFSET)
        drive_num = reader.u32(DRIVE_LETTER_OFFSET)
        filetime = reader.u64(FILETIME_OFFSET)
        # 32 bit on disk, widened to the common 64 bit size
        size = reader.u32(FILESIZE_OFFSET)
        logger.debug(f"index={index}, drive={drive_num}, filesize={size}")

        record = RecycleRecord(
            index_key=index,
            deletion_epoch=filetime_to_epoch(filetime),
            size=size,
            drive_letter=DRIVE_LETTERS[min(drive_num, len(DRIVE_LETTERS) - 1)],
            meta=meta,
        )

        if drive_num >= len(DRIVE_LETTERS) - 1:
            message = f"Invalid drive number (0x{drive_num:X}) for record {index}."
            logger.warning(message)
            record.add_issue(RecordErrorKind.DRIVE_LETTER, message)

        if epoch_to_datetime(record.deletion_epoch) is None:
            message = f"(Record {index}) Deletion time 0x{filetime:016X} is out of range."
            logger.warning(message)
            record.add_issue(RecordErrorKind.DUBIOUS_TIME, message)

        # First byte is removed from path if file is not in recycle bin
        legacy_raw = reader.bytes_at(LEGACY_PATH_OFFSET, RECORD_INDEX_OFFSET - LEGACY_PATH_OFFSET)
        if legacy_raw[0] == 0:
            record.purged = True
            legacy_raw = record.drive_letter.encode('ascii') + legacy_raw[1:]

        # Legacy path is only decoded when its code page is known
        if self.config.legacy_encoding:
            record.legacy_path = self._convert(
                record, legacy_raw, self.config.legacy_encoding, fmt, None, "legacy")

        if not meta.has_unicode_path:
            return record

        unicode_raw = reader.bytes_at(UNICODE_PATH_OFFSET, UNICODE_RECORD_SIZE - UNICODE_PATH_OFFSET)
        converted = convert_path(unicode_raw, UTF16_ENCODING, fmt, WIN_PATH_MAX)
        record.unicode_path = self._check_conversion(record, converted, "unicode")

        # Junk memory after the unicode path identifies 2000 vs XP/2003.
        # The legacy path padding is no good: it always contains partial
        # path remnants whenever the path has double-byte characters.
        if not meta.fill_junk:
            padding = unicode_raw[converted.consumed:]
            junk_at = next((i for i, b in enumerate(padding) if b), None)
            if junk_at is not None:
                logger.debug(f"Junk detected at offset 0x{converted.consumed + junk_at:x} "
                             f"of unicode path")
                meta.fill_junk = True

        return record

    def _convert(self, record: RecycleRecord, raw: bytes, encoding: Optional[str],
                 fmt, max_units: Optional[int], label: str) -> str:
        return self._check_conversion(record, convert_path(raw, encoding, fmt, max_units), label)

    def _check_conversion(self, record: RecycleRecord, converted, label: str) -> str:
        if converted.had_errors:
            message = (f"(Record {record.index_key}) Error converting {label} path "
                       f"to UTF-8. {converted.describe_errors()}")
            logger.warning(message)
            record.add_issue(RecordErrorKind.CONV_PATH, message, label)
        if not converted.text:
            message = f"(Record {record.index_key}) {label.capitalize()} path is empty."
            logger.warning(message)
            record.add_issue(RecordErrorKind.DUBIOUS_PATH, message)
        return converted.text


def parse_info2(path: Union[str, Path], config: RunConfig) -> DecodeResult:
    """Parse an INFO2 file with the given run configuration."""
    return Info2Parser(config).parse_file(path)
