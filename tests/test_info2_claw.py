"""Tests for the INFO2 decoder."""

import shutil
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from record_builders import build_info2, epoch_to_filetime, info2_record, write_file

from rifiuti.collectors.info2_claw import Info2Parser, parse_info2
from rifiuti.config.data_models import BinType, RunConfig
from rifiuti.data.models import OsGuess
from rifiuti.errors import (
    ArgumentError, BrokenFileError, ExitStatus, OpenFileError, RecordErrorKind
)

DELETED_AT = 1136214245


class TestInfo2Header(unittest.TestCase):
    """Test cases for INFO2 header validation."""

    def setUp(self):
        """Set up test fixtures."""
        self.parser = Info2Parser(RunConfig.default(BinType.INFO2, "INFO2"))

    def test_legacy_records_need_code_page(self):
        """Windows ME and earlier need -l to decode paths."""
        data = build_info2(5, 280, [])
        with self.assertRaises(ArgumentError) as ctx:
            self.parser.parse_bytes(data, "INFO2")
        self.assertIn("-l CP1252", str(ctx.exception))
        self.assertIn("-l CP932", str(ctx.exception))

    def test_unsupported_version(self):
        with self.assertRaises(BrokenFileError):
            self.parser.parse_bytes(build_info2(2, 280, []), "INFO2")
        with self.assertRaises(BrokenFileError):
            self.parser.parse_bytes(build_info2(4, 800, []), "INFO2")

    def test_invalid_record_size(self):
        with self.assertRaises(BrokenFileError):
            self.parser.parse_bytes(build_info2(5, 500, []), "INFO2")

    def test_short_header(self):
        with self.assertRaises(BrokenFileError):
            self.parser.parse_bytes(b'\x05\0\0\0', "INFO2")

    def test_missing_file(self):
        with self.assertRaises(OpenFileError):
            parse_info2("/nonexistent/INFO2", RunConfig.default(BinType.INFO2))


class TestInfo2Records(unittest.TestCase):
    """Test cases for INFO2 record decoding."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = RunConfig.default(BinType.INFO2, "INFO2")
        self.filetime = epoch_to_filetime(DELETED_AT)

    def test_unicode_records_with_purged_entry(self):
        """A purged entry gets its drive letter back in the legacy path."""
        records = [
            info2_record(1, 2, self.filetime, 100, b"C:\\Temp\\a.txt", "C:\\Temp\\a.txt"),
            info2_record(2, 2, self.filetime + 10000000, 200, b"\0:\\Temp\\b.txt", "C:\\Temp\\b.txt"),
        ]
        config = replace(self.config, legacy_encoding="CP1252")
        result = Info2Parser(config).parse_bytes(build_info2(5, 800, records), "INFO2")

        self.assertEqual(len(result.records), 2)
        first, second = result.records
        self.assertEqual(first.index_key, 1)
        self.assertFalse(first.purged)
        self.assertEqual(second.drive_letter, 'C')
        self.assertTrue(second.purged)
        self.assertEqual(second.legacy_path, "C:\\Temp\\b.txt")
        self.assertEqual(second.path, "C:\\Temp\\b.txt")
        self.assertEqual(second.deletion_epoch, DELETED_AT + 1)
        self.assertEqual(second.size, 200)

        meta = result.meta
        self.assertTrue(meta.keep_deleted_entry)
        self.assertTrue(meta.has_unicode_path)
        self.assertFalse(meta.is_empty)
        self.assertEqual(meta.os_guess, OsGuess.XP_03)
        self.assertEqual(result.exit_status, ExitStatus.SUCCESS)

    def test_legacy_path_skipped_without_code_page(self):
        record = info2_record(1, 2, self.filetime, 1, b"C:\\a.txt", "C:\\a.txt")
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, [record]), "INFO2")

        self.assertIsNone(result.records[0].legacy_path)
        self.assertEqual(result.records[0].path, "C:\\a.txt")

    def test_junk_after_unicode_path(self):
        """Uninitialised padding points to Windows 2000."""
        record = info2_record(1, 2, self.filetime, 1, b"C:\\a.txt", "C:\\a.txt", junk=b'\xcc\xcc')
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, [record]), "INFO2")

        self.assertTrue(result.meta.fill_junk)
        self.assertEqual(result.meta.os_guess, OsGuess.WIN2K)

    def test_empty_info2(self):
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, []), "INFO2")

        self.assertEqual(result.records, [])
        self.assertTrue(result.meta.is_empty)
        self.assertEqual(result.meta.version.number, 5)
        self.assertEqual(result.meta.os_guess, OsGuess.WIN2K_03)

    def test_record_count(self):
        records = [info2_record(i, 2, self.filetime + i, i, b"C:\\x", "C:\\x") for i in range(3)]
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, records), "INFO2")
        self.assertEqual([r.index_key for r in result.records], [0, 1, 2])

    def test_truncated_last_record(self):
        """A partial trailing record is dropped with a warning."""
        record = info2_record(1, 2, self.filetime, 1, b"C:\\a", "C:\\a")
        data = build_info2(5, 800, [record]) + record[:100]

        with self.assertLogs('rifiuti.collectors.info2_claw', level='WARNING') as logs:
            result = Info2Parser(self.config).parse_bytes(data, "INFO2")

        self.assertEqual(len(result.records), 1)
        self.assertEqual(len(result.file_issues), 1)
        self.assertEqual(result.exit_status, ExitStatus.BROKEN_FILE)
        self.assertTrue(any("Premature end of file" in line for line in logs.output))

    def test_invalid_drive_number(self):
        record = info2_record(1, 30, self.filetime, 1, b"C:\\a", "C:\\a")
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, [record]), "INFO2")

        self.assertEqual(result.records[0].drive_letter, '?')
        self.assertEqual(result.records[0].issues[0].kind, RecordErrorKind.DRIVE_LETTER)
        self.assertEqual(result.exit_status, ExitStatus.USER_ENCODING)

    def test_dubious_time(self):
        record = info2_record(1, 2, 0xFFFFFFFFFFFFFFFF, 1, b"C:\\a", "C:\\a")
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 800, [record]), "INFO2")

        self.assertIsNone(result.records[0].deletion_time)
        self.assertTrue(result.has_issue(RecordErrorKind.DUBIOUS_TIME))


class TestLegacyInfo2(unittest.TestCase):
    """Test cases for 280 byte INFO2 records."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = RunConfig.default(BinType.INFO2, "INFO2")
        self.config.legacy_encoding = "CP1252"

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_windows95(self):
        record = info2_record(7, 3, epoch_to_filetime(DELETED_AT), 42, b"D:\\caf\xe9.txt")
        path = write_file(self.temp_dir, "INFO2", build_info2(0, 280, [record], total_entry=1))

        with self.assertLogs('rifiuti.collectors.info2_claw', level='DEBUG') as logs:
            result = parse_info2(path, self.config)

        rec = result.records[0]
        self.assertEqual(rec.path, "D:\\café.txt")
        self.assertEqual(rec.drive_letter, 'D')
        self.assertEqual(result.meta.os_guess, OsGuess.WIN95)
        self.assertFalse(result.meta.keep_deleted_entry)
        self.assertFalse(result.meta.has_unicode_path)
        self.assertTrue(any("total entry=1" in line for line in logs.output))

    def test_windows_me(self):
        record = info2_record(1, 2, epoch_to_filetime(DELETED_AT), 1, b"\0:\\a.txt")
        result = Info2Parser(self.config).parse_bytes(build_info2(5, 280, [record]), "INFO2")

        self.assertEqual(result.meta.os_guess, OsGuess.ME)
        self.assertTrue(result.records[0].purged)
        self.assertEqual(result.records[0].path, "C:\\a.txt")

    def test_wrong_code_page(self):
        record = info2_record(1, 2, epoch_to_filetime(DELETED_AT), 1, b"C:\\a\x81.txt")
        result = Info2Parser(self.config).parse_bytes(build_info2(4, 280, [record]), "INFO2")

        self.assertEqual(result.records[0].path, "C:\\a<\\81>.txt")
        self.assertTrue(result.has_issue(RecordErrorKind.CONV_PATH, "legacy"))
        self.assertFalse(result.has_issue(RecordErrorKind.CONV_PATH, "unicode"))
        self.assertEqual(result.exit_status, ExitStatus.USER_ENCODING)


if __name__ == '__main__':
    unittest.main()
