"""Tests for the $Recycle.bin index file decoder and live discovery."""

import os
import shutil
import subprocess
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from record_builders import (
    epoch_to_filetime, index_v1, index_v2, write_desktop_ini, write_file
)

from rifiuti.collectors import live_bins
from rifiuti.collectors.recyclebin_claw import (
    IndexFileError, RecycleBinParser, parse_recycle_bin
)
from rifiuti.config.data_models import BinType, ReportFormat, RunConfig
from rifiuti.data.models import BROKEN_SIZE, OsGuess, VersionKind
from rifiuti.errors import (
    BrokenFileError, ExitStatus, InconsistentVersionError,
    LiveModeUnsupportedError, MiscError, RecordErrorKind
)

DELETED_AT = 1136214245


class TestIndexFileDecoding(unittest.TestCase):
    """Test cases for single index file decoding."""

    def setUp(self):
        """Set up test fixtures."""
        self.parser = RecycleBinParser(RunConfig.default(BinType.DIRECTORY))
        self.filetime = epoch_to_filetime(DELETED_AT)

    def test_version1(self):
        data = index_v1(4096, self.filetime, "C:\\Users\\me\\report.doc")
        self.assertEqual(len(data), 544)

        record = self.parser.parse_index_bytes(data, "$IABCDEF.doc")

        self.assertEqual(record.index_key, "$IABCDEF.doc")
        self.assertEqual(record.version, 1)
        self.assertEqual(record.size, 4096)
        self.assertEqual(record.deletion_epoch, DELETED_AT)
        self.assertEqual(record.unicode_path, "C:\\Users\\me\\report.doc")
        self.assertEqual(record.issues, [])

    def test_version1_erroneous_size(self):
        """543 byte files shift fields and mark the size as broken."""
        data = index_v1(4096, self.filetime, "C:\\dd.exe", erroneous=True)
        self.assertEqual(len(data), 543)

        record = self.parser.parse_index_bytes(data, "$IABCDEF.exe")

        self.assertEqual(record.size, BROKEN_SIZE)
        self.assertTrue(record.size_is_broken)
        self.assertEqual(record.deletion_epoch, DELETED_AT)
        self.assertEqual(record.unicode_path, "C:\\dd.exe")

    def test_version2(self):
        data = index_v2(12, self.filetime, "E:\\photos\\cat.jpg")
        record = self.parser.parse_index_bytes(data, "$I123456.jpg")

        self.assertEqual(record.version, 2)
        self.assertEqual(record.size, 12)
        self.assertEqual(record.unicode_path, "E:\\photos\\cat.jpg")

    def test_version2_size_mismatch(self):
        data = index_v2(12, self.filetime, "E:\\cat.jpg") + b'\0\0'
        with self.assertRaises(IndexFileError) as ctx:
            self.parser.parse_index_bytes(data, "$I123456.jpg")
        self.assertEqual(ctx.exception.kind, RecordErrorKind.IDX_SIZE_INVALID)

    def test_unknown_version(self):
        data = b'\x03' + index_v1(1, self.filetime, "C:\\a")[1:]
        with self.assertRaises(IndexFileError) as ctx:
            self.parser.parse_index_bytes(data, "$I123456")
        self.assertEqual(ctx.exception.kind, RecordErrorKind.VER_UNSUPPORTED)

    def test_truncated_file(self):
        with self.assertRaises(IndexFileError):
            self.parser.parse_index_bytes(b'\x01' + b'\0' * 23, "$I123456")

    def test_unpaired_surrogate(self):
        path = "C:\\a".encode('utf-16-le') + b'\x00\xd8' + "b".encode('utf-16-le')
        record = self.parser.parse_index_bytes(index_v2(1, self.filetime, path), "$I123456")

        self.assertEqual(record.unicode_path, "C:\\a<\\uD800>b")
        self.assertEqual(record.issues[0].kind, RecordErrorKind.CONV_PATH)

    def test_long_path_of_broken_units(self):
        """A version 2 file declares its own path length, however large."""
        units = 100000
        data = index_v2(1, self.filetime, b'\x00\xdc' * units)

        started = time.monotonic()
        with self.assertLogs('rifiuti.collectors.recyclebin_claw', level='WARNING'):
            record = self.parser.parse_index_bytes(data, "$I123456")
        elapsed = time.monotonic() - started

        self.assertEqual(record.unicode_path, "<\\uDC00>" * units)
        self.assertEqual(record.issues[0].kind, RecordErrorKind.CONV_PATH)
        self.assertLess(elapsed, 10.0)

    def test_unpaired_surrogate_json(self):
        parser = RecycleBinParser(RunConfig(input_path=None, bin_type=BinType.DIRECTORY,
                                            output_format=ReportFormat.JSON))
        path = "C:\\a".encode('utf-16-le') + b'\x00\xd8' + "b".encode('utf-16-le')
        record = parser.parse_index_bytes(index_v2(1, self.filetime, path), "$I123456")

        self.assertEqual(record.unicode_path, "C:\\\\a\\uD800b")


class TestRecycleBinFolder(unittest.TestCase):
    """Test cases for decoding whole $Recycle.bin folders."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = RunConfig.default(BinType.DIRECTORY, self.temp_dir)

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_records_sorted_by_time_then_name(self):
        write_file(self.temp_dir, "$IZZZZZZ.txt", index_v2(1, epoch_to_filetime(100), "C:\\z"))
        write_file(self.temp_dir, "$IBBBBBB.txt", index_v2(1, epoch_to_filetime(50), "C:\\b"))
        write_file(self.temp_dir, "$IAAAAAA.txt", index_v2(1, epoch_to_filetime(50), "C:\\a"))

        result = parse_recycle_bin(self.temp_dir, self.config)

        self.assertEqual([r.index_key for r in result.records],
                         ["$IAAAAAA.txt", "$IBBBBBB.txt", "$IZZZZZZ.txt"])
        keys = [(r.deletion_epoch, r.index_key) for r in result.records]
        self.assertEqual(keys, sorted(keys))
        self.assertEqual(result.meta.version.number, 2)
        self.assertEqual(result.meta.os_guess, OsGuess.WIN10)
        self.assertTrue(all(r.meta is result.meta for r in result.records))

    def test_vista_folder(self):
        write_file(self.temp_dir, "$IAAAAAA.txt", index_v1(1, epoch_to_filetime(50), "C:\\a"))
        result = parse_recycle_bin(self.temp_dir, self.config)
        self.assertEqual(result.meta.os_guess, OsGuess.VISTA)
        self.assertEqual(result.exit_status, ExitStatus.SUCCESS)

    def test_inconsistent_versions(self):
        write_file(self.temp_dir, "$IAAAAAA.txt", index_v1(1, epoch_to_filetime(50), "C:\\a"))
        write_file(self.temp_dir, "$IBBBBBB.txt", index_v2(1, epoch_to_filetime(60), "C:\\b"))

        with self.assertRaises(InconsistentVersionError) as ctx:
            parse_recycle_bin(self.temp_dir, self.config)
        self.assertEqual(ctx.exception.exit_status, ExitStatus.BROKEN_FILE)

    def test_empty_folder(self):
        write_desktop_ini(self.temp_dir)
        result = parse_recycle_bin(self.temp_dir, self.config)

        self.assertEqual(result.records, [])
        self.assertTrue(result.meta.is_empty)
        self.assertEqual(result.meta.version.kind, VersionKind.NOT_FOUND)
        self.assertEqual(str(result.meta.version), "??? (empty folder)")

    def test_broken_file_skipped(self):
        write_file(self.temp_dir, "$IAAAAAA.txt", index_v2(1, epoch_to_filetime(50), "C:\\a"))
        write_file(self.temp_dir, "$IBBBBBB.txt", b'\x02' + b'\0' * 40)

        with self.assertLogs('rifiuti.collectors.recyclebin_claw', level='WARNING'):
            result = parse_recycle_bin(self.temp_dir, self.config)

        self.assertEqual(len(result.records), 1)
        self.assertEqual(len(result.file_issues), 1)
        self.assertEqual(result.exit_status, ExitStatus.BROKEN_FILE)

    def test_no_valid_file(self):
        path = write_file(self.temp_dir, "$IBBBBBB.txt", b'\x09' + b'\0' * 40)
        with self.assertRaises(BrokenFileError):
            parse_recycle_bin(path, self.config)


class TestLiveDiscovery(unittest.TestCase):
    """Test cases for live system recycle bin discovery."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_unsupported_platform(self):
        parser = RecycleBinParser(RunConfig(input_path=None, bin_type=BinType.DIRECTORY, live=True))
        with mock.patch.object(live_bins, 'live_mode_supported', return_value=False):
            with self.assertRaises(LiveModeUnsupportedError):
                parser.parse_live_system()

    def test_wsl_mounts(self):
        mounts = write_file(self.temp_dir, "mounts", (
            b"rootfs / rootfs rw 0 0\n"
            b"C:\\134 /mnt/c 9p rw,dirsync,aname=drvfs 0 0\n"
            b"none /dev tmpfs rw 0 0\n"
            b"D:\\134 /mnt/d 9p rw,dirsync,aname=drvfs 0 0\n"))
        self.assertEqual(live_bins.probe_wsl_mounts(mounts), ["/mnt/c", "/mnt/d"])

    def test_wsl_sid(self):
        completed = subprocess.CompletedProcess(
            live_bins.WHOAMI_COMMAND, 0,
            stdout=b'"User Name","SID"\r\n"pc\\me","S-1-5-21-1-2-3-1001"\r\n', stderr=b'')
        with mock.patch.object(live_bins.subprocess, 'run', return_value=completed):
            self.assertEqual(live_bins.get_user_sid_wsl(), "S-1-5-21-1-2-3-1001")

    def test_wsl_sid_failure(self):
        completed = subprocess.CompletedProcess(
            live_bins.WHOAMI_COMMAND, 1, stdout=b'', stderr=b'access denied')
        with mock.patch.object(live_bins.subprocess, 'run', return_value=completed):
            with self.assertRaises(MiscError):
                live_bins.get_user_sid_wsl()

    def test_enumerate_bins_in_wsl(self):
        sid = "S-1-5-21-1-2-3-1001"
        bin_path = Path(self.temp_dir) / live_bins.RECYCLE_BIN_FOLDER / sid
        os.makedirs(bin_path)
        write_file(str(bin_path), "$IAAAAAA.txt", index_v2(5, epoch_to_filetime(50), "C:\\a"))

        with mock.patch.object(live_bins, 'is_windows', return_value=False), \
                mock.patch.object(live_bins, 'is_wsl', return_value=True), \
                mock.patch.object(live_bins, 'get_user_sid_wsl', return_value=sid), \
                mock.patch.object(live_bins, 'probe_wsl_mounts',
                                  return_value=[self.temp_dir, "/nonexistent"]):
            self.assertEqual(live_bins.enumerate_drive_bins(), [bin_path])

            parser = RecycleBinParser(RunConfig(input_path=None, bin_type=BinType.DIRECTORY,
                                                live=True))
            result = parser.parse_live_system()

        self.assertEqual(len(result.records), 1)
        self.assertEqual(result.records[0].size, 5)

    def test_missing_sid_disables_live_mode(self):
        error = MiscError(live_bins.MiscErrorKind.GET_SID, "no whoami")
        with mock.patch.object(live_bins, 'is_windows', return_value=False), \
                mock.patch.object(live_bins, 'is_wsl', return_value=True), \
                mock.patch.object(live_bins, 'get_user_sid_wsl', side_effect=error):
            with self.assertRaises(LiveModeUnsupportedError):
                live_bins.enumerate_drive_bins()


if __name__ == '__main__':
    unittest.main()
