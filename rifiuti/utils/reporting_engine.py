"""Report writers for decoded recycle bin records."""

import json
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, TextIO, Type

from ..config.data_models import BinType, ReportFormat, RunConfig
from ..data.models import BinMetadata, RecycleRecord
from ..errors import WriteFileError
from .output_handle import OutputHandle
from .timestamps import format_deletion_time, timezone_label

logger = logging.getLogger(__name__)

UNKNOWN_VALUE = "???"


def gone_state(record: RecycleRecord) -> Optional[bool]:
    """Whether the trashed payload is gone, None when the format can't tell."""
    if record.meta is None or not record.meta.keep_deleted_entry:
        return None
    return record.purged


class RecordWriter(ABC):
    """Base class for report writers.

    A report is one header, one entry per record in output order, then one
    footer.
    """

    def __init__(self, stream: TextIO, config: RunConfig):
        self.stream = stream
        self.config = config

    @abstractmethod
    def write_header(self, meta: BinMetadata) -> None:
        pass

    @abstractmethod
    def write_record(self, record: RecycleRecord) -> None:
        pass

    @abstractmethod
    def write_footer(self, meta: BinMetadata) -> None:
        pass

    def format_time(self, record: RecycleRecord, iso: bool) -> Optional[str]:
        return format_deletion_time(record.deletion_epoch, self.config.use_localtime, iso)


class TextWriter(RecordWriter):
    """Delimiter separated plain text, tab by default."""

    def write_header(self, meta: BinMetadata) -> None:
        if self.config.no_heading:
            return

        zone_name, offset = timezone_label(self.config.use_localtime)
        self.stream.write(f"Recycle bin path: '{meta.source_path}'\n")
        self.stream.write(f"Version: {meta.version}\n")
        self.stream.write(f"OS Guess: {meta.os_guess.value}\n")
        self.stream.write(f"Time zone: {zone_name} [{offset}]\n")
        self.stream.write("\n")

        columns = ["Index", "Deleted Time"]
        if meta.keep_deleted_entry:
            columns.append("Gone?")
        columns.extend(["Size", "Path"])
        self.stream.write(self.config.delimiter.join(columns) + "\n")

    def write_record(self, record: RecycleRecord) -> None:
        fields = [str(record.index_key), self.format_time(record, iso=False) or UNKNOWN_VALUE]

        gone = gone_state(record)
        if gone is not None:
            fields.append("Yes" if gone else "No")

        fields.append(UNKNOWN_VALUE if record.size_is_broken else str(record.size))
        fields.append(record.path)
        self.stream.write(self.config.delimiter.join(fields) + "\n")

    def write_footer(self, meta: BinMetadata) -> None:
        pass


class XmlWriter(RecordWriter):
    """XML document with one ``record`` element per record."""

    def write_header(self, meta: BinMetadata) -> None:
        version = meta.version.number if meta.version.is_known else -1
        self.stream.write('<?xml version="1.0" encoding="UTF-8"?>\n')
        self.stream.write(
            f'<recyclebin format="{meta.bin_type.value}" version="{version}">\n')

        filename = ET.Element('filename')
        filename.text = meta.source_path
        self.stream.write("  " + ET.tostring(filename, encoding='unicode') + "\n")

    def write_record(self, record: RecycleRecord) -> None:
        elem = ET.Element('record')
        elem.set('index', str(record.index_key))
        elem.set('time', self.format_time(record, iso=True) or UNKNOWN_VALUE)

        gone = gone_state(record)
        if gone is not None:
            elem.set('emptied', 'Y' if gone else 'N')

        elem.set('size', "-1" if record.size_is_broken else str(record.size))
        ET.SubElement(elem, 'path').text = record.path

        self.stream.write("  " + ET.tostring(elem, encoding='unicode') + "\n")

    def write_footer(self, meta: BinMetadata) -> None:
        self.stream.write("</recyclebin>\n")


class JsonWriter(RecordWriter):
    """JSON object holding metadata and a ``records`` array.

    Paths are already JSON escaped during conversion, so they are placed
    between quotes as is; every other value goes through ``json.dumps``.
    """

    def __init__(self, stream: TextIO, config: RunConfig):
        super().__init__(stream, config)
        self._record_count = 0

    def write_header(self, meta: BinMetadata) -> None:
        version = meta.version.number if meta.version.is_known else None
        self.stream.write("{\n")
        self.stream.write(f'  "format": {json.dumps(meta.bin_type.value)},\n')
        self.stream.write(f'  "version": {json.dumps(version)},\n')
        self.stream.write(f'  "os_guess": {json.dumps(meta.os_guess.value)},\n')
        self.stream.write(f'  "path": {json.dumps(meta.source_path, ensure_ascii=False)},\n')
        self.stream.write('  "records": [')

    def write_record(self, record: RecycleRecord) -> None:
        fields = [
            f'"index": {json.dumps(record.index_key, ensure_ascii=False)}',
            f'"time": {json.dumps(self.format_time(record, iso=True))}',
        ]

        if record.meta is not None and record.meta.bin_type is BinType.INFO2:
            gone = gone_state(record)
            fields.append(f'"gone": "{"unknown" if gone is None else str(gone).lower()}"')

        fields.append(f'"size": {"null" if record.size_is_broken else record.size}')
        fields.append(f'"path": "{record.path}"')

        separator = "," if self._record_count else ""
        self.stream.write(f"{separator}\n    {{{', '.join(fields)}}}")
        self._record_count += 1

    def write_footer(self, meta: BinMetadata) -> None:
        if self._record_count:
            self.stream.write("\n  ")
        self.stream.write("]\n}\n")


WRITERS: Dict[ReportFormat, Type[RecordWriter]] = {
    ReportFormat.TEXT: TextWriter,
    ReportFormat.XML: XmlWriter,
    ReportFormat.JSON: JsonWriter,
}


def create_writer(stream: TextIO, config: RunConfig) -> RecordWriter:
    """Create the writer for the configured output format."""
    return WRITERS[config.output_format](stream, config)


def write_report(writer: RecordWriter, meta: BinMetadata,
                 records: Iterable[RecycleRecord]) -> None:
    writer.write_header(meta)
    for record in records:
        writer.write_record(record)
    writer.write_footer(meta)


def emit_report(meta: BinMetadata, records: Iterable[RecycleRecord],
                config: RunConfig) -> None:
    """
    Write a complete report to the configured destination.

    Raises:
        WriteFileError: Output can't be written or moved into place
    """
    handle = OutputHandle(config.output_path)
    with handle as stream:
        try:
            write_report(create_writer(stream, config), meta, records)
        except OSError as e:
            raise WriteFileError(f"Error writing output: {e.strerror or e}") from e
    logger.debug(f"Report written in {config.output_format.value} format")
