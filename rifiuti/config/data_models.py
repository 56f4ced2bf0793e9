"""Data models for run configuration."""

import argparse
import codecs
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..errors import ArgumentError


class ReportFormat(Enum):
    """Supported report formats."""
    TEXT = "text"
    XML = "xml"
    JSON = "json"


class BinType(Enum):
    """Recycle bin artifact flavours."""
    INFO2 = "file"
    DIRECTORY = "dir"


DEBUG_ENV_VAR = "RIFIUTI_DEBUG"


@dataclass
class RunConfig:
    """Explicit run context threaded through decoders and writers."""
    input_path: Optional[str]
    bin_type: BinType
    output_format: ReportFormat = ReportFormat.TEXT
    delimiter: str = "\t"
    no_heading: bool = False
    use_localtime: bool = False
    legacy_encoding: Optional[str] = None
    output_path: Optional[str] = None
    live: bool = False
    debug: bool = False
    text_options_given: bool = field(default=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for debug logging."""
        return {
            'input_path': self.input_path,
            'bin_type': self.bin_type.value,
            'output_format': self.output_format.value,
            'delimiter': self.delimiter,
            'no_heading': self.no_heading,
            'use_localtime': self.use_localtime,
            'legacy_encoding': self.legacy_encoding,
            'output_path': self.output_path,
            'live': self.live,
            'debug': self.debug
        }

    @classmethod
    def default(cls, bin_type: BinType, input_path: Optional[str] = None) -> 'RunConfig':
        """Create default configuration for the given bin type."""
        return cls(input_path=input_path, bin_type=bin_type)

    @classmethod
    def from_namespace(cls, args: argparse.Namespace, bin_type: BinType,
                       environ: Optional[Mapping[str, str]] = None) -> 'RunConfig':
        """
        Create configuration from parsed command line arguments.

        Args:
            args: Namespace produced by the front end's argument parser
            bin_type: Which artifact flavour the front end handles
            environ: Environment mapping, defaults to ``os.environ``

        Returns:
            Populated (not yet validated) configuration
        """
        from ..utils.path_conversion import filter_escapes

        environ = os.environ if environ is None else environ

        fmt_name = getattr(args, 'format', None)
        if getattr(args, 'xml', False):
            if fmt_name not in (None, ReportFormat.XML.value):
                raise ArgumentError("Options '-x' and '-f' conflict with each other.")
            fmt_name = ReportFormat.XML.value
        output_format = ReportFormat(fmt_name) if fmt_name else ReportFormat.TEXT

        # Text-only options are only legal in text mode, so remember
        # whether they were given at all
        delimiter = getattr(args, 'delimiter', None)
        return cls(
            input_path=getattr(args, 'path', None),
            bin_type=bin_type,
            output_format=output_format,
            delimiter=filter_escapes(delimiter) if delimiter is not None else "\t",
            no_heading=getattr(args, 'no_heading', False),
            use_localtime=getattr(args, 'localtime', False),
            legacy_encoding=getattr(args, 'legacy_encoding', None),
            output_path=getattr(args, 'output', None),
            live=getattr(args, 'live', False),
            debug=DEBUG_ENV_VAR in environ,
            text_options_given=bool(getattr(args, 'no_heading', False) or delimiter is not None)
        )

    def validate(self) -> None:
        """
        Reject nonsensical option combinations.

        Raises:
            ArgumentError: When options conflict or name an unusable encoding
        """
        from ..utils.path_conversion import encoding_is_ascii_compatible

        if self.output_format is not ReportFormat.TEXT and self.text_options_given:
            raise ArgumentError(
                f"Plain text format options can not be used in "
                f"{self.output_format.value.upper()} mode.")

        if self.live and self.input_path:
            raise ArgumentError("Live mode does not accept a path argument.")

        if not self.live and not self.input_path:
            if self.bin_type is BinType.INFO2:
                raise ArgumentError("Must specify exactly one INFO2 file as argument.")
            raise ArgumentError(
                "Must specify exactly one directory containing $Recycle.bin "
                "index files, or one such index file, as argument.")

        if self.legacy_encoding is not None:
            try:
                codecs.lookup(self.legacy_encoding)
            except LookupError:
                raise ArgumentError(
                    f"'{self.legacy_encoding}' encoding is not supported by "
                    f"this system.") from None
            if not encoding_is_ascii_compatible(self.legacy_encoding):
                raise ArgumentError(
                    f"'{self.legacy_encoding}' can not be used as legacy "
                    f"code page, it is not ASCII compatible.")
