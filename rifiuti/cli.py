"""
Command line front ends.

``rifiuti`` decodes INFO2 files of Windows 95 to XP; ``rifiuti-vista``
decodes $Recycle.bin folders and index files of Vista and later, or the
recycle bins of the running system with ``--live``. Both return the exit
status derived from the most serious problem met during the run.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .collectors.bin_discovery import discover
from .collectors.info2_claw import Info2Parser
from .collectors.recyclebin_claw import RecycleBinParser
from .config.data_models import DEBUG_ENV_VAR, BinType, ReportFormat, RunConfig
from .data.models import DecodeResult
from .errors import ArgumentError, ExitStatus, RecordErrorKind, RifiutiError
from .utils.reporting_engine import emit_report

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "rifiuti"
LOG_FORMAT = "[Rifiuti] %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - [Rifiuti] %(levelname)s - %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PROGRAMS = {
    BinType.INFO2: "rifiuti",
    BinType.DIRECTORY: "rifiuti-vista",
}

SUMMARIES = {
    BinType.INFO2: "Parse INFO2 file and dump recycle bin data.",
    BinType.DIRECTORY: ("Parse index files in C:\\$Recycle.bin style folder and dump "
                        "recycle bin data. Can also dump a single index file."),
}


class RifiutiArgumentParser(argparse.ArgumentParser):
    """Argument parser reporting errors as ``ArgumentError`` instead of exiting."""

    def error(self, message):
        raise ArgumentError(f"{message}\nRun '{self.prog} --help' to see usage.")


def setup_logging(debug: bool = False) -> logging.Logger:
    """
    Install the single stderr handler of the package logger.

    Repeated calls replace the handler rather than adding another one.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if getattr(handler, 'rifiuti_handler', False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.rifiuti_handler = True
    if debug:
        handler.setFormatter(logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    return package_logger


def build_parser(bin_type: BinType) -> RifiutiArgumentParser:
    """Create the argument parser of one front end."""
    parser = RifiutiArgumentParser(prog=PROGRAMS[bin_type], description=SUMMARIES[bin_type])

    parser.add_argument('path', nargs='?', metavar='INFO2' if bin_type is BinType.INFO2 else 'DIR_OR_FILE',
                        help='INFO2 file' if bin_type is BinType.INFO2
                        else '$Recycle.bin folder, or a single $I index file')
    parser.add_argument('-o', '--output', metavar='FILE',
                        help='Write output to FILE')
    parser.add_argument('-f', '--format', choices=[fmt.value for fmt in ReportFormat],
                        help='Output format (default: text)')
    parser.add_argument('-x', '--xml', action='store_true',
                        help='Output in XML format, same as -f xml')
    parser.add_argument('-z', '--localtime', action='store_true',
                        help='Present deletion time in time zone of local system '
                             '(default is UTC)')
    parser.add_argument('-v', '--version', action='store_true',
                        help='Print version information and exit')

    text_group = parser.add_argument_group('plain text output options')
    text_group.add_argument('-t', '--delimiter', metavar='STRING',
                            help='String to use as delimiter (TAB by default)')
    text_group.add_argument('-n', '--no-heading', action='store_true',
                            help="Don't show header")

    if bin_type is BinType.INFO2:
        parser.add_argument('-l', '--legacy-filename', dest='legacy_encoding',
                            metavar='CODEPAGE',
                            help='Show legacy (8.3) path if available and specify '
                                 'its code page')
    else:
        parser.add_argument('--live', action='store_true',
                            help='Inspect live system')

    return parser


def decode(config: RunConfig) -> DecodeResult:
    """Run discovery and decoding for the configured input."""
    if config.bin_type is BinType.INFO2:
        info2_path = discover(config.input_path, BinType.INFO2)[0]
        return Info2Parser(config).parse_file(info2_path)

    parser = RecycleBinParser(config)
    if config.live:
        return parser.parse_live_system()
    return parser.parse_recycle_bin_directory(config.input_path)


def closing_advisories(result: DecodeResult, config: RunConfig) -> None:
    """Log closing remarks about problems that affect the whole report."""
    if result.file_issues:
        logger.warning(f"{len(result.file_issues)} index file(s) could not be decoded "
                       f"and were skipped.")

    if config.legacy_encoding and result.has_issue(RecordErrorKind.CONV_PATH, "legacy"):
        logger.warning(
            f"Some entries could not be interpreted in code page "
            f"'{config.legacy_encoding}'. The specified code page is probably wrong, "
            f"please try another one.")

    if result.has_issue(RecordErrorKind.CONV_PATH, "unicode"):
        logger.warning(
            "Some entries could not be presented as correct Unicode path. "
            "Escaped sequences are printed in place of problematic characters.")


def run(config: RunConfig) -> ExitStatus:
    """
    Decode input and write the report.

    Returns:
        Exit status for non-fatal problems

    Raises:
        RifiutiError: Fatal problem, nothing committed
    """
    logger.debug(f"Run configuration: {config.to_dict()}")

    result = decode(config)
    emit_report(result.meta, result.records, config)

    closing_advisories(result, config)
    return result.exit_status


def main(argv: Optional[List[str]], bin_type: BinType) -> int:
    """
    Shared entry point of both front ends.

    Args:
        argv: Arguments without program name, defaults to ``sys.argv[1:]``
        bin_type: Which artifact flavour the front end handles

    Returns:
        Process exit status
    """
    argv = sys.argv[1:] if argv is None else list(argv)
    setup_logging(DEBUG_ENV_VAR in os.environ)
    parser = build_parser(bin_type)

    if not argv:
        parser.print_help()
        return int(ExitStatus.SUCCESS)

    try:
        args = parser.parse_args(argv)
        if args.version:
            print(f"{parser.prog} {__version__}")
            return int(ExitStatus.SUCCESS)

        config = RunConfig.from_namespace(args, bin_type)
        config.validate()
        return int(run(config))

    except RifiutiError as e:
        logger.error(f"{e}")
        return int(e.exit_status)
    except Exception as e:
        logger.exception(f"Unhandled error: {e}")
        return int(ExitStatus.INTERNAL)


def main_info2(argv: Optional[List[str]] = None) -> int:
    """Entry point of ``rifiuti``."""
    return main(argv, BinType.INFO2)


def main_vista(argv: Optional[List[str]] = None) -> int:
    """Entry point of ``rifiuti-vista``."""
    return main(argv, BinType.DIRECTORY)


if __name__ == "__main__":
    sys.exit(main_info2())
