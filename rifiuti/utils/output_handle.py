"""
Report output sink.

Reports go either to standard output or to a file. File output is first
written to a uniquely named temporary file beside the destination, then
moved over the destination in one rename so a reader never sees a partial
report. When anything fails the temporary file is left in place and its
location reported.
"""

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional, TextIO

from ..errors import WriteFileError

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".rifiuti-"
TEMP_SUFFIX = ".tmp"


class OutputHandle:
    """Context manager yielding the text stream a report is written to.

    Example:
        >>> with OutputHandle("report.xml") as out:
        ...     out.write(xml_text)
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path
        self.temp_path: Optional[str] = None
        self._stream: Optional[TextIO] = None

    @property
    def is_file(self) -> bool:
        return self.output_path is not None

    def open(self) -> TextIO:
        """
        Open the sink.

        Raises:
            WriteFileError: Temporary file can't be created
        """
        if not self.is_file:
            # Looked up at call time so redirected stdout is honoured
            self._stream = sys.stdout
            return self._stream

        dest_dir = Path(self.output_path).resolve().parent
        try:
            fd, self.temp_path = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=str(dest_dir))
        except OSError as e:
            raise WriteFileError(
                f"Can not create temporary file in '{dest_dir}': {e.strerror or e}") from e

        logger.debug(f"Writing report to temporary file '{self.temp_path}'")
        self._stream = os.fdopen(fd, 'w', encoding='utf-8', newline='')
        return self._stream

    def commit(self) -> None:
        """
        Finish output, moving the temporary file into place.

        Raises:
            WriteFileError: Flushing or renaming failed; temporary file kept
        """
        if not self.is_file:
            self._stream.flush()
            return

        try:
            self._stream.close()
            os.replace(self.temp_path, self.output_path)
        except OSError as e:
            raise WriteFileError(
                f"Error moving output data to destination file: {e.strerror or e}. "
                f"Output content is left inside temporary file '{self.temp_path}'") from e
        logger.debug(f"Report moved to '{self.output_path}'")

    def abandon(self) -> None:
        """Close the sink after a failure, keeping any temporary file."""
        if not self.is_file or self._stream is None:
            return
        if not self._stream.closed:
            self._stream.close()
        logger.error(f"Output content is left inside temporary file '{self.temp_path}'")

    def __enter__(self) -> TextIO:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.commit()
        else:
            self.abandon()
        return False
