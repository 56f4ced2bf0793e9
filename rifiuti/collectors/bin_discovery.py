"""
Recycle bin input discovery.

Turns the path given by the user into the list of index files to decode,
rejecting inputs that are clearly not recycle bin artifacts.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import List, Union

from ..config.data_models import BinType
from ..errors import ArgumentError, OpenFileError

logger = logging.getLogger(__name__)

# All Windows include this class ID in recycle bin desktop.ini
RECYCLE_BIN_CLSID = "645FF040-5081-101B-9F08-00AA002F954E"

INDEX_FILE_PATTERNS = ("$I??????.*", "$I??????")


def is_index_file_name(name: str) -> bool:
    """Check whether a file name looks like a $Recycle.bin index file."""
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in INDEX_FILE_PATTERNS)


def found_desktop_ini(folder: Union[str, Path]) -> bool:
    """
    Search for a recycle bin desktop.ini in folder.

    The file content is not parsed; only the recycle bin class ID is
    looked for.
    """
    ini_path = Path(folder) / "desktop.ini"
    if not ini_path.is_file():
        return False

    try:
        content = ini_path.read_bytes()
    except OSError as e:
        logger.debug(f"Can not read {ini_path}: {e}")
        return False

    # desktop.ini is either ANSI or UTF-16LE with BOM
    if content.startswith(b'\xff\xfe'):
        text = content[2:].decode('utf-16-le', errors='replace')
    else:
        text = content.decode('latin-1')
    return RECYCLE_BIN_CLSID in text.upper()


def list_index_files(folder: Union[str, Path]) -> List[Path]:
    """
    Enumerate $I index files inside a $Recycle.bin style folder.

    Raises:
        OpenFileError: If the folder can't be listed
    """
    try:
        names = os.listdir(folder)
    except OSError as e:
        raise OpenFileError(f"Error opening directory '{folder}': {e.strerror or e}") from e

    found = [Path(folder) / name for name in sorted(names) if is_index_file_name(name)]
    logger.debug(f"Found {len(found)} index file(s) in '{folder}'")
    return found


def discover(path: Union[str, Path], kind: BinType) -> List[Path]:
    """
    Collect the files to decode for the given input path.

    Args:
        path: INFO2 file, $Recycle.bin folder, or a single $I file
        kind: Which artifact flavour the caller decodes

    Returns:
        Files to decode. An empty list means a valid but empty
        $Recycle.bin folder.

    Raises:
        OpenFileError: Path does not exist, is of the wrong kind, or is a
                       folder that is not a recycle bin
        ArgumentError: Path argument is empty
    """
    if path is None or str(path) == "":
        raise ArgumentError("No input path given.")

    path = Path(path)
    if not path.exists():
        raise OpenFileError(f"'{path}' does not exist.")

    if kind is BinType.INFO2:
        if not path.is_file():
            raise OpenFileError(f"'{path}' is not a normal file.")
        return [path]

    if path.is_file():
        return [path]

    if not path.is_dir():
        raise OpenFileError(f"'{path}' is not a normal file or directory.")

    files = list_index_files(path)
    if files:
        return files

    # Last ditch effort: an empty recycle bin still carries desktop.ini
    if found_desktop_ini(path):
        logger.debug(f"'{path}' is an empty recycle bin")
        return []

    raise OpenFileError(
        f"No files with name pattern '$Ixxxxxx.xxx' are found in directory "
        f"'{path}'. Probably not a $Recycle.bin directory.")
