"""
Path conversion from raw recycle bin bytes to printable text.

Paths come either in a legacy 8-bit (or DBCS) Windows code page or in
UTF-16LE. Conversion never fails: every byte or code unit that can't be
decoded is replaced by a ``printf``-style escape, and every decoded
character that is not printable is escaped again in a second pass. Escape
templates differ per output format; they are enclosed in angle brackets
because those can't appear in Windows file names.

JSON conversion marks ``\\u`` escapes with an asterisk (also illegal in
file names) during both passes, and ``json_escape`` rewrites the marker
into a real backslash once the rest of the string has been escaped.
"""

import codecs
import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config.data_models import ReportFormat

logger = logging.getLogger(__name__)

# Sentinel source encoding for Windows wide char paths
UTF16_ENCODING = "UTF-16LE"

# Windows MAX_PATH in characters, fixed size of most path fields
WIN_PATH_MAX = 260

# Unicode categories glib does not consider graphic
_NON_GRAPHIC_CATEGORIES = frozenset({'Cc', 'Cf', 'Cn', 'Cs', 'Zs'})

_JSON_SHORT_ESCAPES = {
    '\b': '\\b',
    '\t': '\\t',
    '\n': '\\n',
    '\f': '\\f',
    '\r': '\\r',
}

_DELIMITER_ESCAPES = {
    'r': '\r',
    'n': '\n',
    't': '\t',
    'v': '\v',
    'f': '\f',
    'e': '\x1b',
    '\\': '\\',
}


@dataclass(frozen=True)
class FallbackTemplates:
    """printf templates for characters that can't be shown verbatim."""
    byte: str    # single illegal byte
    ucs2: str    # illegal UTF-16 code unit
    utf8: str    # valid but non-printable code point


FALLBACK_TEMPLATES: Dict[ReportFormat, FallbackTemplates] = {
    ReportFormat.TEXT: FallbackTemplates("<\\%02X>", "<\\u%04X>", "<\\u%04X>"),
    ReportFormat.XML: FallbackTemplates("<\\%02X>", "<\\u%04X>", "<\\u%04X>"),
    ReportFormat.JSON: FallbackTemplates("<\\%02X>", "*u%04X", "*u%04X"),
}


@dataclass
class ConvertedPath:
    """Result of a path conversion.

    Attributes:
        text: Printable UTF-8 path with escapes applied
        consumed: Number of input bytes up to (not including) the terminator
        error_offsets: Byte offsets of illegal sequences in the input
    """
    text: str
    consumed: int
    error_offsets: List[int] = field(default_factory=list)

    @property
    def had_errors(self) -> bool:
        return bool(self.error_offsets)

    def describe_errors(self) -> str:
        offsets = ", ".join(str(o) for o in self.error_offsets)
        return f"Illegal sequence or partial input at offset {offsets}"


def is_printable_char(ch: str) -> bool:
    """ASCII space and graphic characters are printable; other spaces are not."""
    return ch == ' ' or unicodedata.category(ch) not in _NON_GRAPHIC_CATEGORIES


def utf16_byte_length(raw: bytes, max_units: Optional[int] = None) -> int:
    """
    Byte length of a UTF-16 string up to its double-null terminator.

    Args:
        raw: Buffer holding the string
        max_units: Stop after this many code units even without terminator

    Returns:
        Length in bytes; odd when the buffer ends with a stray byte, which
        is then treated as a one-byte broken unit
    """
    limit = len(raw)
    if max_units is not None:
        limit = min(limit, max_units * 2)

    pos = 0
    while pos + 1 < limit:
        if raw[pos] == 0 and raw[pos + 1] == 0:
            return pos
        pos += 2

    # Lone trailing byte
    if pos < limit and raw[pos] != 0:
        return pos + 1
    return pos


def legacy_byte_length(raw: bytes, max_bytes: Optional[int] = None) -> int:
    """Byte length of a code page string up to its null terminator."""
    limit = len(raw) if max_bytes is None else min(len(raw), max_bytes)
    end = raw.find(b'\0', 0, limit)
    return limit if end == -1 else end


def _escape_code_point(ch: str, fmt: ReportFormat) -> str:
    tmpl = FALLBACK_TEMPLATES[fmt].utf8
    cp = ord(ch)
    # JSON \u escapes hold one UTF-16 code unit each
    if fmt is ReportFormat.JSON and cp > 0xFFFF:
        cp -= 0x10000
        return tmpl % (0xD800 + (cp >> 10)) + tmpl % (0xDC00 + (cp & 0x3FF))
    return tmpl % cp


def filter_printable(text: str, fmt: ReportFormat = ReportFormat.TEXT) -> str:
    """
    Escape every character that is neither graphic nor ASCII space.

    Escapes are themselves printable, so filtering twice changes nothing.
    JSON escapes use the ``*uXXXX`` placeholder; ``json_escape`` turns them
    into real string escapes afterwards.
    """
    return ''.join(ch if is_printable_char(ch) else _escape_code_point(ch, fmt)
                   for ch in text)


def json_escape(text: str) -> str:
    """
    Escape text for inclusion inside a JSON string literal.

    Rewrites the ``*uXXXX`` placeholder produced by JSON conversion into
    ``\\uXXXX``, escapes backslash and double quote, uses the short JSON
    escapes where they exist and ``\\uXXXX`` (as surrogate pairs beyond the
    BMP) for every other non-printable character.
    """
    out = []
    for ch in text:
        if ch == '\\':
            out.append('\\\\')
        elif ch == '"':
            out.append('\\"')
        elif ch == '*':
            out.append('\\')
        elif ch in _JSON_SHORT_ESCAPES:
            out.append(_JSON_SHORT_ESCAPES[ch])
        elif is_printable_char(ch):
            out.append(ch)
        else:
            cp = ord(ch)
            if cp > 0xFFFF:
                cp -= 0x10000
                out.append('\\u%04X\\u%04X' % (0xD800 + (cp >> 10), 0xDC00 + (cp & 0x3FF)))
            else:
                out.append('\\u%04X' % cp)
    return ''.join(out)


def _python_codec(encoding: Optional[str]) -> str:
    if encoding is None or encoding.upper().replace('-', '').replace('_', '') == "UTF16LE":
        return 'utf-16-le'
    return encoding


def convert_path(raw: bytes, encoding: Optional[str] = None,
                 fmt: ReportFormat = ReportFormat.TEXT,
                 max_units: Optional[int] = None) -> ConvertedPath:
    """
    Convert a raw path field to printable text.

    Args:
        raw: Path field bytes; conversion stops at the null terminator
        encoding: Legacy code page name (e.g. ``CP1252``), or None /
                  ``UTF-16LE`` for Windows wide char paths
        fmt: Output format selecting the escape templates
        max_units: Maximum characters (UTF-16) or bytes (code page) to read

    Returns:
        ConvertedPath with escaped text, consumed byte count and offsets
        of illegal sequences
    """
    tmpl = FALLBACK_TEMPLATES[fmt]
    codec = _python_codec(encoding)
    is_wide = codec == 'utf-16-le'

    if is_wide:
        length = utf16_byte_length(raw, max_units)
        width = 2
    else:
        length = legacy_byte_length(raw, max_units)
        width = 1

    data = bytes(raw[:length])
    decoder = codecs.getincrementaldecoder(codec)()
    pieces = []
    offsets = []
    pos = 0
    # Offset of the first byte still buffered inside the decoder
    held = 0

    # Pass 1: decode one unit at a time, replacing each illegal unit with
    # its escape and restarting the decoder right after it
    while True:
        final = pos >= len(data)
        unit = data[pos:pos + width]
        try:
            piece = decoder.decode(unit, final)
        except UnicodeDecodeError as e:
            bad = held + e.start
            unit = data[bad:bad + width]
            if len(unit) == 2:
                pieces.append(tmpl.ucs2 % int.from_bytes(unit, 'little'))
            else:
                pieces.append(tmpl.byte % unit[0])
            offsets.append(bad)
            logger.debug(f"Illegal sequence at offset {bad}: {e.reason}")
            decoder.reset()
            pos = held = bad + len(unit)
            continue

        pieces.append(piece)
        if final:
            break
        pos += len(unit)
        held = pos - len(decoder.getstate()[0])

    # Pass 2: escape characters that are valid but not printable
    text = filter_printable(''.join(pieces), fmt)
    if fmt is ReportFormat.JSON:
        text = json_escape(text)
    return ConvertedPath(text=text, consumed=length, error_offsets=offsets)


def filter_escapes(delimiter: str) -> str:
    """
    Resolve escape sequences in a user supplied delimiter.

    Handles ``\\r \\n \\t \\v \\f \\e \\\\``; any other backslash is kept
    literally.
    """
    out = []
    i = 0
    while i < len(delimiter):
        ch = delimiter[i]
        if ch == '\\' and i + 1 < len(delimiter) and delimiter[i + 1] in _DELIMITER_ESCAPES:
            out.append(_DELIMITER_ESCAPES[delimiter[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1

    result = ''.join(out)
    logger.debug("filtered delimiter = " + ''.join(
        c if 0x20 <= ord(c) <= 0x7E else '\\x%02X' % ord(c) for c in result))
    return result


def encoding_is_ascii_compatible(encoding: str) -> bool:
    """
    Check that an encoding maps drive letters and path separators like ASCII.

    Returns:
        False for unknown encodings and ASCII incompatible ones (e.g. EBCDIC)
    """
    probe = "C:\\"
    try:
        codecs.lookup(encoding)
        return probe.encode('ascii').decode(encoding) == probe
    except (LookupError, UnicodeDecodeError):
        return False
