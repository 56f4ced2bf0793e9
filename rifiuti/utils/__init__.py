"""
Utility functions and helpers for the recycle bin decoders.
Includes path conversion, checked field access and time rendering.
"""

from .byte_reader import FieldReader
from .path_conversion import (
    ConvertedPath, FALLBACK_TEMPLATES, UTF16_ENCODING, WIN_PATH_MAX,
    convert_path, encoding_is_ascii_compatible, filter_escapes,
    filter_printable, json_escape, utf16_byte_length
)
from .timestamps import (
    epoch_to_datetime, filetime_to_epoch, format_deletion_time, timezone_label
)

__all__ = ['FieldReader', 'ConvertedPath', 'FALLBACK_TEMPLATES', 'UTF16_ENCODING',
           'WIN_PATH_MAX', 'convert_path', 'encoding_is_ascii_compatible',
           'filter_escapes', 'filter_printable', 'json_escape', 'utf16_byte_length',
           'epoch_to_datetime', 'filetime_to_epoch', 'format_deletion_time',
           'timezone_label']
