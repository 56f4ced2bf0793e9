"""
Data model for the recycle bin decoders.
Provides the unified record type and run-level metadata.
"""

from .models import (
    BROKEN_SIZE, BinMetadata, BinVersion, DecodeResult, OsGuess, RecordIssue,
    RecycleRecord, VersionKind
)

__all__ = ['BROKEN_SIZE', 'BinMetadata', 'BinVersion', 'DecodeResult', 'OsGuess',
           'RecordIssue', 'RecycleRecord', 'VersionKind']
