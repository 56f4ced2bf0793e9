"""
Recycle bin collectors.
Discovery of input files and decoders for INFO2 and $Recycle.bin index files.
"""

from .bin_discovery import discover, found_desktop_ini, list_index_files
from .info2_claw import Info2Parser, parse_info2
from .live_bins import enumerate_drive_bins, live_mode_supported
from .recyclebin_claw import RecycleBinParser, parse_recycle_bin, reconcile_versions

__all__ = ['discover', 'found_desktop_ini', 'list_index_files', 'Info2Parser', 'parse_info2',
           'enumerate_drive_bins', 'live_mode_supported', 'RecycleBinParser',
           'parse_recycle_bin', 'reconcile_versions']
