"""
Rifiuti - Windows Recycle Bin Forensic Decoder
Decodes INFO2 files and $Recycle.bin index files into text, XML or JSON reports.
"""

__version__ = "0.8.1"
__author__ = "Rifiuti developers"
