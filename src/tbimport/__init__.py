"""
tbimport - Trial balance spreadsheet import and reconciliation.
"""

__version__ = "1.0.0"
