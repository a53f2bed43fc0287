"""
Pipeline forecast tracker.

Sales/CS pipeline records with spreadsheet-parity revenue forecasting.
"""

__version__ = "1.4.0"
