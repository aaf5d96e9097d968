"""
MyIEP Tracker

Local-first progress tracking for IEP goals with best-effort cloud backup.
"""

__version__ = "0.1.0"
