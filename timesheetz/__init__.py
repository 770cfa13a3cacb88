"""
timesheetz - time tracking on a local and a remote database at once.

Business code talks to a DataLayer; which store(s) sit behind it is a
configuration choice. A SyncService reconciles the two stores.
"""

__version__ = "0.1.0"
