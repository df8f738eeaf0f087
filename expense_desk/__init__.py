"""Expense Desk: expense submission, receipt handling and finance review API."""

__version__ = "0.1.0"
