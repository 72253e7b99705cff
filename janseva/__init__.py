"""Janseva Tracker: civic complaint intake with duplicate detection and priority triage."""

__version__ = "1.0.0"
