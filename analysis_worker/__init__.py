"""
Analysis Worker - Versioned Script Storage and Team Structure API
=================================================================

A FastAPI service that stores user-authored analysis scripts, keeps an
append-only version history for each one, and organizes them into a
per-team folder tree.
"""

__version__ = "1.0.0"
