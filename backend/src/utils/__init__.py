"""
Utility modules for the scheduling backend.

This package contains shared utility functions and helpers used across
the application, including datetime utilities, minute-of-day arithmetic,
slot helpers, and database query helpers.
"""
