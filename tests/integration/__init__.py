"""Integration tests for tsprune.

These tests run the SQL backend against a real database. SQLite files in a
temporary directory are used, so no external service is needed.
"""
