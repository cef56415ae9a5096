"""
Integration tests for the booking core.

Use cases run against the in-memory adapters through the shared harness;
test_sql_repositories runs the SQL adapters against SQLite.
"""
