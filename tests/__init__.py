"""
Test suite for schemamend.

Unit tests live in tests/unit and run without a database: the reconciler
is driven through an in-memory gateway, the REST gateway through
aioresponses and the PostgreSQL gateway through mocked pools.
"""
