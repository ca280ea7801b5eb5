#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests run against in-memory collaborators and need no services:

    # Run all tests
    python -m pytest tests/ -v

    # Skip tests that need a live Redis
    python -m pytest tests/ -v -m "not redis"

Redis-backed tests read TEST_REDIS_URL (default redis://localhost:6379/15)
and are skipped unless that variable is set explicitly.
"""

import os

TEST_REDIS_URL = os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")
