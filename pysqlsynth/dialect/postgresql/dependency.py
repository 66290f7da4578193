"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module defines dependencies required for PostgreSQL.
"""

import asyncpg  # noqa: F401
