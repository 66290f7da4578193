"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module defines dependencies required for Microsoft SQL Server.
"""

import pyodbc  # noqa: F401
