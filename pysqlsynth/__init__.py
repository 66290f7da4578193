"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This library turns data-class entity descriptions and declarative join, filter and aggregate expressions into
parameterized SQL text and a matching parameter set, covering multi-table joins, paged reads, aggregates, and
single and batch insert, update and delete.
"""

__version__ = "0.3.1"
__author__ = "pysqlsynth contributors"
__copyright__ = "Copyright 2025, pysqlsynth contributors"
__license__ = "MIT"
__maintainer__ = "pysqlsynth contributors"
__status__ = "Production"
