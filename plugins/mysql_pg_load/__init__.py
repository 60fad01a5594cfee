"""
MySQL Dump to PostgreSQL Loading Utilities

This package bulk-loads MySQL tab-delimited dumps (one <table>.txt per
table) into an existing PostgreSQL schema and verifies the result, from
Apache Airflow or the command line.

Modules:
- transcoder: Convert dump escaping to PostgreSQL COPY text and back
- catalog: Read indexes, key constraints and sequences from pg_catalog
- choreography: Drop and restore keys and indexes around a load
- data_transfer: Load each table in its own transaction
- sequences: Reset sequences to the loaded maximum
- validation: Export tables and compare them with the dumps
- runner: Sequence the phases of a run

Configuration Options:
- DIFF_SIZE_THRESHOLD_MB=N: Checksum instead of diff above N MB (default 100)
- DUMP_ENCODING=name: Encoding of the dump files (default utf-8)
"""

__version__ = "1.0.0"

from mysql_pg_load import transcoder
from mysql_pg_load import catalog
from mysql_pg_load import choreography
from mysql_pg_load import data_transfer
from mysql_pg_load import sequences
from mysql_pg_load import validation

__all__ = [
    "transcoder",
    "catalog",
    "choreography",
    "data_transfer",
    "sequences",
    "validation",
]
