"""
Run Configuration Module

A MigrationConfig is built once per run, from DAG params or command-line
arguments, and passed unchanged to every phase.

Environment defaults:
- DIFF_SIZE_THRESHOLD_MB: size above which verification compares checksums (default 100)
- DUMP_ENCODING: text encoding of the dump files (default utf-8)
"""

from typing import Any, Dict, List, Tuple
from mysql_pg_load.table_config import parse_table_list
from mysql_pg_load.utils import validate_sql_identifier
import dataclasses
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_CONN_ID = 'postgres_target'
DEFAULT_SAMPLE_LINES = 10


def _get_diff_threshold_mb() -> float:
    return float(os.environ.get('DIFF_SIZE_THRESHOLD_MB', '100'))


def _get_dump_encoding() -> str:
    return os.environ.get('DUMP_ENCODING', 'utf-8')


def _is_enabled(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    return bool(value)


@dataclasses.dataclass(frozen=True)
class MigrationConfig:
    """Immutable settings for one load/export/verify run."""

    data_dir: str
    target_conn_id: str = DEFAULT_CONN_ID
    schema: str = 'public'
    only: Tuple[str, ...] = ()
    skip: Tuple[str, ...] = ()
    dry_run: bool = False
    do_import: bool = True
    export: bool = False
    verify: bool = False
    diff_threshold_mb: float = dataclasses.field(default_factory=_get_diff_threshold_mb)
    sample_lines: int = DEFAULT_SAMPLE_LINES
    encoding: str = dataclasses.field(default_factory=_get_dump_encoding)
    verbose: bool = False

    def __post_init__(self):
        validate_sql_identifier(self.schema, "schema")
        if not self.data_dir:
            raise ValueError("data_dir is required")
        if self.diff_threshold_mb <= 0:
            raise ValueError(f"diff_threshold_mb must be positive (got {self.diff_threshold_mb})")
        if self.sample_lines < 1:
            raise ValueError(f"sample_lines must be at least 1 (got {self.sample_lines})")

    @property
    def wants_export(self) -> bool:
        """Export runs when requested explicitly or implied by verification."""
        return self.export or self.verify

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "MigrationConfig":
        """
        Build a configuration from Airflow DAG params.

        ``only`` and ``skip`` accept lists, JSON strings or comma-separated
        strings.

        Args:
            params: DAG params dictionary

        Returns:
            MigrationConfig
        """
        kwargs: Dict[str, Any] = {
            'data_dir': params.get('data_dir', ''),
            'target_conn_id': params.get('target_conn_id') or DEFAULT_CONN_ID,
            'schema': params.get('target_schema') or 'public',
            'only': tuple(parse_table_list(params.get('only', []))),
            'skip': tuple(parse_table_list(params.get('skip', []))),
            'dry_run': _is_enabled(params.get('dry_run', False)),
            'do_import': not _is_enabled(params.get('no_import', False)),
            'export': _is_enabled(params.get('export', False)),
            'verify': _is_enabled(params.get('verify', False)),
            'verbose': _is_enabled(params.get('verbose', False)),
        }
        if params.get('diff_threshold_mb') is not None:
            kwargs['diff_threshold_mb'] = float(params['diff_threshold_mb'])
        if params.get('encoding'):
            kwargs['encoding'] = params['encoding']
        return cls(**kwargs)

    def describe(self) -> List[str]:
        """Return the settings as log-friendly lines."""
        phases = [
            name for name, enabled in (
                ('import', self.do_import),
                ('export', self.export),
                ('verify', self.verify),
            ) if enabled
        ]
        return [
            f"Data directory: {self.data_dir}",
            f"Target: {self.target_conn_id} (schema {self.schema})",
            f"Phases: {', '.join(phases) or 'none'}{' [dry-run]' if self.dry_run else ''}",
            f"Only: {', '.join(self.only) or '-'}; Skip: {', '.join(self.skip) or '-'}",
            f"Diff threshold: {self.diff_threshold_mb:g} MB",
        ]
