"""
MySQL Dump to PostgreSQL Load DAG

This DAG bulk-loads a directory of MySQL tab-delimited dumps into an
existing PostgreSQL schema. It handles:
1. Discovering <table>.txt dump files (optionally filtered by only/skip)
2. Dropping key constraints and indexes around each table's COPY
3. Re-creating keys, indexes and foreign keys after the load
4. Resetting sequences to the loaded maximum
5. Optionally exporting the tables again and verifying them against the dumps

Tables are loaded one at a time over a single connection; a failed table
does not stop the others, but the task fails at the end so it is visible.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
import logging

from mysql_pg_load.config import MigrationConfig
from mysql_pg_load.runner import run_migration

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 0,  # A rerun reloads every table from scratch
        "retry_delay": timedelta(seconds=30),
    },
    params={
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "target_schema": Param(
            default="public",
            type="string",
            description="Destination schema in PostgreSQL"
        ),
        "data_dir": Param(
            default="/opt/airflow/data/dumps",
            type="string",
            description="Directory containing <table>.txt dump files"
        ),
        "only": Param(
            default=[],
            type="array",
            description="Only load these tables"
        ),
        "skip": Param(
            default=[],
            type="array",
            description="Tables to leave out"
        ),
        "dry_run": Param(
            default=False,
            type="boolean",
            description="Log the statements instead of executing them"
        ),
        "no_import": Param(
            default=False,
            type="boolean",
            description="Skip the load phase (export/verify only)"
        ),
        "export": Param(
            default=False,
            type="boolean",
            description="Export tables to <table>.txt.postgres, replacing existing files"
        ),
        "verify": Param(
            default=True,
            type="boolean",
            description="Compare every dump with its export"
        ),
        "diff_threshold_mb": Param(
            default=100,
            type="number",
            minimum=1,
            description="File size in MB above which verification compares checksums"
        ),
        "verbose": Param(
            default=False,
            type="boolean",
            description="Log every SQL statement"
        ),
    },
    tags=["migration", "mysql", "postgres", "bulk-load"],
)
def mysql_to_postgres_load():
    """
    Main DAG for loading MySQL dumps into PostgreSQL.
    """

    @task
    def load_dumps(**context) -> dict:
        """
        Run the load, export and verification phases.

        Returns:
            Summary with the tables processed and those that failed
        """
        params = context["params"]
        config = MigrationConfig.from_params(params)

        if config.verbose:
            logging.getLogger("mysql_pg_load").setLevel(logging.DEBUG)

        summary = run_migration(config)

        context["ti"].xcom_push(key="failed_tables", value=summary.failed_tables)

        if not summary.success:
            raise ValueError(
                f"Load completed with issues: {len(summary.failed_tables)}/"
                f"{len(summary.tables)} tables failed: {', '.join(summary.failed_tables)}"
            )

        return {
            "tables": summary.tables,
            "failed_tables": summary.failed_tables,
            "sequences_reset": len(summary.sequences),
        }

    load_dumps()


# Instantiate the DAG
mysql_to_postgres_load()
