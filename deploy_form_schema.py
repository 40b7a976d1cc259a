"""Deploy generated form schemas to SQL Server and write enriched form JSON.

Three steps, each reported on its own so a failure is easy to place:

1. Generate the script for every form (same engine as ``form_sql_generator.py``).
2. Test the connection, then run the script batch by batch in one transaction.
3. Only when execution succeeded, write ``<form>_enriched.json`` next to the
   script with the deployment mapping attached.

Generation and execution stay separate steps: the script written to
``schema.sql`` can be re-run by hand if execution fails.
"""
from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
from urllib.parse import quote_plus

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from form_sql_generator import (
    ArtifactWriter,
    SqlDeploymentInfo,
    enrich_forms,
    generate_batch,
    load_forms,
    report_batch,
    run_folder,
    split_batches,
)
from form_schema import CONFIG, sanitize
from sql_renderers import TableStructureType, parse_strategy


DEFAULT_DRIVER = os.environ.get("MSSQL_ODBC_DRIVER", "ODBC Driver 18 for SQL Server")


def build_mssql_url(
    server: str,
    database: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    driver: str = DEFAULT_DRIVER,
    trust_server_certificate: bool = True,
) -> str:
    """Build an ``mssql+pyodbc`` URL; without a username Windows authentication is used."""
    query = f"driver={quote_plus(driver)}"
    if trust_server_certificate:
        query += "&TrustServerCertificate=yes"
    if username:
        credentials = quote_plus(username) + ":" + quote_plus(password or "") + "@"
    else:
        credentials = ""
        query += "&Trusted_Connection=yes"
    return f"mssql+pyodbc://{credentials}{server}/{quote_plus(database)}?{query}"


# --------------------------------------------------------------------------------------
# Script executor
# --------------------------------------------------------------------------------------
@dataclass
class ExecutionResult:
    success: bool
    message: str = ""
    rows_affected: int = 0
    batches_executed: int = 0


def _has_statement(batch: str) -> bool:
    return any(line.strip() and not line.strip().startswith("--") for line in batch.splitlines())


class ScriptExecutor:
    """Thin wrapper around SQLAlchemy that runs generated scripts batch by batch."""

    def __init__(self, url: Union[str, Engine]) -> None:
        self.engine: Engine = url if isinstance(url, Engine) else create_engine(url, future=True)

    def test_connection(self) -> ExecutionResult:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            return ExecutionResult(success=False, message=f"Connection failed: {exc}")
        return ExecutionResult(success=True, message="Connection succeeded")

    def execute_script(self, script_text: str) -> ExecutionResult:
        """Run every batch inside one transaction; the first failing batch rolls all back."""
        batches = [b.strip() for b in split_batches(script_text) if _has_statement(b)]
        rows = 0
        executed = 0
        try:
            with self.engine.begin() as conn:
                for batch in batches:
                    result = conn.exec_driver_sql(batch)
                    if result.rowcount and result.rowcount > 0:
                        rows += result.rowcount
                    executed += 1
        except SQLAlchemyError as exc:
            return ExecutionResult(
                success=False,
                message=f"Batch {executed + 1} of {len(batches)} failed: {exc}",
                batches_executed=executed,
            )
        return ExecutionResult(
            success=True,
            message=f"Executed {executed} batches, {rows} rows affected",
            rows_affected=rows,
            batches_executed=executed,
        )

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return sorted(inspect(self.engine).get_table_names(schema=schema))

    def dispose(self) -> None:
        self.engine.dispose()


# --------------------------------------------------------------------------------------
# Runner
# --------------------------------------------------------------------------------------
class DeployRunner:
    """Generates, executes and enriches in that order, stopping at the first failed step."""

    def __init__(self, args: argparse.Namespace, executor: Optional[ScriptExecutor] = None) -> None:
        self.args = args
        self.strategy: TableStructureType = parse_strategy(args.strategy)
        self.output_root = run_folder(args.output)
        self.writer = ArtifactWriter(self.output_root)
        self.executor = executor

    def run(self) -> int:
        forms, load_failures = load_forms(self.args.forms)
        print(f"[INFO] Generating {self.strategy.value} schema for {len(forms)} form(s)")
        batch = generate_batch(forms, self.strategy, database=self.args.database, max_workers=self.args.workers)
        report_batch(batch, load_failures)
        self.writer.record_batch(batch)
        self.writer.finalize()
        if not batch.succeeded:
            print("[ERROR] Nothing to deploy.")
            return 1

        executor = self.executor or ScriptExecutor(
            build_mssql_url(self.args.server, self.args.database, self.args.username, self.args.password, self.args.driver)
        )
        print(f"[INFO] Connecting to {self.args.server}/{self.args.database}")
        connection = executor.test_connection()
        if not connection.success:
            print(f"[ERROR] {connection.message}")
            print("[WARN] Deployment not attempted; skipping enrichment.")
            return 2

        print(f"[INFO] Executing {batch.total_scripts} scripts")
        execution = executor.execute_script(batch.script_text)
        if not execution.success:
            print(f"[ERROR] {execution.message}")
            print("[WARN] Deployment failed; skipping enrichment.")
            return 2
        print(f"[INFO] {execution.message}")

        info = SqlDeploymentInfo(
            server=self.args.server,
            database=self.args.database,
            strategy=self.strategy,
            authentication_type="SQL" if self.args.username else "Windows",
        )
        documents = enrich_forms(forms, batch, execution, info)
        for document in documents:
            path = self.output_root / f"{sanitize(document['FormName'], 'form')}_enriched.json"
            self.writer.write_json(path, document)
            print(f"[INFO] Wrote {path}")
        self.writer.write_json(self.output_root / "deployment.json", info.to_dict())
        print(f"[INFO] Run complete. Artifacts at {self.output_root}")
        return 1 if batch.failed or load_failures else 0


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate, deploy and enrich SQL Server schemas for analyzed forms.")
    parser.add_argument("forms", nargs="+", help="Analyzed form JSON files.")
    parser.add_argument(
        "--strategy",
        required=True,
        choices=[s.value for s in TableStructureType],
        help="Table structure strategy.",
    )
    parser.add_argument("--server", required=True, help="SQL Server host, optionally host\\instance.")
    parser.add_argument("--database", required=True, help="Target database.")
    parser.add_argument("--username", help="SQL authentication user (Windows authentication when omitted).")
    parser.add_argument(
        "--password", default=os.environ.get("MSSQL_PASSWORD"), help="SQL authentication password (default: env MSSQL_PASSWORD)"
    )
    parser.add_argument("--driver", default=DEFAULT_DRIVER, help="ODBC driver name (default: %(default)s)")
    parser.add_argument("--output", default=CONFIG["OUTPUT"]["BASE_PATH"], help="Artifact folder (default: %(default)s)")
    parser.add_argument(
        "--workers",
        type=int,
        default=CONFIG["GENERATION"]["MAX_WORKERS"],
        help="Forms analysed concurrently (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    return DeployRunner(_parse_args(argv)).run()


if __name__ == "__main__":
    sys.exit(main())
