"""
Multi-form SQL Server schema generation.

Loads analyzed form JSON files, synthesizes one deployment script for all of
them with the chosen table structure strategy and records, per form, the
mapping between form fields and the database objects created for them.

Usage:

    python form_sql_generator.py TravelRequest.json Expenses.json --strategy FlatTables

Artifacts (``schema.sql``, ``mappings.json``, ``manifest.json``,
``summary.csv``) are written under a timestamped run folder so that repeated
runs never overwrite each other. The script text itself carries no timestamps:
generating twice from the same input yields identical SQL.
"""
from __future__ import annotations

import argparse
import csv
import json
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from form_model import FormModel, form_model_to_dict, load_form_model
from form_schema import (
    CONFIG,
    SchemaGraph,
    UnsupportedStrategyError,
    analyze,
    build_name_plan,
    carries_data,
    distinct_options,
    quote_ident,
    sanitize,
    sql_type,
)
from sql_renderers import (
    NormalizedQARenderer,
    SchemaRenderer,
    ScriptSet,
    SqlScript,
    TableStructureType,
    get_renderer,
    number_scripts,
    parse_strategy,
)


# --------------------------------------------------------------------------------------
# Deployment mapping
# --------------------------------------------------------------------------------------
@dataclass
class ColumnMapping:
    field_name: str
    column_name: str
    sql_type: str
    control_type: str
    is_in_main_table: bool
    table_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FieldName": self.field_name,
            "ColumnName": self.column_name,
            "SqlType": self.sql_type,
            "ControlType": self.control_type,
            "IsInMainTable": self.is_in_main_table,
            "TableName": self.table_name,
        }


@dataclass
class RepeatingSectionMapping:
    section_name: str
    table_name: str
    foreign_key_column: str
    parent_table_name: Optional[str] = None
    columns: List[ColumnMapping] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "SectionName": self.section_name,
            "TableName": self.table_name,
            "ForeignKeyColumn": self.foreign_key_column,
            "ParentTableName": self.parent_table_name,
            "Columns": [c.to_dict() for c in self.columns],
        }


@dataclass
class LookupTableMapping:
    field_name: str
    lookup_table_name: str
    values: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FieldName": self.field_name,
            "LookupTableName": self.lookup_table_name,
            "Values": list(self.values),
        }


@dataclass
class DeploymentMapping:
    form_name: str
    strategy: TableStructureType
    main_table_name: str
    column_mappings: List[ColumnMapping] = field(default_factory=list)
    repeating_section_mappings: List[RepeatingSectionMapping] = field(default_factory=list)
    lookup_table_mappings: List[LookupTableMapping] = field(default_factory=list)
    stored_procedures: List[str] = field(default_factory=list)
    views: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FormName": self.form_name,
            "Strategy": self.strategy.value,
            "MainTableName": self.main_table_name,
            "ColumnMappings": [c.to_dict() for c in self.column_mappings],
            "RepeatingSectionMappings": [r.to_dict() for r in self.repeating_section_mappings],
            "LookupTableMappings": [lk.to_dict() for lk in self.lookup_table_mappings],
            "StoredProcedures": list(self.stored_procedures),
            "Views": list(self.views),
        }


@dataclass
class SqlDeploymentInfo:
    """Where and when a set of mappings was deployed."""

    server: str
    database: str
    strategy: TableStructureType
    authentication_type: str = "Windows"
    deployment_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    form_mappings: Dict[str, DeploymentMapping] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Server": self.server,
            "Database": self.database,
            "Strategy": self.strategy.value,
            "AuthenticationType": self.authentication_type,
            "DeploymentDate": self.deployment_date.isoformat(),
            "FormMappings": {name: m.to_dict() for name, m in self.form_mappings.items()},
        }


def _option_values(control) -> List[str]:
    return [option.value for option in distinct_options(control)]


class MappingBuilder:
    """Derives the DeploymentMapping from the same graph the renderers consume."""

    def __init__(self, form: FormModel, graph: SchemaGraph, strategy: Union[str, TableStructureType]) -> None:
        self.form = form
        self.graph = graph
        self.renderer: SchemaRenderer = get_renderer(strategy)

    def build(self) -> DeploymentMapping:
        if isinstance(self.renderer, NormalizedQARenderer):
            mapping = self._normalized(self.renderer)
        else:
            mapping = self._flat()
        mapping.stored_procedures = self.renderer.procedure_names(self.graph)
        mapping.views = self.renderer.view_names(self.graph)
        return mapping

    def _flat(self) -> DeploymentMapping:
        plan = build_name_plan(self.graph)
        mapping = DeploymentMapping(
            form_name=self.form.name,
            strategy=TableStructureType.FLAT_TABLES,
            main_table_name=plan.main.table_name,
        )
        for table in plan.all_tables:
            in_main = table is plan.main
            columns = [
                ColumnMapping(
                    field_name=col.control.name,
                    column_name=col.column_name,
                    sql_type=str(col.sql_type),
                    control_type=col.control.type,
                    is_in_main_table=in_main,
                    table_name=table.table_name,
                )
                for col in table.columns
            ]
            mapping.column_mappings.extend(columns)
            if not in_main:
                mapping.repeating_section_mappings.append(
                    RepeatingSectionMapping(
                        section_name=table.key or "",
                        table_name=table.table_name,
                        foreign_key_column="ParentId",
                        parent_table_name=table.parent_table_name,
                        columns=columns,
                    )
                )
        for lookup in plan.lookups:
            mapping.lookup_table_mappings.append(
                LookupTableMapping(
                    field_name=lookup.control.name,
                    lookup_table_name=lookup.table_name,
                    values=_option_values(lookup.control),
                )
            )
        return mapping

    def _normalized(self, renderer: NormalizedQARenderer) -> DeploymentMapping:
        # Every form shares the meta-schema: fields live in Answers rows, sections
        # in RepeatingSectionInstances and choices in QuestionOptions.
        mapping = DeploymentMapping(
            form_name=self.form.name,
            strategy=TableStructureType.NORMALIZED_QA,
            main_table_name="Submissions",
        )
        by_section: Dict[str, List[ColumnMapping]] = {key: [] for key in self.graph.repeating_tables}
        for row in renderer.questions(self.graph):
            column_type = sql_type(row.control.type)
            column = ColumnMapping(
                field_name=row.control.name,
                column_name=column_type.answer_column,
                sql_type=column_type.name,
                control_type=row.control.type,
                is_in_main_table=row.section_name is None,
                table_name="Answers",
            )
            mapping.column_mappings.append(column)
            if row.section_name is not None:
                by_section[row.section_name].append(column)
            if row.control.has_static_data:
                mapping.lookup_table_mappings.append(
                    LookupTableMapping(
                        field_name=row.control.name,
                        lookup_table_name="QuestionOptions",
                        values=_option_values(row.control),
                    )
                )
        for key, table in self.graph.repeating_tables.items():
            nested = table.parent_table_key is not None
            mapping.repeating_section_mappings.append(
                RepeatingSectionMapping(
                    section_name=key,
                    table_name="RepeatingSectionInstances",
                    foreign_key_column="ParentInstanceId" if nested else "SubmissionId",
                    parent_table_name="RepeatingSectionInstances" if nested else "Submissions",
                    columns=by_section[key],
                )
            )
        return mapping


def build_mapping(form: FormModel, graph: SchemaGraph, strategy: Union[str, TableStructureType]) -> DeploymentMapping:
    return MappingBuilder(form, graph, strategy).build()


# --------------------------------------------------------------------------------------
# Batch generation
# --------------------------------------------------------------------------------------
@dataclass
class FormGenerationResult:
    form_name: str
    success: bool
    scripts: Optional[ScriptSet] = None
    mapping: Optional[DeploymentMapping] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def script_count(self) -> int:
        return len(self.scripts) if self.scripts else 0


@dataclass
class BatchResult:
    strategy: TableStructureType
    results: List[FormGenerationResult] = field(default_factory=list)
    shared_scripts: List[SqlScript] = field(default_factory=list)
    script_text: str = ""

    @property
    def succeeded(self) -> List[str]:
        return [r.form_name for r in self.results if r.success]

    @property
    def failed(self) -> List[str]:
        return [r.form_name for r in self.results if not r.success]

    @property
    def total_scripts(self) -> int:
        return len(self.shared_scripts) + sum(r.script_count for r in self.results)

    @property
    def mappings(self) -> List[DeploymentMapping]:
        return [r.mapping for r in self.results if r.success and r.mapping is not None]


def _has_data_fields(graph: SchemaGraph) -> bool:
    controls = list(graph.main_columns)
    for table in graph.repeating_tables.values():
        controls.extend(table.controls)
    return any(carries_data(c) for c in controls)


def generate_form(form: FormModel, renderer: SchemaRenderer) -> FormGenerationResult:
    """Analyze, render and map one form. Shared objects are left to the caller."""
    try:
        graph = analyze(form)
        scripts = renderer.render(graph, include_shared=False)
        mapping = build_mapping(form, graph, renderer.strategy)
    except UnsupportedStrategyError:
        raise
    except Exception as exc:
        return FormGenerationResult(form_name=form.name, success=False, error=f"{exc.__class__.__name__}: {exc}")

    warnings = list(graph.warnings)
    if not _has_data_fields(graph):
        warnings.append("form has no data fields")
    return FormGenerationResult(form_name=form.name, success=True, scripts=scripts, mapping=mapping, warnings=warnings)


def _warn_shared_names(forms: Sequence[FormModel], results: List[FormGenerationResult]) -> None:
    """Flag forms whose names sanitize to an identifier an earlier form already uses."""
    owners: Dict[str, str] = {}
    for form, result in zip(forms, results):
        if not result.success:
            continue
        identifier = sanitize(form.name, "form")
        first = owners.get(identifier.lower())
        if first is None:
            owners[identifier.lower()] = form.name
        else:
            result.warnings.append(
                f"form name maps to '{identifier}', already used by form '{first}'; its objects will collide on deploy"
            )


def generate_batch(
    forms: Sequence[FormModel],
    strategy: Union[str, TableStructureType, None],
    database: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> BatchResult:
    """Generate one script for all ``forms``; per-form failures do not stop the batch."""
    renderer = get_renderer(strategy)
    workers = max_workers or CONFIG["GENERATION"]["MAX_WORKERS"]

    if workers > 1 and len(forms) > 1:
        # map() yields in submission order, so the script keeps input order.
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda f: generate_form(f, renderer), forms))
    else:
        results = [generate_form(f, renderer) for f in forms]

    _warn_shared_names(forms, results)
    batch = BatchResult(strategy=renderer.strategy, results=results)
    if batch.succeeded:
        batch.shared_scripts = number_scripts(renderer.shared_scripts()) if isinstance(renderer, NormalizedQARenderer) else []
    batch.script_text = assemble_script(batch, database)
    return batch


def _banner(title: str, char: str = "-") -> List[str]:
    rule = "-- " + char * 78
    return [rule, f"-- {title}", rule]


def _script_block(script: SqlScript) -> List[str]:
    terminator = CONFIG["DIALECT"]["BATCH_TERMINATOR"]
    return [
        f"-- [{script.execution_order}] {script.name} ({script.type.value}): {script.description}",
        script.content,
        terminator,
        "",
    ]


def assemble_script(batch: BatchResult, database: Optional[str] = None) -> str:
    terminator = CONFIG["DIALECT"]["BATCH_TERMINATOR"]
    lines = _banner("Form schema deployment script", "=")
    lines.insert(2, f"-- Strategy: {batch.strategy.value}")
    lines.insert(3, f"-- Forms: {len(batch.results)} ({len(batch.succeeded)} succeeded, {len(batch.failed)} failed)")
    lines.append("")
    if database:
        lines += [f"USE {quote_ident(database)};", terminator, ""]

    if batch.shared_scripts:
        lines += _banner("Shared meta-schema") + [""]
        for script in batch.shared_scripts:
            lines += _script_block(script)

    for result in batch.results:
        if not result.success:
            reason = " ".join((result.error or "unknown error").split())
            lines += _banner(f"Form: {result.form_name} (skipped: {reason})") + [""]
            continue
        lines += _banner(f"Form: {result.form_name}") + [""]
        for script in result.scripts or []:
            lines += _script_block(script)

    lines += _banner(
        f"End of script: {batch.total_scripts} scripts, {len(batch.succeeded)} of {len(batch.results)} forms", "="
    )
    return "\n".join(lines) + "\n"


def split_batches(sql_text: str, terminator: Optional[str] = None) -> Iterator[str]:
    """Yield the batches of ``sql_text``; a batch ends at a line holding only the terminator."""
    terminator = (terminator or CONFIG["DIALECT"]["BATCH_TERMINATOR"]).upper()
    batch: List[str] = []
    for line in sql_text.splitlines():
        if line.strip().upper() == terminator:
            if batch:
                yield "\n".join(batch)
                batch = []
        else:
            batch.append(line)
    if batch:
        yield "\n".join(batch)


# --------------------------------------------------------------------------------------
# Enrichment
# --------------------------------------------------------------------------------------
def enrich_forms(
    forms: Sequence[FormModel],
    batch: BatchResult,
    execution: Any,
    deployment_info: SqlDeploymentInfo,
) -> List[Dict[str, Any]]:
    """Attach each successful form's mapping to its JSON document.

    Returns an empty list unless ``execution`` reports success: a mapping for a
    deployment that failed (or never ran) would describe objects that do not exist.
    """
    if execution is None or not getattr(execution, "success", False):
        return []

    documents: List[Dict[str, Any]] = []
    for form, result in zip(forms, batch.results):
        if not result.success or result.mapping is None:
            continue
        deployment_info.form_mappings[form.name] = result.mapping
        document = form_model_to_dict(form)
        document["SqlDeployment"] = {
            "Server": deployment_info.server,
            "Database": deployment_info.database,
            "Strategy": deployment_info.strategy.value,
            "AuthenticationType": deployment_info.authentication_type,
            "DeploymentDate": deployment_info.deployment_date.isoformat(),
            "Mapping": result.mapping.to_dict(),
        }
        documents.append(document)
    return documents


# --------------------------------------------------------------------------------------
# Artifact writer
# --------------------------------------------------------------------------------------
class ArtifactWriter:
    """Handles filesystem output for both machine-readable and human-readable artifacts."""

    SUMMARY_HEADER = ["form", "strategy", "success", "tables", "procedures", "views", "scripts", "warnings", "error"]

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.manifest: Dict[str, Any] = {"forms": []}
        self.summary_rows: List[List[Any]] = []

    def write_text(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def write_json(self, path: Path, obj: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(obj, indent=2, default=str), encoding="utf-8")

    def append_manifest(self, entry: Dict[str, Any]) -> None:
        self.manifest["forms"].append(entry)

    def record_batch(self, batch: BatchResult) -> None:
        self.write_text(self.base_path / "schema.sql", batch.script_text)
        self.write_json(self.base_path / "mappings.json", [m.to_dict() for m in batch.mappings])
        for result in batch.results:
            self.append_manifest(
                {
                    "form": result.form_name,
                    "success": result.success,
                    "scripts": result.script_count,
                    "warnings": result.warnings,
                    "error": result.error,
                }
            )
            tables = len(result.scripts.table_names) if result.scripts else 0
            mapping = result.mapping
            self.summary_rows.append(
                [
                    result.form_name,
                    batch.strategy.value,
                    result.success,
                    tables,
                    len(mapping.stored_procedures) if mapping else 0,
                    len(mapping.views) if mapping else 0,
                    result.script_count,
                    len(result.warnings),
                    result.error or "",
                ]
            )

    def finalize(self) -> None:
        (self.base_path / "manifest.json").write_text(json.dumps(self.manifest, indent=2, default=str))
        with (self.base_path / "summary.csv").open("w", newline="") as fh:
            writer = csv.writer(fh)
            writer.writerow(self.SUMMARY_HEADER)
            for row in self.summary_rows:
                writer.writerow(row)


def run_folder(base_path: Optional[str] = None) -> Path:
    ts = datetime.now(timezone.utc).strftime("run_%Y%m%d_%H%M%S")
    return Path(base_path or CONFIG["OUTPUT"]["BASE_PATH"]) / ts


def load_forms(paths: Sequence[str]) -> Tuple[List[FormModel], List[Tuple[str, str]]]:
    """Load every path; unreadable files are returned as (path, error) instead of raising."""
    forms: List[FormModel] = []
    failures: List[Tuple[str, str]] = []
    for path in paths:
        try:
            forms.append(load_form_model(path))
        except (OSError, ValueError) as exc:
            failures.append((path, f"{exc.__class__.__name__}: {exc}"))
    return forms, failures


def report_batch(batch: BatchResult, load_failures: Sequence[Tuple[str, str]] = ()) -> None:
    for path, error in load_failures:
        print(f"[ERROR] Failed loading {path}: {error}")
    for result in batch.results:
        if result.success:
            print(f"[INFO] Generated {result.script_count} scripts for {result.form_name}")
            for warning in result.warnings:
                print(f"[WARN] {result.form_name}: {warning}")
        else:
            print(f"[ERROR] Failed generating {result.form_name}: {result.error}")
    failed = list(batch.failed) + [path for path, _ in load_failures]
    print(f"[INFO] Succeeded ({len(batch.succeeded)}): {', '.join(batch.succeeded) or '-'}")
    if failed:
        print(f"[WARN] Failed ({len(failed)}): {', '.join(failed)}")


# --------------------------------------------------------------------------------------
# Runner
# --------------------------------------------------------------------------------------
class Runner:
    """Generates the deployment script for every form given on the command line."""

    def __init__(self, args: argparse.Namespace) -> None:
        self.args = args
        self.output_root = run_folder(args.output)
        self.writer = ArtifactWriter(self.output_root)

    def run(self) -> int:
        strategy = parse_strategy(self.args.strategy)
        print(f"[INFO] Loading {len(self.args.forms)} form(s)")
        forms, load_failures = load_forms(self.args.forms)

        print(f"[INFO] Generating {strategy.value} schema")
        batch = generate_batch(forms, strategy, database=self.args.database, max_workers=self.args.workers)
        report_batch(batch, load_failures)

        self.writer.record_batch(batch)
        for path, error in load_failures:
            self.writer.append_manifest({"form": path, "success": False, "error": error})
            self.writer.summary_rows.append([path, strategy.value, False, 0, 0, 0, 0, 0, error])
        self.writer.finalize()
        print(f"[INFO] Run complete. {batch.total_scripts} scripts. Artifacts at {self.output_root}")
        return 1 if batch.failed or load_failures else 0


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate SQL Server schema scripts from analyzed form JSON.")
    parser.add_argument("forms", nargs="+", help="Analyzed form JSON files.")
    parser.add_argument(
        "--strategy",
        required=True,
        choices=[s.value for s in TableStructureType],
        help="Table structure strategy.",
    )
    parser.add_argument("--database", help="Emit a USE statement for this database.")
    parser.add_argument("--output", default=CONFIG["OUTPUT"]["BASE_PATH"], help="Artifact folder (default: %(default)s)")
    parser.add_argument(
        "--workers",
        type=int,
        default=CONFIG["GENERATION"]["MAX_WORKERS"],
        help="Forms analysed concurrently (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    return Runner(_parse_args(argv)).run()


if __name__ == "__main__":
    sys.exit(main())
