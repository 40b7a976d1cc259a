"""
T-SQL renderers turning a SchemaGraph into ordered script sets.

Two strategies share one interface:

* ``FlatTablesRenderer`` - one physical table per form and per repeating
  section, typed columns, lookup tables for closed-choice controls, CRUD
  procedures and a summary view.
* ``NormalizedQARenderer`` - a fixed, form-agnostic question/answer meta-schema;
  each form is registered as data and submitted through generic procedures.

Every script is emitted as its own batch. Scripts carry the table they create
and the tables they reference so ``validate_script_order`` can prove that no
script runs before the tables it depends on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from form_model import ControlDefinition
from form_schema import (
    CONFIG,
    ColumnPlan,
    NamePlan,
    NameRegistry,
    SchemaGraph,
    TablePlan,
    UnsupportedStrategyError,
    build_name_plan,
    SqlType,
    carries_data,
    distinct_options,
    qualified,
    quote_ident,
    sanitize,
    sql_literal,
    sql_type,
)


# --------------------------------------------------------------------------------------
# Script containers
# --------------------------------------------------------------------------------------
class ScriptType(Enum):
    TABLE = "Table"
    CONSTRAINT = "Constraint"
    INDEX = "Index"
    LOOKUP_DATA = "LookupData"
    STORED_PROCEDURE = "StoredProcedure"
    VIEW = "View"


class TableStructureType(Enum):
    FLAT_TABLES = "FlatTables"
    NORMALIZED_QA = "NormalizedQA"


def parse_strategy(value: Union[str, TableStructureType, None]) -> TableStructureType:
    """Resolve a caller-supplied strategy; absence is a caller error, never a default."""
    if isinstance(value, TableStructureType):
        return value
    if value is None:
        raise UnsupportedStrategyError("A table structure strategy must be chosen explicitly.")
    for member in TableStructureType:
        if value.strip().lower() in {member.value.lower(), member.name.lower()}:
            return member
    choices = ", ".join(m.value for m in TableStructureType)
    raise UnsupportedStrategyError(f"Unsupported table structure strategy '{value}' (expected one of: {choices}).")


@dataclass
class SqlScript:
    name: str
    type: ScriptType
    description: str
    content: str
    execution_order: int = 0
    creates: Optional[str] = None
    references: Tuple[str, ...] = ()


@dataclass
class ScriptSet:
    form_name: str
    strategy: TableStructureType
    scripts: List[SqlScript] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[SqlScript]:
        return iter(self.scripts)

    def __len__(self) -> int:
        return len(self.scripts)

    def of_type(self, script_type: ScriptType) -> List[SqlScript]:
        return [s for s in self.scripts if s.type == script_type]

    @property
    def table_names(self) -> List[str]:
        return [s.creates for s in self.scripts if s.creates]


def validate_script_order(scripts: Iterable[SqlScript], existing: Iterable[str] = ()) -> List[str]:
    """Return ordering violations: scripts referencing tables not created before them."""
    created = {name.lower() for name in existing}
    violations: List[str] = []
    for script in scripts:
        for ref in script.references:
            if ref.lower() not in created and ref != script.creates:
                violations.append(f"{script.name} references {ref} before it is created")
        if script.creates:
            created.add(script.creates.lower())
    return violations


def number_scripts(scripts: List[SqlScript]) -> List[SqlScript]:
    for position, script in enumerate(scripts, start=1):
        script.execution_order = position
    return scripts


def _object_name(registry: NameRegistry, *parts: str) -> str:
    return registry.claim("_".join(p for p in parts if p))


def _column_lines(columns: Sequence[ColumnPlan]) -> List[str]:
    lines = []
    for col in columns:
        default = f" DEFAULT {col.sql_type.default}" if col.sql_type.default is not None else ""
        null = "NULL" if col.sql_type.nullable else "NOT NULL"
        lines.append(f"    {quote_ident(col.column_name)} {col.sql_type} {null}{default}")
    return lines


def _guard_table(table: str, body: List[str]) -> List[str]:
    lines = [f"IF OBJECT_ID(N'{qualified(table)}', N'U') IS NULL", "BEGIN"]
    lines.extend("    " + line if line else line for line in body)
    lines.append("END")
    return lines


# --------------------------------------------------------------------------------------
# Renderer interface
# --------------------------------------------------------------------------------------
class SchemaRenderer:
    """Common capability of both generation strategies."""

    strategy: TableStructureType

    def render(self, graph: SchemaGraph, include_shared: bool = True) -> ScriptSet:
        raise NotImplementedError

    def procedure_names(self, graph: SchemaGraph) -> List[str]:
        raise NotImplementedError

    def view_names(self, graph: SchemaGraph) -> List[str]:
        raise NotImplementedError

    def shared_tables(self) -> List[str]:
        """Tables that may already exist when ``include_shared`` is False."""
        return []


# --------------------------------------------------------------------------------------
# Flat tables strategy
# --------------------------------------------------------------------------------------
@dataclass
class FlatProcedureNames:
    main: Dict[str, str] = field(default_factory=dict)
    # table name -> action -> procedure name
    sections: Dict[str, Dict[str, str]] = field(default_factory=dict)
    view: str = ""

    def ordered(self) -> List[str]:
        names = list(self.main.values())
        for actions in self.sections.values():
            names.extend(actions.values())
        return names


class FlatTablesRenderer(SchemaRenderer):
    strategy = TableStructureType.FLAT_TABLES

    MAIN_ACTIONS = ("Insert", "Update", "Get", "Delete", "List")
    SECTION_ACTIONS = ("InsertItem", "UpdateItem", "DeleteItem", "GetByParent")

    def object_names(self, plan: NamePlan) -> FlatProcedureNames:
        registry = NameRegistry([t.table_name for t in plan.all_tables] + [lk.table_name for lk in plan.lookups])
        names = FlatProcedureNames()
        for action in self.MAIN_ACTIONS:
            names.main[action] = _object_name(registry, "sp", plan.main.table_name, action)
        for section in plan.sections:
            names.sections[section.table_name] = {
                action: _object_name(registry, "sp", section.table_name, action) for action in self.SECTION_ACTIONS
            }
        names.view = _object_name(registry, "vw", plan.main.table_name, "Summary")
        return names

    def procedure_names(self, graph: SchemaGraph) -> List[str]:
        return self.object_names(build_name_plan(graph)).ordered()

    def view_names(self, graph: SchemaGraph) -> List[str]:
        return [self.object_names(build_name_plan(graph)).view]

    def render(self, graph: SchemaGraph, include_shared: bool = True) -> ScriptSet:
        plan = build_name_plan(graph)
        names = self.object_names(plan)
        # Constraint names share the schema namespace with tables and procedures.
        constraints = NameRegistry(
            [t.table_name for t in plan.all_tables]
            + [lk.table_name for lk in plan.lookups]
            + names.ordered()
            + [names.view]
        )

        scripts: List[SqlScript] = []
        scripts.extend(self._lookup_table(lk.table_name, lk.key_type, lk.control, constraints) for lk in plan.lookups)
        scripts.append(self._main_table(plan.main, constraints))
        scripts.extend(self._section_table(section, constraints) for section in plan.sections)
        scripts.extend(self._constraints(plan, constraints))
        scripts.extend(self._indexes(plan, constraints))
        scripts.extend(self._lookup_data(lk.table_name, lk.control) for lk in plan.lookups)
        scripts.extend(self._main_procedures(plan, names))
        for section in plan.sections:
            scripts.extend(self._section_procedures(section, names.sections[section.table_name]))
        scripts.append(self._summary_view(plan, names.view))

        return ScriptSet(
            form_name=graph.form_name,
            strategy=self.strategy,
            scripts=number_scripts(scripts),
            warnings=list(graph.warnings),
        )

    # -- tables ----------------------------------------------------------------------
    def _lookup_table(self, table: str, key_type: SqlType, control: ControlDefinition, constraints: NameRegistry) -> SqlScript:
        pk = _object_name(constraints, "PK", table)
        content = "\n".join(
            [
                f"-- Lookup table for {control.name}",
                f"CREATE TABLE {qualified(table)} (",
                f"    [Code] {key_type} NOT NULL,",
                "    [DisplayText] NVARCHAR(500) NULL,",
                f"    CONSTRAINT {quote_ident(pk)} PRIMARY KEY ([Code])",
                ");",
            ]
        )
        return SqlScript(
            name=f"Create_{table}_Table",
            type=ScriptType.TABLE,
            description=f"Lookup table for {control.name}",
            content=content,
            creates=table,
        )

    def _main_table(self, main: TablePlan, constraints: NameRegistry) -> SqlScript:
        pk = _object_name(constraints, "PK", main.table_name)
        lines = [
            f"-- Main table for {main.table_name}",
            f"CREATE TABLE {qualified(main.table_name)} (",
            "    [Id] INT IDENTITY(1,1) NOT NULL",
            "    [FormId] UNIQUEIDENTIFIER NOT NULL DEFAULT NEWID()",
            "    [CreatedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
            "    [ModifiedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
            "    [CreatedBy] NVARCHAR(255) NULL",
            "    [ModifiedBy] NVARCHAR(255) NULL",
            "    [Status] NVARCHAR(50) NOT NULL DEFAULT N'Draft'",
        ]
        body = lines[2:] + _column_lines(main.columns) + [f"    CONSTRAINT {quote_ident(pk)} PRIMARY KEY ([Id])"]
        content = "\n".join(lines[:2] + [line + "," for line in body[:-1]] + body[-1:] + [");"])
        return SqlScript(
            name=f"Create_{main.table_name}_Table",
            type=ScriptType.TABLE,
            description=f"Main table for form {main.table_name}",
            content=content,
            creates=main.table_name,
        )

    def _section_table(self, section: TablePlan, constraints: NameRegistry) -> SqlScript:
        pk = _object_name(constraints, "PK", section.table_name)
        body = [
            "    [Id] INT IDENTITY(1,1) NOT NULL",
            "    [ParentId] INT NOT NULL",
            "    [ItemOrder] INT NOT NULL DEFAULT 0",
            "    [CreatedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
        ]
        body += _column_lines(section.columns)
        body.append(f"    CONSTRAINT {quote_ident(pk)} PRIMARY KEY ([Id])")
        content = "\n".join(
            [
                f"-- Repeating section table: {section.key} (parent {section.parent_table_name})",
                f"CREATE TABLE {qualified(section.table_name)} (",
            ]
            + [line + "," for line in body[:-1]]
            + body[-1:]
            + [");"]
        )
        return SqlScript(
            name=f"Create_{section.table_name}_Table",
            type=ScriptType.TABLE,
            description=f"Repeating section table for {section.key}",
            content=content,
            creates=section.table_name,
        )

    # -- constraints and indexes -----------------------------------------------------
    def _constraints(self, plan: NamePlan, constraints: NameRegistry) -> List[SqlScript]:
        scripts: List[SqlScript] = []
        for section in plan.sections:
            fk = _object_name(constraints, "FK", section.table_name, section.parent_table_name)
            scripts.append(
                SqlScript(
                    name=fk,
                    type=ScriptType.CONSTRAINT,
                    description=f"{section.table_name} rows belong to a {section.parent_table_name} row",
                    content=(
                        f"ALTER TABLE {qualified(section.table_name)}\n"
                        f"    ADD CONSTRAINT {quote_ident(fk)} FOREIGN KEY ([ParentId])\n"
                        f"    REFERENCES {qualified(section.parent_table_name)} ([Id])\n"
                        "    ON DELETE CASCADE;"
                    ),
                    references=(section.table_name, section.parent_table_name),
                )
            )
        for table in plan.all_tables:
            for col in table.columns:
                if not col.lookup_table_name:
                    continue
                fk = _object_name(constraints, "FK", table.table_name, col.column_name, "Lookup")
                scripts.append(
                    SqlScript(
                        name=fk,
                        type=ScriptType.CONSTRAINT,
                        description=f"{table.table_name}.{col.column_name} values come from {col.lookup_table_name}",
                        content=(
                            f"ALTER TABLE {qualified(table.table_name)}\n"
                            f"    ADD CONSTRAINT {quote_ident(fk)} FOREIGN KEY ({quote_ident(col.column_name)})\n"
                            f"    REFERENCES {qualified(col.lookup_table_name)} ([Code]);"
                        ),
                        references=(table.table_name, col.lookup_table_name),
                    )
                )
        return scripts

    def _indexes(self, plan: NamePlan, constraints: NameRegistry) -> List[SqlScript]:
        main = plan.main.table_name
        specs: List[Tuple[str, str, bool]] = [(main, "FormId", True), (main, "CreatedDate", False), (main, "Status", False)]
        specs += [(section.table_name, "ParentId", False) for section in plan.sections]
        scripts = []
        for table, column, unique in specs:
            ix = _object_name(constraints, "IX", table, column)
            kind = "UNIQUE INDEX" if unique else "INDEX"
            scripts.append(
                SqlScript(
                    name=ix,
                    type=ScriptType.INDEX,
                    description=f"Index on {table}.{column}",
                    content=f"CREATE {kind} {quote_ident(ix)} ON {qualified(table)} ({quote_ident(column)});",
                    references=(table,),
                )
            )
        return scripts

    def _lookup_data(self, table: str, control: ControlDefinition) -> SqlScript:
        rows = [
            f"    ({sql_literal(option.value)}, {sql_literal(option.display_text or option.value)})"
            for option in distinct_options(control)
        ]
        content = "\n".join(
            [f"INSERT INTO {qualified(table)} ([Code], [DisplayText]) VALUES", ",\n".join(rows) + ";"]
        )
        return SqlScript(
            name=f"Seed_{table}",
            type=ScriptType.LOOKUP_DATA,
            description=f"{len(rows)} choices for {control.name}",
            content=content,
            references=(table,),
        )

    # -- procedures ------------------------------------------------------------------
    @staticmethod
    def _params(columns: Sequence[ColumnPlan]) -> List[str]:
        return [f"    @{col.column_name} {col.sql_type} = NULL" for col in columns]

    @staticmethod
    def _procedure(name: str, params: List[str], body: List[str]) -> str:
        lines = [f"CREATE OR ALTER PROCEDURE {qualified(name)}"]
        lines.extend(p + "," for p in params[:-1])
        lines.extend(params[-1:])
        lines += ["AS", "BEGIN", "    SET NOCOUNT ON;", ""]
        lines.extend(body)
        lines.append("END")
        return "\n".join(lines)

    def _main_procedures(self, plan: NamePlan, names: FlatProcedureNames) -> List[SqlScript]:
        main = plan.main
        table = qualified(main.table_name)
        cols = main.columns
        col_names = [quote_ident(c.column_name) for c in cols]
        col_params = [f"@{c.column_name}" for c in cols]

        insert_body = [
            "    SET @FormId = ISNULL(@FormId, NEWID());",
            "",
            f"    INSERT INTO {table} (",
            ",\n".join(f"        {c}" for c in ["[FormId]", "[CreatedBy]", "[ModifiedBy]"] + col_names),
            "    ) VALUES (",
            ",\n".join(f"        {p}" for p in ["@FormId", "@CreatedBy", "@CreatedBy"] + col_params),
            "    );",
            "",
            "    SELECT @FormId AS [FormId];",
        ]
        update_sets = ["[ModifiedDate] = GETDATE()", "[ModifiedBy] = @ModifiedBy"]
        update_sets += [f"{n} = {p}" for n, p in zip(col_names, col_params)]
        update_body = [
            f"    UPDATE {table}",
            "    SET",
            ",\n".join(f"        {s}" for s in update_sets),
            "    WHERE [FormId] = @FormId;",
        ]
        get_body = ["    -- Main form data", f"    SELECT * FROM {table}", "    WHERE [FormId] = @FormId;"]
        for child in plan.children_of(main.table_name):
            get_body += [
                "",
                f"    -- {child.key} repeating section data",
                f"    SELECT s.* FROM {qualified(child.table_name)} s",
                f"    INNER JOIN {table} m ON s.[ParentId] = m.[Id]",
                "    WHERE m.[FormId] = @FormId",
                "    ORDER BY s.[ItemOrder], s.[Id];",
            ]
        delete_body = [
            "    -- Child section rows are removed by ON DELETE CASCADE",
            f"    DELETE FROM {table}",
            "    WHERE [FormId] = @FormId;",
        ]
        list_body = [
            f"    SELECT * FROM {table}",
            "    WHERE (@Status IS NULL OR [Status] = @Status)",
            "    ORDER BY [CreatedDate] DESC, [Id] DESC",
            "    OFFSET (@PageNumber - 1) * @PageSize ROWS",
            "    FETCH NEXT @PageSize ROWS ONLY;",
        ]

        definitions = [
            ("Insert", self._params(cols) + ["    @CreatedBy NVARCHAR(255) = NULL", "    @FormId UNIQUEIDENTIFIER = NULL OUTPUT"], insert_body),
            ("Update", ["    @FormId UNIQUEIDENTIFIER"] + self._params(cols) + ["    @ModifiedBy NVARCHAR(255) = NULL"], update_body),
            ("Get", ["    @FormId UNIQUEIDENTIFIER"], get_body),
            ("Delete", ["    @FormId UNIQUEIDENTIFIER"], delete_body),
            ("List", ["    @Status NVARCHAR(50) = NULL", "    @PageNumber INT = 1", "    @PageSize INT = 50"], list_body),
        ]
        refs = (main.table_name,) + tuple(c.table_name for c in plan.children_of(main.table_name))
        return [
            SqlScript(
                name=names.main[action],
                type=ScriptType.STORED_PROCEDURE,
                description=f"{action} procedure for {main.table_name}",
                content=self._procedure(names.main[action], params, body),
                references=refs if action == "Get" else (main.table_name,),
            )
            for action, params, body in definitions
        ]

    def _section_procedures(self, section: TablePlan, names: Dict[str, str]) -> List[SqlScript]:
        table = qualified(section.table_name)
        cols = section.columns
        col_names = [quote_ident(c.column_name) for c in cols]
        col_params = [f"@{c.column_name}" for c in cols]

        insert_body = [
            f"    INSERT INTO {table} (",
            ",\n".join(f"        {c}" for c in ["[ParentId]", "[ItemOrder]"] + col_names),
            "    ) VALUES (",
            ",\n".join(f"        {p}" for p in ["@ParentId", "@ItemOrder"] + col_params),
            "    );",
            "",
            "    SET @Id = CAST(SCOPE_IDENTITY() AS INT);",
            "    SELECT @Id AS [Id];",
        ]
        sets = ["[ItemOrder] = ISNULL(@ItemOrder, [ItemOrder])"] + [f"{n} = {p}" for n, p in zip(col_names, col_params)]
        update_body = [
            f"    UPDATE {table}",
            "    SET",
            ",\n".join(f"        {s}" for s in sets),
            "    WHERE [Id] = @Id;",
        ]
        delete_body = [f"    DELETE FROM {table}", "    WHERE [Id] = @Id;"]
        get_body = [f"    SELECT * FROM {table}", "    WHERE [ParentId] = @ParentId", "    ORDER BY [ItemOrder], [Id];"]

        definitions = [
            ("InsertItem", ["    @ParentId INT", "    @ItemOrder INT = 0"] + self._params(cols) + ["    @Id INT = NULL OUTPUT"], insert_body),
            ("UpdateItem", ["    @Id INT", "    @ItemOrder INT = NULL"] + self._params(cols), update_body),
            ("DeleteItem", ["    @Id INT"], delete_body),
            ("GetByParent", ["    @ParentId INT"], get_body),
        ]
        return [
            SqlScript(
                name=names[action],
                type=ScriptType.STORED_PROCEDURE,
                description=f"{action} procedure for repeating section {section.key}",
                content=self._procedure(names[action], params, body),
                references=(section.table_name,),
            )
            for action, params, body in definitions
        ]

    # -- reporting view --------------------------------------------------------------
    def _summary_view(self, plan: NamePlan, view_name: str) -> SqlScript:
        main = plan.main
        aliases = NameRegistry(CONFIG["FLAT"]["MAIN_SYSTEM_COLUMNS"])
        select = [f"m.{quote_ident(c)}" for c in CONFIG["FLAT"]["MAIN_SYSTEM_COLUMNS"]]
        for col in main.columns[: CONFIG["FLAT"]["SUMMARY_VIEW_MAX_COLUMNS"]]:
            aliases.claim(col.column_name)
            select.append(f"m.{quote_ident(col.column_name)}")
        children = plan.children_of(main.table_name)
        for child in children:
            alias = aliases.claim(f"{sanitize(child.key, 'table')}Count")
            select.append(
                f"(SELECT COUNT(*) FROM {qualified(child.table_name)} r WHERE r.[ParentId] = m.[Id]) AS {quote_ident(alias)}"
            )
        content = "\n".join(
            [f"CREATE OR ALTER VIEW {qualified(view_name)}", "AS", "SELECT"]
            + [f"    {s}," for s in select[:-1]]
            + [f"    {select[-1]}", f"FROM {qualified(main.table_name)} m;"]
        )
        return SqlScript(
            name=view_name,
            type=ScriptType.VIEW,
            description=f"Summary view for {main.table_name}",
            content=content,
            references=(main.table_name,) + tuple(c.table_name for c in children),
        )


# --------------------------------------------------------------------------------------
# Normalized question/answer strategy
# --------------------------------------------------------------------------------------
@dataclass
class QuestionRow:
    control: ControlDefinition
    section_name: Optional[str]
    parent_section_name: Optional[str]
    display_order: int


class NormalizedQARenderer(SchemaRenderer):
    """Fixed meta-schema shared by every form; forms are registered as data."""

    strategy = TableStructureType.NORMALIZED_QA

    SHARED_PROCEDURES = ("sp_RegisterForm", "sp_SubmitFormData", "sp_GetSubmissionData", "sp_AddRepeatingSectionInstance")
    SHARED_VIEWS = ("vw_AllSubmissions", "vw_FormAnswersPivot")

    def shared_tables(self) -> List[str]:
        return list(CONFIG["NORMALIZED"]["TABLES"])

    def form_name(self, graph: SchemaGraph) -> str:
        return sanitize(graph.form_name, "form")

    def form_procedures(self, graph: SchemaGraph) -> Tuple[str, str, Dict[str, str]]:
        """Names of the per-form submit/get procedures and per-section AddItem procedures."""
        form = self.form_name(graph)
        registry = NameRegistry(list(self.SHARED_PROCEDURES) + list(self.SHARED_VIEWS) + self.shared_tables())
        submit = _object_name(registry, "sp_Submit", form)
        get = _object_name(registry, "sp_Get", form)
        sections = {
            key: _object_name(registry, "sp", form, sanitize(key, "table"), "AddItem") for key in graph.repeating_tables
        }
        return submit, get, sections

    def procedure_names(self, graph: SchemaGraph) -> List[str]:
        submit, get, sections = self.form_procedures(graph)
        return [submit, get] + list(self.SHARED_PROCEDURES) + list(sections.values())

    def view_names(self, graph: SchemaGraph) -> List[str]:
        return list(self.SHARED_VIEWS)

    def questions(self, graph: SchemaGraph) -> List[QuestionRow]:
        """One question per data-carrying control, unique per (section, name)."""
        rows: List[QuestionRow] = []
        seen = set()
        placed = [(None, None, c) for c in graph.main_columns]
        for table in graph.repeating_tables.values():
            placed += [(table.key, table.parent_table_key, c) for c in table.controls]
        for section, parent, control in placed:
            if not carries_data(control) or (section, control.name) in seen:
                continue
            seen.add((section, control.name))
            rows.append(QuestionRow(control, section, parent, len(rows) + 1))
        return rows

    def render(self, graph: SchemaGraph, include_shared: bool = True) -> ScriptSet:
        scripts: List[SqlScript] = []
        if include_shared:
            scripts.extend(self.shared_scripts())
        scripts.append(self._registration(graph))
        scripts.extend(self._form_procedures(graph))
        return ScriptSet(
            form_name=graph.form_name,
            strategy=self.strategy,
            scripts=number_scripts(scripts),
            warnings=list(graph.warnings),
        )

    # -- shared meta-schema ----------------------------------------------------------
    def shared_scripts(self) -> List[SqlScript]:
        return self._shared_tables() + self._shared_constraints() + self._shared_indexes() + self._shared_procedures() + self._shared_views()

    def _shared_tables(self) -> List[SqlScript]:
        definitions: List[Tuple[str, str, List[str]]] = [
            (
                "Forms",
                "Registered form definitions",
                [
                    "[FormId] INT IDENTITY(1,1) NOT NULL",
                    "[FormName] NVARCHAR(255) NOT NULL",
                    "[DisplayName] NVARCHAR(500) NULL",
                    "[Version] INT NOT NULL DEFAULT 1",
                    "[IsActive] BIT NOT NULL DEFAULT 1",
                    "[CreatedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
                    "CONSTRAINT [PK_Forms] PRIMARY KEY ([FormId])",
                    "CONSTRAINT [UQ_Forms_FormName] UNIQUE ([FormName])",
                ],
            ),
            (
                "Questions",
                "One row per form field",
                [
                    "[QuestionId] INT IDENTITY(1,1) NOT NULL",
                    "[FormId] INT NOT NULL",
                    "[QuestionName] NVARCHAR(255) NOT NULL",
                    "[QuestionLabel] NVARCHAR(500) NULL",
                    "[ControlType] NVARCHAR(100) NULL",
                    "[DataType] NVARCHAR(100) NOT NULL",
                    "[AnswerColumn] NVARCHAR(50) NOT NULL",
                    "[IsRepeating] BIT NOT NULL DEFAULT 0",
                    "[RepeatingSectionName] NVARCHAR(255) NULL",
                    "[ParentSectionName] NVARCHAR(255) NULL",
                    "[DisplayOrder] INT NOT NULL DEFAULT 0",
                    "CONSTRAINT [PK_Questions] PRIMARY KEY ([QuestionId])",
                ],
            ),
            (
                "QuestionOptions",
                "Static choices of closed-choice questions",
                [
                    "[OptionId] INT IDENTITY(1,1) NOT NULL",
                    "[QuestionId] INT NOT NULL",
                    "[OptionValue] NVARCHAR(450) NOT NULL",
                    "[DisplayText] NVARCHAR(500) NULL",
                    "[SortOrder] INT NOT NULL DEFAULT 0",
                    "[IsDefault] BIT NOT NULL DEFAULT 0",
                    "CONSTRAINT [PK_QuestionOptions] PRIMARY KEY ([OptionId])",
                ],
            ),
            (
                "Submissions",
                "One row per submitted form instance",
                [
                    "[SubmissionId] INT IDENTITY(1,1) NOT NULL",
                    "[SubmissionGuid] UNIQUEIDENTIFIER NOT NULL DEFAULT NEWID()",
                    "[FormId] INT NOT NULL",
                    "[SubmittedBy] NVARCHAR(255) NULL",
                    "[SubmittedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
                    "[Status] NVARCHAR(50) NOT NULL DEFAULT N'Submitted'",
                    "CONSTRAINT [PK_Submissions] PRIMARY KEY ([SubmissionId])",
                ],
            ),
            (
                "RepeatingSectionInstances",
                "Rows of repeating sections; nested sections point at their parent instance",
                [
                    "[InstanceId] INT IDENTITY(1,1) NOT NULL",
                    "[SubmissionId] INT NOT NULL",
                    "[SectionName] NVARCHAR(255) NOT NULL",
                    "[ParentInstanceId] INT NULL",
                    "[ItemOrder] INT NOT NULL DEFAULT 0",
                    "[CreatedDate] DATETIME2 NOT NULL DEFAULT GETDATE()",
                    "CONSTRAINT [PK_RepeatingSectionInstances] PRIMARY KEY ([InstanceId])",
                ],
            ),
            (
                "Answers",
                "Answer values, typed by the question's answer column",
                [
                    "[AnswerId] BIGINT IDENTITY(1,1) NOT NULL",
                    "[SubmissionId] INT NOT NULL",
                    "[QuestionId] INT NOT NULL",
                    "[InstanceId] INT NULL",
                    "[ValueType] NVARCHAR(50) NOT NULL",
                    "[AnswerText] NVARCHAR(MAX) NULL",
                    "[AnswerNumber] DECIMAL(18,4) NULL",
                    "[AnswerDate] DATETIME2 NULL",
                    "[AnswerBit] BIT NULL",
                    "CONSTRAINT [PK_Answers] PRIMARY KEY ([AnswerId])",
                ],
            ),
        ]
        scripts = []
        for table, description, columns in definitions:
            body = [f"CREATE TABLE {qualified(table)} ("]
            body += [f"    {c}," for c in columns[:-1]] + [f"    {columns[-1]}", ");"]
            scripts.append(
                SqlScript(
                    name=f"Create_{table}_Table",
                    type=ScriptType.TABLE,
                    description=description,
                    content="\n".join(_guard_table(table, body)),
                    creates=table,
                )
            )
        return scripts

    def _shared_constraints(self) -> List[SqlScript]:
        # (name, table, column, referenced table, referenced column, cascade)
        foreign_keys = [
            ("FK_Questions_Forms", "Questions", "FormId", "Forms", "FormId", True),
            ("FK_QuestionOptions_Questions", "QuestionOptions", "QuestionId", "Questions", "QuestionId", True),
            ("FK_Submissions_Forms", "Submissions", "FormId", "Forms", "FormId", False),
            ("FK_RepeatingSectionInstances_Submissions", "RepeatingSectionInstances", "SubmissionId", "Submissions", "SubmissionId", True),
            ("FK_RepeatingSectionInstances_Parent", "RepeatingSectionInstances", "ParentInstanceId", "RepeatingSectionInstances", "InstanceId", False),
            ("FK_Answers_Submissions", "Answers", "SubmissionId", "Submissions", "SubmissionId", True),
            ("FK_Answers_Questions", "Answers", "QuestionId", "Questions", "QuestionId", False),
            ("FK_Answers_RepeatingSectionInstances", "Answers", "InstanceId", "RepeatingSectionInstances", "InstanceId", False),
        ]
        scripts = []
        for name, table, column, ref_table, ref_column, cascade in foreign_keys:
            lines = [
                f"IF OBJECT_ID(N'{qualified(name)}', N'F') IS NULL",
                f"    ALTER TABLE {qualified(table)}",
                f"        ADD CONSTRAINT {quote_ident(name)} FOREIGN KEY ({quote_ident(column)})",
                f"        REFERENCES {qualified(ref_table)} ({quote_ident(ref_column)})" + (" ON DELETE CASCADE;" if cascade else ";"),
            ]
            scripts.append(
                SqlScript(
                    name=name,
                    type=ScriptType.CONSTRAINT,
                    description=f"{table}.{column} references {ref_table}.{ref_column}",
                    content="\n".join(lines),
                    references=(table, ref_table),
                )
            )
        questions_unique = "UQ_Questions_Form_Section_Name"
        scripts.append(
            SqlScript(
                name=questions_unique,
                type=ScriptType.CONSTRAINT,
                description="Question names are unique per form and repeating section",
                content="\n".join(
                    [
                        f"IF OBJECT_ID(N'{qualified(questions_unique)}', N'UQ') IS NULL",
                        f"    ALTER TABLE {qualified('Questions')}",
                        f"        ADD CONSTRAINT {quote_ident(questions_unique)} UNIQUE ([FormId], [RepeatingSectionName], [QuestionName]);",
                    ]
                ),
                references=("Questions",),
            )
        )
        return scripts

    def _shared_indexes(self) -> List[SqlScript]:
        indexes = [
            ("IX_Submissions_FormId", "Submissions", "[FormId], [SubmittedDate]"),
            ("IX_Answers_SubmissionId", "Answers", "[SubmissionId], [QuestionId]"),
            ("IX_Answers_InstanceId", "Answers", "[InstanceId]"),
            ("IX_RepeatingSectionInstances_SubmissionId", "RepeatingSectionInstances", "[SubmissionId], [SectionName]"),
        ]
        return [
            SqlScript(
                name=name,
                type=ScriptType.INDEX,
                description=f"Index on {table} ({columns})",
                content="\n".join(
                    [
                        f"IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE [name] = N'{name}' AND [object_id] = OBJECT_ID(N'{qualified(table)}'))",
                        f"    CREATE INDEX {quote_ident(name)} ON {qualified(table)} ({columns});",
                    ]
                ),
                references=(table,),
            )
            for name, table, columns in indexes
        ]

    @staticmethod
    def _typed_answer_columns(value: str) -> List[str]:
        return [
            f"        CASE WHEN q.[AnswerColumn] = N'AnswerText' THEN {value} END,",
            f"        CASE WHEN q.[AnswerColumn] = N'AnswerNumber' THEN TRY_CAST({value} AS DECIMAL(18,4)) END,",
            f"        CASE WHEN q.[AnswerColumn] = N'AnswerDate' THEN TRY_CAST({value} AS DATETIME2) END,",
            f"        CASE WHEN q.[AnswerColumn] = N'AnswerBit' THEN TRY_CAST({value} AS BIT) END",
        ]

    def _shared_procedures(self) -> List[SqlScript]:
        answers = qualified("Answers")
        questions = qualified("Questions")
        insert_answers = f"    INSERT INTO {answers} ([SubmissionId], [QuestionId], [InstanceId], [ValueType], [AnswerText], [AnswerNumber], [AnswerDate], [AnswerBit])"
        register = [
            f"CREATE OR ALTER PROCEDURE {qualified('sp_RegisterForm')}",
            "    @FormName NVARCHAR(255),",
            "    @DisplayName NVARCHAR(500) = NULL,",
            "    @FormId INT = NULL OUTPUT",
            "AS",
            "BEGIN",
            "    SET NOCOUNT ON;",
            "",
            f"    SELECT @FormId = [FormId] FROM {qualified('Forms')} WHERE [FormName] = @FormName;",
            "",
            "    IF @FormId IS NULL",
            "    BEGIN",
            f"        INSERT INTO {qualified('Forms')} ([FormName], [DisplayName]) VALUES (@FormName, @DisplayName);",
            "        SET @FormId = CAST(SCOPE_IDENTITY() AS INT);",
            "    END",
            "    ELSE",
            "    BEGIN",
            f"        UPDATE {qualified('Forms')}",
            "        SET [Version] = [Version] + 1, [IsActive] = 1, [DisplayName] = ISNULL(@DisplayName, [DisplayName])",
            "        WHERE [FormId] = @FormId;",
            "    END",
            "",
            "    SELECT @FormId AS [FormId];",
            "END",
        ]
        submit = [
            f"CREATE OR ALTER PROCEDURE {qualified('sp_SubmitFormData')}",
            "    @FormName NVARCHAR(255),",
            "    @Payload NVARCHAR(MAX),",
            "    @SubmittedBy NVARCHAR(255) = NULL,",
            "    @SubmissionId INT = NULL OUTPUT",
            "AS",
            "BEGIN",
            "    SET NOCOUNT ON;",
            "    SET XACT_ABORT ON;",
            "",
            f"    DECLARE @FormId INT = (SELECT [FormId] FROM {qualified('Forms')} WHERE [FormName] = @FormName);",
            "    IF @FormId IS NULL",
            "    BEGIN",
            "        RAISERROR(N'Form %s is not registered.', 16, 1, @FormName);",
            "        RETURN;",
            "    END",
            "    IF ISJSON(@Payload) = 0",
            "    BEGIN",
            "        RAISERROR(N'Payload for form %s is not valid JSON.', 16, 1, @FormName);",
            "        RETURN;",
            "    END",
            "",
            "    BEGIN TRANSACTION;",
            "",
            f"    INSERT INTO {qualified('Submissions')} ([FormId], [SubmittedBy]) VALUES (@FormId, @SubmittedBy);",
            "    SET @SubmissionId = CAST(SCOPE_IDENTITY() AS INT);",
            "",
            "    -- Scalar members only; repeating sections go through sp_AddRepeatingSectionInstance",
            insert_answers,
            "    SELECT",
            "        @SubmissionId,",
            "        q.[QuestionId],",
            "        NULL,",
            "        q.[AnswerColumn],",
        ]
        submit += self._typed_answer_columns("j.[value]")
        submit += [
            "    FROM OPENJSON(@Payload) j",
            f"    INNER JOIN {questions} q",
            "        ON q.[FormId] = @FormId AND q.[QuestionName] = j.[key] AND q.[IsRepeating] = 0",
            "    WHERE j.[type] NOT IN (4, 5);",
            "",
            "    COMMIT TRANSACTION;",
            "",
            "    SELECT @SubmissionId AS [SubmissionId];",
            "END",
        ]
        add_instance = [
            f"CREATE OR ALTER PROCEDURE {qualified('sp_AddRepeatingSectionInstance')}",
            "    @SubmissionId INT,",
            "    @SectionName NVARCHAR(255),",
            "    @Payload NVARCHAR(MAX),",
            "    @ParentInstanceId INT = NULL,",
            "    @ItemOrder INT = 0,",
            "    @InstanceId INT = NULL OUTPUT",
            "AS",
            "BEGIN",
            "    SET NOCOUNT ON;",
            "    SET XACT_ABORT ON;",
            "",
            "    IF ISJSON(@Payload) = 0",
            "    BEGIN",
            "        RAISERROR(N'Payload for section %s is not valid JSON.', 16, 1, @SectionName);",
            "        RETURN;",
            "    END",
            "",
            "    BEGIN TRANSACTION;",
            "",
            f"    INSERT INTO {qualified('RepeatingSectionInstances')} ([SubmissionId], [SectionName], [ParentInstanceId], [ItemOrder])",
            "    VALUES (@SubmissionId, @SectionName, @ParentInstanceId, @ItemOrder);",
            "    SET @InstanceId = CAST(SCOPE_IDENTITY() AS INT);",
            "",
            insert_answers,
            "    SELECT",
            "        @SubmissionId,",
            "        q.[QuestionId],",
            "        @InstanceId,",
            "        q.[AnswerColumn],",
        ]
        add_instance += self._typed_answer_columns("j.[value]")
        add_instance += [
            "    FROM OPENJSON(@Payload) j",
            f"    INNER JOIN {qualified('Submissions')} s ON s.[SubmissionId] = @SubmissionId",
            f"    INNER JOIN {questions} q",
            "        ON q.[FormId] = s.[FormId] AND q.[QuestionName] = j.[key] AND q.[RepeatingSectionName] = @SectionName",
            "    WHERE j.[type] NOT IN (4, 5);",
            "",
            "    COMMIT TRANSACTION;",
            "",
            "    SELECT @InstanceId AS [InstanceId];",
            "END",
        ]
        get = [
            f"CREATE OR ALTER PROCEDURE {qualified('sp_GetSubmissionData')}",
            "    @SubmissionId INT",
            "AS",
            "BEGIN",
            "    SET NOCOUNT ON;",
            "",
            "    SELECT s.*, f.[FormName]",
            f"    FROM {qualified('Submissions')} s",
            f"    INNER JOIN {qualified('Forms')} f ON f.[FormId] = s.[FormId]",
            "    WHERE s.[SubmissionId] = @SubmissionId;",
            "",
            "    SELECT q.[QuestionName], q.[RepeatingSectionName], a.[InstanceId], i.[ParentInstanceId], i.[ItemOrder],",
            "           a.[ValueType], a.[AnswerText], a.[AnswerNumber], a.[AnswerDate], a.[AnswerBit]",
            f"    FROM {answers} a",
            f"    INNER JOIN {questions} q ON q.[QuestionId] = a.[QuestionId]",
            f"    LEFT JOIN {qualified('RepeatingSectionInstances')} i ON i.[InstanceId] = a.[InstanceId]",
            "    WHERE a.[SubmissionId] = @SubmissionId",
            "    ORDER BY q.[DisplayOrder], i.[ItemOrder], a.[AnswerId];",
            "END",
        ]
        definitions = [
            ("sp_RegisterForm", "Registers a form or bumps its version", register, ("Forms",)),
            ("sp_SubmitFormData", "Stores a JSON payload as one submission", submit, ("Forms", "Submissions", "Questions", "Answers")),
            ("sp_GetSubmissionData", "Returns a submission and its answers", get, ("Forms", "Submissions", "Questions", "Answers", "RepeatingSectionInstances")),
            ("sp_AddRepeatingSectionInstance", "Adds one repeating section row to a submission", add_instance, ("Submissions", "RepeatingSectionInstances", "Questions", "Answers")),
        ]
        return [
            SqlScript(
                name=name,
                type=ScriptType.STORED_PROCEDURE,
                description=description,
                content="\n".join(lines),
                references=refs,
            )
            for name, description, lines, refs in definitions
        ]

    def _shared_views(self) -> List[SqlScript]:
        all_submissions = [
            f"CREATE OR ALTER VIEW {qualified('vw_AllSubmissions')}",
            "AS",
            "SELECT",
            "    s.[SubmissionId],",
            "    s.[SubmissionGuid],",
            "    f.[FormName],",
            "    f.[Version],",
            "    s.[SubmittedBy],",
            "    s.[SubmittedDate],",
            "    s.[Status],",
            f"    (SELECT COUNT(*) FROM {qualified('Answers')} a WHERE a.[SubmissionId] = s.[SubmissionId]) AS [AnswerCount]",
            f"FROM {qualified('Submissions')} s",
            f"INNER JOIN {qualified('Forms')} f ON f.[FormId] = s.[FormId];",
        ]
        pivot = [
            f"CREATE OR ALTER VIEW {qualified('vw_FormAnswersPivot')}",
            "AS",
            "SELECT",
            "    f.[FormName],",
            "    s.[SubmissionId],",
            "    q.[QuestionName],",
            "    q.[RepeatingSectionName],",
            "    a.[InstanceId],",
            "    i.[ItemOrder],",
            "    COALESCE(",
            "        a.[AnswerText],",
            "        CONVERT(NVARCHAR(MAX), a.[AnswerNumber]),",
            "        CONVERT(NVARCHAR(33), a.[AnswerDate], 126),",
            "        CONVERT(NVARCHAR(5), a.[AnswerBit])",
            "    ) AS [AnswerValue]",
            f"FROM {qualified('Answers')} a",
            f"INNER JOIN {qualified('Submissions')} s ON s.[SubmissionId] = a.[SubmissionId]",
            f"INNER JOIN {qualified('Forms')} f ON f.[FormId] = s.[FormId]",
            f"INNER JOIN {qualified('Questions')} q ON q.[QuestionId] = a.[QuestionId]",
            f"LEFT JOIN {qualified('RepeatingSectionInstances')} i ON i.[InstanceId] = a.[InstanceId];",
        ]
        return [
            SqlScript(
                name="vw_AllSubmissions",
                type=ScriptType.VIEW,
                description="All submissions across forms",
                content="\n".join(all_submissions),
                references=("Submissions", "Forms", "Answers"),
            ),
            SqlScript(
                name="vw_FormAnswersPivot",
                type=ScriptType.VIEW,
                description="One row per answer with its value rendered as text",
                content="\n".join(pivot),
                references=("Answers", "Submissions", "Forms", "Questions", "RepeatingSectionInstances"),
            ),
        ]

    # -- per-form scripts ------------------------------------------------------------
    def _registration(self, graph: SchemaGraph) -> SqlScript:
        form = self.form_name(graph)
        questions = self.questions(graph)
        lines = [
            f"-- Register form {graph.form_name} and its questions",
            "DECLARE @FormId INT;",
            f"EXEC {qualified('sp_RegisterForm')} @FormName = {sql_literal(form)}, @DisplayName = {sql_literal(graph.form_name)}, @FormId = @FormId OUTPUT;",
        ]
        if questions:
            values = []
            for row in questions:
                control = row.control
                column_type = sql_type(control.type)
                values.append(
                    "    ("
                    + ", ".join(
                        [
                            sql_literal(control.name),
                            sql_literal(control.label or None),
                            sql_literal(control.type or None),
                            sql_literal(column_type.name),
                            sql_literal(column_type.answer_column),
                            "1" if row.section_name else "0",
                            sql_literal(row.section_name),
                            sql_literal(row.parent_section_name),
                            str(row.display_order),
                        ]
                    )
                    + ")"
                )
            lines += [
                "",
                f"INSERT INTO {qualified('Questions')} ([FormId], [QuestionName], [QuestionLabel], [ControlType], [DataType], [AnswerColumn], [IsRepeating], [RepeatingSectionName], [ParentSectionName], [DisplayOrder])",
                "SELECT @FormId, v.[QuestionName], v.[QuestionLabel], v.[ControlType], v.[DataType], v.[AnswerColumn], v.[IsRepeating], v.[RepeatingSectionName], v.[ParentSectionName], v.[DisplayOrder]",
                "FROM (VALUES",
                ",\n".join(values),
                ") AS v ([QuestionName], [QuestionLabel], [ControlType], [DataType], [AnswerColumn], [IsRepeating], [RepeatingSectionName], [ParentSectionName], [DisplayOrder])",
                f"WHERE NOT EXISTS (SELECT 1 FROM {qualified('Questions')} q",
                "    WHERE q.[FormId] = @FormId AND q.[QuestionName] = v.[QuestionName]",
                "    AND ISNULL(q.[RepeatingSectionName], N'') = ISNULL(v.[RepeatingSectionName], N''));",
            ]

        options = []
        for row in questions:
            for sort_order, option in enumerate(distinct_options(row.control)):
                options.append(
                    "    ("
                    + ", ".join(
                        [
                            sql_literal(row.control.name),
                            sql_literal(row.section_name or ""),
                            sql_literal(option.value),
                            sql_literal(option.display_text or option.value),
                            str(sort_order),
                            "1" if option.is_default else "0",
                        ]
                    )
                    + ")"
                )
        if options:
            lines += [
                "",
                f"INSERT INTO {qualified('QuestionOptions')} ([QuestionId], [OptionValue], [DisplayText], [SortOrder], [IsDefault])",
                "SELECT q.[QuestionId], v.[OptionValue], v.[DisplayText], v.[SortOrder], v.[IsDefault]",
                "FROM (VALUES",
                ",\n".join(options),
                ") AS v ([QuestionName], [SectionName], [OptionValue], [DisplayText], [SortOrder], [IsDefault])",
                f"INNER JOIN {qualified('Questions')} q",
                "    ON q.[FormId] = @FormId AND q.[QuestionName] = v.[QuestionName]",
                "    AND ISNULL(q.[RepeatingSectionName], N'') = v.[SectionName]",
                f"WHERE NOT EXISTS (SELECT 1 FROM {qualified('QuestionOptions')} o",
                "    WHERE o.[QuestionId] = q.[QuestionId] AND o.[OptionValue] = v.[OptionValue]);",
            ]
        return SqlScript(
            name=f"Register_{form}",
            type=ScriptType.LOOKUP_DATA,
            description=f"Registers {len(questions)} questions for {graph.form_name}",
            content="\n".join(lines),
            references=("Forms", "Questions", "QuestionOptions"),
        )

    def _form_procedures(self, graph: SchemaGraph) -> List[SqlScript]:
        form = self.form_name(graph)
        submit_name, get_name, section_names = self.form_procedures(graph)
        submit = "\n".join(
            [
                f"CREATE OR ALTER PROCEDURE {qualified(submit_name)}",
                "    @Payload NVARCHAR(MAX),",
                "    @SubmittedBy NVARCHAR(255) = NULL,",
                "    @SubmissionId INT = NULL OUTPUT",
                "AS",
                "BEGIN",
                "    SET NOCOUNT ON;",
                "",
                f"    EXEC {qualified('sp_SubmitFormData')}",
                f"        @FormName = {sql_literal(form)},",
                "        @Payload = @Payload,",
                "        @SubmittedBy = @SubmittedBy,",
                "        @SubmissionId = @SubmissionId OUTPUT;",
                "END",
            ]
        )
        get = "\n".join(
            [
                f"CREATE OR ALTER PROCEDURE {qualified(get_name)}",
                "    @SubmissionId INT",
                "AS",
                "BEGIN",
                "    SET NOCOUNT ON;",
                "",
                "    IF NOT EXISTS (",
                f"        SELECT 1 FROM {qualified('Submissions')} s",
                f"        INNER JOIN {qualified('Forms')} f ON f.[FormId] = s.[FormId]",
                f"        WHERE s.[SubmissionId] = @SubmissionId AND f.[FormName] = {sql_literal(form)})",
                "    BEGIN",
                f"        RAISERROR(N'Submission %d does not belong to form {form}.', 16, 1, @SubmissionId);",
                "        RETURN;",
                "    END",
                "",
                f"    EXEC {qualified('sp_GetSubmissionData')} @SubmissionId = @SubmissionId;",
                "END",
            ]
        )
        scripts = [
            SqlScript(
                name=submit_name,
                type=ScriptType.STORED_PROCEDURE,
                description=f"Submit procedure for {graph.form_name}",
                content=submit,
                references=("Forms", "Submissions", "Answers"),
            ),
            SqlScript(
                name=get_name,
                type=ScriptType.STORED_PROCEDURE,
                description=f"Get procedure for {graph.form_name}",
                content=get,
                references=("Forms", "Submissions"),
            ),
        ]
        for key, proc in section_names.items():
            content = "\n".join(
                [
                    f"CREATE OR ALTER PROCEDURE {qualified(proc)}",
                    "    @SubmissionId INT,",
                    "    @Payload NVARCHAR(MAX),",
                    "    @ParentInstanceId INT = NULL,",
                    "    @ItemOrder INT = 0,",
                    "    @InstanceId INT = NULL OUTPUT",
                    "AS",
                    "BEGIN",
                    "    SET NOCOUNT ON;",
                    "",
                    f"    EXEC {qualified('sp_AddRepeatingSectionInstance')}",
                    "        @SubmissionId = @SubmissionId,",
                    f"        @SectionName = {sql_literal(key)},",
                    "        @Payload = @Payload,",
                    "        @ParentInstanceId = @ParentInstanceId,",
                    "        @ItemOrder = @ItemOrder,",
                    "        @InstanceId = @InstanceId OUTPUT;",
                    "END",
                ]
            )
            scripts.append(
                SqlScript(
                    name=proc,
                    type=ScriptType.STORED_PROCEDURE,
                    description=f"Adds a {key} item to a {graph.form_name} submission",
                    content=content,
                    references=("RepeatingSectionInstances", "Answers"),
                )
            )
        return scripts


# --------------------------------------------------------------------------------------
# Dispatch
# --------------------------------------------------------------------------------------
RENDERERS = {
    TableStructureType.FLAT_TABLES: FlatTablesRenderer,
    TableStructureType.NORMALIZED_QA: NormalizedQARenderer,
}


def get_renderer(strategy: Union[str, TableStructureType, None]) -> SchemaRenderer:
    return RENDERERS[parse_strategy(strategy)]()


def render(graph: SchemaGraph, strategy: Union[str, TableStructureType, None], include_shared: bool = True) -> ScriptSet:
    return get_renderer(strategy).render(graph, include_shared=include_shared)
