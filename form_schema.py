"""
Structural analysis of analyzed forms for SQL Server schema synthesis.

This module holds everything the renderers and the mapping builder share:
configuration, identifier sanitising, the control-type table and the
structural analyzer that partitions a form's controls into a main record, a
tree of repeating-section tables and a set of lookup candidates.

Nothing in here touches the network or the filesystem. Analysis problems that
should not stop a run (a control pointing at an undeclared section, a cycle in
section parentage) are collected on ``SchemaGraph.warnings`` for the caller to
report.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from form_model import ControlDefinition, DataOption, FormModel


# --------------------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------------------
CONFIG: Dict[str, Any] = {
    "DIALECT": {
        "SCHEMA": "dbo",
        "MAX_IDENTIFIER_LENGTH": 128,
        "BATCH_TERMINATOR": "GO",
    },
    "NAMING": {
        "TABLE_PLACEHOLDER": "FormTable",
        "COLUMN_PLACEHOLDER": "Field",
        "RESERVED_SUFFIX": "_Field",
        "LOOKUP_SUFFIX": "_Lookup",
        # Compared case-insensitively against sanitized column names.
        "RESERVED_WORDS": {
            "add", "all", "alter", "and", "any", "as", "asc", "begin", "between", "by",
            "case", "check", "column", "constraint", "create", "cross", "current", "date",
            "default", "delete", "desc", "distinct", "drop", "else", "end", "exec", "exists",
            "file", "foreign", "from", "function", "grant", "group", "having", "identity",
            "in", "index", "inner", "insert", "into", "is", "join", "key", "left", "like",
            "merge", "not", "null", "of", "on", "open", "option", "or", "order", "outer",
            "percent", "pivot", "plan", "primary", "procedure", "public", "references",
            "right", "rule", "schema", "select", "set", "table", "then", "time", "to", "top",
            "tran", "transaction", "trigger", "union", "unique", "update", "user", "values",
            "view", "when", "where", "while", "with",
        },
    },
    "FLAT": {
        "SUMMARY_VIEW_MAX_COLUMNS": 10,
        "MAIN_SYSTEM_COLUMNS": ["Id", "FormId", "CreatedDate", "ModifiedDate", "CreatedBy", "ModifiedBy", "Status"],
        "SECTION_SYSTEM_COLUMNS": ["Id", "ParentId", "ItemOrder", "CreatedDate"],
    },
    "NORMALIZED": {
        "TABLES": ["Forms", "Questions", "QuestionOptions", "Submissions", "RepeatingSectionInstances", "Answers"],
    },
    "GENERATION": {
        # 1 keeps the sequential reference behaviour; >1 analyses forms on a thread pool.
        "MAX_WORKERS": 1,
    },
    "OUTPUT": {
        "BASE_PATH": "output",
    },
}

REPEATING_SECTION_TYPES = {"repeating", "nestedrepeating", "repeatingsection", "repeatingtable"}


# --------------------------------------------------------------------------------------
# Errors
# --------------------------------------------------------------------------------------
class SchemaGenerationError(Exception):
    """Base class for schema synthesis failures."""


class UnsupportedStrategyError(SchemaGenerationError, ValueError):
    """Raised when a caller asks for a generation strategy that does not exist."""


# --------------------------------------------------------------------------------------
# SQL text helpers
# --------------------------------------------------------------------------------------
def quote_ident(name: str) -> str:
    """Safely quote SQL Server identifiers using bracket escaping.

    Using brackets avoids issues with reserved words and special characters. Any
    embedded closing bracket is escaped by doubling it (`]` -> `]]`).
    """
    escaped = name.replace("]", "]]")
    return f"[{escaped}]"


def qualified(name: str) -> str:
    return f"{quote_ident(CONFIG['DIALECT']['SCHEMA'])}.{quote_ident(name)}"


def sql_literal(value: Optional[Any]) -> str:
    """Render a Python value as a T-SQL literal (unicode strings, NULL, 0/1 bits)."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"N'{escaped}'"


# --------------------------------------------------------------------------------------
# Control types
# --------------------------------------------------------------------------------------
class ControlKind(Enum):
    TEXT = "text"
    RICH_TEXT = "rich_text"
    DROPDOWN = "dropdown"
    COMBO_BOX = "combo_box"
    LIST_BOX = "list_box"
    OPTION_BUTTON = "option_button"
    CHECKBOX = "checkbox"
    DATE_PICKER = "date_picker"
    DATE_TIME = "date_time"
    PERSON_PICKER = "person_picker"
    HYPERLINK = "hyperlink"
    NUMBER = "number"
    FILE_ATTACHMENT = "file_attachment"
    PICTURE = "picture"
    BUTTON = "button"
    LABEL = "label"
    REPEATING_TABLE = "repeating_table"
    REPEATING_SECTION = "repeating_section"
    SECTION = "section"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SqlType:
    name: str
    nullable: bool = True
    default: Optional[str] = None
    # Typed value column used by the normalized answers table.
    answer_column: str = "AnswerText"

    @property
    def is_max(self) -> bool:
        return self.name.upper().endswith("(MAX)")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ControlTypeInfo:
    sql_type: SqlType
    category: str
    carries_data: bool = True


_WIDE_TEXT = SqlType("NVARCHAR(MAX)")
_CHOICE = SqlType("NVARCHAR(255)")

CONTROL_TYPES: Dict[ControlKind, ControlTypeInfo] = {
    ControlKind.TEXT: ControlTypeInfo(_WIDE_TEXT, "text"),
    ControlKind.RICH_TEXT: ControlTypeInfo(_WIDE_TEXT, "text"),
    ControlKind.DROPDOWN: ControlTypeInfo(_CHOICE, "choice"),
    ControlKind.COMBO_BOX: ControlTypeInfo(_CHOICE, "choice"),
    ControlKind.LIST_BOX: ControlTypeInfo(_CHOICE, "choice"),
    ControlKind.OPTION_BUTTON: ControlTypeInfo(_CHOICE, "choice"),
    ControlKind.CHECKBOX: ControlTypeInfo(SqlType("BIT", default="0", answer_column="AnswerBit"), "boolean"),
    ControlKind.DATE_PICKER: ControlTypeInfo(SqlType("DATETIME2", answer_column="AnswerDate"), "date"),
    ControlKind.DATE_TIME: ControlTypeInfo(SqlType("DATETIME2", answer_column="AnswerDate"), "date"),
    ControlKind.PERSON_PICKER: ControlTypeInfo(SqlType("NVARCHAR(500)"), "person"),
    ControlKind.HYPERLINK: ControlTypeInfo(SqlType("NVARCHAR(2048)"), "link"),
    ControlKind.NUMBER: ControlTypeInfo(SqlType("DECIMAL(18,4)", answer_column="AnswerNumber"), "number"),
    ControlKind.FILE_ATTACHMENT: ControlTypeInfo(SqlType("VARBINARY(MAX)"), "file"),
    ControlKind.PICTURE: ControlTypeInfo(SqlType("VARBINARY(MAX)"), "file"),
    ControlKind.BUTTON: ControlTypeInfo(_WIDE_TEXT, "action", carries_data=False),
    ControlKind.LABEL: ControlTypeInfo(_WIDE_TEXT, "display", carries_data=False),
    ControlKind.REPEATING_TABLE: ControlTypeInfo(_WIDE_TEXT, "container", carries_data=False),
    ControlKind.REPEATING_SECTION: ControlTypeInfo(_WIDE_TEXT, "container", carries_data=False),
    ControlKind.SECTION: ControlTypeInfo(_WIDE_TEXT, "container", carries_data=False),
    ControlKind.UNKNOWN: ControlTypeInfo(_WIDE_TEXT, "text"),
}

_KIND_ALIASES: Dict[str, ControlKind] = {
    "text": ControlKind.TEXT,
    "textfield": ControlKind.TEXT,
    "textbox": ControlKind.TEXT,
    "plaintext": ControlKind.TEXT,
    "multilinetext": ControlKind.TEXT,
    "richtext": ControlKind.RICH_TEXT,
    "richtextbox": ControlKind.RICH_TEXT,
    "dropdown": ControlKind.DROPDOWN,
    "dropdownlist": ControlKind.DROPDOWN,
    "choice": ControlKind.DROPDOWN,
    "combobox": ControlKind.COMBO_BOX,
    "listbox": ControlKind.LIST_BOX,
    "multipleselectionlist": ControlKind.LIST_BOX,
    "optionbutton": ControlKind.OPTION_BUTTON,
    "radiobutton": ControlKind.OPTION_BUTTON,
    "radio": ControlKind.OPTION_BUTTON,
    "checkbox": ControlKind.CHECKBOX,
    "datepicker": ControlKind.DATE_PICKER,
    "date": ControlKind.DATE_PICKER,
    "datetime": ControlKind.DATE_TIME,
    "datetimepicker": ControlKind.DATE_TIME,
    "peoplepicker": ControlKind.PERSON_PICKER,
    "personpicker": ControlKind.PERSON_PICKER,
    "contactselector": ControlKind.PERSON_PICKER,
    "hyperlink": ControlKind.HYPERLINK,
    "url": ControlKind.HYPERLINK,
    "number": ControlKind.NUMBER,
    "numeric": ControlKind.NUMBER,
    "decimal": ControlKind.NUMBER,
    "integer": ControlKind.NUMBER,
    "currency": ControlKind.NUMBER,
    "fileattachment": ControlKind.FILE_ATTACHMENT,
    "attachment": ControlKind.FILE_ATTACHMENT,
    "picture": ControlKind.PICTURE,
    "inlinepicture": ControlKind.PICTURE,
    "button": ControlKind.BUTTON,
    "label": ControlKind.LABEL,
    "repeatingtable": ControlKind.REPEATING_TABLE,
    "repeatingsection": ControlKind.REPEATING_SECTION,
    "section": ControlKind.SECTION,
    "optionalsection": ControlKind.SECTION,
}


def parse_control_kind(raw: Union[str, ControlKind, None]) -> ControlKind:
    if isinstance(raw, ControlKind):
        return raw
    key = re.sub(r"[\s_\-]+", "", (raw or "").lower())
    return _KIND_ALIASES.get(key, ControlKind.UNKNOWN)


def control_type_info(control_type: Union[str, ControlKind, None]) -> ControlTypeInfo:
    return CONTROL_TYPES[parse_control_kind(control_type)]


def sql_type(control_type: Union[str, ControlKind, None]) -> SqlType:
    """Map a control type to its SQL Server column type.

    Total over any input: unknown or future control types fall back to
    NVARCHAR(MAX) instead of failing.
    """
    return control_type_info(control_type).sql_type


def carries_data(control: ControlDefinition) -> bool:
    return control_type_info(control.type).carries_data


def distinct_options(control: ControlDefinition) -> List[DataOption]:
    """Options in display order, without values SQL Server would treat as equal.

    Lookup codes compare under the default case-insensitive collation, which
    also ignores trailing spaces, so ``Yes``, ``yes`` and ``Yes `` are one code.
    """
    indexed = sorted(enumerate(control.data_options), key=lambda item: (item[1].order, item[0]))
    seen: Set[str] = set()
    options: List[DataOption] = []
    for _, option in indexed:
        key = option.value.rstrip().casefold()
        if key in seen:
            continue
        seen.add(key)
        options.append(option)
    return options


def lookup_key_type(column_type: SqlType) -> SqlType:
    """Key-safe variant of ``column_type`` for lookup codes (MAX types cannot be keys)."""
    if column_type.is_max:
        return SqlType("NVARCHAR(450)", column_type.nullable, None, "AnswerText")
    return column_type


# --------------------------------------------------------------------------------------
# Identifier sanitising
# --------------------------------------------------------------------------------------
_FORM_FILE_EXTENSION_RE = re.compile(r"\.(xsn|xml|json)$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[\s\-./\\,:;]+")
_INVALID_RE = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORES_RE = re.compile(r"_+")


def sanitize(raw: Optional[str], kind: str = "column") -> str:
    """Turn a human-entered name into a SQL Server identifier.

    ``kind`` is ``"form"``, ``"table"`` or ``"column"``. Form names lose a
    trailing form file extension (``.xsn``, ``.xml``, ``.json``); other names keep
    their dots as separators. The result always matches
    ``^[A-Za-z_][A-Za-z0-9_]*$`` and never exceeds the dialect's identifier
    length. Collisions are not resolved here; see ``NameRegistry``.
    """
    naming = CONFIG["NAMING"]
    placeholder = naming["COLUMN_PLACEHOLDER"] if kind == "column" else naming["TABLE_PLACEHOLDER"]
    value = (raw or "").strip()
    if kind == "form":
        value = _FORM_FILE_EXTENSION_RE.sub("", value)
    value = _SEPARATOR_RE.sub("_", value)
    value = _INVALID_RE.sub("", value)
    value = _UNDERSCORES_RE.sub("_", value).strip("_")
    if not value:
        return placeholder
    if value[0].isdigit():
        value = "_" + value
    if kind == "column" and value.lower() in naming["RESERVED_WORDS"]:
        value += naming["RESERVED_SUFFIX"]
    return value[: CONFIG["DIALECT"]["MAX_IDENTIFIER_LENGTH"]]


class NameRegistry:
    """Resolves identifier collisions inside one namespace (a table, or the schema).

    Comparison is case-insensitive to match SQL Server's default collation.
    A registry lives for a single render call only.
    """

    def __init__(self, reserved: Optional[List[str]] = None) -> None:
        self._taken: Set[str] = set()
        for name in reserved or []:
            self._taken.add(name.lower())

    def claim(self, name: str) -> str:
        limit = CONFIG["DIALECT"]["MAX_IDENTIFIER_LENGTH"]
        candidate = name[:limit]
        counter = 2
        while candidate.lower() in self._taken:
            suffix = f"_{counter}"
            candidate = name[: limit - len(suffix)] + suffix
            counter += 1
        self._taken.add(candidate.lower())
        return candidate

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._taken


# --------------------------------------------------------------------------------------
# Schema graph
# --------------------------------------------------------------------------------------
@dataclass
class SectionNode:
    """Arena entry for one declared or referenced section."""

    key: str
    section_type: str
    declared: bool
    parent_name: Optional[str] = None
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    controls: List[int] = field(default_factory=list)

    @property
    def is_repeating(self) -> bool:
        return is_repeating_type(self.section_type)


@dataclass
class RepeatingTable:
    key: str
    section_type: str
    controls: List[ControlDefinition] = field(default_factory=list)
    parent_table_key: Optional[str] = None
    depth: int = 1


@dataclass
class SchemaGraph:
    form_name: str
    main_columns: List[ControlDefinition] = field(default_factory=list)
    # Insertion order is pre-order: every parent precedes its children.
    repeating_tables: Dict[str, RepeatingTable] = field(default_factory=dict)
    lookup_tables: List[ControlDefinition] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.main_columns and not self.repeating_tables


def is_repeating_type(section_type: Optional[str]) -> bool:
    return re.sub(r"[\s_\-]+", "", (section_type or "").lower()) in REPEATING_SECTION_TYPES


# --------------------------------------------------------------------------------------
# Structural analyzer
# --------------------------------------------------------------------------------------
class StructuralAnalyzer:
    """Partitions a form's controls into main, repeating and lookup sets.

    Section parentage arrives as plain names. It is resolved once into an arena
    of ``SectionNode`` entries so the partitioning works on indices.
    """

    def __init__(self, form: FormModel) -> None:
        self.form = form
        self.nodes: List[SectionNode] = []
        self.node_index: Dict[str, int] = {}
        self.controls: List[ControlDefinition] = []
        self.warnings: List[str] = []

    # -- collection ------------------------------------------------------------------
    def _collect_controls(self) -> List[Tuple[int, ControlDefinition]]:
        ordered: List[Tuple[Tuple[int, int, int], int, ControlDefinition]] = []
        for view_pos, view in enumerate(self.form.views):
            for pos, control in enumerate(view.controls):
                if control.is_merged_into_parent:
                    continue
                ordered.append(((view_pos, control.doc_index, pos), view_pos, control))
        ordered.sort(key=lambda item: item[0])

        seen: Set[str] = set()
        result: List[Tuple[int, ControlDefinition]] = []
        for _, view_pos, control in ordered:
            dedup_key = control.binding or control.name
            if dedup_key in seen:
                continue
            seen.add(dedup_key)
            result.append((view_pos, control))
        return result

    def _declare_sections(self) -> None:
        for view in self.form.views:
            for section in view.sections:
                if not section.name:
                    continue
                idx = self.node_index.get(section.name)
                if idx is None:
                    self._add_node(section.name, section.type, True, section.parent_section or None)
                else:
                    node = self.nodes[idx]
                    # A section repeated across views keeps its first declaration,
                    # but a later view may add the parentage the first one lacked.
                    if node.parent_name is None and section.parent_section:
                        node.parent_name = section.parent_section

    def _add_node(self, key: str, section_type: str, declared: bool, parent_name: Optional[str] = None) -> int:
        self.nodes.append(SectionNode(key=key, section_type=section_type, declared=declared, parent_name=parent_name))
        self.node_index[key] = len(self.nodes) - 1
        return len(self.nodes) - 1

    def _link_parents(self) -> None:
        for idx, node in enumerate(self.nodes):
            if not node.parent_name:
                continue
            parent_idx = self.node_index.get(node.parent_name)
            if parent_idx is None:
                self.warnings.append(
                    f"Section '{node.key}' names unknown parent section '{node.parent_name}'; treated as top level."
                )
                continue
            if self._creates_cycle(idx, parent_idx):
                self.warnings.append(
                    f"Section '{node.key}' parent '{node.parent_name}' forms a cycle; treated as top level."
                )
                continue
            node.parent = parent_idx
            self.nodes[parent_idx].children.append(idx)

    def _creates_cycle(self, child: int, parent: int) -> bool:
        cursor: Optional[int] = parent
        while cursor is not None:
            if cursor == child:
                return True
            cursor = self.nodes[cursor].parent
        return False

    # -- placement -------------------------------------------------------------------
    def _repeating_ancestor(self, idx: Optional[int]) -> Optional[int]:
        """Nearest node at or above ``idx`` that is repeating."""
        while idx is not None:
            if self.nodes[idx].is_repeating:
                return idx
            idx = self.nodes[idx].parent
        return None

    def _section_declared_in_view(self, view_pos: int, name: str) -> bool:
        return any(s.name == name for s in self.form.views[view_pos].sections)

    def _place(self, view_pos: int, control: ControlDefinition) -> Optional[int]:
        """Return the arena index of the owning repeating section, or None for main."""
        if control.is_in_repeating_section and control.repeating_section_name:
            # The analyzer's direct repeating flag wins over any parentSection value.
            return self.node_index[control.repeating_section_name]

        if control.is_in_repeating_section:
            self.warnings.append(
                f"Control '{control.name}' is flagged repeating without a section name; placed by parent section."
            )

        if not control.parent_section:
            return None

        idx = self.node_index.get(control.parent_section)
        if idx is None:
            self.warnings.append(
                f"Control '{control.name}' references unknown section '{control.parent_section}'; placed in main table."
            )
            return None
        if not self._section_declared_in_view(view_pos, control.parent_section):
            self.warnings.append(
                f"Control '{control.name}' references section '{control.parent_section}' declared in another view."
            )
        return self._repeating_ancestor(idx)

    # -- graph assembly --------------------------------------------------------------
    def _preorder(self) -> List[int]:
        order: List[int] = []

        def visit(idx: int) -> None:
            order.append(idx)
            for child in self.nodes[idx].children:
                visit(child)

        for idx, node in enumerate(self.nodes):
            if node.parent is None:
                visit(idx)
        return order

    def analyze(self) -> SchemaGraph:
        self._declare_sections()
        collected = self._collect_controls()
        # Sections asserted repeating by a control's direct flag are registered
        # (or promoted) before any placement so every control sees the same tree.
        for _, control in collected:
            if not (control.is_in_repeating_section and control.repeating_section_name):
                continue
            idx = self.node_index.get(control.repeating_section_name)
            if idx is None:
                self._add_node(control.repeating_section_name, "repeating", False)
            elif not self.nodes[idx].is_repeating:
                self.nodes[idx].section_type = "repeating"
        self._link_parents()
        placements = [(control, self._place(view_pos, control)) for view_pos, control in collected]

        graph = SchemaGraph(form_name=self.form.name)
        for control, idx in placements:
            self.controls.append(control)
            if idx is None:
                graph.main_columns.append(control)
            else:
                self.nodes[idx].controls.append(len(self.controls) - 1)
            if control.has_static_data:
                graph.lookup_tables.append(control)

        for idx in self._preorder():
            node = self.nodes[idx]
            if not node.is_repeating:
                continue
            parent_idx = self._repeating_ancestor(node.parent)
            parent_key = self.nodes[parent_idx].key if parent_idx is not None else None
            depth = graph.repeating_tables[parent_key].depth + 1 if parent_key else 1
            graph.repeating_tables[node.key] = RepeatingTable(
                key=node.key,
                section_type=node.section_type,
                controls=[self.controls[c] for c in node.controls],
                parent_table_key=parent_key,
                depth=depth,
            )

        graph.warnings = list(self.warnings)
        return graph


def analyze(form: FormModel) -> SchemaGraph:
    return StructuralAnalyzer(form).analyze()


# --------------------------------------------------------------------------------------
# Name plan (flat strategy)
# --------------------------------------------------------------------------------------
@dataclass
class ColumnPlan:
    control: ControlDefinition
    column_name: str
    sql_type: SqlType
    lookup_table_name: Optional[str] = None


@dataclass
class TablePlan:
    table_name: str
    key: Optional[str] = None
    parent_table_name: Optional[str] = None
    parent_key: Optional[str] = None
    depth: int = 0
    columns: List[ColumnPlan] = field(default_factory=list)


@dataclass
class LookupPlan:
    control: ControlDefinition
    table_name: str
    key_type: SqlType


@dataclass
class NamePlan:
    main: TablePlan
    sections: List[TablePlan] = field(default_factory=list)
    lookups: List[LookupPlan] = field(default_factory=list)

    def section(self, key: str) -> TablePlan:
        for plan in self.sections:
            if plan.key == key:
                return plan
        raise KeyError(key)

    def children_of(self, table_name: str) -> List[TablePlan]:
        return [p for p in self.sections if p.parent_table_name == table_name]

    @property
    def all_tables(self) -> List[TablePlan]:
        return [self.main] + self.sections


def build_name_plan(graph: SchemaGraph) -> NamePlan:
    """Resolve every physical name the flat strategy uses, in one fixed order.

    Table names: main, then sections in pre-order, then lookups. Each lookup
    candidate gets its own table, prefixed by the table that owns its column, so
    two controls sharing a name never share a code set. Column names are resolved
    per table with the system columns pre-registered.
    """
    flat_cfg = CONFIG["FLAT"]
    tables = NameRegistry()
    main_name = tables.claim(sanitize(graph.form_name, "form"))
    main = TablePlan(table_name=main_name)

    plans_by_key: Dict[str, TablePlan] = {}
    sections: List[TablePlan] = []
    for table in graph.repeating_tables.values():
        parent = plans_by_key[table.parent_table_key] if table.parent_table_key else main
        name = tables.claim(f"{parent.table_name}_{sanitize(table.key, 'table')}")
        plan = TablePlan(
            table_name=name,
            key=table.key,
            parent_table_name=parent.table_name,
            parent_key=table.parent_table_key,
            depth=table.depth,
        )
        plans_by_key[table.key] = plan
        sections.append(plan)

    owners: Dict[int, TablePlan] = {id(c): main for c in graph.main_columns}
    for plan in sections:
        owners.update((id(c), plan) for c in graph.repeating_tables[plan.key].controls)

    # Keyed by identity: control names repeat across tables.
    lookups: List[LookupPlan] = []
    lookup_by_control: Dict[int, LookupPlan] = {}
    for control in graph.lookup_tables:
        if not carries_data(control) or id(control) in lookup_by_control:
            continue
        owner = owners.get(id(control), main).table_name
        name = tables.claim(f"{owner}_{sanitize(control.name, 'table')}{CONFIG['NAMING']['LOOKUP_SUFFIX']}")
        lookup = LookupPlan(control=control, table_name=name, key_type=lookup_key_type(sql_type(control.type)))
        lookup_by_control[id(control)] = lookup
        lookups.append(lookup)

    def fill_columns(plan: TablePlan, controls: List[ControlDefinition], system: List[str]) -> None:
        registry = NameRegistry(system)
        for control in controls:
            if not carries_data(control):
                continue
            lookup = lookup_by_control.get(id(control))
            plan.columns.append(
                ColumnPlan(
                    control=control,
                    column_name=registry.claim(sanitize(control.name, "column")),
                    sql_type=lookup.key_type if lookup else sql_type(control.type),
                    lookup_table_name=lookup.table_name if lookup else None,
                )
            )

    fill_columns(main, graph.main_columns, flat_cfg["MAIN_SYSTEM_COLUMNS"])
    for plan in sections:
        fill_columns(plan, graph.repeating_tables[plan.key].controls, flat_cfg["SECTION_SYSTEM_COLUMNS"])

    return NamePlan(main=main, sections=sections, lookups=lookups)
