"""
Hierarchical form model consumed by the schema synthesis engine.

The model is produced by an external form analyzer and arrives as JSON. Keys
follow the analyzer's PascalCase output (``Views``, ``ViewName``, ``Controls``
...) but snake_case documents are accepted as well so hand-written fixtures stay
readable. Section membership may be expressed either flat on the control or
nested under ``SectionInfo`` / ``RepeatingSectionInfo`` blocks.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union


# --------------------------------------------------------------------------------------
# Data containers
# --------------------------------------------------------------------------------------
@dataclass
class DataOption:
    value: str
    display_text: str = ""
    order: int = 0
    is_default: bool = False


@dataclass
class SectionDefinition:
    name: str
    type: str = "section"
    ctrl_id: Optional[str] = None
    # Set when the section was relocated inside a repeating section.
    parent_section: Optional[str] = None
    control_ids: List[str] = field(default_factory=list)


@dataclass
class ControlDefinition:
    name: str
    type: str
    label: str = ""
    binding: str = ""
    doc_index: int = 0
    parent_section: Optional[str] = None
    section_type: Optional[str] = None
    is_in_repeating_section: bool = False
    repeating_section_name: Optional[str] = None
    repeating_section_binding: Optional[str] = None
    is_merged_into_parent: bool = False
    data_options: List[DataOption] = field(default_factory=list)
    column_span: int = 1
    row_span: int = 1
    grid_position: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)

    @property
    def has_static_data(self) -> bool:
        return bool(self.data_options)

    @property
    def ctrl_id(self) -> Optional[str]:
        return self.properties.get("CtrlId")


@dataclass
class ViewDefinition:
    view_name: str
    controls: List[ControlDefinition] = field(default_factory=list)
    sections: List[SectionDefinition] = field(default_factory=list)


@dataclass
class DataColumn:
    column_name: str
    type: str = ""
    repeating_section: Optional[str] = None
    is_repeating: bool = False
    is_conditional: bool = False
    conditional_on_field: Optional[str] = None
    display_name: Optional[str] = None
    valid_values: List[DataOption] = field(default_factory=list)
    default_value: Optional[str] = None


@dataclass
class DynamicSection:
    mode: Optional[str] = None
    ctrl_id: Optional[str] = None
    caption: Optional[str] = None
    condition: Optional[str] = None
    condition_field: Optional[str] = None
    condition_value: Optional[str] = None
    controls: List[str] = field(default_factory=list)
    is_visible: bool = False


@dataclass
class FormMetadata:
    total_controls: int = 0
    total_sections: int = 0
    dynamic_section_count: int = 0
    repeating_section_count: int = 0
    conditional_fields: List[str] = field(default_factory=list)


@dataclass
class FormModel:
    name: str
    views: List[ViewDefinition] = field(default_factory=list)
    data: List[DataColumn] = field(default_factory=list)
    metadata: FormMetadata = field(default_factory=FormMetadata)
    dynamic_sections: List[DynamicSection] = field(default_factory=list)

    def iter_controls(self) -> Iterator[ControlDefinition]:
        for view in self.views:
            yield from view.controls


# --------------------------------------------------------------------------------------
# JSON loading
# --------------------------------------------------------------------------------------
def _pick(obj: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-null value among ``keys``."""
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _option_from_dict(raw: Dict[str, Any], index: int) -> DataOption:
    value = str(_pick(raw, "Value", "value", default=""))
    return DataOption(
        value=value,
        display_text=str(_pick(raw, "DisplayText", "display_text", "displayText", default=value)),
        order=int(_pick(raw, "Order", "order", default=index)),
        is_default=_as_bool(_pick(raw, "IsDefault", "is_default", "isDefault", default=False)),
    )


def _section_from_dict(raw: Dict[str, Any]) -> SectionDefinition:
    return SectionDefinition(
        name=str(_pick(raw, "Name", "name", default="")),
        type=str(_pick(raw, "Type", "type", default="section")),
        ctrl_id=_pick(raw, "CtrlId", "ctrl_id"),
        parent_section=_pick(raw, "ParentSection", "parent_section") or None,
        control_ids=list(_pick(raw, "ControlIds", "control_ids", default=[])),
    )


def _control_from_dict(raw: Dict[str, Any]) -> ControlDefinition:
    section_info = _pick(raw, "SectionInfo", "section_info", default={})
    repeating_info = _pick(raw, "RepeatingSectionInfo", "repeating_section_info", default={})

    properties = {str(k): str(v) for k, v in (_pick(raw, "Properties", "properties", default={}) or {}).items()}
    for key, value in (_pick(raw, "AdditionalProperties", default={}) or {}).items():
        properties.setdefault(str(key), str(value))
    ctrl_id = _pick(raw, "CtrlId")
    if ctrl_id:
        properties.setdefault("CtrlId", str(ctrl_id))
    default_value = _pick(raw, "DefaultValue")
    if default_value is not None:
        properties.setdefault("DefaultValue", str(default_value))

    options = _pick(raw, "DataOptions", "data_options", default=[]) or []
    return ControlDefinition(
        name=str(_pick(raw, "OriginalName", "Name", "name", default="")),
        type=str(_pick(raw, "Type", "type", default="")),
        label=str(_pick(raw, "Label", "label", default="")),
        binding=str(_pick(raw, "Binding", "binding", default="")),
        doc_index=int(_pick(raw, "DocIndex", "doc_index", default=0)),
        parent_section=_pick(raw, "ParentSection", "parent_section")
        or _pick(section_info, "ParentSection", "parent_section"),
        section_type=_pick(raw, "SectionType", "section_type") or _pick(section_info, "SectionType", "section_type"),
        is_in_repeating_section=_as_bool(
            _pick(raw, "IsInRepeatingSection", "is_in_repeating_section")
            or _pick(repeating_info, "IsInRepeatingSection", "is_in_repeating_section", default=False)
        ),
        repeating_section_name=_pick(raw, "RepeatingSectionName", "repeating_section_name")
        or _pick(repeating_info, "RepeatingSectionName", "repeating_section_name"),
        repeating_section_binding=_pick(raw, "RepeatingSectionBinding", "repeating_section_binding")
        or _pick(repeating_info, "RepeatingSectionBinding", "repeating_section_binding"),
        is_merged_into_parent=_as_bool(_pick(raw, "IsMergedIntoParent", "is_merged_into_parent", default=False)),
        data_options=[_option_from_dict(o, i) for i, o in enumerate(options)],
        column_span=int(_pick(raw, "ColumnSpan", "column_span", default=1)),
        row_span=int(_pick(raw, "RowSpan", "row_span", default=1)),
        grid_position=_pick(raw, "GridPosition", "grid_position"),
        properties=properties,
    )


def _view_from_dict(raw: Dict[str, Any]) -> ViewDefinition:
    return ViewDefinition(
        view_name=str(_pick(raw, "ViewName", "view_name", default="")),
        controls=[_control_from_dict(c) for c in _pick(raw, "Controls", "controls", default=[])],
        sections=[_section_from_dict(s) for s in _pick(raw, "Sections", "sections", default=[])],
    )


def _data_column_from_dict(raw: Dict[str, Any]) -> DataColumn:
    values = _pick(raw, "ValidValues", "valid_values", default=[]) or []
    return DataColumn(
        column_name=str(_pick(raw, "ColumnName", "column_name", default="")),
        type=str(_pick(raw, "Type", "type", default="")),
        repeating_section=_pick(raw, "RepeatingSection", "Section", "repeating_section"),
        is_repeating=_as_bool(_pick(raw, "IsRepeating", "is_repeating", default=False)),
        is_conditional=_as_bool(_pick(raw, "IsConditional", "is_conditional", default=False)),
        conditional_on_field=_pick(raw, "ConditionalOnField", "conditional_on_field"),
        display_name=_pick(raw, "DisplayName", "display_name"),
        valid_values=[_option_from_dict(v, i) for i, v in enumerate(values)],
        default_value=_pick(raw, "DefaultValue", "default_value"),
    )


def _dynamic_section_from_dict(raw: Dict[str, Any]) -> DynamicSection:
    return DynamicSection(
        mode=_pick(raw, "Mode", "mode"),
        ctrl_id=_pick(raw, "CtrlId", "ctrl_id"),
        caption=_pick(raw, "Caption", "caption"),
        condition=_pick(raw, "Condition", "condition"),
        condition_field=_pick(raw, "ConditionField", "condition_field"),
        condition_value=_pick(raw, "ConditionValue", "condition_value"),
        controls=list(_pick(raw, "Controls", "controls", default=[])),
        is_visible=_as_bool(_pick(raw, "IsVisible", "is_visible", default=False)),
    )


def _metadata_from_dict(raw: Dict[str, Any]) -> FormMetadata:
    return FormMetadata(
        total_controls=int(_pick(raw, "TotalControls", "total_controls", default=0)),
        total_sections=int(_pick(raw, "TotalSections", "total_sections", default=0)),
        dynamic_section_count=int(_pick(raw, "DynamicSectionCount", "dynamic_section_count", default=0)),
        repeating_section_count=int(_pick(raw, "RepeatingSectionCount", "repeating_section_count", default=0)),
        conditional_fields=list(_pick(raw, "ConditionalFields", "conditional_fields", default=[])),
    )


def form_model_from_dict(raw: Dict[str, Any], name: Optional[str] = None) -> FormModel:
    views = [_view_from_dict(v) for v in _pick(raw, "Views", "views", default=[])]
    form_name = name or _pick(raw, "FormName", "Name", "name")
    if not form_name:
        form_name = views[0].view_name if views else ""
    return FormModel(
        name=str(form_name),
        views=views,
        data=[_data_column_from_dict(d) for d in _pick(raw, "Data", "data", default=[])],
        metadata=_metadata_from_dict(_pick(raw, "Metadata", "metadata", default={})),
        dynamic_sections=[_dynamic_section_from_dict(d) for d in _pick(raw, "DynamicSections", "dynamic_sections", default=[])],
    )


def load_form_model(source: Union[str, Path, Dict[str, Any]], name: Optional[str] = None) -> FormModel:
    """Load a FormModel from a JSON file path or an already parsed document.

    When loading from a file the form name falls back to the file stem, which
    matches how the analyzer names its output (``TravelRequest.json``).
    """
    if isinstance(source, dict):
        return form_model_from_dict(source, name)
    path = Path(source)
    raw = json.loads(path.read_text(encoding="utf-8-sig"))
    return form_model_from_dict(raw, name or _pick(raw, "FormName") or path.stem)


# --------------------------------------------------------------------------------------
# Serialisation
# --------------------------------------------------------------------------------------
def _option_to_dict(option: DataOption) -> Dict[str, Any]:
    return {
        "Value": option.value,
        "DisplayText": option.display_text,
        "Order": option.order,
        "IsDefault": option.is_default,
    }


def _control_to_dict(control: ControlDefinition) -> Dict[str, Any]:
    return {
        "Name": control.name,
        "Type": control.type,
        "Label": control.label,
        "Binding": control.binding,
        "DocIndex": control.doc_index,
        "GridPosition": control.grid_position,
        "CtrlId": control.ctrl_id,
        "ParentSection": control.parent_section,
        "SectionType": control.section_type,
        "IsInRepeatingSection": control.is_in_repeating_section,
        "RepeatingSectionName": control.repeating_section_name,
        "RepeatingSectionBinding": control.repeating_section_binding,
        "IsMergedIntoParent": control.is_merged_into_parent,
        "ColumnSpan": control.column_span,
        "RowSpan": control.row_span,
        "DataOptions": [_option_to_dict(o) for o in control.data_options] if control.has_static_data else None,
        "Properties": dict(control.properties),
    }


def form_model_to_dict(form: FormModel) -> Dict[str, Any]:
    """Serialise a FormModel back into the analyzer's PascalCase JSON shape."""
    return {
        "FormName": form.name,
        "Views": [
            {
                "ViewName": view.view_name,
                "Controls": [_control_to_dict(c) for c in view.controls],
                "Sections": [
                    {
                        "Name": s.name,
                        "Type": s.type,
                        "CtrlId": s.ctrl_id,
                        "ParentSection": s.parent_section,
                        "ControlIds": list(s.control_ids),
                    }
                    for s in view.sections
                ],
            }
            for view in form.views
        ],
        "Data": [
            {
                "ColumnName": d.column_name,
                "Type": d.type,
                "DisplayName": d.display_name,
                "RepeatingSection": d.repeating_section,
                "IsRepeating": d.is_repeating,
                "IsConditional": d.is_conditional,
                "ConditionalOnField": d.conditional_on_field,
                "ValidValues": [_option_to_dict(v) for v in d.valid_values] or None,
                "DefaultValue": d.default_value,
            }
            for d in form.data
        ],
        "DynamicSections": [
            {
                "Mode": ds.mode,
                "CtrlId": ds.ctrl_id,
                "Caption": ds.caption,
                "Condition": ds.condition,
                "ConditionField": ds.condition_field,
                "ConditionValue": ds.condition_value,
                "Controls": list(ds.controls),
                "IsVisible": ds.is_visible,
            }
            for ds in form.dynamic_sections
        ],
        "Metadata": {
            "TotalControls": form.metadata.total_controls,
            "TotalSections": form.metadata.total_sections,
            "DynamicSectionCount": form.metadata.dynamic_section_count,
            "RepeatingSectionCount": form.metadata.repeating_section_count,
            "ConditionalFields": list(form.metadata.conditional_fields),
        },
    }
