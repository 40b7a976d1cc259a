import json

from form_model import form_model_from_dict, form_model_to_dict, load_form_model
from form_sql_generator import SqlDeploymentInfo, enrich_forms, generate_batch
from sql_renderers import TableStructureType
from form_samples import travel_request, travel_request_doc


class _Execution:
    def __init__(self, success):
        self.success = success


def test_nested_section_info_is_flattened():
    doc = {
        "FormName": "Nested",
        "Views": [
            {
                "ViewName": "View 1",
                "Controls": [
                    {
                        "Name": "Leg",
                        "Type": "TextField",
                        "SectionInfo": {"ParentSection": "RoundTrip", "SectionType": "repeating"},
                        "RepeatingSectionInfo": {"IsInRepeatingSection": True, "RepeatingSectionName": "RoundTrip"},
                        "DataOptions": [{"Value": "Out", "Order": 1}, {"Value": "Back", "Order": 0}],
                    }
                ],
                "Sections": [{"Name": "RoundTrip", "Type": "repeating", "ParentSection": "Trips", "ControlIds": ["CTRL5"]}],
            }
        ],
    }
    model = form_model_from_dict(doc)
    leg = model.views[0].controls[0]

    assert leg.parent_section == "RoundTrip"
    assert leg.section_type == "repeating"
    assert leg.is_in_repeating_section is True
    assert leg.repeating_section_name == "RoundTrip"
    assert [(o.value, o.display_text, o.order) for o in leg.data_options] == [("Out", "Out", 1), ("Back", "Back", 0)]
    assert model.views[0].sections[0].control_ids == ["CTRL5"]


def test_snake_case_documents_are_accepted():
    model = form_model_from_dict(
        {
            "name": "Snake",
            "views": [
                {
                    "view_name": "v",
                    "controls": [{"name": "Flag", "type": "CheckBox", "is_in_repeating_section": "true", "repeating_section_name": "S"}],
                }
            ],
        }
    )
    assert model.name == "Snake"
    assert model.views[0].controls[0].is_in_repeating_section is True


def test_load_from_file_uses_stem_when_unnamed(tmp_path):
    doc = travel_request_doc()
    del doc["FormName"]
    path = tmp_path / "Leave Request.json"
    # Analyzer output is written with a byte order mark on Windows.
    path.write_text(json.dumps(doc), encoding="utf-8-sig")

    model = load_form_model(path)
    assert model.name == "Leave Request"
    assert len(model.views[0].controls) == 6


def test_ctrl_id_comes_from_properties():
    model = form_model_from_dict(
        {"Views": [{"ViewName": "Main", "Controls": [{"Name": "A", "Type": "TextField", "CtrlId": "CTRL1"}]}]}
    )
    assert model.name == "Main"
    assert model.views[0].controls[0].ctrl_id == "CTRL1"


def test_round_trip_through_dict():
    model = travel_request()
    again = form_model_from_dict(form_model_to_dict(model))
    assert again == model


def test_enrichment_attaches_mapping_after_successful_deployment():
    forms = [travel_request()]
    batch = generate_batch(forms, "FlatTables")
    info = SqlDeploymentInfo(server="sql01", database="Forms", strategy=TableStructureType.FLAT_TABLES)

    documents = enrich_forms(forms, batch, _Execution(True), info)

    assert len(documents) == 1
    deployment = documents[0]["SqlDeployment"]
    assert deployment["Server"] == "sql01"
    assert deployment["Mapping"]["MainTableName"] == "TravelRequest"
    assert documents[0]["Views"][0]["Controls"][0]["Name"] == "Employee"
    assert info.to_dict()["FormMappings"]["TravelRequest"]["Strategy"] == "FlatTables"


def test_enrichment_is_skipped_without_successful_deployment():
    forms = [travel_request()]
    batch = generate_batch(forms, "FlatTables")
    info = SqlDeploymentInfo(server="sql01", database="Forms", strategy=TableStructureType.FLAT_TABLES)

    assert enrich_forms(forms, batch, _Execution(False), info) == []
    assert enrich_forms(forms, batch, None, info) == []
    assert info.form_mappings == {}
