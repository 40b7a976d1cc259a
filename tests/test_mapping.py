import json
import unittest

from form_schema import analyze
from form_sql_generator import build_mapping
from sql_renderers import ScriptType, TableStructureType, render
from form_samples import control, form, orders, travel_request


class TestFlatMapping(unittest.TestCase):
    def setUp(self):
        self.form = travel_request()
        self.graph = analyze(self.form)
        self.mapping = build_mapping(self.form, self.graph, "FlatTables")

    def test_main_and_section_columns(self):
        self.assertEqual(self.mapping.main_table_name, "TravelRequest")
        by_field = {c.field_name: c for c in self.mapping.column_mappings}
        self.assertTrue(by_field["Employee"].is_in_main_table)
        self.assertFalse(by_field["Destination"].is_in_main_table)
        self.assertEqual(by_field["Destination"].table_name, "TravelRequest_Trips")
        self.assertEqual(by_field["TripDate"].sql_type, "DATETIME2")
        self.assertNotIn("Submit", by_field)

    def test_repeating_sections(self):
        sections = {r.section_name: r for r in self.mapping.repeating_section_mappings}
        self.assertEqual(list(sections), ["Trips", "RoundTrip"])
        self.assertEqual(sections["Trips"].parent_table_name, "TravelRequest")
        self.assertEqual(sections["RoundTrip"].table_name, "TravelRequest_Trips_RoundTrip")
        self.assertEqual(sections["RoundTrip"].parent_table_name, "TravelRequest_Trips")
        self.assertEqual(sections["RoundTrip"].foreign_key_column, "ParentId")
        self.assertEqual([c.column_name for c in sections["Trips"].columns], ["Destination", "TripDate"])

    def test_lookups(self):
        self.assertEqual(len(self.mapping.lookup_table_mappings), 1)
        lookup = self.mapping.lookup_table_mappings[0]
        self.assertEqual(lookup.field_name, "Approved")
        self.assertEqual(lookup.lookup_table_name, "TravelRequest_Approved_Lookup")
        self.assertEqual(lookup.values, ["Yes", "No"])

    def test_names_match_rendered_scripts(self):
        scripts = render(self.graph, "FlatTables")
        self.assertEqual(
            self.mapping.stored_procedures, [s.name for s in scripts.of_type(ScriptType.STORED_PROCEDURE)]
        )
        self.assertEqual(self.mapping.views, [s.name for s in scripts.of_type(ScriptType.VIEW)])
        mapped_tables = {self.mapping.main_table_name}
        mapped_tables |= {r.table_name for r in self.mapping.repeating_section_mappings}
        mapped_tables |= {lk.lookup_table_name for lk in self.mapping.lookup_table_mappings}
        self.assertEqual(mapped_tables, set(scripts.table_names))

    def test_to_dict_keys_are_stable(self):
        data = self.mapping.to_dict()
        self.assertEqual(
            list(data),
            [
                "FormName",
                "Strategy",
                "MainTableName",
                "ColumnMappings",
                "RepeatingSectionMappings",
                "LookupTableMappings",
                "StoredProcedures",
                "Views",
            ],
        )
        self.assertEqual(data["Strategy"], "FlatTables")
        self.assertEqual(json.loads(json.dumps(data)), data)

    def test_mapping_is_deterministic(self):
        again = build_mapping(travel_request(), analyze(travel_request()), TableStructureType.FLAT_TABLES)
        self.assertEqual(again.to_dict(), self.mapping.to_dict())


class TestNormalizedMapping(unittest.TestCase):
    def setUp(self):
        self.form = travel_request()
        self.graph = analyze(self.form)
        self.mapping = build_mapping(self.form, self.graph, "NormalizedQA")

    def test_fields_map_to_answer_columns(self):
        self.assertEqual(self.mapping.main_table_name, "Submissions")
        by_field = {c.field_name: c for c in self.mapping.column_mappings}
        self.assertEqual(by_field["TripDate"].column_name, "AnswerDate")
        self.assertEqual(by_field["Employee"].column_name, "AnswerText")
        self.assertEqual({c.table_name for c in self.mapping.column_mappings}, {"Answers"})
        self.assertFalse(by_field["Leg"].is_in_main_table)

    def test_sections_and_lookups(self):
        sections = {r.section_name: r for r in self.mapping.repeating_section_mappings}
        self.assertEqual(sections["Trips"].foreign_key_column, "SubmissionId")
        self.assertEqual(sections["RoundTrip"].foreign_key_column, "ParentInstanceId")
        self.assertEqual(sections["RoundTrip"].parent_table_name, "RepeatingSectionInstances")
        self.assertEqual(
            [(lk.field_name, lk.lookup_table_name, lk.values) for lk in self.mapping.lookup_table_mappings],
            [("Approved", "QuestionOptions", ["Yes", "No"])],
        )

    def test_procedures_and_views(self):
        self.assertEqual(self.mapping.stored_procedures[:2], ["sp_Submit_TravelRequest", "sp_Get_TravelRequest"])
        self.assertIn("sp_SubmitFormData", self.mapping.stored_procedures)
        self.assertIn("sp_TravelRequest_Trips_AddItem", self.mapping.stored_procedures)
        self.assertEqual(self.mapping.views, ["vw_AllSubmissions", "vw_FormAnswersPivot"])
        rendered = {s.name for s in render(self.graph, "NormalizedQA").of_type(ScriptType.STORED_PROCEDURE)}
        self.assertEqual(set(self.mapping.stored_procedures), rendered)


class TestLookupMapping(unittest.TestCase):
    def test_same_named_controls_map_to_their_own_lookups(self):
        model = orders()
        mapping = build_mapping(model, analyze(model), "FlatTables")
        self.assertEqual(
            [(lk.field_name, lk.lookup_table_name, lk.values) for lk in mapping.lookup_table_mappings],
            [
                ("Priority", "Orders_Priority_Lookup", ["High", "Low"]),
                ("Priority", "Orders_Items_Priority_Lookup", ["A", "B"]),
            ],
        )

    def test_values_match_the_seeded_codes(self):
        model = form("Survey", [control("Ans", "DropDown", options=["Yes", "yes", "No "])])
        graph = analyze(model)
        for strategy in ("FlatTables", "NormalizedQA"):
            with self.subTest(strategy=strategy):
                mapping = build_mapping(model, graph, strategy)
                self.assertEqual(mapping.lookup_table_mappings[0].values, ["Yes", "No "])


if __name__ == "__main__":
    unittest.main()
