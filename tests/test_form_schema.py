import re
import unittest

from form_schema import (
    CONFIG,
    CONTROL_TYPES,
    ControlKind,
    NameRegistry,
    SqlType,
    analyze,
    build_name_plan,
    distinct_options,
    lookup_key_type,
    parse_control_kind,
    sanitize,
    sql_type,
)
from form_model import form_model_from_dict
from form_samples import control, form, orders, section, travel_request

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TestSanitize(unittest.TestCase):
    def test_form_names_drop_file_extension(self):
        self.assertEqual(sanitize("Travel Request.xsn", "form"), "Travel_Request")
        self.assertEqual(sanitize("Expenses.XML", "form"), "Expenses")

    def test_dots_elsewhere_are_separators(self):
        self.assertEqual(sanitize("Trip.Legs", "table"), "Trip_Legs")
        self.assertEqual(sanitize("Survey 2.0", "form"), "Survey_2_0")

    def test_separators_become_underscores(self):
        self.assertEqual(sanitize("First-Name / Last.Name"), "First_Name_Last_Name")

    def test_invalid_characters_are_stripped(self):
        self.assertEqual(sanitize("Cost ($)"), "Cost")

    def test_leading_digit_is_prefixed(self):
        self.assertEqual(sanitize("1st Choice"), "_1st_Choice")

    def test_reserved_words_get_suffix_for_columns_only(self):
        self.assertEqual(sanitize("Order"), "Order_Field")
        self.assertEqual(sanitize("select"), "select_Field")
        self.assertEqual(sanitize("Order", "table"), "Order")

    def test_empty_results_use_placeholders(self):
        self.assertEqual(sanitize("", "table"), "FormTable")
        self.assertEqual(sanitize("!!!"), "Field")
        self.assertEqual(sanitize(None), "Field")

    def test_length_is_capped(self):
        self.assertEqual(len(sanitize("a" * 300)), CONFIG["DIALECT"]["MAX_IDENTIFIER_LENGTH"])

    def test_results_are_valid_identifiers(self):
        for raw in ["Travel Request", "  __x__  ", "9", "día", "a--b..c", "[weird]", "tab\tname"]:
            for kind in ("form", "table", "column"):
                self.assertRegex(sanitize(raw, kind), IDENTIFIER_RE)


class TestNameRegistry(unittest.TestCase):
    def test_reserved_names_are_suffixed(self):
        registry = NameRegistry(["Id", "Status"])
        self.assertEqual(registry.claim("Status"), "Status_2")
        self.assertEqual(registry.claim("Status"), "Status_3")

    def test_collisions_are_case_insensitive(self):
        registry = NameRegistry()
        self.assertEqual(registry.claim("name"), "name")
        self.assertEqual(registry.claim("Name"), "Name_2")
        self.assertIn("NAME_2", registry)

    def test_truncation_keeps_suffix(self):
        registry = NameRegistry()
        long_name = "x" * 128
        registry.claim(long_name)
        second = registry.claim(long_name)
        self.assertEqual(len(second), 128)
        self.assertTrue(second.endswith("_2"))


class TestTypeMapper(unittest.TestCase):
    def test_representative_types(self):
        self.assertEqual(str(sql_type("TextField")), "NVARCHAR(MAX)")
        self.assertEqual(str(sql_type("CheckBox")), "BIT")
        self.assertEqual(str(sql_type("DatePicker")), "DATETIME2")
        self.assertEqual(str(sql_type("people-picker")), "NVARCHAR(500)")
        self.assertEqual(str(sql_type("Numeric")), "DECIMAL(18,4)")
        self.assertEqual(str(sql_type("FileAttachment")), "VARBINARY(MAX)")

    def test_unknown_types_fall_back_to_wide_text(self):
        self.assertEqual(parse_control_kind("HoloDeck"), ControlKind.UNKNOWN)
        self.assertEqual(str(sql_type("HoloDeck")), "NVARCHAR(MAX)")
        self.assertEqual(str(sql_type(None)), "NVARCHAR(MAX)")

    def test_table_is_total_over_kinds(self):
        for kind in ControlKind:
            self.assertIn(kind, CONTROL_TYPES)

    def test_lookup_key_type_narrows_max(self):
        self.assertEqual(str(lookup_key_type(SqlType("NVARCHAR(MAX)"))), "NVARCHAR(450)")
        self.assertEqual(str(lookup_key_type(SqlType("NVARCHAR(255)"))), "NVARCHAR(255)")


class TestStructuralAnalyzer(unittest.TestCase):
    def test_every_control_is_placed_exactly_once(self):
        model = travel_request()
        graph = analyze(model)
        placed = [c.name for c in graph.main_columns]
        for table in graph.repeating_tables.values():
            placed += [c.name for c in table.controls]
        self.assertEqual(sorted(placed), sorted(c.name for c in model.iter_controls()))

    def test_nesting_chain(self):
        graph = analyze(travel_request())
        self.assertEqual(list(graph.repeating_tables), ["Trips", "RoundTrip"])
        self.assertIsNone(graph.repeating_tables["Trips"].parent_table_key)
        self.assertEqual(graph.repeating_tables["RoundTrip"].parent_table_key, "Trips")
        self.assertEqual(graph.repeating_tables["RoundTrip"].depth, 2)
        self.assertEqual([c.name for c in graph.repeating_tables["RoundTrip"].controls], ["Leg"])
        self.assertIn("Employee", [c.name for c in graph.main_columns])

    def test_direct_repeating_flag_wins_over_parent_section(self):
        model = form(
            "F",
            [control("Qty", section="Header", repeating="Items")],
            [section("Header", "section"), section("Items")],
        )
        graph = analyze(model)
        self.assertEqual([c.name for c in graph.repeating_tables["Items"].controls], ["Qty"])
        self.assertEqual(graph.main_columns, [])

    def test_flag_registers_undeclared_section(self):
        graph = analyze(form("F", [control("Qty", repeating="Items")]))
        self.assertIn("Items", graph.repeating_tables)

    def test_plain_section_inside_repeating_uses_ancestor(self):
        model = form(
            "F",
            [control("Note", section="Details")],
            [section("Lines"), section("Details", "section", parent="Lines")],
        )
        graph = analyze(model)
        self.assertEqual(list(graph.repeating_tables), ["Lines"])
        self.assertEqual([c.name for c in graph.repeating_tables["Lines"].controls], ["Note"])

    def test_unknown_section_goes_to_main_with_warning(self):
        graph = analyze(form("F", [control("Lost", section="Nowhere")]))
        self.assertEqual([c.name for c in graph.main_columns], ["Lost"])
        self.assertEqual(len(graph.warnings), 1)
        self.assertIn("Nowhere", graph.warnings[0])

    def test_parent_cycle_is_broken_with_warning(self):
        model = form(
            "F",
            [control("A1", section="A"), control("B1", section="B")],
            [section("A", parent="B"), section("B", parent="A")],
        )
        graph = analyze(model)
        self.assertEqual(set(graph.repeating_tables), {"A", "B"})
        self.assertTrue(any("cycle" in w for w in graph.warnings))

    def test_duplicates_across_views_are_collapsed(self):
        model = form_model_from_dict(
            {
                "FormName": "F",
                "Views": [
                    {"ViewName": "Edit", "Controls": [control("Name", binding="my:Name")]},
                    {"ViewName": "Print", "Controls": [control("Name", binding="my:Name")]},
                ],
            }
        )
        graph = analyze(model)
        self.assertEqual(len(graph.main_columns), 1)

    def test_merged_controls_are_skipped(self):
        graph = analyze(form("F", [control("Kept"), control("Merged", IsMergedIntoParent=True)]))
        self.assertEqual([c.name for c in graph.main_columns], ["Kept"])

    def test_repeating_section_without_controls_keeps_its_table(self):
        graph = analyze(form("F", [control("Title")], [section("Attachments")]))
        table = graph.repeating_tables["Attachments"]
        self.assertEqual(table.controls, [])
        self.assertIsNone(table.parent_table_key)
        self.assertEqual([c.name for c in graph.main_columns], ["Title"])

    def test_lookup_candidates(self):
        graph = analyze(travel_request())
        self.assertEqual([c.name for c in graph.lookup_tables], ["Approved"])

    def test_empty_form(self):
        graph = analyze(form_model_from_dict({"FormName": "Blank"}))
        self.assertTrue(graph.is_empty)
        self.assertEqual(graph.warnings, [])


class TestNamePlan(unittest.TestCase):
    def test_system_column_collision(self):
        plan = build_name_plan(analyze(form("F", [control("Status"), control("status")])))
        self.assertEqual([c.column_name for c in plan.main.columns], ["Status_2", "status_3"])

    def test_table_names(self):
        plan = build_name_plan(analyze(travel_request()))
        self.assertEqual(plan.main.table_name, "TravelRequest")
        self.assertEqual(
            [s.table_name for s in plan.sections], ["TravelRequest_Trips", "TravelRequest_Trips_RoundTrip"]
        )
        self.assertEqual([lk.table_name for lk in plan.lookups], ["TravelRequest_Approved_Lookup"])

    def test_non_data_controls_have_no_columns(self):
        plan = build_name_plan(analyze(travel_request()))
        self.assertNotIn("Submit", [c.column_name for c in plan.main.columns])


    def test_same_named_lookups_get_separate_tables(self):
        plan = build_name_plan(analyze(orders()))
        self.assertEqual(
            [lk.table_name for lk in plan.lookups], ["Orders_Priority_Lookup", "Orders_Items_Priority_Lookup"]
        )
        self.assertEqual([c.lookup_table_name for c in plan.main.columns], ["Orders_Priority_Lookup"])
        self.assertEqual(
            [c.lookup_table_name for c in plan.section("Items").columns], ["Orders_Items_Priority_Lookup"]
        )


class TestDistinctOptions(unittest.TestCase):
    def test_values_equal_under_collation_are_dropped(self):
        model = form("F", [control("Answer", "DropDown", options=["Yes", "yes", "No", "No  ", "Maybe"])])
        options = distinct_options(model.views[0].controls[0])
        self.assertEqual([o.value for o in options], ["Yes", "No", "Maybe"])

    def test_display_order_is_kept(self):
        model = form_model_from_dict(
            {
                "FormName": "F",
                "Views": [
                    {
                        "ViewName": "v",
                        "Controls": [
                            {
                                "Name": "Size",
                                "Type": "DropDown",
                                "DataOptions": [{"Value": "L", "Order": 2}, {"Value": "S", "Order": 0}, {"Value": "s", "Order": 1}],
                            }
                        ],
                    }
                ],
            }
        )
        self.assertEqual([o.value for o in distinct_options(model.views[0].controls[0])], ["S", "L"])


if __name__ == "__main__":
    unittest.main()
