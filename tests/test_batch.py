import csv
import json
from unittest import mock

import pytest

import form_sql_generator
from form_model import form_model_from_dict
from form_schema import UnsupportedStrategyError
from form_sql_generator import generate_batch, generate_form, split_batches
from sql_renderers import TableStructureType, get_renderer
from form_samples import control, expenses, form, travel_request, travel_request_doc


def _broken():
    return form("Broken", [control("Anything")])


def _flaky_analyze(real):
    def analyze(form_model):
        if form_model.name == "Broken":
            raise RuntimeError("boom")
        return real(form_model)

    return analyze


def test_partial_failure_does_not_abort_batch():
    forms = [travel_request(), _broken(), expenses()]
    with mock.patch.object(form_sql_generator, "analyze", _flaky_analyze(form_sql_generator.analyze)):
        batch = generate_batch(forms, "FlatTables")

    assert batch.succeeded == ["TravelRequest", "Expenses"]
    assert batch.failed == ["Broken"]
    assert batch.results[1].error == "RuntimeError: boom"
    assert "-- Form: Broken (skipped: RuntimeError: boom)" in batch.script_text
    assert "CREATE TABLE [dbo].[Expenses]" in batch.script_text
    assert [m.form_name for m in batch.mappings] == ["TravelRequest", "Expenses"]


def test_unsupported_strategy_aborts_the_call():
    with pytest.raises(UnsupportedStrategyError):
        generate_batch([travel_request()], "Snowflake")


def test_normalized_meta_schema_emitted_once():
    batch = generate_batch([travel_request(), expenses()], "NormalizedQA")
    text = batch.script_text

    assert text.count("CREATE TABLE [dbo].[Forms]") == 1
    assert text.count("CREATE OR ALTER PROCEDURE [dbo].[sp_SubmitFormData]") == 1
    assert text.index("CREATE TABLE [dbo].[Answers]") < text.index("-- Form: TravelRequest")
    assert text.index("-- Form: TravelRequest") < text.index("-- Form: Expenses")
    assert "sp_Submit_Expenses" in text


def test_flat_batch_has_no_shared_scripts():
    batch = generate_batch([travel_request()], TableStructureType.FLAT_TABLES)
    assert batch.shared_scripts == []
    assert batch.total_scripts == batch.results[0].script_count


def test_parallel_generation_preserves_input_order():
    forms = [travel_request(), expenses(), form("Third", [control("X")]), form("Fourth", [control("Y")])]
    sequential = generate_batch(forms, "FlatTables")
    parallel = generate_batch(forms, "FlatTables", max_workers=4)

    assert [r.form_name for r in parallel.results] == ["TravelRequest", "Expenses", "Third", "Fourth"]
    assert parallel.script_text == sequential.script_text


def test_script_text_structure():
    batch = generate_batch([travel_request()], "FlatTables", database="FormsDb")
    text = batch.script_text

    assert text.startswith("-- ====")
    assert "-- Strategy: FlatTables" in text
    assert "-- Forms: 1 (1 succeeded, 0 failed)" in text
    assert "USE [FormsDb];\nGO\n" in text
    assert f"-- End of script: {batch.total_scripts} scripts, 1 of 1 forms" in text

    statements = [b for b in split_batches(text) if any(
        line.strip() and not line.strip().startswith("--") for line in b.splitlines()
    )]
    assert len(statements) == batch.total_scripts + 1


def test_script_text_is_deterministic():
    first = generate_batch([travel_request(), expenses()], "NormalizedQA", database="FormsDb")
    second = generate_batch([travel_request(), expenses()], "NormalizedQA", database="FormsDb")
    assert first.script_text == second.script_text


def test_empty_form_warns_instead_of_failing():
    result = generate_form(form_model_from_dict({"FormName": "Blank"}), get_renderer("FlatTables"))
    assert result.success
    assert result.warnings == ["form has no data fields"]
    assert result.scripts.table_names == ["Blank"]


def test_empty_batch():
    batch = generate_batch([], "NormalizedQA")
    assert batch.results == []
    assert batch.shared_scripts == []
    assert batch.total_scripts == 0


def test_split_batches():
    text = "CREATE TABLE a (x INT)\nGO\nSELECT 1\n  go  \n\nGO\nSELECT 2"
    assert list(split_batches(text)) == ["CREATE TABLE a (x INT)", "SELECT 1", "", "SELECT 2"]
    assert list(split_batches("")) == []


def test_generator_cli_writes_artifacts(tmp_path):
    source = tmp_path / "TravelRequest.json"
    source.write_text(json.dumps(travel_request_doc()), encoding="utf-8")
    missing = tmp_path / "Missing.json"

    code = form_sql_generator.main(
        [str(source), str(missing), "--strategy", "NormalizedQA", "--output", str(tmp_path / "out")]
    )

    assert code == 1
    run = next((tmp_path / "out").glob("run_*"))
    assert (run / "schema.sql").read_text(encoding="utf-8").count("CREATE TABLE [dbo].[Questions]") == 1
    mappings = json.loads((run / "mappings.json").read_text(encoding="utf-8"))
    assert [m["FormName"] for m in mappings] == ["TravelRequest"]
    with (run / "summary.csv").open(newline="") as fh:
        rows = list(csv.reader(fh))
    assert rows[0] == form_sql_generator.ArtifactWriter.SUMMARY_HEADER
    assert [r[0] for r in rows[1:]] == ["TravelRequest", str(missing)]
    assert [r[2] for r in rows[1:]] == ["True", "False"]


def test_generator_cli_requires_strategy(tmp_path):
    with pytest.raises(SystemExit):
        form_sql_generator.main([str(tmp_path / "x.json")])


def test_forms_sharing_an_identifier_are_flagged():
    batch = generate_batch([form("Travel Request", [control("A")]), form("Travel-Request", [control("B")])], "FlatTables")

    assert batch.results[0].warnings == []
    assert batch.results[1].warnings == [
        "form name maps to 'Travel_Request', already used by form 'Travel Request'; its objects will collide on deploy"
    ]
    assert batch.succeeded == ["Travel Request", "Travel-Request"]
