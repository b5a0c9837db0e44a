import csv

import pytest

from gpo_applier import report, report_html
from gpo_applier.catalog import Context, PolicyCatalog, Setting, unless
from gpo_applier.runner import PolicyRunner

from conftest import RecordingStore


@pytest.fixture
def sample_report(tmp_path):
    catalog = PolicyCatalog.build("sample", [
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\FVE", "UseTPM", 2, unless("isEphemeralTarget")),
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows Defender", "DisableAntiSpyware", 0),
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows Defender", "Bad<Value>", "x"),
    ])
    store = RecordingStore(reject={"Bad<Value>"}, backup_error=True)
    return PolicyRunner(store).run(
        catalog, "CMMC-Test", Context({"isEphemeralTarget": True}),
        target_scope="OU=VDI,DC=corp,DC=local", backup_requested=True, backup_destination=tmp_path,
    )


def test_rows_cover_every_setting(sample_report):
    results = [r for r, _, _ in sample_report.rows()]
    assert results == ["APPLIED", "SKIPPED", "FAILED"]


def test_generate_txt(sample_report, tmp_path):
    path = tmp_path / "r.txt"
    report.generate_txt(path, sample_report)
    text = path.read_text(encoding="utf-8")
    assert "CMMC-Test" in text
    assert "[SKIPPED] HKLM\\SOFTWARE\\Policies\\Microsoft\\FVE\\UseTPM" in text
    assert "[FAILED]" in text and "Bad<Value> refused" in text
    assert "backup failed" in text


def test_generate_csv(sample_report, tmp_path):
    path = tmp_path / "r.csv"
    report.generate_csv(path, sample_report)
    with open(path, encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["result"] for r in rows] == ["APPLIED", "SKIPPED", "FAILED"]
    assert rows[1]["applies_when"] == "isEphemeralTarget is false"
    assert rows[0]["value"] == "0"


def test_generate_html_escapes_content(sample_report, tmp_path):
    path = tmp_path / "r.html"
    report_html.generate_html(path, sample_report)
    html = path.read_text(encoding="utf-8")
    assert "CMMC-Test" in html
    assert "Bad&lt;Value&gt;" in html
    assert "Bad<Value>" not in html.split("<script>")[0].split("<body>")[1]
    assert "createChart('appliedChart'" in html


def test_generate_pdf(sample_report, tmp_path):
    path = tmp_path / "r.pdf"
    report.generate_pdf(str(path), sample_report)
    assert path.read_bytes().startswith(b"%PDF")


def test_generate_html_keeps_chart_labels_inside_script(tmp_path):
    catalog = PolicyCatalog.build("evil", [
        Setting("HKLM\\SOFTWARE\\</script><script>alert(1)", "X", 1),
    ])
    result = PolicyRunner(RecordingStore()).run(catalog, "CMMC-Test")
    path = tmp_path / "r.html"
    report_html.generate_html(path, result)
    html = path.read_text(encoding="utf-8")
    assert "</script><script>alert(1)" not in html
    assert "<\\/script><script>alert(1)" in html
