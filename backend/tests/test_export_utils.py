import csv
import io
import json

from utils.export_utils import CSV_HEADERS, report_to_csv, report_to_json


def test_csv_has_one_row_per_issue(sample_report):
    sample_report.issues[1].fixed = True
    rows = list(csv.reader(io.StringIO(report_to_csv(sample_report))))
    assert rows[0] == CSV_HEADERS
    assert rows[1] == ["01:05", "spelling", "minor", "Spelling of 'velocity'", "Looks careless", "Open"]
    assert rows[2] == ["21:40", "factual", "critical", "Wrong sign in formula", "", "Fixed"]
    assert len(rows) == 3


def test_csv_fields_are_quoted(sample_report):
    sample_report.issues[0].description = 'Says "2, 3" instead of "3, 2"'
    text = report_to_csv(sample_report)
    assert text.splitlines()[0] == '"Timestamp","Type","Severity","Description","Impact","Status"'
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[1][3] == 'Says "2, 3" instead of "3, 2"'


def test_json_uses_wire_names(sample_report):
    data = json.loads(report_to_json(sample_report))
    assert data["videoTitle"] == "Kinematics One Shot"
    assert data["durationSeconds"] == 1500
    assert data["issues"][0]["type"] == "spelling"
    assert data["marketing"]["hookFeedback"] == "Strong opener"
    assert data["platformFit"] is None
