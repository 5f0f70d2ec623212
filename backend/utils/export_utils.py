# backend/utils/export_utils.py
import csv
import io
import logging

from utils.report_schema import AnalysisReport

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Timestamp", "Type", "Severity", "Description", "Impact", "Status"]


def report_to_json(report: AnalysisReport) -> str:
    return report.model_dump_json(by_alias=True, indent=2)


def report_to_csv(report: AnalysisReport) -> str:
    """One row per issue, in report order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for issue in report.issues:
        writer.writerow([
            issue.timestamp,
            issue.category.value,
            issue.severity.value,
            issue.description,
            issue.impact or "",
            "Fixed" if issue.fixed else "Open",
        ])
    logger.info(f"Exported {len(report.issues)} issue(s) of '{report.title}' to CSV.")
    return buffer.getvalue()
