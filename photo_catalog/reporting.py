import csv
import logging
from pathlib import Path
from typing import List

from .database.ops import DBOperations
from .models import DuplicateIssue, DuplicateType, SyncResult

_TYPE_NAMES = {
    DuplicateType.EXACT_COMPLETE: "Exact Duplicate",
    DuplicateType.EXACT_FILES_ONLY: "Same Files, Different Structure",
    DuplicateType.PARTIAL_DUPLICATE: "Partial Duplicate",
}

_TYPE_DESCRIPTIONS = {
    DuplicateType.EXACT_COMPLETE: "Identical files and folder structure.",
    DuplicateType.EXACT_FILES_ONLY: "The same images organized into different subfolders.",
    DuplicateType.PARTIAL_DUPLICATE: "Most images are shared between the two folders.",
}


def format_file_size(size: int) -> str:
    """1536 -> '1.5 KB'. Binary units."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{int(value)} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def type_display_name(dup_type: DuplicateType) -> str:
    return _TYPE_NAMES[dup_type]


def type_description(dup_type: DuplicateType) -> str:
    return _TYPE_DESCRIPTIONS[dup_type]


def describe_issue(issue: DuplicateIssue) -> str:
    wasted = format_file_size(issue.wasted_space)
    if issue.type == DuplicateType.EXACT_COMPLETE:
        return f"Folders are identical: {issue.total_files} files, {wasted} can be reclaimed."
    if issue.type == DuplicateType.EXACT_FILES_ONLY:
        return (f"Same {issue.total_files} files in a different folder structure; "
                f"{wasted} can be reclaimed.")
    return (f"{issue.similarity:.0%} similar: about {issue.duplicate_files} of "
            f"{issue.total_files} files shared, roughly {wasted} wasted.")


class ReportGenerator:
    """CSV exports of catalog state, sync runs and duplicate analysis results."""

    def __init__(self, db_ops: DBOperations):
        self.db = db_ops

    def write_catalog_report(self, output_csv: Path) -> int:
        records = self.db.fetch_all_records()
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["File Path", "Status", "Size", "Width", "Height", "Hash", "Imported"])
            for rec in records:
                writer.writerow([
                    rec.file_path, rec.status.value, rec.file_size,
                    rec.width or "", rec.height or "", rec.file_hash, rec.date_imported,
                ])
        logging.info(f"Catalog report written: {output_csv} ({len(records)} records)")
        return len(records)

    def write_sync_report(self, result: SyncResult, output_csv: Path) -> int:
        """One row per change. Moves carry the old path in the second column."""
        rows = []
        rows += [("new", p, "") for p in result.new_files]
        rows += [("missing", p, "") for p in result.missing_files]
        rows += [("modified", p, "") for p in result.modified_files]
        rows += [("moved", new, old) for old, new in result.moved_files]
        rows += [("restored", p, "") for p in result.restored_files]

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["Change", "File Path", "Previous Path"])
            writer.writerows(rows)
        logging.info(f"Sync report written: {output_csv} ({len(rows)} changes)")
        return len(rows)

    def write_duplicate_report(self, issues: List[DuplicateIssue], output_csv: Path) -> int:
        with open(output_csv, "w", newline="", encoding="utf-8", errors="surrogateescape") as f:
            writer = csv.writer(f)
            writer.writerow([
                "Severity", "Type", "Primary Folder", "Duplicate Folder",
                "Similarity", "Total Files", "Duplicate Files", "Wasted Bytes", "Description", "Type Description",
            ])
            for issue in issues:
                writer.writerow([
                    issue.severity.value,
                    type_display_name(issue.type),
                    issue.primary_folder,
                    issue.duplicate_folder,
                    f"{issue.similarity:.2f}",
                    issue.total_files,
                    issue.duplicate_files,
                    issue.wasted_space,
                    describe_issue(issue),
                    type_description(issue.type),
                ])
        logging.info(f"Duplicate report written: {output_csv} ({len(issues)} issues)")
        return len(issues)
