import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from . import config
from .core import ProjectManager
from .exceptions import AnalysisCancelled, PhotoCatalogError
from .models import ComparisonMode
from .reporting import ReportGenerator, describe_issue, format_file_size, type_display_name


def setup_logging(project_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the project directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Create the project dir if it doesn't exist so we can log there
    project_dir.mkdir(parents=True, exist_ok=True)
    log_file = project_dir / config.LOG_FILENAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


class TqdmProgress:
    """Adapts (current, total, label) progress events to a tqdm bar."""

    def __init__(self, desc: str):
        self.bar = tqdm(total=0, desc=desc, unit="")

    def __call__(self, current: int, total: int, label: str):
        if self.bar.total != total:
            self.bar.total = total
        self.bar.n = current
        if label:
            self.bar.set_postfix_str(Path(label).name, refresh=False)
        self.bar.refresh()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.bar.close()


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Photo Catalog: synchronize a catalog and find duplicate folders")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("create", help="Create a new project")
    c.add_argument("project", type=Path, help="Project directory")
    c.add_argument("--name", default=None, help="Project name (default: directory name)")

    a = sub.add_parser("add-folder", help="Register a root folder")
    a.add_argument("project", type=Path)
    a.add_argument("folder", type=Path)

    r = sub.add_parser("remove-folder", help="Unregister a root folder; its images become missing")
    r.add_argument("project", type=Path)
    r.add_argument("folder", type=Path)

    s = sub.add_parser("sync", help="Synchronize the catalog with disk")
    s.add_argument("project", type=Path)
    s.add_argument("--report-csv", type=Path, default=None, help="Write the changes to a CSV file")

    d = sub.add_parser("duplicates", help="Find duplicate folders")
    d.add_argument("project", type=Path)
    d.add_argument("--deep", action="store_true", help="Also compare partial content hashes")
    d.add_argument("--report-csv", type=Path, default=None, help="Write the issues to a CSV file")

    st = sub.add_parser("status", help="Show catalog statistics")
    st.add_argument("project", type=Path)
    st.add_argument("--report-csv", type=Path, default=None, help="Export every record to a CSV file")

    m = sub.add_parser("remove-missing", help="Drop all missing records from the catalog")
    m.add_argument("project", type=Path)

    return p.parse_args(argv)


def run(args, manager: ProjectManager):
    project_dir = args.project.resolve()

    if args.command == "create":
        manager.create_project(project_dir, args.name or project_dir.name)
        return

    manager.open_project(project_dir)

    if args.command == "add-folder":
        if not manager.add_folder(str(args.folder)):
            logging.info(f"Folder already registered: {args.folder}")

    elif args.command == "remove-folder":
        if not manager.remove_folder(str(args.folder)):
            logging.warning(f"Folder was not registered: {args.folder}")

    elif args.command == "sync":
        with TqdmProgress("Scanning folders") as progress:
            result = manager.synchronize(progress=progress)
        if result.is_empty:
            logging.info("Catalog is up to date.")
        else:
            logging.info(f"{result.total_changes} changes applied.")
        for old, new in result.moved_files:
            logging.info(f"Moved: {old} -> {new}")
        for path in result.missing_files:
            logging.info(f"Missing: {path}")
        if args.report_csv:
            ReportGenerator(manager.db).write_sync_report(result, args.report_csv)

    elif args.command == "duplicates":
        mode = ComparisonMode.DEEP if args.deep else ComparisonMode.QUICK
        with TqdmProgress(f"Analyzing ({mode.value})") as progress:
            issues = manager.analyze_duplicates(mode, progress=progress)
        for issue in issues:
            logging.info(
                f"[{issue.severity.value}] {type_display_name(issue.type)}: "
                f"{issue.primary_folder} <-> {issue.duplicate_folder}. {describe_issue(issue)}"
            )
        wasted = sum(i.wasted_space for i in issues)
        logging.info(f"{len(issues)} duplicate issues, {format_file_size(wasted)} reclaimable.")
        if args.report_csv:
            ReportGenerator(manager.db).write_duplicate_report(issues, args.report_csv)

    elif args.command == "status":
        logging.info(f"Project: {manager.project_name}")
        for folder in manager.db.fetch_folder_records():
            logging.info(f"Folder:  {folder.folder_path} (added {folder.date_added})")
        logging.info(f"Images:  {manager.get_total_image_count()} "
                     f"({manager.get_missing_file_count()} missing)")
        if args.report_csv:
            ReportGenerator(manager.db).write_catalog_report(args.report_csv)

    elif args.command == "remove-missing":
        manager.remove_missing()


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.project.resolve(), args.verbose)

    manager = ProjectManager()
    try:
        run(args, manager)
    except AnalysisCancelled:
        logging.warning("Analysis cancelled.")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except PhotoCatalogError as e:
        logging.error(str(e))
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error.")
        sys.exit(1)
    finally:
        manager.close_project()


if __name__ == "__main__":
    main()
