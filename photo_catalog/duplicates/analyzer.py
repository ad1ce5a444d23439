import os
import logging
from typing import Dict, List, Optional, Tuple

from .. import config
from ..exceptions import AnalysisCancelled, InsufficientFoldersError
from ..models import ComparisonMode, DuplicateIssue, DuplicateType, FileInfo, FolderContent
from ..progress import CancelToken, ProgressCallback, ProgressReporter, YieldHook
from .cache import FolderContentCache


def are_files_identical(a: FileInfo, b: FileInfo, mode: ComparisonMode) -> bool:
    """
    Size and dimensions must match. In Deep mode the partial hashes must
    match too, unless one side could not be read.
    """
    if (a.file_size, a.image_width, a.image_height) != (b.file_size, b.image_width, b.image_height):
        return False
    if mode == ComparisonMode.DEEP and a.partial_hash and b.partial_hash:
        return a.partial_hash == b.partial_hash
    return True


def _infos(content: FolderContent) -> List[FileInfo]:
    return [content.file_info[f] for f in content.all_files if f in content.file_info]


def paired_signatures(c1: FolderContent, c2: FolderContent,
                      mode: ComparisonMode) -> Tuple[List[str], List[str]]:
    """
    File signatures of both folders, built so they stay comparable.

    In Deep mode a size+dimensions key drops its hash component on both
    sides as soon as any file with that key has no partial hash, so an
    unreadable file falls back to size+dimensions matching.
    """
    infos1, infos2 = _infos(c1), _infos(c2)
    if mode != ComparisonMode.DEEP:
        return ([i.signature(mode) for i in infos1], [i.signature(mode) for i in infos2])

    unhashed = {i.signature(ComparisonMode.QUICK) for i in infos1 + infos2 if not i.partial_hash}

    def sig(info: FileInfo) -> str:
        base = info.signature(ComparisonMode.QUICK)
        return base if base in unhashed else info.signature(mode)

    return [sig(i) for i in infos1], [sig(i) for i in infos2]


def is_exact_complete_duplicate(c1: FolderContent, c2: FolderContent, mode: ComparisonMode) -> bool:
    """Same relative file paths, same relative subfolders, every file pair identical."""
    if len(c1.all_files) != len(c2.all_files) or len(c1.all_subfolders) != len(c2.all_subfolders):
        return False
    if sorted(c1.all_files) != sorted(c2.all_files):
        return False
    if sorted(c1.all_subfolders) != sorted(c2.all_subfolders):
        return False

    for rel in c1.all_files:
        info1 = c1.file_info.get(rel)
        info2 = c2.file_info.get(rel)
        if info1 is None or info2 is None or not are_files_identical(info1, info2, mode):
            return False
    return True


def is_exact_files_only_duplicate(c1: FolderContent, c2: FolderContent, mode: ComparisonMode) -> bool:
    """Same multiset of file signatures, paths and structure ignored."""
    if len(c1.all_files) != len(c2.all_files):
        return False
    sigs1, sigs2 = paired_signatures(c1, c2, mode)
    sigs1, sigs2 = sorted(sigs1), sorted(sigs2)
    return bool(sigs1) and sigs1 == sigs2


def calculate_file_similarity(c1: FolderContent, c2: FolderContent, mode: ComparisonMode) -> float:
    """Jaccard coefficient over the sets of unique file signatures."""
    list1, list2 = paired_signatures(c1, c2, mode)
    sigs1, sigs2 = set(list1), set(list2)
    union = sigs1 | sigs2
    if not union:
        return 0.0
    return len(sigs1 & sigs2) / len(union)


def compare_folders(folder1: str, folder2: str,
                    c1: FolderContent, c2: FolderContent,
                    mode: ComparisonMode) -> Optional[DuplicateIssue]:
    """
    Classifies one folder pair. The most specific category wins:
    ExactComplete, then ExactFilesOnly, then PartialDuplicate.
    """
    if c1.is_empty and c2.is_empty:
        return None

    dup_type = None
    if is_exact_complete_duplicate(c1, c2, mode):
        dup_type = DuplicateType.EXACT_COMPLETE
    elif is_exact_files_only_duplicate(c1, c2, mode):
        dup_type = DuplicateType.EXACT_FILES_ONLY

    if dup_type:
        return DuplicateIssue(
            type=dup_type,
            primary_folder=folder1,
            duplicate_folder=folder2,
            similarity=1.0,
            total_files=len(c1.all_files),
            duplicate_files=len(c1.all_files),
            wasted_space=min(c1.total_size, c2.total_size),
        )

    similarity = calculate_file_similarity(c1, c2, mode)
    if similarity >= config.PARTIAL_DUPLICATE_THRESHOLD:
        max_files = max(len(c1.all_files), len(c2.all_files))
        return DuplicateIssue(
            type=DuplicateType.PARTIAL_DUPLICATE,
            primary_folder=folder1,
            duplicate_folder=folder2,
            similarity=similarity,
            total_files=max_files,
            duplicate_files=round(similarity * max_files),
            wasted_space=round(similarity * min(c1.total_size, c2.total_size)),
        )
    return None


def is_nested(folder1: str, folder2: str) -> bool:
    """True when one folder contains the other."""
    p1 = folder1.rstrip(os.sep) + os.sep
    p2 = folder2.rstrip(os.sep) + os.sep
    return p1.startswith(p2) or p2.startswith(p1)


def rank_issues(issues: List[DuplicateIssue]) -> List[DuplicateIssue]:
    """High before Medium before Low; within a severity, most wasted space first."""
    return sorted(issues, key=lambda i: (i.severity.rank, -i.wasted_space))


class DuplicateAnalyzer:
    """
    Finds folders holding the same images.

    A run has three progress phases on a 0-100 scale:
      0-10    count files whose cache entry must be (re)computed
      10-70   fingerprint those files
      70-100  compare every unordered folder pair

    Cancellation is polled at every checkpoint. A cancelled run raises
    AnalysisCancelled, discards partial results and leaves the analyzer idle.
    Folder content already fingerprinted stays in the cache.
    """

    def __init__(self, cache: Optional[FolderContentCache] = None):
        self.cache = cache or FolderContentCache()
        self.token = CancelToken()
        self._results: List[DuplicateIssue] = []
        self._last_roots: List[str] = []
        self._running = False

    @property
    def results(self) -> List[DuplicateIssue]:
        return list(self._results)

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self):
        if self._running:
            logging.info("Cancellation requested for duplicate analysis.")
            self.token.cancel()

    def clear_results(self):
        self._results = []

    def refresh(self, mode: ComparisonMode,
                progress: Optional[ProgressCallback] = None,
                yield_hook: Optional[YieldHook] = None) -> List[DuplicateIssue]:
        """Drops every cached folder and reruns on the last analyzed roots."""
        self.cache.clear()
        return self.analyze(self._last_roots, mode, progress, yield_hook)

    def analyze(self, root_folders: List[str], mode: ComparisonMode,
                progress: Optional[ProgressCallback] = None,
                yield_hook: Optional[YieldHook] = None) -> List[DuplicateIssue]:
        """
        Raises:
            InsufficientFoldersError: fewer than two folders after expansion.
            AnalysisCancelled: cancel() was observed at a checkpoint.
        """
        self._last_roots = list(root_folders)
        folders = self.cache.scanner.expand_folders(root_folders)
        if len(folders) < 2:
            raise InsufficientFoldersError(
                f"Need at least two folders to compare, found {len(folders)}."
            )

        self.token.reset()
        self.cache.reset_file_memo()
        self._results = []
        self._running = True
        reporter = ProgressReporter(progress, yield_hook, self.token)
        logging.info(f"Analyzing {len(folders)} folders ({mode.value} mode)...")

        try:
            contents = self._fingerprint(folders, mode, reporter)
            issues = self._compare_all(folders, contents, mode, reporter)
        except AnalysisCancelled:
            logging.info("Duplicate analysis cancelled; partial results discarded.")
            self._results = []
            self.token.reset()
            raise
        finally:
            self._running = False

        self._results = rank_issues(issues)
        reporter.report(config.PROGRESS_TOTAL, config.PROGRESS_TOTAL, "Done")
        logging.info(f"Duplicate analysis found {len(self._results)} issues.")
        return self.results

    def _fingerprint(self, folders: List[str], mode: ComparisonMode,
                     reporter: ProgressReporter) -> Dict[str, FolderContent]:
        # Phase 1: count
        to_process = 0
        for i, folder in enumerate(folders):
            reporter.checkpoint()
            if self.cache.needs_compute(folder, mode):
                to_process += self.cache.count_images(folder)
            reporter.report(config.PROGRESS_COUNT_END * (i + 1) // len(folders),
                            config.PROGRESS_TOTAL, folder)
        logging.debug(f"{to_process} files need fingerprinting.")

        # Phase 2: fingerprint
        band = config.PROGRESS_FINGERPRINT_END - config.PROGRESS_COUNT_END
        done = 0

        def on_file(path: str):
            nonlocal done
            done += 1
            reporter.report(config.PROGRESS_COUNT_END + band * min(done, to_process) // max(to_process, 1),
                            config.PROGRESS_TOTAL, path)
            reporter.checkpoint()

        contents: Dict[str, FolderContent] = {}
        for folder in folders:
            contents[folder] = self.cache.get_or_compute(folder, mode, on_file)
            reporter.checkpoint()
        reporter.report(config.PROGRESS_FINGERPRINT_END, config.PROGRESS_TOTAL, "")
        return contents

    def _compare_all(self, folders: List[str], contents: Dict[str, FolderContent],
                     mode: ComparisonMode, reporter: ProgressReporter) -> List[DuplicateIssue]:
        # Phase 3: pairwise
        band = config.PROGRESS_TOTAL - config.PROGRESS_FINGERPRINT_END
        total_pairs = len(folders) * (len(folders) - 1) // 2
        issues: List[DuplicateIssue] = []
        compared = 0

        for i in range(len(folders)):
            for j in range(i + 1, len(folders)):
                f1, f2 = folders[i], folders[j]
                # Ancestor and descendant share the same physical files
                if not is_nested(f1, f2):
                    issue = compare_folders(f1, f2, contents[f1], contents[f2], mode)
                    if issue:
                        logging.debug(f"{issue.type.value}: {f1} <-> {f2} ({issue.similarity:.0%})")
                        issues.append(issue)

                compared += 1
                reporter.report(config.PROGRESS_FINGERPRINT_END + band * compared // total_pairs,
                                config.PROGRESS_TOTAL, f1)
                reporter.checkpoint()
        return issues
