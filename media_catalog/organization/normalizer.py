import logging
from pathlib import Path
from typing import Dict, Optional, Set, Tuple, Union

from tqdm import tqdm

from ..cancellation import is_cancelled
from ..catalog.catalog import Catalog, normalize_path
from ..exceptions import (
    DuplicatePath,
    FileHashError,
    FileOperationError,
    RecordNotFound,
    TemplateError,
)
from ..models import BatchReport, MediaRecord
from .mover import FileMover
from .rules import PathTemplate, resolve_collision


class Normalizer:
    """
    Moves catalogued files to where a naming template says they belong.

    The file moves first; the catalog only learns the new path once the
    move has succeeded, so no record ever points at a file that is not there.
    """

    def __init__(self, catalog: Catalog, mover: Optional[FileMover] = None, show_progress: bool = False):
        self.catalog = catalog
        self.mover = mover or FileMover()
        self.show_progress = show_progress

    def normalize_directory_structure(self,
                                      template: Union[str, PathTemplate],
                                      root: Path,
                                      cancel=None) -> BatchReport:
        """
        One call reaches a fixed point: records that only got a suffixed
        name because another record was still in the way are revisited
        until none of them can move closer to their target.
        """
        if not isinstance(template, PathTemplate):
            template = PathTemplate(template)
        root = normalize_path(root)

        logging.info(f"Normalizing {root} with {template.template!r}")
        report = BatchReport("normalize_directory_structure")
        outcomes: Dict[str, str] = {}
        suffixed: Set[str] = set()

        # all() is a snapshot: our own update_path calls do not disturb the loop
        records = self.catalog.all()
        for record in tqdm(records, total=len(self.catalog), desc="Normalizing",
                           disable=not self.show_progress):
            if is_cancelled(cancel):
                report.cancelled = True
                break
            outcome, is_suffixed = self._normalize_record(record, template, root, report)
            outcomes[record.hash] = outcome
            if is_suffixed:
                suffixed.add(record.hash)

        # Moves later in the pass may have freed targets that earlier records wanted
        given_up: Set[str] = set()
        pending = [h for h in outcomes if h in suffixed]
        while pending and not report.cancelled:
            progressed = False
            for hash_value in pending:
                if is_cancelled(cancel):
                    report.cancelled = True
                    break
                current = self.catalog.lookup_by_hash(hash_value)
                if current is None:
                    suffixed.discard(hash_value)
                    continue
                outcome, is_suffixed = self._normalize_record(current, template, root, report)
                if outcome == "moved":
                    outcomes[hash_value] = outcome
                    progressed = True
                elif outcome == "failed":
                    # An earlier move still counts; no further retries
                    if outcomes[hash_value] != "moved":
                        outcomes[hash_value] = outcome
                    given_up.add(hash_value)
                if not is_suffixed and outcome != "failed":
                    suffixed.discard(hash_value)
            if not progressed:
                break
            pending = [h for h in pending if h in suffixed and h not in given_up]

        report.counts.update(outcomes.values())
        renamed = sum(1 for h in suffixed if outcomes[h] == "moved")
        if renamed:
            report.counts["renamed_collision"] = renamed
        logging.info(report.summary())
        return report

    def _normalize_record(self, record: MediaRecord, template: PathTemplate, root: Path,
                          report: BatchReport) -> Tuple[str, bool]:
        """
        Places one record. Returns its outcome and whether it sits under a
        collision suffix afterwards. Only diagnostics are written to `report`.
        """
        try:
            target = template.render(record, root)
        except TemplateError as e:
            logging.debug(f"Cannot place {record.filepath}: {e}")
            report.add_diagnostic(record.filepath, error=e)
            return "missing_field", False

        with self.catalog.write_lock:
            current = self.catalog.lookup_by_hash(record.hash)
            if current is None:
                report.add_diagnostic(record.filepath, error=RecordNotFound(record.hash))
                return "failed", False
            if target == current.filepath:
                return "unchanged", False

            final = resolve_collision(target, self._is_taken, current.filepath)
            if final == current.filepath:
                return "unchanged", True
            if final != target:
                logging.info(f"{target} is taken; using {final.name}")

            try:
                method = self.mover.move(current.filepath, final, current.hash)
            except (FileOperationError, FileHashError) as e:
                logging.error(f"Failed to move {current.filepath} -> {final}: {e}")
                report.add_diagnostic(current.filepath, error=e)
                return "failed", False

            try:
                self.catalog.update_path(current.hash, final)
            except (DuplicatePath, RecordNotFound) as e:
                self._move_back(final, current, report)
                report.add_diagnostic(current.filepath, error=e)
                return "failed", False

        logging.debug(f"Moved ({method}) {current.filepath} -> {final}")
        return "moved", final != target

    def _is_taken(self, path: Path) -> bool:
        return self.catalog.lookup_by_path(path) is not None or path.exists()

    def _move_back(self, moved_to: Path, record: MediaRecord, report: BatchReport):
        try:
            self.mover.move(moved_to, record.filepath, record.hash)
        except (FileOperationError, FileHashError) as e:
            logging.error(f"Could not restore {record.filepath} from {moved_to}: {e}")
            report.add_diagnostic(moved_to, error=e)
