"""
Local Fallback Store - On-device persistence for undelivered violations

One JSON file per attempt (``violations_{attempt_id}.json``) holding an
append-only array of violation records. The engine only ever writes here;
reading back is a manual recovery step.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from ..violations.types import Violation

logger = logging.getLogger(__name__)


class LocalFallbackStore:
    """
    Append-only, per-attempt JSON store.

    Write failures are logged and swallowed: losing the fallback copy must
    never interrupt the assessment.
    """

    KEY_PREFIX = "violations_"

    def __init__(self, storage_dir: Union[str, Path]):
        self.storage_dir = Path(storage_dir)

    @classmethod
    def key_for(cls, attempt_id: str) -> str:
        return f"{cls.KEY_PREFIX}{attempt_id}"

    def path_for(self, attempt_id: str) -> Path:
        return self.storage_dir / f"{self.key_for(attempt_id)}.json"

    def append(self, attempt_id: str, violation: Violation) -> bool:
        """Append a single violation record"""
        return self.extend(attempt_id, [violation])

    def extend(self, attempt_id: str, violations: Iterable[Violation]) -> bool:
        """
        Append several violation records in one write.

        Returns:
            True if the records were persisted, False on any I/O error
        """
        records = [v.to_record() for v in violations]
        if not records:
            return True

        path = self.path_for(attempt_id)
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            existing = self._read_or_set_aside(path)
            existing.extend(records)

            # Write-then-rename so a crash mid-write keeps the previous array
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(existing, default=str), encoding="utf-8")
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to store violations locally for {attempt_id}: {e}")
            return False

        logger.info(f"Stored {len(records)} violation(s) locally under {self.key_for(attempt_id)}")
        return True

    def load(self, attempt_id: str) -> List[Dict[str, Any]]:
        """Read back every stored record for an attempt (manual recovery)"""
        try:
            return self._read(self.path_for(attempt_id))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read local violations for {attempt_id}: {e}")
            return []

    def _read_or_set_aside(self, path: Path) -> List[Dict[str, Any]]:
        """Unreadable files are renamed to ``*.corrupt`` and a fresh array is started"""
        try:
            return self._read(path)
        except ValueError as e:
            corrupt_path = path.with_name(f"{path.name}.corrupt")
            path.replace(corrupt_path)
            logger.error(f"Moved unreadable {path.name} aside to {corrupt_path.name}: {e}")
            return []

    @staticmethod
    def _read(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8") or "[]")
        if not isinstance(data, list):
            raise ValueError(f"{path.name} does not contain a JSON array")
        return data
