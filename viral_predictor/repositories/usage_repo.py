import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Tuple, Union

from viral_predictor.exceptions import PersistenceError
from viral_predictor.models import LedgerTotals, UsageRecord

logger = logging.getLogger(__name__)


class UsageLedgerRepository:
    """Reads and writes the whole usage ledger as one JSON document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Tuple[LedgerTotals, List[UsageRecord]]:
        if not self.path.exists():
            logger.info(f"No usage ledger at {self.path}, starting empty")
            return LedgerTotals(), []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            logger.warning(f"Could not read usage ledger from {self.path}, starting empty: {e}")
            return LedgerTotals(), []
        except ValueError as e:
            self._set_aside_corrupt(e)
            return LedgerTotals(), []

        try:
            totals = LedgerTotals.from_dict(data.get("totals") or {})
            records = [UsageRecord.from_dict(row) for row in data.get("records") or []]
        except (ValueError, TypeError, AttributeError) as e:
            self._set_aside_corrupt(e)
            return LedgerTotals(), []

        return totals, records

    def _set_aside_corrupt(self, error: Exception) -> None:
        # The next save overwrites the ledger file, so keep the unreadable one
        corrupt_path = self.path.with_name(self.path.name + ".corrupt")
        logger.warning(f"Usage ledger at {self.path} is corrupt, starting empty: {error}")
        try:
            os.replace(self.path, corrupt_path)
            logger.warning(f"Moved corrupt usage ledger to {corrupt_path}")
        except OSError as e:
            logger.error(f"Could not move corrupt usage ledger aside: {e}")

    def save(self, totals: LedgerTotals, records: List[UsageRecord]) -> None:
        payload = {
            "totals": totals.to_dict(),
            "records": [record.to_dict() for record in records],
        }
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error(f"Error saving usage ledger to {self.path}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write usage ledger: {e}") from e
