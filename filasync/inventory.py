"""Single-record edits to the filament inventory.

Every successful mutation calls `on_modified` so the sync engine can tell that
the local store has changes the relay hasn't seen.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from .document_store import DocumentConflict
from .errors import InvalidInput
from .local_store import LocalStoreAdapter
from .models import Filament, UsageLog, UsageStatus, is_valid_color, is_valid_id

logger = logging.getLogger(__name__)


class InventoryService:
    """Save, duplicate, delete and usage-log operations on filament records."""

    def __init__(self, local: LocalStoreAdapter, on_modified: Callable[[], None] | None = None) -> None:
        self._local = local
        self._on_modified = on_modified

    def _modified(self) -> None:
        if self._on_modified is not None:
            self._on_modified()

    def list_filaments(self) -> list[Filament]:
        return [Filament.from_doc(doc) for doc in self._local.all_records()]

    def get_filament(self, filament_id: str) -> Filament | None:
        doc = self._local.get(filament_id)
        return Filament.from_doc(doc) if doc else None

    def save_filament(self, filament: Filament) -> Filament:
        """Create or update a record. A missing id gets a fresh UUID."""
        if filament.id and not is_valid_id(filament.id):
            raise InvalidInput("Invalid ID Format. Must be UUID or 8-char alphanumeric.")
        if not is_valid_color(filament.color):
            raise InvalidInput("Invalid Color Format. Use Hex (e.g., #FF0000).")
        if not filament.filament or not filament.material:
            raise InvalidInput("Filament name and material are required.")
        if filament.used_weight < 0 or filament.total_weight < 0:
            raise InvalidInput("Weights must not be negative.")

        if not filament.id:
            filament.id = str(uuid.uuid4())
            filament.rev = None
        elif filament.rev is None:
            existing = self._local.get(filament.id)
            if existing is not None:
                raise InvalidInput(f'ID "{filament.id}" already exists.')

        try:
            filament.rev = self._local.put(filament.to_doc())
        except DocumentConflict as e:
            raise InvalidInput(f'ID "{filament.id}" already exists.') from e
        logger.info("Saved filament %s (%s %s)", filament.id, filament.material, filament.filament)
        self._modified()
        return filament

    def duplicate_filament(self, filament_id: str, count: int = 1) -> list[Filament]:
        """Copy a record `count` times with identity stripped."""
        source = self._require(filament_id)
        copies = []
        for _ in range(count):
            doc = source.to_doc()
            doc.pop("_id", None)
            doc.pop("_rev", None)
            copies.append(self.save_filament(Filament.from_doc(doc)))
        return copies

    def delete_filament(self, filament_id: str) -> bool:
        """Delete a record. Returns False when it was already gone."""
        deleted = self._local.delete(filament_id)
        if deleted:
            logger.info("Deleted filament %s", filament_id)
            self._modified()
        return deleted

    # ── Usage history ────────────────────────────────────────────────

    def add_usage(
        self,
        filament_id: str,
        weight_delta: float,
        print_name: str = "",
        status: UsageStatus = UsageStatus.SUCCESS,
        notes: str = "",
    ) -> UsageLog:
        """Log a print against a spool and add its weight to `used_weight`."""
        if weight_delta < 0:
            raise InvalidInput("Usage weight must not be negative.")
        filament = self._require(filament_id)
        log = UsageLog(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            weight_delta=weight_delta,
            print_name=print_name,
            status=status,
            notes=notes,
        )
        filament.usage_history.append(log)
        filament.used_weight += weight_delta
        self.save_filament(filament)
        return log

    def edit_usage(self, filament_id: str, log_id: str, **changes) -> UsageLog:
        """Change a log entry; a new weight_delta corrects `used_weight` by the difference."""
        filament = self._require(filament_id)
        log = self._find_log(filament, log_id)
        if "weight_delta" in changes:
            new_delta = float(changes.pop("weight_delta"))
            if new_delta < 0:
                raise InvalidInput("Usage weight must not be negative.")
            filament.used_weight = max(0.0, filament.used_weight + new_delta - log.weight_delta)
            log.weight_delta = new_delta
        for name, value in changes.items():
            if name not in ("print_name", "status", "notes"):
                raise InvalidInput(f"Unknown usage field: {name}")
            if name == "status":
                try:
                    value = UsageStatus(value)
                except ValueError as e:
                    raise InvalidInput(f"Unknown usage status: {value}") from e
            setattr(log, name, value)
        self.save_filament(filament)
        return log

    def delete_usage(self, filament_id: str, log_id: str) -> None:
        """Remove a log entry and take its weight back off `used_weight`."""
        filament = self._require(filament_id)
        log = self._find_log(filament, log_id)
        filament.usage_history.remove(log)
        filament.used_weight = max(0.0, filament.used_weight - log.weight_delta)
        self.save_filament(filament)

    def _require(self, filament_id: str) -> Filament:
        filament = self.get_filament(filament_id)
        if filament is None:
            raise InvalidInput(f"Filament {filament_id} not found.")
        return filament

    @staticmethod
    def _find_log(filament: Filament, log_id: str) -> UsageLog:
        for log in filament.usage_history:
            if log.id == log_id:
                return log
        raise InvalidInput(f"Usage entry {log_id} not found.")
