"""
Plant store - the user's garden, persisted as one JSON record.

All writes go through ``_save``; a failed write is logged and remembered in
``last_error`` while the in-memory list stays authoritative for the session.
``apply_recalculation`` is the only path other than a user edit that changes
a plant's watering frequency.
"""

from __future__ import annotations
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..utils.errors import PlantNotFound, StorageError
from .schedule import utcnow
from .schemas import JournalEntry, Plant
from .storage import PLANTS_KEY, JsonStore, load_or_default, save_logged

logger = logging.getLogger(__name__)


class PlantStore:
    def __init__(self, store: JsonStore, now_fn: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.now_fn = now_fn or utcnow
        self.last_error: Optional[StorageError] = None
        self._lock = threading.Lock()
        self._plants: List[Plant] = self._load()

    def _load(self) -> List[Plant]:
        plants = []
        for raw in load_or_default(self.store, PLANTS_KEY, list) or []:
            try:
                plants.append(Plant.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"[Plants] Skipping unreadable plant record: {e.error_count()} error(s)")
        logger.debug(f"[Plants] Loaded {len(plants)} plant(s)")
        return plants

    def _save(self) -> None:
        self.last_error = save_logged(self.store, PLANTS_KEY, [p.to_json_dict() for p in self._plants])

    def _index(self, plant_id: str) -> int:
        for i, p in enumerate(self._plants):
            if p.id == plant_id:
                return i
        raise PlantNotFound(f"Plant {plant_id} not found")

    # ------------------------------------------------------------------ reads

    def list(self) -> List[Plant]:
        with self._lock:
            return list(self._plants)

    def count(self) -> int:
        return len(self._plants)

    def get(self, plant_id: str) -> Plant:
        with self._lock:
            return self._plants[self._index(plant_id)]

    # -------------------------------------------------------------- mutations

    def add(self, data: Dict[str, Any]) -> Plant:
        """
        Create a plant from camelCase data. A new id is always assigned.

        Raises:
            pydantic.ValidationError: invalid fields
        """
        payload = {k: v for k, v in data.items() if k != "id"}
        plant = Plant.model_validate({**payload, "id": str(uuid.uuid4())})
        with self._lock:
            self._plants.append(plant)
            self._save()
        logger.info(f"[Plants] Added {plant.id} ({plant.custom_name})")
        return plant

    def update(self, plant_id: str, changes: Dict[str, Any]) -> Plant:
        """Merge camelCase ``changes`` into a plant. The id cannot change."""
        with self._lock:
            i = self._index(plant_id)
            merged = {**self._plants[i].to_json_dict(), **changes, "id": plant_id}
            # Explicit nulls clear optional fields
            merged = {k: v for k, v in merged.items() if v is not None}
            plant = Plant.model_validate(merged)
            self._plants[i] = plant
            self._save()
        return plant

    def delete(self, plant_id: str) -> None:
        with self._lock:
            del self._plants[self._index(plant_id)]
            self._save()
        logger.info(f"[Plants] Deleted {plant_id}")

    def mark_watered(self, plant_id: str, when: Optional[datetime] = None) -> Plant:
        with self._lock:
            i = self._index(plant_id)
            plant = self._plants[i].model_copy(update={"last_watered": when or self.now_fn()})
            self._plants[i] = plant
            self._save()
        return plant

    def add_journal_entry(
        self,
        plant_id: str,
        notes: str,
        photo_url: Optional[str] = None,
    ) -> Tuple[Plant, JournalEntry]:
        entry = JournalEntry(id=str(uuid.uuid4()), date=self.now_fn(), notes=notes, photo_url=photo_url or None)
        with self._lock:
            i = self._index(plant_id)
            current = self._plants[i]
            plant = current.model_copy(update={"journal": [entry] + list(current.journal)})
            self._plants[i] = plant
            self._save()
        return plant, entry

    def apply_recalculation(self, plant_id: str, new_frequency: int) -> Plant:
        """Apply an accepted schedule recalculation (frequency in days, >= 1)."""
        if new_frequency < 1:
            raise ValueError("Watering frequency must be at least 1 day")
        with self._lock:
            i = self._index(plant_id)
            old = self._plants[i].watering_frequency
            plant = self._plants[i].model_copy(update={"watering_frequency": new_frequency})
            self._plants[i] = plant
            self._save()
        logger.info(f"[Plants] Schedule for {plant_id}: every {old} -> {new_frequency} days")
        return plant
