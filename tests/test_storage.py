"""JSON store: version envelope, atomic writes and error handling."""

import json
import os

import pytest

from verdantwise.services.plants import PlantStore
from verdantwise.services.storage import (
    PLANTS_KEY,
    JsonStore,
    load_or_default,
    save_logged,
)
from verdantwise.utils.errors import PlantNotFound, StorageError


def test_write_then_read(store):
    store.write("example", {"a": [1, 2]})
    assert store.read("example") == {"a": [1, 2]}

    with open(os.path.join(store.directory, "example.json"), encoding="utf-8") as fh:
        assert json.load(fh)["version"] == 1


def test_missing_record_returns_default(store):
    assert store.read("nothing", default=[]) == []


def test_write_leaves_no_temp_files(store):
    store.write("example", {"ok": True})
    store.write("example", {"ok": False})
    assert os.listdir(store.directory) == ["example.json"]


def test_corrupt_record_raises(store):
    os.makedirs(store.directory, exist_ok=True)
    with open(os.path.join(store.directory, "broken.json"), "w", encoding="utf-8") as fh:
        fh.write("{not json")
    with pytest.raises(StorageError):
        store.read("broken")
    assert load_or_default(store, "broken", list) == []


def test_newer_schema_version_is_rejected(store):
    os.makedirs(store.directory, exist_ok=True)
    with open(os.path.join(store.directory, "future.json"), "w", encoding="utf-8") as fh:
        json.dump({"version": 99, "data": {}}, fh)
    with pytest.raises(StorageError):
        store.read("future")


def test_save_logged_returns_error_instead_of_raising(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    error = save_logged(JsonStore(str(blocker)), "example", {})
    assert isinstance(error, StorageError)


def test_plant_store_round_trip(store):
    plants = PlantStore(store)
    plant = plants.add({"customName": "Fernando", "wateringFrequency": 7, "id": "ignored"})
    assert plant.id != "ignored"

    reloaded = PlantStore(store)
    assert reloaded.get(plant.id).custom_name == "Fernando"
    assert store.read(PLANTS_KEY)[0]["wateringFrequency"] == 7


def test_plant_store_keeps_working_when_writes_fail(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    plants = PlantStore(JsonStore(str(blocker)))

    plant = plants.add({"customName": "Fernando"})
    assert plants.last_error is not None
    assert plants.get(plant.id).custom_name == "Fernando"


def test_update_with_null_clears_field(store):
    plants = PlantStore(store)
    plant = plants.add({"customName": "Fernando", "wateringFrequency": 7})
    updated = plants.update(plant.id, {"wateringFrequency": None})
    assert updated.watering_frequency is None


def test_unknown_plant_raises(store):
    with pytest.raises(PlantNotFound):
        PlantStore(store).get("missing")
