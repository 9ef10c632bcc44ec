"""Record models: vocabularies, camelCase JSON and decision rules."""

from datetime import datetime, timedelta, timezone
from typing import get_args

import pytest
from pydantic import ValidationError

from verdantwise.constants import AI_MODELS, PLACEMENTS, RARITIES, THEMES, WEATHER_CONDITIONS
from verdantwise.services.schemas import (
    Condition,
    Placement,
    Plant,
    Rarity,
    Settings,
    WateringAdviceDecision,
)


def test_vocabularies_match_constants():
    assert set(get_args(Condition)) == set(WEATHER_CONDITIONS)
    assert set(get_args(Placement)) == set(PLACEMENTS)
    assert set(get_args(Rarity)) == set(RARITIES)
    assert set(get_args(Settings.model_fields["theme"].annotation)) == set(THEMES)
    assert set(get_args(Settings.model_fields["model"].annotation)) == set(AI_MODELS)


def test_plant_json_is_camel_case():
    plant = Plant(id="p1", custom_name="Fernando", watering_frequency=7)
    data = plant.to_json_dict()
    assert data["customName"] == "Fernando"
    assert data["wateringFrequency"] == 7
    assert "lastWatered" not in data


def test_wait_requires_a_time():
    with pytest.raises(ValidationError):
        WateringAdviceDecision(should_water="Wait", reason="Rain.")


def test_only_wait_carries_a_time():
    later = datetime.now(timezone.utc) + timedelta(days=1)
    with pytest.raises(ValidationError):
        WateringAdviceDecision(should_water="Yes", reason="Dry.", new_watering_time=later)


def test_naive_wait_time_is_utc():
    decision = WateringAdviceDecision.model_validate(
        {"shouldWater": "Wait", "reason": "Rain.", "newWateringTime": "2025-06-04T08:00:00"}
    )
    assert decision.new_watering_time.tzinfo is not None
