"""
Pydantic models for stored records and generative-call contracts.

Field descriptions double as instructions: the JSON schema of each output
model is embedded in its prompt, and replies are validated against the same
model before anything is applied. JSON uses camelCase (the stored record
format); Python code uses snake_case.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Placement = Literal["Indoor", "Outdoor", "Indoor/Outdoor"]
Condition = Literal["Sunny", "Partly cloudy", "Cloudy", "Rain", "Thunderstorms"]
Rarity = Literal["Common", "Uncommon", "Rare", "Epic", "Legendary"]
ShouldWater = Literal["Yes", "No", "Wait"]


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Plant records
# ============================================================================

class BoundingBox(CamelModel):
    x1: float = Field(..., ge=0, le=1, description="The x-coordinate of the top-left corner of the bounding box (0-1).")
    y1: float = Field(..., ge=0, le=1, description="The y-coordinate of the top-left corner of the bounding box (0-1).")
    x2: float = Field(..., ge=0, le=1, description="The x-coordinate of the bottom-right corner of the bounding box (0-1).")
    y2: float = Field(..., ge=0, le=1, description="The y-coordinate of the bottom-right corner of the bounding box (0-1).")


class RegionOfInterest(CamelModel):
    label: str = Field(..., description="The name of the plant part (e.g., Leaf, Stem, Flower).")
    description: str = Field(..., description="A brief diagnosis or note about this specific region.")
    box: BoundingBox


class PlantHealthState(CamelModel):
    is_healthy: bool
    diagnosis: str


class JournalEntry(CamelModel):
    id: str
    date: datetime
    notes: str
    photo_url: Optional[str] = None

    @field_validator("date")
    @classmethod
    def date_as_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class Plant(CamelModel):
    """A plant in the user's garden. No wateringFrequency means no schedule."""

    id: str
    custom_name: str = Field(..., min_length=1)
    common_name: str = ""
    latin_name: str = ""
    photo_url: str = ""
    estimated_age: Optional[str] = None
    notes: Optional[str] = None
    environment_notes: Optional[str] = None
    care_tips: Optional[str] = None
    health: Optional[PlantHealthState] = None
    watering_frequency: Optional[int] = Field(default=None, gt=0)
    watering_time: Optional[str] = None
    watering_amount: Optional[str] = None
    last_watered: Optional[datetime] = None
    annotated_regions: List[RegionOfInterest] = Field(default_factory=list)
    journal: List[JournalEntry] = Field(default_factory=list)
    placement: Optional[Placement] = None
    recommended_placement: Optional[Placement] = None

    @field_validator("last_watered")
    @classmethod
    def last_watered_as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


# ============================================================================
# Weather
# ============================================================================

class Weather(CamelModel):
    temperature: int = Field(..., description="The current temperature.")
    condition: Condition = Field(..., description="A brief description of the weather.")
    humidity: int = Field(..., ge=0, le=100, description="The current humidity percentage (0-100).")
    wind_speed: int = Field(..., description="The current wind speed.")
    temperature_unit: Literal["celsius", "fahrenheit"] = "celsius"
    wind_speed_unit: Literal["kmh", "mph"] = "kmh"


class ForecastDay(CamelModel):
    day: str = Field(..., description="The day of the week (e.g., 'Monday').")
    date: Optional[str] = Field(default=None, description="ISO date of the forecast day.")
    temperature: int = Field(..., description="The forecasted maximum temperature.")
    condition: Condition = Field(..., description="The forecasted weather condition.")


class WeatherReport(CamelModel):
    current: Weather
    forecast: List[ForecastDay]
    is_mock: bool = False


# ============================================================================
# Watering decisions
# ============================================================================

class WateringAdviceDecision(CamelModel):
    should_water: ShouldWater = Field(
        ...,
        description="The final recommendation: 'Yes' to water now, 'No' if it's not time, "
                    "or 'Wait' if conditions suggest delaying.",
    )
    reason: str = Field(..., min_length=1, description="A brief, user-friendly explanation for the recommendation.")
    new_watering_time: Optional[datetime] = Field(
        default=None,
        description="ISO 8601 timestamp for when to water instead. Required when shouldWater is 'Wait'; "
                    "omit it otherwise.",
    )

    @field_validator("new_watering_time")
    @classmethod
    def wait_time_as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_wait_time(self):
        if self.should_water == "Wait" and self.new_watering_time is None:
            raise ValueError("newWateringTime is required when shouldWater is 'Wait'")
        if self.should_water != "Wait" and self.new_watering_time is not None:
            raise ValueError("newWateringTime is only allowed when shouldWater is 'Wait'")
        return self


class ScheduleRecalculation(CamelModel):
    new_watering_frequency: int = Field(
        ...,
        ge=1,
        description="The new recommended watering frequency in days, adjusted based on the feedback and "
                    "weather. If no change is needed, return the original frequency.",
    )
    reasoning: str = Field(
        ..., min_length=1,
        description="A brief explanation of why the schedule was changed or why it wasn't.",
    )


class PlantAdvice(CamelModel):
    custom_name: str
    advice: str = Field(
        ...,
        description="Specific, actionable advice for this plant based on the weather forecast. "
                    "Use Markdown for emphasis.",
    )


class PlantAdviceList(CamelModel):
    plant_advice: List[PlantAdvice] = Field(..., description="A list of advice for each of the user's plants.")


class GardenOverview(CamelModel):
    overview: str = Field(
        ..., min_length=1,
        description="A friendly, one or two sentence summary of the garden's overall status for the day. "
                    "Use Markdown for emphasis.",
    )


# ============================================================================
# Plant intelligence
# ============================================================================

class PlantIdentification(CamelModel):
    is_plant: bool = Field(..., description="Whether or not the input is a plant.")
    common_name: str = Field(..., description="The common name of the identified plant.")
    latin_name: str = Field(..., description="The Latin name of the identified plant.")
    confidence: float = Field(..., ge=0, le=1, description="The confidence level of the plant identification (0-1).")
    estimated_age: str = Field(
        ...,
        description="An estimation of the plant's age based on the photo "
                    "(e.g., \"Young seedling\", \"Mature plant\").",
    )


class PlantHealthCheck(CamelModel):
    is_healthy: bool = Field(..., description="Whether or not the plant is healthy.")
    diagnosis: str = Field(..., description="The diagnosis of the plant's health and any potential issues.")
    regions: List[RegionOfInterest] = Field(
        default_factory=list,
        description="Regions of interest on the photo (leaves, stems, flowers, visible signs of distress).",
    )
    common_name: str = Field(..., description="The common name. If not confident, return the original name.")
    latin_name: str = Field(..., description="The Latin name. If not confident, return the original name.")
    confidence: float = Field(..., ge=0, le=1, description="Confidence of the re-identification (0-1).")


class RegionDiagnosis(CamelModel):
    regions: List[RegionOfInterest] = Field(..., description="Identified regions of interest on the plant photo.")


class CareTips(CamelModel):
    care_tips: str = Field(
        ...,
        description="Care tips tailored to the species, including watering, sunlight, fertilizing and "
                    "pruning. Use Markdown and emojis.",
    )
    watering_frequency: int = Field(..., ge=1, description="The recommended watering frequency in days (e.g., 7).")
    watering_time: str = Field(..., description="Best time of day to water with a range, e.g. \"Morning (6-9 AM)\".")
    watering_amount: str = Field(..., description="Amount of water per session, e.g. '250-500ml'.")


class Nicknames(CamelModel):
    nicknames: List[str] = Field(..., min_length=1, description="A list of 3-4 creative and fun nicknames for the plant.")


class PlacementRecommendation(CamelModel):
    placement: Placement = Field(
        ...,
        description="The recommended placement: 'Indoor', 'Outdoor', or 'Indoor/Outdoor' if both are suitable.",
    )


class PlacementFeedback(CamelModel):
    is_good_choice: bool = Field(..., description="Whether the user's choice is generally a good one.")
    feedback: str = Field(..., description="A short, helpful message explaining the choice.")


class ChatAnswer(CamelModel):
    answer: str = Field(..., min_length=1, description="The answer to the user's question.")
    updated_watering_amount: Optional[str] = Field(
        default=None,
        description="A new watering amount if the conversation led to one (e.g. '250-500ml'); otherwise omit.",
    )


# ============================================================================
# Settings & achievements
# ============================================================================

class Settings(CamelModel):
    theme: Literal["light", "dark", "theme-forest", "theme-sunny-meadow"] = "light"
    watering_reminders: bool = True
    timezone: str = "UTC"
    location: str = ""
    model: Literal["gemini-2.5-flash", "gemini-2.5-pro"] = "gemini-2.5-flash"
    gemini_api_key: Optional[str] = None
    sound_effects_enabled: bool = True

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class AchievementView(CamelModel):
    id: str
    name: str
    description: str
    rarity: Rarity
    goal: int
    unlocked: bool
