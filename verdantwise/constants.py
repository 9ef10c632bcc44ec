"""
Shared constants used across the application.

This module contains vocabularies that need to be consistent across
different parts of the application (schemas, prompts, validation, stores).
"""

# Where a plant lives (affects weather sensitivity)
PLACEMENT_INDOOR = "Indoor"
PLACEMENT_OUTDOOR = "Outdoor"
PLACEMENT_BOTH = "Indoor/Outdoor"
PLACEMENTS = (PLACEMENT_INDOOR, PLACEMENT_OUTDOOR, PLACEMENT_BOTH)

# Fixed weather vocabulary the provider maps codes into
CONDITION_SUNNY = "Sunny"
CONDITION_PARTLY_CLOUDY = "Partly cloudy"
CONDITION_CLOUDY = "Cloudy"
CONDITION_RAIN = "Rain"
CONDITION_THUNDERSTORMS = "Thunderstorms"
WEATHER_CONDITIONS = (
    CONDITION_SUNNY,
    CONDITION_PARTLY_CLOUDY,
    CONDITION_CLOUDY,
    CONDITION_RAIN,
    CONDITION_THUNDERSTORMS,
)
WET_CONDITIONS = frozenset({CONDITION_RAIN, CONDITION_THUNDERSTORMS})

# Watering decision values
SHOULD_WATER_YES = "Yes"
SHOULD_WATER_NO = "No"
SHOULD_WATER_WAIT = "Wait"

# Achievement rarities, lowest to highest
RARITIES = ("Common", "Uncommon", "Rare", "Epic", "Legendary")

# Settings vocabularies
THEMES = ("light", "dark", "theme-forest", "theme-sunny-meadow")
AI_MODELS = ("gemini-2.5-flash", "gemini-2.5-pro")
DEFAULT_AI_MODEL = "gemini-2.5-flash"
FALLBACK_AI_MODEL = "gemini-2.5-pro"

# Timing discrepancy values sent by the "mark as watered" flow.
# The set is open: anything else is treated as an unknown direction.
TIMING_EARLY = "early"
TIMING_LATE = "late"
TIMING_SKIPPING = "skipping"
