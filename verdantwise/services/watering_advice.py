"""
Watering advice engine - weather-aware watering decisions and schedule tuning.

Combines the schedule, the weather service and the generative model:
- decide_watering: Yes / No / Wait for a single plant that is due
- recalculate_schedule: new watering frequency from soil feedback
- get_weather_and_plant_advice: proactive per-plant advice for the forecast
- get_garden_overview: short daily digest, cached per location and plant set

Model output is never trusted blindly. Two rules are enforced in code:
- An outdoor plant with rain in the current conditions or forecast always
  gets "Wait", with a concrete future time to resume.
- Frequency changes fall inside fixed bands per (direction, severity), so
  stronger feedback always moves the schedule at least as far as weaker
  feedback of the same kind.

Without a configured model key, every operation here falls back to the same
rules (source "rule") instead of failing.
"""

from __future__ import annotations
import logging
import math
import re
from collections import namedtuple
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from ..constants import (
    CONDITION_PARTLY_CLOUDY,
    CONDITION_SUNNY,
    PLACEMENT_INDOOR,
    PLACEMENT_OUTDOOR,
    SHOULD_WATER_NO,
    SHOULD_WATER_WAIT,
    SHOULD_WATER_YES,
    TIMING_EARLY,
    TIMING_LATE,
    TIMING_SKIPPING,
    WET_CONDITIONS,
)
from ..utils.cache import StalenessCache
from ..utils.errors import StorageError
from ..utils.validation import MAX_FREQUENCY_DAYS
from .ai import AIClient, AIConfig, system_message, user_message
from .schedule import plant_is_overdue, utcnow
from .schemas import (
    GardenOverview,
    Plant,
    PlantAdvice,
    PlantAdviceList,
    ScheduleRecalculation,
    WateringAdviceDecision,
    WeatherReport,
)
from .storage import OVERVIEW_CACHE_KEY, JsonStore
from .weather import WeatherService

logger = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_RULE = "rule"
SOURCE_SCHEDULE = "schedule"

NOT_DUE_REASON = "It's not time to water yet according to the schedule."
OVERVIEW_PROMPT_TEXT = "Set your location and add a plant to get your daily garden overview from Sage!"

HOT_TEMPERATURE_C = 28
COLD_TEMPERATURE_C = 5

# Feedback assessment
DIRECTION_UNKNOWN = "unknown"
MOISTURE_DRY = "dry"
MOISTURE_WET = "wet"
MOISTURE_FINE = "fine"
MOISTURE_UNKNOWN = "unknown"

# Checked in order; first match wins, so stronger phrases come first
_DRY_PHRASES = (
    (3, ("bone dry", "bone-dry", "very dry", "completely dry", "totally dry", "parched", "crispy", "wilting")),
    (1, ("slightly dry", "a little dry", "a bit dry", "bit dry", "somewhat dry", "barely dry")),
    (2, ("dry",)),
)
_WET_PHRASES = (
    (3, ("soaking", "soaked", "waterlogged", "soggy", "very wet", "drenched")),
    (1, ("slightly damp", "a little damp", "bit damp", "damp", "moist", "slightly wet")),
    (2, ("wet",)),
)
_FINE_PATTERN = re.compile(r"\b(fine|healthy|okay|ok|good|happy|thriving|no issues?)\b")

FeedbackAssessment = namedtuple("FeedbackAssessment", ["direction", "moisture", "level"])


# ============================================================================
# Helpers
# ============================================================================

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (KeyError, ValueError):
        logger.warning(f"[Advice] Unknown timezone {tz_name!r}, using UTC")
        return ZoneInfo("UTC")


def rain_expected(report: WeatherReport) -> bool:
    """Rain or thunderstorms now or anywhere in the forecast."""
    if report.current.condition in WET_CONDITIONS:
        return True
    return any(day.condition in WET_CONDITIONS for day in report.forecast)


def must_wait(placement: Optional[str], report: WeatherReport) -> bool:
    return placement == PLACEMENT_OUTDOOR and rain_expected(report)


def compute_wait_time(
    report: WeatherReport,
    now: datetime,
    tz_name: str = "UTC",
    resume_hour: int = 8,
) -> datetime:
    """
    When to water after the rain passes.

    Morning of the first dry forecast day after the last rainy one. If every
    forecast day is rainy, the morning after the forecast ends. The result is
    always strictly after ``now`` and returned in UTC.
    """
    zone = _zone(tz_name)
    local_today = now.astimezone(zone).date()

    dates = []
    for i, day in enumerate(report.forecast):
        try:
            dates.append(datetime.strptime(day.date, "%Y-%m-%d").date() if day.date else local_today + timedelta(days=i))
        except ValueError:
            dates.append(local_today + timedelta(days=i))

    last_wet = -1
    for i, day in enumerate(report.forecast):
        if day.condition in WET_CONDITIONS:
            last_wet = i

    if last_wet + 1 < len(dates):
        target = dates[last_wet + 1]
    elif dates:
        target = dates[-1] + timedelta(days=1)
    else:
        target = local_today + timedelta(days=1)

    resume = datetime.combine(target, time(hour=resume_hour), tzinfo=zone)
    while resume <= now:
        resume += timedelta(days=1)
    return resume.astimezone(timezone.utc)


def rule_decision(
    plant: Plant,
    report: WeatherReport,
    now: datetime,
    tz_name: str = "UTC",
    resume_hour: int = 8,
) -> WateringAdviceDecision:
    """Deterministic decision for a plant that is already due."""
    if must_wait(plant.placement, report):
        return WateringAdviceDecision(
            should_water=SHOULD_WATER_WAIT,
            reason="Wait, rain is expected so your outdoor plant will get a drink.",
            new_watering_time=compute_wait_time(report, now, tz_name, resume_hour),
        )
    if report.current.temperature >= HOT_TEMPERATURE_C or report.current.condition in (
        CONDITION_SUNNY, CONDITION_PARTLY_CLOUDY
    ):
        reason = "Yes, it's warm and dry, so the soil will be thirsty."
    elif plant.placement == PLACEMENT_INDOOR:
        reason = "Yes, it's overdue and indoor plants aren't affected by the weather."
    else:
        reason = "Yes, it's overdue and no rain is on the way."
    return WateringAdviceDecision(should_water=SHOULD_WATER_YES, reason=reason)


def _weather_summary(report: WeatherReport) -> str:
    cur = report.current
    lines = [
        f"Current: {cur.temperature}°C, {cur.condition}, humidity {cur.humidity}%, wind {cur.wind_speed} km/h",
        "Forecast:",
    ]
    for day in report.forecast:
        lines.append(f"- {day.day} ({day.date or 'n/a'}): {day.temperature}°C, {day.condition}")
    return "\n".join(lines)


# ============================================================================
# Schedule recalculation policy
# ============================================================================

def assess_feedback(feedback: str, timing_discrepancy: str) -> FeedbackAssessment:
    """
    Classify feedback into (direction, moisture, level).

    Direction comes from the timing text; anything that isn't early / late /
    skipping is "unknown". Level is 1 (slight) to 3 (extreme).
    """
    timing = (timing_discrepancy or "").lower()
    if "skip" in timing:
        direction = TIMING_SKIPPING
    elif TIMING_EARLY in timing:
        direction = TIMING_EARLY
    elif TIMING_LATE in timing:
        direction = TIMING_LATE
    else:
        direction = DIRECTION_UNKNOWN

    text = (feedback or "").lower()
    for moisture, table in ((MOISTURE_WET, _WET_PHRASES), (MOISTURE_DRY, _DRY_PHRASES)):
        for level, phrases in table:
            if any(p in text for p in phrases):
                return FeedbackAssessment(direction, moisture, level)
    if _FINE_PATTERN.search(text):
        return FeedbackAssessment(direction, MOISTURE_FINE, 0)
    return FeedbackAssessment(direction, MOISTURE_UNKNOWN, 0)


def severity_deltas(current: int) -> Tuple[int, int, int]:
    """Minimum change in days for slight / medium / extreme feedback."""
    slight = max(1, _round_half_up(0.15 * current))
    medium = max(slight + 1, _round_half_up(0.3 * current))
    extreme = max(medium + 1, _round_half_up(0.5 * current))
    return slight, medium, extreme


def policy_band(assessment: FeedbackAssessment, current: int) -> Tuple[int, int]:
    """
    Allowed range (inclusive) for the new frequency.

    Bands for neighbouring levels don't overlap, so a stronger signal can
    never produce a smaller adjustment than a weaker one.
    """
    deltas = severity_deltas(current)
    level = assessment.level

    if assessment.direction == TIMING_EARLY and assessment.moisture == MOISTURE_DRY:
        min_dec = deltas[level - 1]
        max_dec = deltas[level] - 1 if level < 3 else max(min_dec, current - 1)
        return max(1, current - max_dec), max(1, current - min_dec)

    if assessment.direction == TIMING_SKIPPING and assessment.moisture == MOISTURE_WET:
        min_inc = deltas[level - 1]
        max_inc = deltas[level] - 1 if level < 3 else max(min_inc, current)
        return (
            min(MAX_FREQUENCY_DAYS, current + min_inc),
            min(MAX_FREQUENCY_DAYS, current + max_inc),
        )

    if assessment.direction == TIMING_LATE and assessment.moisture == MOISTURE_FINE:
        return current, min(MAX_FREQUENCY_DAYS, current + deltas[0])

    return 1, MAX_FREQUENCY_DAYS


def rule_frequency(assessment: FeedbackAssessment, current: int) -> int:
    """Smallest adjustment the policy allows (no model available)."""
    lo, hi = policy_band(assessment, current)
    if assessment.direction == TIMING_EARLY and assessment.moisture == MOISTURE_DRY:
        return hi
    if assessment.direction == TIMING_SKIPPING and assessment.moisture == MOISTURE_WET:
        return lo
    return min(max(current, lo), hi)


def enforce_adjustment_policy(value: int, band: Tuple[int, int]) -> int:
    """Snap ``value`` into ``band``."""
    lo, hi = band
    return min(max(value, lo), hi)


def _rule_reasoning(assessment: FeedbackAssessment, current: int, new: int) -> str:
    if new < current:
        return f"The soil dried out before the scheduled day, so watering every {new} days instead of {current}."
    if new > current:
        return f"The soil stayed moist longer than expected, so watering every {new} days instead of {current}."
    return f"The current schedule of every {current} days still looks right."


# ============================================================================
# Engine
# ============================================================================

class AdviceEngine:
    """
    Watering decisions backed by weather and an optional generative model.

    Args:
        weather: WeatherService (cached provider)
        ai: AIClient
        store: JsonStore used to persist the garden overview cache
        overview_cache: StalenessCache for garden overviews (12h window, bounded)
        wait_resume_hour: Local hour used for computed "Wait" times
        now_fn: Clock returning an aware UTC datetime
    """

    def __init__(
        self,
        weather: WeatherService,
        ai: AIClient,
        store: Optional[JsonStore] = None,
        overview_cache: Optional[StalenessCache] = None,
        wait_resume_hour: int = 8,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.weather = weather
        self.ai = ai
        self.store = store
        self.overview_cache = overview_cache or StalenessCache(12 * 3600, maxsize=32)
        self.wait_resume_hour = wait_resume_hour
        self.now_fn = now_fn or utcnow
        self._load_overviews()

    # ------------------------------------------------------------------ decide

    def decide_watering(
        self,
        plant: Plant,
        location: str,
        config: AIConfig,
        tz_name: str = "UTC",
    ) -> Tuple[WateringAdviceDecision, str]:
        """
        Decide whether a plant should be watered now.

        Returns:
            (decision, source) where source is "schedule", "ai" or "rule"

        Raises:
            LocationNotFound / WeatherFetchFailed: weather unavailable
            AdviceGenerationFailed: model reply invalid after retry
        """
        now = self.now_fn()
        if not plant_is_overdue(plant, now):
            return WateringAdviceDecision(should_water=SHOULD_WATER_NO, reason=NOT_DUE_REASON), SOURCE_SCHEDULE

        report = self.weather.get_weather(location)
        rule = rule_decision(plant, report, now, tz_name, self.wait_resume_hour)

        if not self.ai.is_configured(config):
            return rule, SOURCE_RULE

        def check(decision: WateringAdviceDecision) -> None:
            if decision.new_watering_time is not None and decision.new_watering_time <= now:
                raise ValueError("newWateringTime must be in the future")

        messages = [
            system_message(
                "You are Sage, an expert plant care assistant. A user's plant is due for watering. "
                "Decide whether they should water it now ('Yes') or wait ('Wait').\n"
                "- If the plant is Outdoor and rain or thunderstorms are current or forecast, answer 'Wait'.\n"
                "- If it is hot, sunny or dry, answer 'Yes'.\n"
                "- If the plant is Indoor and the weather is mild, answer 'Yes'.\n"
                "When answering 'Wait', give newWateringTime as an ISO 8601 timestamp in the future "
                "(after the rain passes). Keep the reason short, e.g. \"Wait, rain is expected tomorrow.\""
            ),
            user_message(
                f"Plant: {plant.custom_name} ({plant.common_name or 'unknown species'})\n"
                f"Placement: {plant.placement or 'unspecified'}\n"
                f"Location: {location}\n"
                f"Now (UTC): {now.isoformat()}\n"
                f"Timezone: {tz_name}\n\n"
                f"{_weather_summary(report)}"
            ),
        ]
        decision = self.ai.generate_structured(
            messages, WateringAdviceDecision, config, temperature=0.2, check=check
        )

        if must_wait(plant.placement, report) and decision.should_water != SHOULD_WATER_WAIT:
            logger.warning(
                f"[Advice] Model said {decision.should_water!r} for outdoor plant {plant.id} "
                f"with rain expected; using rule decision"
            )
            return rule, SOURCE_RULE
        return decision, SOURCE_AI

    # -------------------------------------------------------------- recalculate

    def recalculate_schedule(
        self,
        common_name: str,
        current_frequency: int,
        feedback: str,
        timing_discrepancy: str,
        location: str,
        config: AIConfig,
        environment_notes: Optional[str] = None,
    ) -> Tuple[ScheduleRecalculation, str]:
        """
        Recommend a new watering frequency from the user's soil feedback.

        Weather failures degrade to mock weather. The model's answer is
        snapped into the policy band for the assessed feedback.

        Returns:
            (recalculation, source) where source is "ai" or "rule"
        """
        report = self.weather.get_weather(location, allow_mock=True)
        assessment = assess_feedback(feedback, timing_discrepancy)
        band = policy_band(assessment, current_frequency)
        logger.debug(f"[Advice] Feedback assessed as {assessment}, band {band}")

        if not self.ai.is_configured(config):
            new = rule_frequency(assessment, current_frequency)
            return ScheduleRecalculation(
                new_watering_frequency=new,
                reasoning=_rule_reasoning(assessment, current_frequency, new),
            ), SOURCE_RULE

        messages = [
            system_message(
                "You are an expert horticulturalist. A user has indicated that the watering schedule for "
                "their plant might be incorrect. Recommend a new, more accurate watering frequency in days.\n"
                "- Watered early because the soil was dry: decrease the days between watering.\n"
                "- Watered late but the plant was fine: keep or slightly increase the days.\n"
                "- Skipping because the soil is still wet: increase the days.\n"
                "- If the current schedule is still appropriate, return the original frequency.\n"
                "Give a short, clear reasoning."
            ),
            user_message(
                f"Plant: {common_name}\n"
                f"Current schedule: water every {current_frequency} days\n"
                f"Feedback: \"{feedback}\"\n"
                f"Timing: the user is acting {timing_discrepancy}\n"
                f"Location: {location}\n"
                f"Environment: {environment_notes or 'No specific notes provided.'}\n\n"
                f"{_weather_summary(report)}"
            ),
        ]
        result = self.ai.generate_structured(messages, ScheduleRecalculation, config, temperature=0.2)

        snapped = enforce_adjustment_policy(result.new_watering_frequency, band)
        if snapped != result.new_watering_frequency:
            logger.info(
                f"[Advice] Snapped frequency {result.new_watering_frequency} -> {snapped} "
                f"(band {band[0]}-{band[1]} for {assessment.direction}/{assessment.moisture})"
            )
            result = ScheduleRecalculation(new_watering_frequency=snapped, reasoning=result.reasoning)
        return result, SOURCE_AI

    # ------------------------------------------------------- proactive advice

    def get_weather_and_plant_advice(
        self,
        location: str,
        plants: Sequence[Plant],
        config: AIConfig,
    ) -> Dict[str, Any]:
        """
        Forecast plus one piece of advice per plant.

        Returns:
            {"weather": WeatherReport, "plantAdvice": [PlantAdvice], "source": str}
        """
        report = self.weather.get_weather(location, allow_mock=True)
        rules = {p.custom_name: self._rule_plant_advice(p, report) for p in plants}

        if not plants or not self.ai.is_configured(config):
            return {"weather": report, "plantAdvice": list(rules.values()), "source": SOURCE_RULE}

        plant_lines = "\n".join(
            f"- {p.custom_name} ({p.common_name or 'unknown'}), placement: {p.placement or 'unspecified'}"
            for p in plants
        )
        messages = [
            system_message(
                "You are Sage, an expert horticulturalist. For each of the user's plants, give specific, "
                "actionable advice based on the 3-day forecast. For example, if it's going to be very hot, "
                "advise moving sun-sensitive plants to the shade; if heavy rain is forecast, suggest moving "
                "potted plants under cover. Use **markdown** for emphasis on key words. "
                "Use each plant's customName exactly as given."
            ),
            user_message(f"Location: {location}\n{_weather_summary(report)}\n\nUser's plants:\n{plant_lines}"),
        ]
        result = self.ai.generate_structured(messages, PlantAdviceList, config, temperature=0.6)

        by_name = {a.custom_name: a for a in result.plant_advice}
        advice = [by_name.get(p.custom_name, rules[p.custom_name]) for p in plants]
        return {"weather": report, "plantAdvice": advice, "source": SOURCE_AI}

    @staticmethod
    def _rule_plant_advice(plant: Plant, report: WeatherReport) -> PlantAdvice:
        name = plant.custom_name
        outdoor = plant.placement != PLACEMENT_INDOOR
        hottest = max([d.temperature for d in report.forecast] + [report.current.temperature])
        coldest = min([d.temperature for d in report.forecast] + [report.current.temperature])

        if outdoor and rain_expected(report):
            text = f"Rain is on the way. Hold off on watering **{name}** and move it under cover if it's potted."
        elif outdoor and hottest >= HOT_TEMPERATURE_C:
            text = f"It's going to be **hot**. Give **{name}** some afternoon shade and check the soil daily."
        elif outdoor and coldest <= COLD_TEMPERATURE_C:
            text = f"It's getting **cold**. Consider bringing **{name}** indoors overnight."
        else:
            text = f"Conditions look mild for **{name}**. Stick to the usual schedule and check the soil first."
        return PlantAdvice(custom_name=name, advice=text)

    # --------------------------------------------------------- garden overview

    def _load_overviews(self) -> None:
        if not self.store:
            return
        try:
            raw = self.store.read(OVERVIEW_CACHE_KEY, default={}) or {}
        except StorageError as e:
            logger.error(f"[Advice] Could not load overview cache: {e}")
            return
        entries = {}
        for key, item in raw.items():
            try:
                entries[key] = (float(item["storedAt"]), GardenOverview.model_validate(item["overview"]))
            except (KeyError, TypeError, ValueError):
                logger.warning("[Advice] Dropping unreadable overview cache entry")
        self.overview_cache.load(entries)
        self.overview_cache.prune(self.overview_cache.window_seconds)

    def _persist_overviews(self) -> None:
        if not self.store:
            return
        # Stale overviews are never served again
        self.overview_cache.prune(self.overview_cache.window_seconds)
        payload = {
            key: {"storedAt": stored_at, "overview": value.to_json_dict()}
            for key, (stored_at, value) in self.overview_cache.snapshot().items()
        }
        try:
            self.store.write(OVERVIEW_CACHE_KEY, payload)
        except StorageError as e:
            logger.error(f"[Advice] Could not persist overview cache: {e}")

    @staticmethod
    def _overview_key(location: str, plants: List[Dict[str, Any]]) -> str:
        parts = sorted(
            f"{p.get('customName', '')}|{p.get('commonName', '')}|{int(bool(p.get('isWateringOverdue')))}"
            for p in plants
        )
        return " ".join(location.lower().split()) + "::" + ";".join(parts)

    def get_garden_overview(
        self,
        location: str,
        plants: List[Dict[str, Any]],
        config: AIConfig,
    ) -> Tuple[GardenOverview, str]:
        """
        One or two sentence digest of the garden for today.

        ``plants`` items carry customName, commonName and isWateringOverdue.
        Model results are cached for the overview window per location and
        plant set.

        Returns:
            (overview, source) where source is "prompt", "cache", "ai" or "rule"
        """
        if not location or not plants:
            return GardenOverview(overview=OVERVIEW_PROMPT_TEXT), "prompt"

        key = self._overview_key(location, plants)
        cached = self.overview_cache.get_fresh(key)
        if cached is not None:
            return cached, "cache"

        report = self.weather.get_weather(location, allow_mock=True)

        if not self.ai.is_configured(config):
            return self._rule_overview(plants, report), SOURCE_RULE

        plant_lines = "\n".join(
            f"- {p.get('customName')} ({p.get('commonName') or 'unknown'}). "
            f"Watering Overdue: {bool(p.get('isWateringOverdue'))}"
            for p in plants
        )
        messages = [
            system_message(
                "You are Sage, an AI gardening assistant. Write a quick, friendly daily digest for the "
                "user's garden based on the weather and which plants are overdue for watering. "
                "Keep it to one or two sentences. Be warm, encouraging and actionable; use Markdown "
                "for emphasis on plant names."
            ),
            user_message(f"Location: {location}\n{_weather_summary(report)}\n\nUser's plants:\n{plant_lines}"),
        ]
        overview = self.ai.generate_structured(messages, GardenOverview, config, temperature=0.7)
        self.overview_cache.put(key, overview)
        self._persist_overviews()
        return overview, SOURCE_AI

    @staticmethod
    def _rule_overview(plants: List[Dict[str, Any]], report: WeatherReport) -> GardenOverview:
        overdue = [p.get("customName") for p in plants if p.get("isWateringOverdue")]
        if not overdue:
            return GardenOverview(overview="Everything looks great in your garden today! Enjoy the day.")
        first = overdue[0]
        if rain_expected(report):
            text = f"Good news! Rain is on the way, so outdoor plants like *{first}* can wait a little."
        else:
            text = f"Your garden is thirsty today. Let's start with *{first}*."
        if len(overdue) > 1:
            text += f" {len(overdue) - 1} more plant(s) are due as well."
        return GardenOverview(overview=text)
