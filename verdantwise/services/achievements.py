"""
Achievements - static catalog, monotonic unlocks and activity counters.

Unlock state is persisted as an ``id -> true`` map; counters (waterings,
chats, health checks, ...) live in their own record. An unlocked
achievement is never locked again, even when the value that earned it
later drops (e.g. plants are deleted).

``check_and_unlock`` is called after the mutation that triggered it has
been written, with the post-mutation value and plant list.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .schemas import AchievementView, Plant
from .storage import ACHIEVEMENTS_KEY, COUNTERS_KEY, JsonStore, load_or_default, save_logged

logger = logging.getLogger(__name__)

# Activity counters
COUNTER_WATERINGS = "waterings"
COUNTER_HEALTH_CHECKS = "healthChecks"
COUNTER_CHATS = "chats"
COUNTER_JOURNAL_ENTRIES = "journalEntries"
COUNTER_PLACEMENT_FEEDBACK = "placementFeedback"
COUNTER_TIP_REGENERATIONS = "tipRegenerations"
COUNTER_WEATHER_CHECKS = "weatherChecks"
COUNTER_NICKNAMES_USED = "nicknamesUsed"


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    rarity: str
    goal: int
    check: Callable[[Any, Sequence[Plant]], bool]


def _at_least(goal: int):
    return lambda value, plants: bool(value) and value >= goal


def _flag(value, plants) -> bool:
    return bool(value)


def _species_at_least(goal: int):
    return lambda value, plants: len({p.common_name for p in plants if p.common_name}) >= goal


def _never(value, plants) -> bool:
    return False


CATALOG: tuple = (
    # Common
    Achievement("first_plant", "First Sprout", "Add your first plant to your garden.", "Common", 1, _at_least(1)),
    Achievement("first_diagnosis", "Budding Detective", "Perform your first AI health check.", "Common", 1, _at_least(1)),
    Achievement("first_chat", "First Words", "Chat with Sage about a plant for the first time.", "Common", 1, _at_least(1)),
    Achievement("first_journal", "Memory Keeper", "Add your first journal entry.", "Common", 1, _at_least(1)),
    Achievement("weather_watcher", "Weather Watcher", "Check the weather page for the first time.", "Common", 1, _flag),
    Achievement("water_warrior_10", "Water Warrior", "Water your plants 10 times in total.", "Common", 10, _at_least(10)),
    # Uncommon
    Achievement("plant_collector", "Green Thumb", "Grow your collection to 5 plants.", "Uncommon", 5, _at_least(5)),
    Achievement("five_diagnoses", "Plant Doctor", "Perform 5 AI health checks.", "Uncommon", 5, _at_least(5)),
    Achievement("five_journal_entries", "Diligent Chronicler", "Write 5 journal entries.", "Uncommon", 5, _at_least(5)),
    Achievement("nickname_artist", "Nickname Artist", "Use one of Sage's suggested nicknames.", "Uncommon", 1, _flag),
    Achievement("placement_pro", "Placement Pro", "Get placement feedback for a plant.", "Uncommon", 1, _at_least(1)),
    Achievement("water_warrior_50", "Hydration Hero", "Water your plants 50 times in total.", "Uncommon", 50, _at_least(50)),
    Achievement("species_collector_5", "Species Collector", "Own 5 different types of plants.", "Uncommon", 5,
                _species_at_least(5)),
    # Rare
    Achievement("plant_enthusiast", "Plant Enthusiast", "Cultivate a garden of 10 plants.", "Rare", 10, _at_least(10)),
    Achievement("ten_chats", "Sage Advisor", "Chat with Sage 10 times.", "Rare", 10, _at_least(10)),
    Achievement("tip_regenerator", "Knowledge Seeker", "Regenerate care tips for a plant.", "Rare", 1, _at_least(1)),
    Achievement("species_collector_10", "Botanist", "Own 10 different types of plants.", "Rare", 10,
                _species_at_least(10)),
    # Epic
    Achievement("urban_jungle", "Urban Jungle", "Your collection has grown to 25 plants!", "Epic", 25, _at_least(25)),
    Achievement("healthy_week", "Happy and Healthy", "Keep a plant healthy for 7 consecutive days.", "Epic", 7, _never),
    # Legendary
    Achievement("botanical_garden", "Botanical Garden", "A massive collection of 50 plants!", "Legendary", 50,
                _at_least(50)),
    Achievement("master_gardener", "Master Gardener", "Unlock all other achievements.", "Legendary", 1, _never),
)

CATALOG_BY_ID: Dict[str, Achievement] = {a.id: a for a in CATALOG}

# Achievements checked after each kind of activity
PLANT_COUNT_IDS = ("first_plant", "plant_collector", "plant_enthusiast", "urban_jungle", "botanical_garden",
                   "species_collector_5", "species_collector_10")
WATERING_IDS = ("water_warrior_10", "water_warrior_50")
HEALTH_CHECK_IDS = ("first_diagnosis", "five_diagnoses")
CHAT_IDS = ("first_chat", "ten_chats")
JOURNAL_IDS = ("first_journal", "five_journal_entries")
PLACEMENT_FEEDBACK_IDS = ("placement_pro",)
TIP_REGENERATION_IDS = ("tip_regenerator",)
WEATHER_IDS = ("weather_watcher",)
NICKNAME_IDS = ("nickname_artist",)

COUNTER_ACHIEVEMENTS: Dict[str, tuple] = {
    COUNTER_WATERINGS: WATERING_IDS,
    COUNTER_HEALTH_CHECKS: HEALTH_CHECK_IDS,
    COUNTER_CHATS: CHAT_IDS,
    COUNTER_JOURNAL_ENTRIES: JOURNAL_IDS,
    COUNTER_PLACEMENT_FEEDBACK: PLACEMENT_FEEDBACK_IDS,
    COUNTER_TIP_REGENERATIONS: TIP_REGENERATION_IDS,
    COUNTER_WEATHER_CHECKS: WEATHER_IDS,
    COUNTER_NICKNAMES_USED: NICKNAME_IDS,
}


def _view(a: Achievement, unlocked: bool) -> AchievementView:
    return AchievementView(
        id=a.id, name=a.name, description=a.description, rarity=a.rarity, goal=a.goal, unlocked=unlocked
    )


class AchievementStore:
    """Persisted unlock map and activity counters."""

    def __init__(self, store: JsonStore):
        self.store = store
        self._lock = threading.Lock()
        raw_unlocked = load_or_default(store, ACHIEVEMENTS_KEY, dict)
        self._unlocked: Dict[str, bool] = {
            k: True for k, v in (raw_unlocked or {}).items() if v and k in CATALOG_BY_ID
        }
        raw_counters = load_or_default(store, COUNTERS_KEY, dict)
        self._counters: Dict[str, int] = {
            k: int(v) for k, v in (raw_counters or {}).items() if isinstance(v, (int, float))
        }

    # ------------------------------------------------------------------ views

    def is_unlocked(self, achievement_id: str) -> bool:
        return self._unlocked.get(achievement_id, False)

    def list(self) -> List[AchievementView]:
        return [_view(a, self.is_unlocked(a.id)) for a in CATALOG]

    def counts(self) -> Dict[str, int]:
        return {"unlocked": sum(1 for a in CATALOG if self.is_unlocked(a.id)), "total": len(CATALOG)}

    def counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    # -------------------------------------------------------------- mutations

    def increment(self, name: str, by: int = 1) -> int:
        """Bump an activity counter and persist it. Returns the new value."""
        with self._lock:
            value = self._counters.get(name, 0) + by
            self._counters[name] = value
            save_logged(self.store, COUNTERS_KEY, dict(self._counters))
        return value

    def check_and_unlock(
        self,
        achievement_ids: Iterable[str],
        value: Any,
        plants: Optional[Sequence[Plant]] = None,
    ) -> List[AchievementView]:
        """
        Unlock every listed achievement whose predicate now holds.

        Already-unlocked achievements are skipped, so unlocks are monotonic.
        Returns the achievements unlocked by this call.
        """
        plants = list(plants or [])
        newly: List[AchievementView] = []
        with self._lock:
            for achievement_id in achievement_ids:
                achievement = CATALOG_BY_ID.get(achievement_id)
                if achievement is None:
                    logger.warning(f"[Achievements] Unknown achievement id {achievement_id!r}")
                    continue
                if self._unlocked.get(achievement_id):
                    continue
                if achievement.check(value, plants):
                    self._unlocked[achievement_id] = True
                    newly.append(_view(achievement, True))
            if newly:
                save_logged(self.store, ACHIEVEMENTS_KEY, dict(self._unlocked))
        for a in newly:
            logger.info(f"[Achievements] Unlocked {a.id} ({a.rarity})")
        return newly

    def record(self, counter_name: str, plants: Optional[Sequence[Plant]] = None) -> List[AchievementView]:
        """Increment a counter and check the achievements that depend on it."""
        value = self.increment(counter_name)
        return self.check_and_unlock(COUNTER_ACHIEVEMENTS.get(counter_name, ()), value, plants)

    def record_plant_count(self, plants: Sequence[Plant]) -> List[AchievementView]:
        """Check collection-size and species achievements against the current garden."""
        return self.check_and_unlock(PLANT_COUNT_IDS, len(plants), plants)
