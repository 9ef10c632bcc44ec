"""Achievement unlocks: thresholds, monotonicity and persistence."""

from verdantwise.services.achievements import (
    CATALOG,
    COUNTER_WATERINGS,
    AchievementStore,
)


def _garden(plant_factory, n, species=None):
    return [
        plant_factory(id=f"p{i}", customName=f"Plant {i}", commonName=(species or f"Species {i}"))
        for i in range(n)
    ]


def test_catalog_ids_are_unique():
    ids = [a.id for a in CATALOG]
    assert len(ids) == len(set(ids))


def test_urban_jungle_unlocks_at_twenty_five(store, plant_factory):
    achievements = AchievementStore(store)

    achievements.record_plant_count(_garden(plant_factory, 24))
    assert not achievements.is_unlocked("urban_jungle")

    newly = achievements.record_plant_count(_garden(plant_factory, 25))
    assert "urban_jungle" in [a.id for a in newly]
    assert achievements.is_unlocked("urban_jungle")


def test_unlocks_survive_deleting_plants(store, plant_factory):
    achievements = AchievementStore(store)
    achievements.record_plant_count(_garden(plant_factory, 5))
    assert achievements.is_unlocked("plant_collector")

    assert achievements.record_plant_count(_garden(plant_factory, 1)) == []
    assert achievements.is_unlocked("plant_collector")


def test_unlocks_are_reported_once(store, plant_factory):
    achievements = AchievementStore(store)
    first = achievements.record_plant_count(_garden(plant_factory, 1))
    again = achievements.record_plant_count(_garden(plant_factory, 2))
    assert [a.id for a in first] == ["first_plant"]
    assert again == []


def test_unlocks_and_counters_persist(store, plant_factory):
    achievements = AchievementStore(store)
    for _ in range(10):
        achievements.record(COUNTER_WATERINGS, [])

    reloaded = AchievementStore(store)
    assert reloaded.is_unlocked("water_warrior_10")
    assert reloaded.counter(COUNTER_WATERINGS) == 10
    assert reloaded.counts()["unlocked"] == 1


def test_species_collector_counts_distinct_species(store, plant_factory):
    achievements = AchievementStore(store)

    achievements.record_plant_count(_garden(plant_factory, 6, species="Pothos"))
    assert not achievements.is_unlocked("species_collector_5")

    achievements.record_plant_count(_garden(plant_factory, 5))
    assert achievements.is_unlocked("species_collector_5")


def test_unnamed_species_do_not_count(store, plant_factory):
    achievements = AchievementStore(store)
    garden = _garden(plant_factory, 4) + [plant_factory(id="p9", customName="Mystery", commonName="")]

    achievements.record_plant_count(garden)
    assert not achievements.is_unlocked("species_collector_5")


def test_listing_covers_whole_catalog(store):
    views = AchievementStore(store).list()
    assert len(views) == len(CATALOG)
    assert not any(v.unlocked for v in views)
