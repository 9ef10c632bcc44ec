"""
Plant Intelligence Service - photo identification, diagnosis and care guidance.

Each function is a single validated structured call through the AIClient.
There is no rule-based fallback: when no model is configured, or the reply
is still invalid after a retry, AdviceGenerationFailed is raised and the
route reports it to the user.

All functions take the AIClient and the per-call AIConfig explicitly.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence

from ..constants import PLACEMENT_BOTH
from .ai import AIClient, AIConfig, system_message, user_message
from .schemas import (
    CareTips,
    ChatAnswer,
    JournalEntry,
    Nicknames,
    PlacementFeedback,
    PlacementRecommendation,
    PlantHealthCheck,
    PlantIdentification,
    RegionDiagnosis,
)

logger = logging.getLogger(__name__)

_BOTANIST = "You are an expert botanist."

_REGION_GUIDE = (
    "For each region of interest (leaves, stems, flowers, or visible signs of distress such as yellowing "
    "leaves, spots or pests) provide a label, a brief description of its condition, and a normalized "
    "bounding box with coordinates from 0 to 1. If you identify a problem, be specific "
    "(e.g. \"Leaf with signs of powdery mildew\"). If a region is healthy, state that."
)


def identify_plant(ai: AIClient, config: AIConfig, photo_data_uri: str) -> PlantIdentification:
    """Identify the species in a photo. ``isPlant`` is false for non-plants."""
    messages = [
        system_message(f"{_BOTANIST} You specialize in plant identification from photos."),
        user_message(
            "Identify the plant species in this photo. Return the common name, Latin name, a confidence "
            "level (0-1), and an estimate of the plant's age. If the photo is not a plant, return "
            "isPlant as false.",
            images=[photo_data_uri],
        ),
    ]
    result = ai.generate_structured(messages, PlantIdentification, config, temperature=0.2)
    logger.info(f"[PlantIntel] Identified {result.common_name!r} (confidence {result.confidence:.2f})")
    return result


def check_plant_health(
    ai: AIClient,
    config: AIConfig,
    photo_data_uri: str,
    notes: Optional[str] = None,
    current_common_name: Optional[str] = None,
) -> PlantHealthCheck:
    """
    Diagnose plant health from a photo and optional notes.

    Also re-identifies the species. A broader category or synonym of the
    current name must keep the current name.
    """
    lines = ["Analyze the photo and notes to determine the health of the plant."]
    if notes:
        lines.append(f"User notes: {notes}")
    if current_common_name:
        lines.append(f"The plant is currently named: **{current_common_name}**.")
    lines += [
        "1. Identify the species: common name, Latin name and a confidence score (0-1). "
        "If the user's current name is only a broader category or a less common synonym of your "
        "identification (e.g. 'Corn Plant' vs 'Dracaena'), you MUST return the current name. "
        "Only change it if you are confident it's a completely different species.",
        "2. Decide whether the plant is healthy and give a concise diagnosis.",
        f"3. {_REGION_GUIDE}",
    ]
    messages = [
        system_message(f"{_BOTANIST} You specialize in diagnosing plant illnesses and identifying species."),
        user_message("\n".join(lines), images=[photo_data_uri]),
    ]
    return ai.generate_structured(messages, PlantHealthCheck, config, temperature=0.2)


def diagnose_regions(ai: AIClient, config: AIConfig, photo_data_uri: str) -> RegionDiagnosis:
    messages = [
        system_message(_BOTANIST),
        user_message(f"Analyze this photo of a plant. {_REGION_GUIDE} Return all identified regions.",
                     images=[photo_data_uri]),
    ]
    return ai.generate_structured(messages, RegionDiagnosis, config, temperature=0.2)


def get_care_tips(
    ai: AIClient,
    config: AIConfig,
    species: str,
    estimated_age: Optional[str] = None,
    location: Optional[str] = None,
    environment_notes: Optional[str] = None,
    last_watered: Optional[str] = None,
    placement: Optional[str] = None,
) -> CareTips:
    """
    General (not forecast-based) care tips plus a watering schedule.

    The returned wateringFrequency/Time/Amount seed the plant's schedule.
    """
    details = [f"Plant species: {species}"]
    if placement:
        details.append(
            f"Placement: **{placement}**. Indoor plants are more sheltered than outdoor plants; "
            "your advice MUST reflect this."
        )
    if estimated_age:
        details.append(f"Estimated age: {estimated_age}")
    if location:
        details.append(f"User's location: {location}")
    if environment_notes:
        details.append(f"Environment notes: {environment_notes}")
    if last_watered:
        details.append(f"Last watered: {last_watered}")

    messages = [
        system_message(
            "You are an expert horticulturalist. Provide general care tips that are not based on a specific "
            "weather forecast. Use Markdown and an emoji per section: 💧 Watering, ☀️ Sunlight, "
            "🌱 Fertilizing, ✂️ Pruning. Take the environment, location and age into account for the "
            "watering schedule. Determine the BEST time of day to water (morning is usually best so leaves "
            "dry and fungus is avoided) as a friendly string with a range, like \"Morning (6-9 AM)\". "
            "Use metric units (ml)."
        ),
        user_message("\n".join(details)),
    ]
    return ai.generate_structured(messages, CareTips, config, temperature=0.4)


def get_nicknames(ai: AIClient, config: AIConfig, common_name: str, latin_name: str) -> Nicknames:
    messages = [
        system_message("You are a creative assistant helping a user name their new plant."),
        user_message(
            "Generate 3 or 4 short, fun and creative nicknames for this plant.\n"
            f"Common name: {common_name}\nLatin name: {latin_name}"
        ),
    ]
    return ai.generate_structured(messages, Nicknames, config, temperature=0.9)


def get_placement(ai: AIClient, config: AIConfig, species: str) -> PlacementRecommendation:
    messages = [
        system_message("You are a helpful gardening assistant."),
        user_message(f'Based on the plant species "{species}", is it typically grown indoors, outdoors, or both?'),
    ]
    return ai.generate_structured(messages, PlacementRecommendation, config, temperature=0.1)


def get_placement_feedback(
    ai: AIClient,
    config: AIConfig,
    species: str,
    recommended: str,
    choice: str,
) -> PlacementFeedback:
    """Short feedback on the user's placement choice vs the recommendation."""
    if recommended == PLACEMENT_BOTH:
        guidance = "The recommendation was Indoor/Outdoor, so either choice is good; just be encouraging."
    else:
        guidance = (
            "If it's a good choice, affirm it (e.g. \"Great choice! This plant loves being indoors.\"). "
            "If it's potentially a bad choice, offer a gentle warning and one key tip."
        )
    messages = [
        system_message("You are a helpful gardening assistant."),
        user_message(
            f'Your initial recommendation for a "{species}" was "{recommended}". '
            f'The user has decided to place it "{choice}". Is this a good choice? '
            f"Give a short, encouraging and helpful message. {guidance}"
        ),
    ]
    return ai.generate_structured(messages, PlacementFeedback, config, temperature=0.5)


def chat_about_plant(
    ai: AIClient,
    config: AIConfig,
    plant_name: str,
    question: str,
    context: Optional[str] = None,
    journal: Sequence[JournalEntry] = (),
    placement: Optional[str] = None,
    photo_data_uri: Optional[str] = None,
) -> ChatAnswer:
    """
    Answer a question about a plant, using care tips, journal and photo as context.

    ``updatedWateringAmount`` is set only when the conversation leads to a
    new amount (e.g. the user mentioned pot size).
    """
    parts: List[str] = [f"Plant name: {plant_name}", f"Question: {question}"]
    if placement:
        parts.append(f"The plant is placed: **{placement}**. Take this into account.")
    if photo_data_uri:
        parts.append("The user also provided a photo for context. Analyze it as part of your answer.")
    if context:
        parts.append(f"## Context\n{context}")
    if journal:
        entries = "\n".join(f"- **{e.date.date().isoformat()}**: {e.notes}" for e in journal)
        parts.append(
            "## Plant Journal\nUse these entries to spot trends, past events or health notes.\n" + entries
        )

    messages = [
        system_message(
            "You are Sage, a helpful and friendly gardening assistant. Answer the user's question about "
            "their plant clearly and concisely. Use Markdown where it helps. If the question leads to a "
            "new watering amount recommendation, return it in updatedWateringAmount (e.g. '250-500ml')."
        ),
        user_message("\n\n".join(parts), images=[photo_data_uri] if photo_data_uri else ()),
    ]
    return ai.generate_structured(messages, ChatAnswer, config, temperature=0.7)
