"""Typed content requests: prompt → provider → JSON → shape check → model.

Each ContentClient coroutine either returns a validated domain object or
raises a ContentError subclass. Nothing here decides what a failure means
for the game; that is the state machine's job.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from forge import prompts
from forge.errors import IMAGE_QUOTA_MESSAGE, QuotaExceeded, ShapeValidationFailure
from forge.llm import Provider
from forge.models import (
    AdventureOutline,
    AdventureStage,
    Choice,
    FeasibilityVerdict,
    GameState,
    InventoryItem,
    StorySegment,
    WorldDetails,
)
from forge.pipeline.extractors import extract_json
from forge.schemas import (
    EXAMINATION_SCHEMA,
    FEASIBILITY_SCHEMA,
    OUTLINE_SCHEMA,
    STORY_SEGMENT_SCHEMA,
    WORLD_SCHEMA,
)
from forge.storage import slugify

logger = logging.getLogger(__name__)

STAGE_COUNT = 3

_WORLD_LIST_FIELDS = (
    "keyEnvironmentalFeatures",
    "dominantSocietiesOrFactions",
    "uniqueCreaturesOrMonsters",
    "culturalNormsOrTaboos",
)
_WORLD_TEXT_FIELDS = ("genreClarification", "magicSystemOverview", "briefHistoryHook")


def new_item(name: str, description: str) -> InventoryItem:
    """Build an inventory item whose id is derived from its name."""
    return InventoryItem(id=slugify(name), name=name.strip(), description=description.strip())


# ── Shape validation ─────────────────────────────────────


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def validate_outline(data: Any) -> AdventureOutline:
    if not isinstance(data, dict) or not _is_text(data.get("title")) or not _is_text(data.get("overallGoal")):
        raise ShapeValidationFailure(
            "Received incomplete or malformed adventure outline from AI. "
            "Essential fields missing."
        )
    stages = data.get("stages")
    if not isinstance(stages, list) or len(stages) != STAGE_COUNT:
        count = len(stages) if isinstance(stages, list) else 0
        raise ShapeValidationFailure(
            f"Adventure outline must have exactly {STAGE_COUNT} stages, received {count}."
        )
    parsed: list[AdventureStage] = []
    for index, stage in enumerate(stages):
        if not isinstance(stage, dict) or not all(
            _is_text(stage.get(key)) for key in ("title", "description", "objective")
        ):
            raise ShapeValidationFailure(
                f"Stage {index + 1} in the adventure outline is malformed "
                "or missing required string fields."
            )
        parsed.append(AdventureStage(
            title=stage["title"], description=stage["description"], objective=stage["objective"],
        ))
    return AdventureOutline(title=data["title"], overall_goal=data["overallGoal"], stages=parsed)


def validate_world(data: Any) -> WorldDetails:
    malformed = ShapeValidationFailure(
        "Received incomplete or malformed world details from AI. "
        "Essential fields are missing or have incorrect types."
    )
    if not isinstance(data, dict) or not _is_text(data.get("worldName")):
        raise malformed
    for key in _WORLD_TEXT_FIELDS:
        if not isinstance(data.get(key), str):
            raise malformed
    for key in _WORLD_LIST_FIELDS:
        value = data.get(key)
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise malformed
    return WorldDetails.model_validate(data)


def _validate_choice(index: int, choice: Any) -> Choice:
    if (
        not isinstance(choice, dict)
        or not isinstance(choice.get("text"), str)
        or not isinstance(choice.get("outcomePrompt"), str)
        or not isinstance(choice.get("signalsStageCompletion"), bool)
        or not isinstance(choice.get("leadsToFailure"), bool)
    ):
        raise ShapeValidationFailure(
            f"Choice {index + 1} is malformed. Expected 'text', 'outcomePrompt', "
            f"'signalsStageCompletion', 'leadsToFailure'. Received: {choice!r}"
        )
    return Choice(
        text=choice["text"],
        outcome_prompt=choice["outcomePrompt"],
        signals_stage_completion=choice["signalsStageCompletion"],
        leads_to_failure=choice["leadsToFailure"],
    )


def _item_found(raw: Any) -> InventoryItem | None:
    if not raw:
        return None
    if (
        isinstance(raw, dict)
        and _is_text(raw.get("name"))
        and isinstance(raw.get("description"), str)
    ):
        return new_item(raw["name"], raw["description"])
    logger.warning("Dropping itemFound with invalid structure or empty name: %r", raw)
    return None


def validate_segment(data: Any) -> StorySegment:
    """Check a story segment payload; command-only segments must have no choices."""
    if (
        not isinstance(data, dict)
        or not isinstance(data.get("sceneDescription"), str)
        or not isinstance(data.get("imagePrompt"), str)
    ):
        raise ShapeValidationFailure(
            "Received incomplete or malformed story data from AI. Essential fields missing."
        )
    choices = data.get("choices", [])
    if not isinstance(choices, list):
        raise ShapeValidationFailure("Story segment 'choices' is not a list.")

    command_only = data.get("isUserInputCommandOnly") is True
    if command_only and choices:
        raise ShapeValidationFailure(
            "Story segment is inconsistent: 'isUserInputCommandOnly' is true "
            f"but {len(choices)} choices were given."
        )

    def flag(key: str) -> bool:
        return data.get(key) is True

    return StorySegment(
        scene_description=data["sceneDescription"],
        choices=[_validate_choice(i, c) for i, c in enumerate(choices)],
        image_prompt=data["imagePrompt"],
        is_final_scene=flag("isFinalScene"),
        is_failure_scene=flag("isFailureScene"),
        is_user_input_command_only=command_only,
        item_found=_item_found(data.get("itemFound")),
    )


def validate_examination(data: Any) -> str:
    text = data.get("examinationText") if isinstance(data, dict) else None
    if not _is_text(text):
        raise ShapeValidationFailure(
            "Received incomplete or malformed examination data from AI. "
            "'examinationText' field is missing or empty."
        )
    return text


def validate_verdict(data: Any) -> FeasibilityVerdict:
    if (
        not isinstance(data, dict)
        or not isinstance(data.get("isPossible"), bool)
        or not isinstance(data.get("reason"), str)
    ):
        raise ShapeValidationFailure(
            "Received incomplete or malformed feasibility evaluation from AI."
        )
    suggestion = data.get("suggestedOutcomeSummaryIfPossible")
    return FeasibilityVerdict(
        is_possible=data["isPossible"],
        reason=data["reason"],
        suggested_outcome_summary_if_possible=suggestion if isinstance(suggestion, str) else None,
    )


def _is_decodable_image(url: str) -> bool:
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:image/") or not payload:
        return False
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


# ── Client ───────────────────────────────────────────────


class ContentClient:
    """One coroutine per narrative need, all backed by a single Provider."""

    def __init__(self, provider: Provider, text_model: str) -> None:
        self._provider = provider
        self._text_model = text_model

    async def _request_json(
        self, context: str, prompt: str, schema: dict[str, Any], is_fix_attempt: bool = False
    ) -> Any:
        logger.debug("content request %s model=%s prompt_len=%d", context, self._text_model, len(prompt))
        raw_text = await self._provider.generate_text(self._text_model, prompt, schema)
        return extract_json(raw_text, is_fix_attempt=is_fix_attempt)

    async def outline(self, genre: str, persona: str) -> AdventureOutline:
        data = await self._request_json("outline", prompts.outline_prompt(genre, persona), OUTLINE_SCHEMA)
        return validate_outline(data)

    async def world(self, outline: AdventureOutline, genre: str, persona: str) -> WorldDetails:
        prompt = prompts.world_prompt(outline, genre, persona)
        return validate_world(await self._request_json("world", prompt, WORLD_SCHEMA))

    async def story_segment(self, prompt: str, is_initial: bool = False) -> StorySegment:
        """Request the next scene. `prompt` is the scene prompt without general instructions."""
        full_prompt = prompts.segment_request_prompt(prompt, is_initial=is_initial)
        return validate_segment(await self._request_json("story", full_prompt, STORY_SEGMENT_SCHEMA))

    async def custom_action_outcome(self, prompt: str) -> StorySegment:
        return validate_segment(await self._request_json("custom_action", prompt, STORY_SEGMENT_SCHEMA))

    async def evaluate_custom_action(self, state: GameState, action_text: str) -> FeasibilityVerdict:
        prompt = prompts.feasibility_prompt(state, action_text)
        return validate_verdict(await self._request_json("feasibility", prompt, FEASIBILITY_SCHEMA))

    async def examine(self, prompt: str) -> str:
        return validate_examination(await self._request_json("examine", prompt, EXAMINATION_SCHEMA))

    async def repair_story_json(self, faulty_json_text: str, original_prompt: str) -> StorySegment:
        prompt = prompts.repair_prompt(faulty_json_text, original_prompt)
        data = await self._request_json("repair", prompt, STORY_SEGMENT_SCHEMA, is_fix_attempt=True)
        return validate_segment(data)

    async def image(self, prompt: str) -> str:
        """Generate a scene image. Returns "" when nothing usable came back."""
        logger.debug("content request image prompt_len=%d", len(prompt))
        try:
            url = await self._provider.generate_image(prompt)
        except QuotaExceeded as e:
            raise QuotaExceeded(IMAGE_QUOTA_MESSAGE) from e
        if not url or not _is_decodable_image(url):
            logger.warning("No usable image generated for prompt (len=%d)", len(prompt))
            return ""
        return url
