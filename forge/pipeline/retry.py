"""Retry coordination: turn the stored RetryInfo into exactly one recovery.

    fix_json + faulty text    → RepairSegment (one repair attempt)
    resend_original outline   → regenerate outline, drop world and segment
    resend_original world     → regenerate world, drop segment
    resend_original examine   → re-run examination only
    resend_original image     → re-request the current segment's image
    resend_original custom    → replay the custom action
    resend_original story     → replay the stored narrative prompt

A failed repair is demoted to resend_original carrying the ORIGINAL prompt,
so the next retry never loops on repair.
"""

from __future__ import annotations

from enum import Enum

from forge import prompts
from forge.errors import RequestInFlightError, TransitionError
from forge.models import ErrorScope, GameState, Phase, RetryInfo, RetryTarget, RetryType

from .events import (
    Effect,
    FetchCustomAction,
    FetchExamination,
    FetchImage,
    FetchOutline,
    FetchSegment,
    FetchWorld,
    RepairSegment,
)


class RecoveryAction(str, Enum):
    RETRY = "retry"
    CONTINUE_WITHOUT_IMAGE = "continue_without_image"
    RELOAD_IMAGE = "reload_image"
    NEW_GAME = "new_game"


def demote_repair(
    original_prompt: str, custom_action_text: str | None = None, ruled_impossible: bool = False
) -> RetryInfo:
    """RetryInfo for the next attempt after a repair failed."""
    return RetryInfo(
        type=RetryType.RESEND_ORIGINAL,
        target=RetryTarget.CUSTOM_ACTION if custom_action_text else RetryTarget.STORY,
        original_prompt=original_prompt,
        custom_action_text=custom_action_text,
        ruled_impossible=ruled_impossible,
    )


def available_actions(state: GameState) -> list[RecoveryAction]:
    """Recovery affordances the UI should offer for the current error."""
    error = state.error
    if error is None:
        return [RecoveryAction.NEW_GAME] if state.phase is Phase.ENDED else []
    if error.scope is ErrorScope.IMAGE:
        actions = [RecoveryAction.CONTINUE_WITHOUT_IMAGE]
        if state.last_retry_info is not None:
            actions.append(RecoveryAction.RELOAD_IMAGE)
        actions.append(RecoveryAction.NEW_GAME)
        return actions
    if state.last_retry_info is not None:
        return [RecoveryAction.RETRY, RecoveryAction.NEW_GAME]
    return [RecoveryAction.NEW_GAME]


def plan_retry(state: GameState) -> tuple[GameState, list[Effect]]:
    """Consume the retry request. `state` is already a private copy."""
    info = state.last_retry_info
    if info is None:
        raise TransitionError("There is nothing to retry")
    if state.narrative_in_flight:
        raise RequestInFlightError("A request is already in progress")

    state.error = None
    epoch = state.epoch

    if info.type is RetryType.FIX_JSON and info.faulty_json_text:
        state.is_loading_story = True
        return state, [RepairSegment(
            epoch=epoch,
            faulty_json_text=info.faulty_json_text,
            original_prompt=info.original_prompt or "",
            custom_action_text=info.custom_action_text,
            ruled_impossible=info.ruled_impossible,
        )]

    target = info.target
    genre, persona = state.selected_genre, state.selected_persona

    if target is RetryTarget.OUTLINE:
        assert genre and persona
        state.phase = Phase.GENERATING_OUTLINE
        state.adventure_outline = None
        state.world_details = None
        state.current_segment = None
        state.current_stage_index = 0
        state.is_loading_outline = True
        return state, [FetchOutline(epoch=epoch, genre=genre, persona=persona)]

    if target is RetryTarget.WORLD:
        assert genre and persona and state.adventure_outline
        state.phase = Phase.GENERATING_WORLD
        state.world_details = None
        state.current_segment = None
        state.is_loading_world = True
        return state, [FetchWorld(
            epoch=epoch, outline=state.adventure_outline, genre=genre, persona=persona,
        )]

    if target is RetryTarget.EXAMINE:
        state.is_loading_examination = True
        return state, [FetchExamination(epoch=epoch, prompt=prompts.examination_prompt(state))]

    if target is RetryTarget.IMAGE:
        segment = state.current_segment
        if segment is None or not segment.image_prompt:
            raise TransitionError("The current scene has no image to reload")
        state.is_loading_image = True
        return state, [FetchImage(
            epoch=epoch, segment_seq=state.segment_seq, prompt=segment.image_prompt,
        )]

    state.is_loading_story = True
    if info.custom_action_text:
        prompt = info.original_prompt or prompts.custom_action_prompt(state, info.custom_action_text)
        return state, [FetchCustomAction(
            epoch=epoch, prompt=prompt, action_text=info.custom_action_text,
            ruled_impossible=info.ruled_impossible,
        )]
    return state, [FetchSegment(
        epoch=epoch,
        prompt=info.original_prompt or "",
        is_initial=state.current_segment is None,
        is_retry=True,
    )]
