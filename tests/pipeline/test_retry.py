"""Tests for retry planning and recovery affordances."""

import pytest

from forge.errors import RequestInFlightError, TransitionError
from forge.models import (
    ErrorScope,
    GameError,
    GameState,
    Phase,
    RetryInfo,
    RetryTarget,
    RetryType,
)
from forge.pipeline import (
    FetchCustomAction,
    FetchExamination,
    FetchImage,
    FetchOutline,
    FetchSegment,
    FetchWorld,
    RecoveryAction,
    RepairSegment,
    available_actions,
    demote_repair,
    plan_retry,
)

from tests.stubs import playing_state


def _failed(state, target, type=RetryType.RESEND_ORIGINAL, scope=ErrorScope.NARRATIVE, **info):
    return state.model_copy(update={
        "error": GameError(kind="transport", scope=scope, message="boom"),
        "last_retry_info": RetryInfo(type=type, target=target, **info),
    })


# ── demote_repair ────────────────────────────────────────


def test_demote_story_repair():
    info = demote_repair("original prompt")
    assert info.type is RetryType.RESEND_ORIGINAL
    assert info.target is RetryTarget.STORY
    assert info.original_prompt == "original prompt"


def test_demote_custom_action_repair():
    info = demote_repair("original prompt", "Pray")
    assert info.target is RetryTarget.CUSTOM_ACTION
    assert info.custom_action_text == "Pray"
    assert not info.ruled_impossible
    assert demote_repair("original prompt", "Fly", ruled_impossible=True).ruled_impossible


# ── available_actions ────────────────────────────────────


def test_no_actions_without_error():
    assert available_actions(playing_state()) == []


def test_new_game_after_ending():
    state = playing_state(phase=Phase.ENDED, is_game_ended=True)
    assert available_actions(state) == [RecoveryAction.NEW_GAME]


def test_narrative_error_offers_retry():
    state = _failed(playing_state(), RetryTarget.STORY)
    assert available_actions(state) == [RecoveryAction.RETRY, RecoveryAction.NEW_GAME]


def test_unretryable_error_offers_new_game_only():
    state = playing_state(error=GameError(kind="server_configuration", message="bad key"))
    assert available_actions(state) == [RecoveryAction.NEW_GAME]


def test_image_error_offers_continue_and_reload():
    state = _failed(playing_state(), RetryTarget.IMAGE, scope=ErrorScope.IMAGE)
    assert available_actions(state) == [
        RecoveryAction.CONTINUE_WITHOUT_IMAGE,
        RecoveryAction.RELOAD_IMAGE,
        RecoveryAction.NEW_GAME,
    ]


# ── plan_retry ───────────────────────────────────────────


def test_nothing_to_retry():
    with pytest.raises(TransitionError):
        plan_retry(playing_state())


def test_retry_while_in_flight():
    state = _failed(playing_state(is_loading_story=True), RetryTarget.STORY, original_prompt="p")
    with pytest.raises(RequestInFlightError):
        plan_retry(state)


def test_fix_json_plans_repair():
    state = _failed(
        playing_state(), RetryTarget.STORY,
        type=RetryType.FIX_JSON, original_prompt="original", faulty_json_text="{broken",
    )
    state, effects = plan_retry(state)
    assert state.error is None
    assert state.is_loading_story
    assert effects == [RepairSegment(
        epoch=state.epoch, faulty_json_text="{broken", original_prompt="original",
    )]


def test_outline_retry_clears_downstream():
    state = _failed(playing_state(stage_index=2), RetryTarget.OUTLINE)
    state, effects = plan_retry(state)
    assert state.phase is Phase.GENERATING_OUTLINE
    assert state.adventure_outline is None
    assert state.world_details is None
    assert state.current_segment is None
    assert state.current_stage_index == 0
    assert effects == [FetchOutline(epoch=state.epoch, genre="Dark Fantasy", persona="Brave Warrior")]


def test_world_retry_keeps_outline():
    state = _failed(playing_state(), RetryTarget.WORLD)
    state, effects = plan_retry(state)
    assert state.phase is Phase.GENERATING_WORLD
    assert state.adventure_outline is not None
    assert state.world_details is None
    assert isinstance(effects[0], FetchWorld)


def test_examine_retry():
    state, effects = plan_retry(_failed(playing_state(), RetryTarget.EXAMINE))
    assert state.is_loading_examination
    assert isinstance(effects[0], FetchExamination)


def test_image_retry_uses_current_sequence():
    state = _failed(playing_state(segment_seq=4), RetryTarget.IMAGE, scope=ErrorScope.IMAGE)
    state, effects = plan_retry(state)
    assert effects == [FetchImage(epoch=state.epoch, segment_seq=4, prompt="A ruined chapel under a black sun")]


def test_custom_action_retry_replays_prompt():
    state = _failed(
        playing_state(), RetryTarget.CUSTOM_ACTION,
        original_prompt="action prompt", custom_action_text="Pray",
    )
    state, effects = plan_retry(state)
    assert effects == [FetchCustomAction(epoch=state.epoch, prompt="action prompt", action_text="Pray")]


def test_custom_action_retry_keeps_infeasible_verdict():
    state = _failed(
        playing_state(), RetryTarget.CUSTOM_ACTION,
        original_prompt="action prompt", custom_action_text="Fly", ruled_impossible=True,
    )
    state, [fetch] = plan_retry(state)
    assert fetch.ruled_impossible


def test_custom_action_repair_keeps_infeasible_verdict():
    state = _failed(
        playing_state(), RetryTarget.CUSTOM_ACTION, type=RetryType.FIX_JSON,
        original_prompt="action prompt", faulty_json_text="{", custom_action_text="Fly",
        ruled_impossible=True,
    )
    state, [repair] = plan_retry(state)
    assert isinstance(repair, RepairSegment)
    assert repair.ruled_impossible


def test_story_retry_resends_original_prompt():
    state = _failed(playing_state(), RetryTarget.STORY, original_prompt="scene prompt")
    state, effects = plan_retry(state)
    [fetch] = effects
    assert isinstance(fetch, FetchSegment)
    assert fetch.prompt == "scene prompt"
    assert fetch.is_retry
    assert not fetch.is_initial


def test_initial_scene_retry_stays_initial():
    state = _failed(
        playing_state(current_segment=None), RetryTarget.STORY, original_prompt="opening prompt",
    )
    _, effects = plan_retry(state)
    assert effects[0].is_initial


def test_retry_leaves_fresh_state_untouched():
    state = GameState()
    with pytest.raises(TransitionError):
        plan_retry(state)
    assert state.phase is Phase.SELECTING_GENRE
