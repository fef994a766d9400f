"""The adventure reducer: reduce(state, event) -> (state, effects).

All game-state mutation happens here. The reducer never performs I/O; it
returns Effect values (fetch this, save that) which the runner executes and
answers with result events.

Guards:
  - Result events from an older epoch (before a restart or new adventure)
    are dropped.
  - Result events arriving when nothing of that kind is loading are dropped.
  - Image results for a superseded segment (stale segment_seq) are dropped.
  - Player intents while a narrative request runs raise RequestInFlightError;
    intents that make no sense in the current phase raise TransitionError.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone

from forge import prompts
from forge.errors import (
    IMAGE_QUOTA_MESSAGE,
    Failure,
    FailureKind,
    RequestInFlightError,
    TransitionError,
)
from forge.models import (
    ErrorScope,
    GameError,
    GameState,
    JournalEntry,
    JournalType,
    Phase,
    RetryInfo,
    RetryTarget,
    RetryType,
    StorySegment,
    persona_title,
)
from forge.storage import is_save_eligible

from .events import (
    ChoiceSelected,
    ClearSnapshot,
    ContinueWithoutImage,
    CustomActionSubmitted,
    DisableImagesDurably,
    Effect,
    Event,
    ExaminationDismissed,
    ExaminationFailed,
    ExaminationLoaded,
    ExamineRequested,
    FetchCustomAction,
    FetchExamination,
    FetchImage,
    FetchOutline,
    FetchSegment,
    FetchWorld,
    GenreSelected,
    ImageFailed,
    ImageLoaded,
    OutlineFailed,
    OutlineLoaded,
    PersonaSelected,
    Restarted,
    ResultEvent,
    Resumed,
    RetryRequested,
    SaveSnapshot,
    SegmentFailed,
    SegmentLoaded,
    SegmentSource,
    WorldFailed,
    WorldLoaded,
)
from .retry import demote_repair, plan_retry

logger = logging.getLogger(__name__)

Transition = tuple[GameState, list[Effect]]

# Phrases the narrator uses when a custom action could not be carried out.
_IMPOSSIBLE_RE = re.compile(
    r"\b(impossible|cannot be done|can't be done|not possible|isn't possible|not feasible)\b",
    re.IGNORECASE,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _journal(state: GameState, type: JournalType, content: str) -> None:
    state.journal.append(JournalEntry(type=type, content=content, timestamp=_now()))


def _is_quota_notice(entry: JournalEntry) -> bool:
    return entry.type == "system" and entry.content.startswith(IMAGE_QUOTA_MESSAGE)


def _require_playing(state: GameState) -> StorySegment:
    if state.narrative_in_flight:
        raise RequestInFlightError("A request is already in progress")
    if state.phase is not Phase.PLAYING or state.current_segment is None:
        raise TransitionError(f"Cannot act on a scene while {state.phase.value}")
    return state.current_segment


def _narrative_error(state: GameState, failure: Failure, message: str, retry: RetryInfo | None) -> None:
    state.error = GameError(kind=failure.kind.value, scope=ErrorScope.NARRATIVE, message=message)
    state.last_retry_info = retry if failure.retryable else None


def _wants_image(state: GameState, segment: StorySegment) -> bool:
    return (
        state.image_generation_enabled
        and not state.image_generation_permanently_disabled
        and bool(segment.image_prompt.strip())
        and not segment.is_final_scene
        and not segment.is_failure_scene
    )


# ── Selection ────────────────────────────────────────────


def _genre_selected(state: GameState, event: GenreSelected) -> Transition:
    if state.phase not in (Phase.SELECTING_GENRE, Phase.SELECTING_PERSONA):
        raise TransitionError(f"Cannot select a genre while {state.phase.value}")
    state.selected_genre = event.genre
    state.selected_persona = None
    state.adventure_outline = None
    state.world_details = None
    state.current_segment = None
    state.current_stage_index = 0
    state.inventory = []
    state.error = None
    state.last_retry_info = None
    state.journal = [
        entry for entry in state.journal
        if entry.type == "genre_selected" or _is_quota_notice(entry)
    ]
    _journal(state, "genre_selected", f"Selected genre: {event.genre}.")
    state.phase = Phase.SELECTING_PERSONA
    return state, []


def _persona_selected(state: GameState, event: PersonaSelected) -> Transition:
    if state.narrative_in_flight:
        raise RequestInFlightError("A request is already in progress")
    # Re-picking a persona is also allowed after outline or world generation failed.
    retry_phases = (Phase.GENERATING_OUTLINE, Phase.GENERATING_WORLD)
    if not (
        state.phase is Phase.SELECTING_PERSONA
        or (state.phase in retry_phases and state.error is not None)
    ):
        raise TransitionError(f"Cannot select a persona while {state.phase.value}")
    genre = state.selected_genre
    assert genre is not None

    if state.selected_persona != event.persona:
        state.inventory = []
    state.selected_persona = event.persona
    state.adventure_outline = None
    state.world_details = None
    state.current_segment = None
    state.current_stage_index = 0
    state.is_game_ended = False
    state.is_game_failed = False
    state.error = None
    state.last_retry_info = None
    state.epoch += 1

    title = persona_title(genre, event.persona)
    _journal(state, "persona_selected", f"{title}.")
    _journal(state, "system", f"Starting new adventure: {genre} - {title}. Generating outline...")
    state.phase = Phase.GENERATING_OUTLINE
    state.is_loading_outline = True
    return state, [FetchOutline(epoch=state.epoch, genre=genre, persona=event.persona)]


# ── Generation ───────────────────────────────────────────


def _outline_loaded(state: GameState, event: OutlineLoaded) -> Transition:
    if not state.is_loading_outline:
        logger.warning("Dropping outline result: no outline request is pending")
        return state, []
    assert state.selected_genre and state.selected_persona
    state.is_loading_outline = False
    state.adventure_outline = event.outline
    state.error = None
    state.last_retry_info = None
    _journal(state, "system", f'Adventure outline "{event.outline.title}" generated.')
    state.phase = Phase.GENERATING_WORLD
    state.is_loading_world = True
    return state, [FetchWorld(
        epoch=state.epoch,
        outline=event.outline,
        genre=state.selected_genre,
        persona=state.selected_persona,
    )]


def _outline_failed(state: GameState, event: OutlineFailed) -> Transition:
    if not state.is_loading_outline:
        return state, []
    state.is_loading_outline = False
    _narrative_error(
        state, event.failure,
        f"Failed to load adventure outline: {event.failure.message}",
        RetryInfo(type=RetryType.RESEND_ORIGINAL, target=RetryTarget.OUTLINE),
    )
    return state, []


def _world_loaded(state: GameState, event: WorldLoaded) -> Transition:
    if not state.is_loading_world:
        logger.warning("Dropping world result: no world request is pending")
        return state, []
    world = event.world
    state.is_loading_world = False
    state.world_details = world
    state.error = None
    state.last_retry_info = None
    _journal(
        state, "world_generated",
        f'World details for "{world.world_name}" established. '
        f"Genre clarification: {world.genre_clarification}.",
    )
    state.phase = Phase.PLAYING
    state.is_loading_story = True
    prompt = prompts.initial_scene_prompt(state)
    return state, [FetchSegment(epoch=state.epoch, prompt=prompt, is_initial=True)]


def _world_failed(state: GameState, event: WorldFailed) -> Transition:
    if not state.is_loading_world:
        return state, []
    state.is_loading_world = False
    _narrative_error(
        state, event.failure,
        f"Failed to load world details: {event.failure.message}",
        RetryInfo(type=RetryType.RESEND_ORIGINAL, target=RetryTarget.WORLD),
    )
    return state, []


# ── Play ─────────────────────────────────────────────────


def _choice_selected(state: GameState, event: ChoiceSelected) -> Transition:
    segment = _require_playing(state)
    if not 0 <= event.index < len(segment.choices):
        raise TransitionError(f"No choice at position {event.index}")
    outline = state.adventure_outline
    assert outline is not None
    choice = segment.choices[event.index]
    _journal(state, "choice", choice.text)

    previous_index = state.current_stage_index
    # Failure suppresses completion-driven advancement; the advance is kept even if the fetch fails.
    if (
        choice.signals_stage_completion
        and not choice.leads_to_failure
        and previous_index < len(outline.stages) - 1
    ):
        state.current_stage_index = previous_index + 1

    state.error = None
    state.last_retry_info = None
    state.examination_text = None
    state.is_loading_story = True
    prompt = prompts.next_scene_prompt(state, choice, previous_index)
    return state, [FetchSegment(epoch=state.epoch, prompt=prompt)]


def _custom_action_submitted(state: GameState, event: CustomActionSubmitted) -> Transition:
    _require_playing(state)
    text = event.text.strip()
    if not text:
        raise TransitionError("Custom action text is empty")
    _journal(state, "custom_action", text)
    state.error = None
    state.last_retry_info = None
    state.examination_text = None
    state.is_loading_story = True
    prompt = prompts.custom_action_prompt(state, text, event.verdict)
    ruled_impossible = event.verdict is not None and not event.verdict.is_possible
    return state, [FetchCustomAction(
        epoch=state.epoch, prompt=prompt, action_text=text, ruled_impossible=ruled_impossible,
    )]


def _accept_segment(state: GameState, segment: StorySegment) -> list[Effect]:
    """Apply a validated segment: journal, inventory, terminal flags, image."""
    _journal(state, "scene", segment.scene_description)

    item = segment.item_found
    if item is not None:
        if any(owned.id == item.id for owned in state.inventory):
            _journal(state, "system", f"You re-discovered {item.name}, but you already possess it.")
        else:
            state.inventory.append(item)
            _journal(state, "item_found", f"You found: {item.name}. ({item.description})")

    state.current_segment = segment.model_copy(update={"image_url": None})
    state.segment_seq += 1
    state.is_loading_story = False
    state.error = None
    state.last_retry_info = None
    state.is_game_ended = segment.is_final_scene
    state.is_game_failed = segment.is_failure_scene

    if state.is_game_ended or state.is_game_failed:
        state.phase = Phase.ENDED
        state.is_loading_image = False
        return [ClearSnapshot()]

    if _wants_image(state, segment):
        state.is_loading_image = True
        return [FetchImage(epoch=state.epoch, segment_seq=state.segment_seq, prompt=segment.image_prompt)]
    state.is_loading_image = False
    return []


def _segment_loaded(state: GameState, event: SegmentLoaded) -> Transition:
    if not state.is_loading_story:
        logger.warning("Dropping segment result: no story request is pending")
        return state, []
    if event.custom_action_text and (
        event.ruled_impossible or _IMPOSSIBLE_RE.search(event.segment.scene_description)
    ):
        _journal(state, "action_impossible", f"Your attempt could not succeed: {event.custom_action_text}")
    return state, _accept_segment(state, event.segment)


def _segment_failed(state: GameState, event: SegmentFailed) -> Transition:
    if not state.is_loading_story:
        return state, []
    state.is_loading_story = False
    failure = event.failure
    target = RetryTarget.CUSTOM_ACTION if event.custom_action_text else RetryTarget.STORY

    if event.source is SegmentSource.REPAIR:
        logger.warning("JSON repair failed: %s", failure.message)
        _narrative_error(
            state, failure,
            "AI could not fix the data. Click Retry to regenerate the scene. "
            f"(Fix error: {failure.message})",
            demote_repair(event.prompt, event.custom_action_text, event.ruled_impossible),
        )
    elif failure.kind is FailureKind.PARSE and failure.raw_text:
        _narrative_error(
            state, failure,
            f"Failed to parse story data: {failure.message} Click Retry to attempt a fix.",
            RetryInfo(
                type=RetryType.FIX_JSON,
                target=target,
                original_prompt=event.prompt,
                faulty_json_text=failure.raw_text,
                custom_action_text=event.custom_action_text,
                ruled_impossible=event.ruled_impossible,
            ),
        )
    else:
        _narrative_error(
            state, failure,
            f"Failed to load story scene: {failure.message}",
            RetryInfo(
                type=RetryType.RESEND_ORIGINAL,
                target=target,
                original_prompt=event.prompt,
                custom_action_text=event.custom_action_text,
                ruled_impossible=event.ruled_impossible,
            ),
        )
    return state, []


# ── Examination ──────────────────────────────────────────


def _examine_requested(state: GameState, event: ExamineRequested) -> Transition:
    _require_playing(state)
    state.error = None
    state.is_loading_examination = True
    return state, [FetchExamination(epoch=state.epoch, prompt=prompts.examination_prompt(state))]


def _examination_loaded(state: GameState, event: ExaminationLoaded) -> Transition:
    if not state.is_loading_examination:
        return state, []
    state.is_loading_examination = False
    state.examination_text = event.text
    state.last_retry_info = None
    _journal(state, "examine", event.text)
    return state, []


def _examination_failed(state: GameState, event: ExaminationFailed) -> Transition:
    if not state.is_loading_examination:
        return state, []
    state.is_loading_examination = False
    _narrative_error(
        state, event.failure,
        f"Failed to get details: {event.failure.message}",
        RetryInfo(type=RetryType.RESEND_ORIGINAL, target=RetryTarget.EXAMINE),
    )
    return state, []


def _examination_dismissed(state: GameState, event: ExaminationDismissed) -> Transition:
    state.examination_text = None
    return state, []


# ── Images ───────────────────────────────────────────────


def _image_is_current(state: GameState, segment_seq: int) -> bool:
    if segment_seq != state.segment_seq or state.current_segment is None:
        logger.warning(
            "Dropping image for superseded scene (seq %d, current %d)", segment_seq, state.segment_seq
        )
        return False
    return True


def _image_loaded(state: GameState, event: ImageLoaded) -> Transition:
    if not _image_is_current(state, event.segment_seq):
        return state, []
    assert state.current_segment is not None
    state.is_loading_image = False
    if event.image_url:
        state.current_segment.image_url = event.image_url
    if state.error is not None and state.error.scope is ErrorScope.IMAGE:
        state.error = None
        state.last_retry_info = None
    return state, []


def _image_failed(state: GameState, event: ImageFailed) -> Transition:
    if not _image_is_current(state, event.segment_seq):
        return state, []
    state.is_loading_image = False
    failure = event.failure

    if failure.kind is FailureKind.QUOTA:
        effects: list[Effect] = [DisableImagesDurably()]
        if not state.image_generation_permanently_disabled:
            _journal(state, "system", IMAGE_QUOTA_MESSAGE)
            state.notice = IMAGE_QUOTA_MESSAGE
        state.image_generation_permanently_disabled = True
        if state.error is not None and state.error.scope is ErrorScope.IMAGE:
            state.error = None
            state.last_retry_info = None
        return state, effects

    # A narrative error outranks an image error.
    if state.error is None or state.error.scope is ErrorScope.IMAGE:
        state.error = GameError(
            kind=failure.kind.value,
            scope=ErrorScope.IMAGE,
            message=f"Failed to load scene image: {failure.message}",
        )
        state.last_retry_info = (
            RetryInfo(type=RetryType.RESEND_ORIGINAL, target=RetryTarget.IMAGE)
            if failure.retryable else None
        )
    return state, []


def _continue_without_image(state: GameState, event: ContinueWithoutImage) -> Transition:
    if state.error is None or state.error.scope is not ErrorScope.IMAGE:
        raise TransitionError("There is no image error to dismiss")
    state.error = None
    state.last_retry_info = None
    state.is_loading_image = False
    return state, []


# ── Lifecycle ────────────────────────────────────────────


def _retry_requested(state: GameState, event: RetryRequested) -> Transition:
    return plan_retry(state)


def _restarted(state: GameState, event: Restarted) -> Transition:
    fresh = GameState(
        image_generation_enabled=state.image_generation_enabled,
        image_generation_permanently_disabled=state.image_generation_permanently_disabled,
        epoch=state.epoch + 1,
        segment_seq=state.segment_seq,
    )
    _journal(fresh, "system", "New game started. Choose a genre.")
    return fresh, [ClearSnapshot()]


def _resumed(state: GameState, event: Resumed) -> Transition:
    if state.phase is not Phase.SELECTING_GENRE or state.selected_genre is not None:
        raise TransitionError("A saved game can only be resumed before a new one starts")
    snap = event.snapshot
    state.selected_genre = snap.selected_genre
    state.selected_persona = snap.selected_persona
    state.adventure_outline = snap.adventure_outline
    state.world_details = snap.world_details
    state.current_segment = snap.current_segment
    state.current_stage_index = snap.current_stage_index
    state.is_game_ended = snap.is_game_ended
    state.is_game_failed = snap.is_game_failed
    state.journal = list(snap.journal)
    state.inventory = list(snap.inventory)
    state.image_generation_permanently_disabled = (
        state.image_generation_permanently_disabled or snap.image_generation_permanently_disabled
    )
    state.error = None
    state.last_retry_info = None
    state.epoch += 1
    state.segment_seq += 1
    state.phase = Phase.ENDED if (snap.is_game_ended or snap.is_game_failed) else Phase.PLAYING
    _journal(state, "system", "Game resumed from saved state.")

    segment = snap.current_segment
    if state.phase is Phase.PLAYING and not segment.image_url and _wants_image(state, segment):
        state.is_loading_image = True
        return state, [FetchImage(epoch=state.epoch, segment_seq=state.segment_seq, prompt=segment.image_prompt)]
    return state, []


_HANDLERS: dict[type[Event], Callable[[GameState, Event], Transition]] = {
    GenreSelected: _genre_selected,
    PersonaSelected: _persona_selected,
    OutlineLoaded: _outline_loaded,
    OutlineFailed: _outline_failed,
    WorldLoaded: _world_loaded,
    WorldFailed: _world_failed,
    ChoiceSelected: _choice_selected,
    CustomActionSubmitted: _custom_action_submitted,
    SegmentLoaded: _segment_loaded,
    SegmentFailed: _segment_failed,
    ExamineRequested: _examine_requested,
    ExaminationLoaded: _examination_loaded,
    ExaminationFailed: _examination_failed,
    ExaminationDismissed: _examination_dismissed,
    ImageLoaded: _image_loaded,
    ImageFailed: _image_failed,
    ContinueWithoutImage: _continue_without_image,
    RetryRequested: _retry_requested,
    Restarted: _restarted,
    Resumed: _resumed,
}


def reduce(state: GameState, event: Event) -> Transition:
    """Apply one event. The input state is never modified."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TransitionError(f"Unknown event {type(event).__name__}")
    if isinstance(event, ResultEvent) and event.epoch != state.epoch:
        logger.warning(
            "Dropping stale %s (epoch %d, current %d)", type(event).__name__, event.epoch, state.epoch
        )
        return state, []

    new_state, effects = handler(state.model_copy(deep=True), event)
    if is_save_eligible(new_state) and not any(isinstance(e, ClearSnapshot) for e in effects):
        effects.append(SaveSnapshot())
    return new_state, effects
