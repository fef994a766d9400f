"""Async runner: owns the live GameState and executes reducer effects.

Narrative effects (outline, world, segment, custom action, repair,
examination) are awaited in order, so a player intent returns once the
adventure has settled. Image effects run as background asyncio tasks; their
results re-enter the reducer, which drops them if the scene has moved on.

Content failures never escape the runner: every ContentError becomes a
Failure on a *Failed event. Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from forge import storage
from forge.config import Settings
from forge.content import ContentClient
from forge.errors import ContentError
from forge.models import FeasibilityVerdict, GameState, SavableGameState

from .core import reduce
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
    RepairSegment,
    Restarted,
    Resumed,
    RetryRequested,
    SaveSnapshot,
    SegmentFailed,
    SegmentLoaded,
    SegmentSource,
    WorldFailed,
    WorldLoaded,
)
from .retry import RecoveryAction, available_actions

logger = logging.getLogger(__name__)


class AdventureRunner:
    """Drives one play session against a ContentClient."""

    def __init__(self, content: ContentClient, settings: Settings) -> None:
        self._content = content
        self._settings = settings
        self.state = GameState(image_generation_enabled=settings.image_generation_enabled)
        self._image_tasks: set[asyncio.Task] = set()

    @property
    def actions(self) -> list[RecoveryAction]:
        return available_actions(self.state)

    # ── Player intents ───────────────────────────────────

    async def boot(self) -> SavableGameState | None:
        """Load durable flags; return the saved adventure, if one can be resumed."""
        self.state = GameState(
            image_generation_enabled=self._settings.image_generation_enabled,
            image_generation_permanently_disabled=storage.images_disabled_durably(),
        )
        return storage.load_snapshot()

    async def select_genre(self, genre: str) -> None:
        await self.dispatch(GenreSelected(genre=genre))

    async def select_persona(self, persona: str) -> None:
        await self.dispatch(PersonaSelected(persona=persona))

    async def choose(self, index: int) -> None:
        await self.dispatch(ChoiceSelected(index=index))

    async def evaluate_custom_action(self, text: str) -> FeasibilityVerdict:
        """Optional pre-check; does not touch the game state."""
        return await self._content.evaluate_custom_action(self.state, text)

    async def custom_action(self, text: str, verdict: FeasibilityVerdict | None = None) -> None:
        await self.dispatch(CustomActionSubmitted(text=text, verdict=verdict))

    async def examine(self) -> None:
        await self.dispatch(ExamineRequested())

    async def dismiss_examination(self) -> None:
        await self.dispatch(ExaminationDismissed())

    async def retry(self) -> None:
        await self.dispatch(RetryRequested())

    async def continue_without_image(self) -> None:
        await self.dispatch(ContinueWithoutImage())

    async def restart(self) -> None:
        await self.dispatch(Restarted())

    async def resume(self, snapshot: SavableGameState | None = None) -> bool:
        """Resume `snapshot` (or the stored one). Returns False when there is none."""
        if snapshot is None:
            snapshot = storage.load_snapshot()
        if snapshot is None:
            return False
        await self.dispatch(Resumed(snapshot=snapshot))
        return True

    async def wait_for_images(self) -> None:
        while self._image_tasks:
            await asyncio.gather(*list(self._image_tasks))

    # ── Event loop ───────────────────────────────────────

    async def dispatch(self, event: Event) -> None:
        self.state, effects = reduce(self.state, event)
        for effect in effects:
            await self._execute(effect)

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, SaveSnapshot):
            storage.save_snapshot(self.state)
        elif isinstance(effect, ClearSnapshot):
            storage.clear_snapshot()
        elif isinstance(effect, DisableImagesDurably):
            storage.disable_images_durably()
        elif isinstance(effect, FetchImage):
            task = asyncio.create_task(self._image(effect))
            self._image_tasks.add(task)
            task.add_done_callback(self._image_tasks.discard)
        else:
            await self.dispatch(await self._narrative(effect))

    async def _narrative(self, effect: Effect) -> Event:
        if isinstance(effect, FetchOutline):
            return await _attempt(
                lambda: self._content.outline(effect.genre, effect.persona),
                lambda outline: OutlineLoaded(epoch=effect.epoch, outline=outline),
                lambda failure: OutlineFailed(epoch=effect.epoch, failure=failure),
            )
        if isinstance(effect, FetchWorld):
            return await _attempt(
                lambda: self._content.world(effect.outline, effect.genre, effect.persona),
                lambda world: WorldLoaded(epoch=effect.epoch, world=world),
                lambda failure: WorldFailed(epoch=effect.epoch, failure=failure),
            )
        if isinstance(effect, FetchSegment):
            if effect.is_retry:
                logger.info("Resending story request (epoch %d)", effect.epoch)
            return await _attempt(
                lambda: self._content.story_segment(effect.prompt, is_initial=effect.is_initial),
                lambda segment: SegmentLoaded(epoch=effect.epoch, segment=segment, prompt=effect.prompt),
                lambda failure: SegmentFailed(epoch=effect.epoch, failure=failure, prompt=effect.prompt),
            )
        if isinstance(effect, FetchCustomAction):
            common = {
                "epoch": effect.epoch,
                "source": SegmentSource.CUSTOM_ACTION,
                "prompt": effect.prompt,
                "custom_action_text": effect.action_text,
                "ruled_impossible": effect.ruled_impossible,
            }
            return await _attempt(
                lambda: self._content.custom_action_outcome(effect.prompt),
                lambda segment: SegmentLoaded(segment=segment, **common),
                lambda failure: SegmentFailed(failure=failure, **common),
            )
        if isinstance(effect, RepairSegment):
            common = {
                "epoch": effect.epoch,
                "source": SegmentSource.REPAIR,
                "prompt": effect.original_prompt,
                "custom_action_text": effect.custom_action_text,
                "ruled_impossible": effect.ruled_impossible,
            }
            return await _attempt(
                lambda: self._content.repair_story_json(effect.faulty_json_text, effect.original_prompt),
                lambda segment: SegmentLoaded(segment=segment, **common),
                lambda failure: SegmentFailed(failure=failure, **common),
            )
        if isinstance(effect, FetchExamination):
            return await _attempt(
                lambda: self._content.examine(effect.prompt),
                lambda text: ExaminationLoaded(epoch=effect.epoch, text=text),
                lambda failure: ExaminationFailed(epoch=effect.epoch, failure=failure),
            )
        raise TypeError(f"Unknown effect {type(effect).__name__}")

    async def _image(self, effect: FetchImage) -> None:
        event = await _attempt(
            lambda: self._content.image(effect.prompt),
            lambda url: ImageLoaded(epoch=effect.epoch, segment_seq=effect.segment_seq, image_url=url),
            lambda failure: ImageFailed(epoch=effect.epoch, segment_seq=effect.segment_seq, failure=failure),
        )
        await self.dispatch(event)


async def _attempt(
    call: Callable[[], Awaitable],
    on_success: Callable[..., Event],
    on_failure: Callable[..., Event],
) -> Event:
    try:
        result = await call()
    except ContentError as e:
        logger.warning("Content request failed (%s): %s", e.kind.value, e)
        return on_failure(e.to_failure())
    return on_success(result)
