"""Events fed into the reducer and effects it asks the runner to perform.

Player intents come straight from the UI. Result events are produced by the
runner when an effect finishes; each carries the `epoch` it was requested
under, and image results also carry the `segment_seq` of their scene.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from forge.errors import Failure
from forge.models import (
    AdventureOutline,
    FeasibilityVerdict,
    Genre,
    Persona,
    SavableGameState,
    StorySegment,
    WorldDetails,
)


class SegmentSource(str, Enum):
    STORY = "story"
    CUSTOM_ACTION = "custom_action"
    REPAIR = "repair"


# ── Events ───────────────────────────────────────────────


class Event(BaseModel):
    pass


class GenreSelected(Event):
    genre: Genre


class PersonaSelected(Event):
    persona: Persona


class ChoiceSelected(Event):
    index: int  # position in current_segment.choices


class CustomActionSubmitted(Event):
    text: str
    verdict: FeasibilityVerdict | None = None


class ExamineRequested(Event):
    pass


class ExaminationDismissed(Event):
    pass


class RetryRequested(Event):
    pass


class ContinueWithoutImage(Event):
    pass


class Restarted(Event):
    pass


class Resumed(Event):
    snapshot: SavableGameState


class ResultEvent(Event):
    epoch: int


class OutlineLoaded(ResultEvent):
    outline: AdventureOutline


class OutlineFailed(ResultEvent):
    failure: Failure


class WorldLoaded(ResultEvent):
    world: WorldDetails


class WorldFailed(ResultEvent):
    failure: Failure


class SegmentLoaded(ResultEvent):
    segment: StorySegment
    source: SegmentSource = SegmentSource.STORY
    prompt: str  # the original narrative prompt, never a repair prompt
    custom_action_text: str | None = None
    ruled_impossible: bool = False


class SegmentFailed(ResultEvent):
    failure: Failure
    source: SegmentSource = SegmentSource.STORY
    prompt: str
    custom_action_text: str | None = None
    ruled_impossible: bool = False


class ExaminationLoaded(ResultEvent):
    text: str


class ExaminationFailed(ResultEvent):
    failure: Failure


class ImageLoaded(ResultEvent):
    segment_seq: int
    image_url: str


class ImageFailed(ResultEvent):
    segment_seq: int
    failure: Failure


# ── Effects ──────────────────────────────────────────────


class Effect(BaseModel):
    pass


class FetchOutline(Effect):
    epoch: int
    genre: Genre
    persona: Persona


class FetchWorld(Effect):
    epoch: int
    outline: AdventureOutline
    genre: Genre
    persona: Persona


class FetchSegment(Effect):
    epoch: int
    prompt: str
    is_initial: bool = False
    is_retry: bool = False


class FetchCustomAction(Effect):
    epoch: int
    prompt: str
    action_text: str
    ruled_impossible: bool = False


class RepairSegment(Effect):
    epoch: int
    faulty_json_text: str
    original_prompt: str
    custom_action_text: str | None = None
    ruled_impossible: bool = False


class FetchExamination(Effect):
    epoch: int
    prompt: str


class FetchImage(Effect):
    epoch: int
    segment_seq: int
    prompt: str


class SaveSnapshot(Effect):
    pass


class ClearSnapshot(Effect):
    pass


class DisableImagesDurably(Effect):
    pass
