"""Core domain models.

Every pipeline stage, the persistence gateway and the proxy operate on these
types. Attribute names are snake_case; the JSON form (provider payloads and
the saved snapshot) uses the camelCase aliases.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Genre = Literal[
    "Dark Fantasy",
    "Sci-Fi Detective",
    "Post-Apocalyptic Survival",
    "Mythological Epic",
    "Steampunk Chronicle",
    "Cosmic Horror",
]
GENRE_OPTIONS: list[str] = [
    "Dark Fantasy",
    "Sci-Fi Detective",
    "Post-Apocalyptic Survival",
    "Mythological Epic",
    "Steampunk Chronicle",
    "Cosmic Horror",
]

Persona = Literal["Cautious Scholar", "Brave Warrior", "Cunning Rogue", "Mysterious Wanderer"]
PERSONA_OPTIONS: list[str] = [
    "Cautious Scholar",
    "Brave Warrior",
    "Cunning Rogue",
    "Mysterious Wanderer",
]

# genre → persona → (title, description)
GENRE_PERSONA_DETAILS: dict[str, dict[str, tuple[str, str]]] = {
    "Dark Fantasy": {
        "Cautious Scholar": ("Lorekeeper of Shadows", "Scours forbidden texts and ancient ruins, believing knowledge is the only shield against the encroaching darkness."),
        "Brave Warrior": ("Grim Warden", "A stoic defender standing against nightmarish beasts and corrupting influences, their blade a beacon in the gloom."),
        "Cunning Rogue": ("Grave Robber", "Navigates treacherous crypts and haunted ruins, using stealth and guile to unearth forgotten treasures and survive."),
        "Mysterious Wanderer": ("Curse-Touched Nomad", "A solitary figure bearing a mysterious affliction, their path entwined with grim prophecies and forgotten kingdoms."),
    },
    "Sci-Fi Detective": {
        "Cautious Scholar": ("Data Forensics Analyst", "Sifts through corrupted data logs and encrypted corporate networks to expose high-tech conspiracies."),
        "Brave Warrior": ("Cybernetic Enforcer", "An augmented officer unafraid to confront dangerous syndicates in neon-lit alleyways."),
        "Cunning Rogue": ("Information Broker", "A master of infiltration who trades secrets in the city's hidden data havens."),
        "Mysterious Wanderer": ("Off-World Investigator", "An enigmatic detective from a distant colony with an outsider's eye and a hidden agenda."),
    },
    "Post-Apocalyptic Survival": {
        "Cautious Scholar": ("Wasteland Historian", "Preserves fragments of pre-cataclysm knowledge to avoid repeating the old world's mistakes."),
        "Brave Warrior": ("Settlement Guardian", "Protects a small community from mutants, raiders and the harsh elements."),
        "Cunning Rogue": ("Ruin Scavenger", "Navigates treacherous ruins with stealth and resourcefulness to find valuable supplies."),
        "Mysterious Wanderer": ("Lone Survivor", "A hardened drifter through the desolate wastes, driven by an unknown purpose."),
    },
    "Mythological Epic": {
        "Cautious Scholar": ("Oracle's Acolyte", "Studies ancient prophecies and divine lore to guide mortals through legendary trials."),
        "Brave Warrior": ("Demigod Hero", "Blessed by the gods, battles mythical beasts and challenges fate."),
        "Cunning Rogue": ("Trickster's Chosen", "Favored by a deity of cunning, outsmarts mortals and monsters alike."),
        "Mysterious Wanderer": ("Exiled Deity", "A lesser god stripped of power, wandering the mortal realm in search of redemption."),
    },
    "Steampunk Chronicle": {
        "Cautious Scholar": ("Clockwork Theorist", "Delves into automatons and aetheric science, always on the verge of the next invention."),
        "Brave Warrior": ("Sky Captain", "Commands an airship across uncharted territories, fending off sky pirates."),
        "Cunning Rogue": ("Gear-Driven Infiltrator", "Uses ingenious gadgets to bypass security and acquire sensitive artifacts."),
        "Mysterious Wanderer": ("Time-Displaced Inventor", "An anachronistic genius observing this steam-powered world with revolutionary ideas."),
    },
    "Cosmic Horror": {
        "Cautious Scholar": ("Forbidden Scholar", "Obsessively researches sanity-shattering texts, driven to understand entities from beyond."),
        "Brave Warrior": ("Doomed Investigator", "Confronts unnamable horrors knowing their strength is likely futile, fighting nonetheless."),
        "Cunning Rogue": ("Cult Infiltrator", "Deals with deranged cultists and eldritch artifacts, one step away from madness."),
        "Mysterious Wanderer": ("Touched by the Void", "Has glimpsed the abyss and survived, forever changed."),
    },
}


def persona_title(genre: str | None, persona: str) -> str:
    """Genre-specific persona title, falling back to the base persona name."""
    details = GENRE_PERSONA_DETAILS.get(genre or "", {}).get(persona)
    return details[0] if details else persona


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdventureStage(CamelModel):
    title: str
    description: str
    objective: str


class AdventureOutline(CamelModel):
    title: str
    overall_goal: str
    stages: list[AdventureStage]


class WorldDetails(CamelModel):
    world_name: str
    genre_clarification: str
    key_environmental_features: list[str] = Field(default_factory=list)
    dominant_societies_or_factions: list[str] = Field(default_factory=list)
    unique_creatures_or_monsters: list[str] = Field(default_factory=list)
    magic_system_overview: str
    brief_history_hook: str
    cultural_norms_or_taboos: list[str] = Field(default_factory=list)


class Choice(CamelModel):
    text: str
    outcome_prompt: str
    signals_stage_completion: bool = False
    leads_to_failure: bool = False


class InventoryItem(CamelModel):
    id: str
    name: str
    description: str


class StorySegment(CamelModel):
    scene_description: str
    choices: list[Choice] = Field(default_factory=list)
    image_prompt: str = ""
    image_url: str | None = None
    is_final_scene: bool = False
    is_failure_scene: bool = False
    is_user_input_command_only: bool = False
    item_found: InventoryItem | None = None


JournalType = Literal[
    "scene",
    "choice",
    "examine",
    "item_found",
    "world_generated",
    "genre_selected",
    "persona_selected",
    "system",
    "custom_action",
    "action_impossible",
]


class JournalEntry(CamelModel):
    """One line of the append-only adventure log."""

    type: JournalType
    content: str
    timestamp: str  # ISO-8601, UTC


class RetryType(str, Enum):
    RESEND_ORIGINAL = "resend_original"
    FIX_JSON = "fix_json"


class RetryTarget(str, Enum):
    OUTLINE = "outline"
    WORLD = "world"
    STORY = "story"
    CUSTOM_ACTION = "custom_action"
    EXAMINE = "examine"
    IMAGE = "image"


class RetryInfo(CamelModel):
    """What to do when the player presses Retry. Replaced, never merged."""

    type: RetryType
    target: RetryTarget
    original_prompt: str | None = None
    faulty_json_text: str | None = None
    custom_action_text: str | None = None
    ruled_impossible: bool = False


class ErrorScope(str, Enum):
    NARRATIVE = "narrative"
    IMAGE = "image"


class GameError(CamelModel):
    kind: str
    scope: ErrorScope = ErrorScope.NARRATIVE
    message: str


class Phase(str, Enum):
    SELECTING_GENRE = "selecting_genre"
    SELECTING_PERSONA = "selecting_persona"
    GENERATING_OUTLINE = "generating_outline"
    GENERATING_WORLD = "generating_world"
    PLAYING = "playing"
    ENDED = "ended"


class FeasibilityVerdict(CamelModel):
    is_possible: bool
    reason: str
    suggested_outcome_summary_if_possible: str | None = None


class GameState(CamelModel):
    """Aggregate root. Only the reducer in forge.pipeline.core mutates it."""

    phase: Phase = Phase.SELECTING_GENRE
    selected_genre: Genre | None = None
    selected_persona: Persona | None = None
    adventure_outline: AdventureOutline | None = None
    world_details: WorldDetails | None = None
    current_segment: StorySegment | None = None
    current_stage_index: int = 0

    is_loading_outline: bool = False
    is_loading_world: bool = False
    is_loading_story: bool = False
    is_loading_image: bool = False
    is_loading_examination: bool = False
    is_game_ended: bool = False
    is_game_failed: bool = False
    image_generation_enabled: bool = True
    image_generation_permanently_disabled: bool = False

    error: GameError | None = None
    last_retry_info: RetryInfo | None = None
    journal: list[JournalEntry] = Field(default_factory=list)
    inventory: list[InventoryItem] = Field(default_factory=list)
    examination_text: str | None = None
    notice: str | None = None

    # Bumped on every new adventure; results tagged with an older epoch are dropped.
    epoch: int = 0
    # Identifies the current segment so late image results cannot land on a newer scene.
    segment_seq: int = 0

    @property
    def narrative_in_flight(self) -> bool:
        return (
            self.is_loading_outline
            or self.is_loading_world
            or self.is_loading_story
            or self.is_loading_examination
        )


class SavableGameState(CamelModel):
    """The restartable snapshot written by the persistence gateway."""

    selected_genre: Genre
    selected_persona: Persona
    adventure_outline: AdventureOutline
    world_details: WorldDetails
    current_segment: StorySegment
    current_stage_index: int
    is_game_ended: bool
    is_game_failed: bool
    journal: list[JournalEntry]
    inventory: list[InventoryItem]
    image_generation_permanently_disabled: bool
