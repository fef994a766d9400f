"""File-based JSON persistence for the restartable adventure snapshot.

Data layout:
  data/
    forgeYourJourney_v1.json                    Current adventure snapshot (SavableGameState)
    forgeYourJourney_v1.image-quota-disabled    Durable "images disabled by quota" flag

The snapshot is written only for a resumable game and removed as soon as the
game ends or restarts. The quota flag is independent and survives restarts.
Loading validates strictly: a snapshot with any missing or mistyped field is
deleted and treated as absent. There is no partial recovery.

Slug rules (inventory item ids): name → Unicode normalize → strip non-ASCII →
lowercase → replace non-alnum runs with hyphen → strip leading/trailing hyphens.
"""

import json
import logging
import re
import unicodedata
from pathlib import Path

from pydantic import ValidationError

from forge.models import GameState, SavableGameState

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "forgeYourJourney_v1"

_data_dir: Path | None = None


def slugify(name: str) -> str:
    """Convert an item name to a stable id.

    "Sun-Forged Key" → "sun-forged-key"
    """
    text = unicodedata.normalize("NFKD", name)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)  # strip apostrophes/quotes before hyphenation
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


def init_storage(data_dir: Path) -> None:
    global _data_dir
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def _snapshot_path() -> Path:
    return data_dir() / f"{SNAPSHOT_KEY}.json"


def _quota_flag_path() -> Path:
    return data_dir() / f"{SNAPSHOT_KEY}.image-quota-disabled"


# ── Snapshot ─────────────────────────────────────────────


def is_save_eligible(state: GameState) -> bool:
    """True when the state is a resumable, settled, non-terminal game."""
    if not (
        state.selected_genre
        and state.selected_persona
        and state.adventure_outline
        and state.world_details
        and state.current_segment
    ):
        return False
    if state.narrative_in_flight:
        return False
    return not (state.is_game_ended or state.is_game_failed)


def snapshot_from_state(state: GameState) -> SavableGameState:
    return SavableGameState(
        selected_genre=state.selected_genre,
        selected_persona=state.selected_persona,
        adventure_outline=state.adventure_outline,
        world_details=state.world_details,
        current_segment=state.current_segment,
        current_stage_index=state.current_stage_index,
        is_game_ended=state.is_game_ended,
        is_game_failed=state.is_game_failed,
        journal=state.journal,
        inventory=state.inventory,
        image_generation_permanently_disabled=state.image_generation_permanently_disabled,
    )


def save_snapshot(state: GameState) -> bool:
    """Write the snapshot if the state is eligible. Returns whether it was written."""
    if not is_save_eligible(state):
        return False
    snapshot = snapshot_from_state(state)
    _snapshot_path().write_text(snapshot.model_dump_json(by_alias=True, indent=2))
    return True


def load_snapshot() -> SavableGameState | None:
    """Read and strictly validate the snapshot. Invalid snapshots are discarded."""
    path = _snapshot_path()
    if not path.is_file():
        return None
    try:
        return SavableGameState.model_validate_json(path.read_bytes(), strict=True)
    except ValidationError as e:
        logger.warning(f"Saved game is missing fields or has wrong types, discarding: {e}")
        path.unlink(missing_ok=True)
        return None


def clear_snapshot() -> None:
    _snapshot_path().unlink(missing_ok=True)


def has_snapshot() -> bool:
    return _snapshot_path().is_file()


# ── Durable image quota flag ─────────────────────────────


def images_disabled_durably() -> bool:
    path = _quota_flag_path()
    if not path.is_file():
        return False
    try:
        return bool(json.loads(path.read_text()))
    except json.JSONDecodeError:
        return False


def disable_images_durably() -> None:
    _quota_flag_path().write_text(json.dumps(True))
