import json

from forge import storage
from forge.models import GameState

from tests.stubs import playing_state


# ── Slugify ──────────────────────────────────────────────────


def test_slugify_basic():
    assert storage.slugify("Sun-Forged Key") == "sun-forged-key"


def test_slugify_apostrophe():
    assert storage.slugify("Ghost's Lantern") == "ghosts-lantern"


def test_slugify_unicode():
    assert storage.slugify("Café Münch") == "cafe-munch"


def test_slugify_empty():
    assert storage.slugify("") == "untitled"


# ── Save eligibility ────────────────────────────────────────


def test_fresh_state_is_not_eligible():
    assert not storage.is_save_eligible(GameState())


def test_playing_state_is_eligible():
    assert storage.is_save_eligible(playing_state())


def test_loading_state_is_not_eligible():
    assert not storage.is_save_eligible(playing_state(is_loading_story=True))


def test_ended_state_is_not_eligible():
    assert not storage.is_save_eligible(playing_state(is_game_ended=True))
    assert not storage.is_save_eligible(playing_state(is_game_failed=True))


def test_image_loading_does_not_block_save():
    assert storage.is_save_eligible(playing_state(is_loading_image=True))


# ── Snapshot round-trip ─────────────────────────────────────


def test_save_and_load_round_trip():
    state = playing_state(stage_index=2)
    assert storage.save_snapshot(state)
    loaded = storage.load_snapshot()
    assert loaded == storage.snapshot_from_state(state)
    assert loaded.current_stage_index == 2


def test_snapshot_uses_camel_case_keys():
    storage.save_snapshot(playing_state())
    path = storage.data_dir() / f"{storage.SNAPSHOT_KEY}.json"
    data = json.loads(path.read_text())
    assert "currentSegment" in data
    assert "sceneDescription" in data["currentSegment"]
    assert "isLoadingStory" not in data


def test_ineligible_state_is_not_saved():
    assert not storage.save_snapshot(GameState())
    assert not storage.has_snapshot()


def test_load_without_snapshot():
    assert storage.load_snapshot() is None


def test_snapshot_missing_field_is_discarded():
    storage.save_snapshot(playing_state())
    path = storage.data_dir() / f"{storage.SNAPSHOT_KEY}.json"
    data = json.loads(path.read_text())
    del data["worldDetails"]
    path.write_text(json.dumps(data))

    assert storage.load_snapshot() is None
    assert not path.exists()


def test_snapshot_with_wrong_type_is_discarded():
    storage.save_snapshot(playing_state())
    path = storage.data_dir() / f"{storage.SNAPSHOT_KEY}.json"
    data = json.loads(path.read_text())
    data["currentStageIndex"] = "1"
    path.write_text(json.dumps(data))
    assert storage.load_snapshot() is None


def test_corrupt_snapshot_is_discarded():
    path = storage.data_dir() / f"{storage.SNAPSHOT_KEY}.json"
    path.write_text("{not json")
    assert storage.load_snapshot() is None
    assert not storage.has_snapshot()


def test_snapshot_with_invalid_utf8_is_discarded():
    path = storage.data_dir() / f"{storage.SNAPSHOT_KEY}.json"
    path.write_bytes(b'{"selectedGenre": "\xff\xfe"}')
    assert storage.load_snapshot() is None
    assert not storage.has_snapshot()


def test_clear_snapshot():
    storage.save_snapshot(playing_state())
    storage.clear_snapshot()
    assert not storage.has_snapshot()
    storage.clear_snapshot()  # no-op when absent


# ── Image quota flag ────────────────────────────────────────


def test_quota_flag_defaults_off():
    assert not storage.images_disabled_durably()


def test_quota_flag_is_independent_of_snapshot():
    storage.save_snapshot(playing_state())
    storage.disable_images_durably()
    storage.clear_snapshot()
    assert storage.images_disabled_durably()
