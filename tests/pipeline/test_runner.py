"""End-to-end adventure flows through AdventureRunner with a scripted provider.

Each test scripts the provider responses for one scenario and checks the
resulting game state, the requests that reached the provider, and what was
persisted.
"""

import pytest

from forge import storage
from forge.content import ContentClient
from forge.errors import (
    IMAGE_QUOTA_MESSAGE,
    QuotaExceeded,
    RequestTimeout,
    ServerConfigurationFailure,
    TransitionError,
    TransportFailure,
)
from forge.models import ErrorScope, Phase, RetryTarget, RetryType
from forge.pipeline.retry import RecoveryAction
from forge.pipeline.runner import AdventureRunner

from tests.stubs import (
    TINY_PNG,
    StubProvider,
    choice_payload,
    dumps,
    image_url_for,
    opening_texts,
    outline_payload,
    segment_payload,
    settings,
    world_payload,
)


def _runner(provider, **overrides):
    return AdventureRunner(ContentClient(provider, "test-model"), settings(**overrides))


async def _start(runner):
    await runner.boot()
    await runner.select_genre("Dark Fantasy")
    await runner.select_persona("Brave Warrior")


# ── Happy path ───────────────────────────────────────────


async def test_new_adventure_reaches_first_scene():
    provider = StubProvider(texts=opening_texts(), images=[TINY_PNG])
    runner = _runner(provider)
    await _start(runner)
    await runner.wait_for_images()

    state = runner.state
    assert state.phase is Phase.PLAYING
    assert state.adventure_outline.title == "The Ashen Crown"
    assert state.world_details.world_name == "Vhal Mor"
    assert state.current_segment.image_url == TINY_PNG
    assert state.error is None
    assert len(provider.text_calls) == 3
    assert all(model == "test-model" for model, _, _ in provider.text_calls)
    assert "General Content Instructions for Story Segment" in provider.prompt(2)
    assert storage.has_snapshot()


async def test_choices_progress_through_stages():
    texts = opening_texts() + [dumps(segment_payload(sceneDescription="The tower stairs creak."))]
    runner = _runner(StubProvider(texts=texts), image_generation_enabled=False)
    await _start(runner)
    await runner.choose(1)  # signals completion

    state = runner.state
    assert state.current_stage_index == 1
    assert state.current_segment.scene_description == "The tower stairs creak."
    assert [e.type for e in state.journal][-2:] == ["choice", "scene"]


async def test_custom_action_with_verdict():
    verdict = {"isPossible": False, "reason": "The bell has no clapper."}
    outcome = segment_payload(sceneDescription="You swing at the bell to no avail.")
    provider = StubProvider(texts=opening_texts() + [dumps(verdict), dumps(outcome)])
    runner = _runner(provider, image_generation_enabled=False)
    await _start(runner)

    result = await runner.evaluate_custom_action("Ring the bell with my fist")
    assert not result.is_possible
    await runner.custom_action("Ring the bell with my fist", result)

    assert "This action was deemed not possible" in provider.prompt(4)
    assert "The bell has no clapper." in provider.prompt(4)
    types = [e.type for e in runner.state.journal]
    assert types[-3:] == ["custom_action", "action_impossible", "scene"]


async def test_examination_does_not_advance():
    provider = StubProvider(texts=opening_texts() + [dumps({"examinationText": "Old blood on the altar."})])
    runner = _runner(provider, image_generation_enabled=False)
    await _start(runner)
    seq = runner.state.segment_seq
    await runner.examine()

    assert runner.state.examination_text == "Old blood on the altar."
    assert runner.state.segment_seq == seq
    await runner.dismiss_examination()
    assert runner.state.examination_text is None


async def test_choice_before_adventure_is_rejected():
    runner = _runner(StubProvider())
    await runner.boot()
    with pytest.raises(TransitionError):
        await runner.choose(0)


# ── Outline failure and retry ────────────────────────────


async def test_outline_transport_failure_then_retry():
    texts = [TransportFailure("Network error: could not connect")] + opening_texts()
    provider = StubProvider(texts=texts, images=[TINY_PNG])
    runner = _runner(provider)
    await _start(runner)

    state = runner.state
    assert state.phase is Phase.GENERATING_OUTLINE
    assert state.error is not None
    assert state.last_retry_info.type is RetryType.RESEND_ORIGINAL
    assert state.last_retry_info.target is RetryTarget.OUTLINE
    assert runner.actions == [RecoveryAction.RETRY, RecoveryAction.NEW_GAME]

    await runner.retry()
    await runner.wait_for_images()
    state = runner.state
    assert state.phase is Phase.PLAYING
    assert state.selected_persona == "Brave Warrior"
    assert state.error is None
    assert state.world_details is not None
    assert len(provider.text_calls) == 4


async def test_timeout_is_not_retried_automatically():
    provider = StubProvider(texts=[RequestTimeout("timed out after 30.0s")])
    runner = _runner(provider)
    await _start(runner)
    assert len(provider.text_calls) == 1
    assert runner.state.error.kind == "timeout"
    assert runner.state.last_retry_info is not None


async def test_server_key_error_offers_new_game_only():
    provider = StubProvider(texts=[ServerConfigurationFailure("API Key configuration error")])
    runner = _runner(provider)
    await _start(runner)
    assert runner.actions == [RecoveryAction.NEW_GAME]
    with pytest.raises(TransitionError):
        await runner.retry()


async def test_two_stage_outline_is_rejected():
    provider = StubProvider(texts=[dumps(outline_payload(stage_count=2))])
    runner = _runner(provider)
    await _start(runner)
    assert runner.state.adventure_outline is None
    assert "exactly 3 stages, received 2" in runner.state.error.message


# ── Malformed segment, repair, demotion ──────────────────


async def test_malformed_segment_repair_then_demotion():
    raw = '{"sceneDescription": "A door.", "choices": ['
    texts = [
        dumps(outline_payload()),
        dumps(world_payload()),
        raw,
        dumps({"sceneDescription": "A door."}),  # repair: valid JSON, wrong shape
        dumps(segment_payload()),
    ]
    provider = StubProvider(texts=texts)
    runner = _runner(provider, image_generation_enabled=False)
    await _start(runner)

    info = runner.state.last_retry_info
    assert info.type is RetryType.FIX_JSON
    assert info.faulty_json_text == raw
    original_prompt = info.original_prompt
    assert original_prompt in provider.prompt(2)

    await runner.retry()
    assert "is malformed" in provider.prompt(3)
    assert raw in provider.prompt(3)
    info = runner.state.last_retry_info
    assert info.type is RetryType.RESEND_ORIGINAL
    assert info.target is RetryTarget.STORY
    assert info.original_prompt == original_prompt
    assert "AI could not fix the data" in runner.state.error.message

    await runner.retry()
    assert provider.prompt(4).startswith(original_prompt)
    assert runner.state.error is None
    assert runner.state.current_segment is not None


# ── Images ───────────────────────────────────────────────


async def test_image_quota_disables_images_for_good():
    texts = opening_texts() + [dumps(segment_payload(sceneDescription="Another scene."))]
    provider = StubProvider(texts=texts, images=[QuotaExceeded("RESOURCE_EXHAUSTED")])
    runner = _runner(provider)
    await _start(runner)
    await runner.wait_for_images()

    state = runner.state
    assert state.current_segment is not None
    assert state.current_segment.image_url is None
    assert state.image_generation_permanently_disabled
    assert state.error is None
    assert state.notice == IMAGE_QUOTA_MESSAGE
    assert storage.images_disabled_durably()

    await runner.choose(0)
    await runner.wait_for_images()
    assert runner.state.current_segment.scene_description == "Another scene."
    assert runner.state.current_segment.image_prompt
    assert len(provider.image_calls) == 1


async def test_quota_flag_survives_new_session():
    storage.disable_images_durably()
    provider = StubProvider(texts=opening_texts())
    runner = _runner(provider)
    await _start(runner)
    await runner.wait_for_images()
    assert runner.state.image_generation_permanently_disabled
    assert provider.image_calls == []


async def test_image_failure_can_be_dismissed_or_reloaded():
    provider = StubProvider(texts=opening_texts(), images=[TransportFailure("proxy down"), TINY_PNG])
    runner = _runner(provider)
    await _start(runner)
    await runner.wait_for_images()

    assert runner.state.error.scope is ErrorScope.IMAGE
    assert RecoveryAction.RELOAD_IMAGE in runner.actions
    await runner.retry()
    await runner.wait_for_images()
    assert runner.state.error is None
    assert runner.state.current_segment.image_url == TINY_PNG


async def test_late_image_does_not_land_on_newer_scene():
    first = segment_payload(imagePrompt="first scene art")
    second = segment_payload(sceneDescription="Second.", imagePrompt="second scene art")
    provider = StubProvider(
        texts=[dumps(outline_payload()), dumps(world_payload()), dumps(first), dumps(second)],
        images=[image_url_for("first scene art"), image_url_for("second scene art")],
    )
    runner = _runner(provider)
    await _start(runner)
    await runner.choose(0)
    await runner.wait_for_images()

    assert runner.state.current_segment.scene_description == "Second."
    assert runner.state.current_segment.image_url == image_url_for("second scene art")


async def test_invalid_image_payload_leaves_scene_without_image():
    provider = StubProvider(texts=opening_texts(), images=["data:image/png;base64,@@@"])
    runner = _runner(provider)
    await _start(runner)
    await runner.wait_for_images()
    assert runner.state.current_segment.image_url is None
    assert runner.state.error is None
    assert not runner.state.is_loading_image


# ── Stage failure ────────────────────────────────────────


async def test_failing_choice_on_stage_two_ends_in_failure():
    advancing = segment_payload(choices=[choice_payload("Cross the bridge", completes=True)])
    doomed = segment_payload(choices=[choice_payload("Leap the chasm", completes=True, fails=True)])
    failure = segment_payload(sceneDescription="You fall.", choices=[], isFailureScene=True)
    provider = StubProvider(texts=[
        dumps(outline_payload()), dumps(world_payload()), dumps(advancing), dumps(doomed), dumps(failure),
    ])
    runner = _runner(provider, image_generation_enabled=False)
    await _start(runner)
    await runner.choose(0)
    assert runner.state.current_stage_index == 1

    await runner.choose(0)
    assert runner.state.current_stage_index == 1
    assert runner.state.is_game_failed
    assert runner.state.phase is Phase.ENDED
    assert runner.actions == [RecoveryAction.NEW_GAME]
    assert not storage.has_snapshot()


# ── Persistence ──────────────────────────────────────────


async def test_resume_saved_adventure():
    runner = _runner(StubProvider(texts=opening_texts()), image_generation_enabled=False)
    await _start(runner)
    saved_journal = len(runner.state.journal)

    provider = StubProvider(images=[TINY_PNG])
    resumed = _runner(provider)
    snapshot = await resumed.boot()
    assert snapshot is not None
    assert await resumed.resume(snapshot)
    await resumed.wait_for_images()

    state = resumed.state
    assert state.phase is Phase.PLAYING
    assert len(state.journal) == saved_journal + 1
    assert state.journal[-1].content == "Game resumed from saved state."
    assert state.current_segment.image_url == TINY_PNG


async def test_resume_without_snapshot():
    runner = _runner(StubProvider())
    assert await runner.boot() is None
    assert not await runner.resume()


async def test_restart_clears_snapshot():
    runner = _runner(StubProvider(texts=opening_texts()), image_generation_enabled=False)
    await _start(runner)
    assert storage.has_snapshot()
    await runner.restart()
    assert not storage.has_snapshot()
    assert runner.state.phase is Phase.SELECTING_GENRE
