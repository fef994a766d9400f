"""Forge Your Journey launcher. Runs the generation proxy or a terminal adventure."""

import argparse
import asyncio
import logging
from pathlib import Path

from forge import storage
from forge.config import load_settings
from forge.content import ContentClient
from forge.errors import ContentError, TransitionError
from forge.llm import HttpProvider
from forge.models import GENRE_OPTIONS, PERSONA_OPTIONS, Phase
from forge.pipeline.retry import RecoveryAction
from forge.pipeline.runner import AdventureRunner


def _pick(label: str, options: list[str]) -> str:
    for i, option in enumerate(options, 1):
        print(f"  {i}. {option}")
    while True:
        answer = input(f"{label} [1-{len(options)}]: ").strip()
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1]


def _show(runner: AdventureRunner, seen: int) -> int:
    state = runner.state
    for entry in state.journal[seen:]:
        if entry.type in ("scene", "examine", "item_found", "system", "action_impossible"):
            print(f"\n{entry.content}")
    if state.notice:
        print(f"\n[notice] {state.notice}")
    if state.error:
        print(f"\n[error] {state.error.message}")
    return len(state.journal)


async def play(settings) -> None:
    provider = HttpProvider(settings.proxy_url, timeout=settings.request_timeout)
    runner = AdventureRunner(ContentClient(provider, settings.text_model), settings)
    snapshot = await runner.boot()
    if snapshot is not None and input("Resume your saved adventure? [y/N]: ").lower().startswith("y"):
        await runner.resume(snapshot)
    else:
        await runner.select_genre(_pick("Genre", GENRE_OPTIONS))
        await runner.select_persona(_pick("Persona", PERSONA_OPTIONS))

    seen = 0
    while True:
        seen = _show(runner, seen)
        state = runner.state
        actions = runner.actions
        if state.phase is Phase.ENDED:
            print("\nThe adventure is over.")
            return
        if state.error is not None:
            if RecoveryAction.RETRY in actions and input("Retry? [Y/n]: ").lower() != "n":
                await runner.retry()
            elif RecoveryAction.CONTINUE_WITHOUT_IMAGE in actions:
                await runner.continue_without_image()
            else:
                return
            continue
        segment = state.current_segment
        if segment is None:
            return
        for i, choice in enumerate(segment.choices, 1):
            print(f"  {i}. {choice.text}")
        answer = input("\nChoice number, 'x' to examine, 'q' to quit, or describe an action: ").strip()
        try:
            if answer == "q":
                return
            if answer == "x":
                await runner.examine()
            elif answer.isdigit() and 1 <= int(answer) <= len(segment.choices):
                await runner.choose(int(answer) - 1)
            elif answer:
                verdict = await runner.evaluate_custom_action(answer)
                await runner.custom_action(answer, verdict)
        except ContentError as e:
            print(f"\n[error] {e}")
        except TransitionError as e:
            print(f"\n[!] {e}")


def main():
    parser = argparse.ArgumentParser(description="Forge Your Journey")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help="Environment file to load (default: ./.env)")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the generation proxy")
    sub.add_parser("play", help="Play an adventure in the terminal through the proxy")
    args = parser.parse_args()

    settings = load_settings(args.env_file)
    if args.data_dir:
        settings.data_dir = args.data_dir
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    storage.init_storage(settings.data_dir)

    if args.command == "play":
        asyncio.run(play(settings))
        return

    import uvicorn

    from forge.app import create_app

    print(f"Starting proxy on http://localhost:{settings.port} ...")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
