"""Command line entry point.

Commands:
- set-key: store the Gemini API key in the OS keychain
- ask: one-shot generation for a piece of text
- run: interactive session; plain lines are speech, `/ocr <text>` is an OCR
  capture, `/batch` toggles batch mode, `/send` finalizes the batch
"""
from __future__ import annotations
import argparse
import asyncio
import getpass
import logging
import sys

from overlay_assistant.common.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from overlay_assistant.common.errors import AssistantError
from overlay_assistant.common.logging_setup import setup_logging
from overlay_assistant.common.schema import ContextKind
from overlay_assistant.engine.credentials import KeyringCredentialStore
from overlay_assistant.engine.gemini import GeminiClient
from overlay_assistant.routing.coordinator import Coordinator, user_message
from overlay_assistant.routing.sinks import ConsoleSink

LOGGER = logging.getLogger("overlay.cli")

HELP_TEXT = "Commands: /ocr <text>, /batch, /send, /quit. Any other line is sent as speech."


def _credentials(settings: Settings) -> KeyringCredentialStore:
    return KeyringCredentialStore(settings.keyring_service, settings.keyring_account)


def cmd_set_key(settings: Settings, args: argparse.Namespace) -> int:
    key = args.key or getpass.getpass("Gemini API key: ")
    if not key.strip():
        LOGGER.error("Empty API key, nothing saved")
        return 1
    try:
        _credentials(settings).set(key.strip())
    except AssistantError as e:
        LOGGER.error(user_message(e))
        return 1
    return 0


def cmd_ask(settings: Settings, args: argparse.Namespace) -> int:
    engine = GeminiClient.from_settings(settings, _credentials(settings))
    try:
        text = asyncio.run(engine.generate(args.text, ContextKind(args.kind)))
    except AssistantError as e:
        LOGGER.error(user_message(e))
        return 1
    print(text)
    return 0


async def _repl(coordinator: Coordinator) -> None:
    print(HELP_TEXT, file=sys.stderr)
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        line = line.rstrip("\n")
        if line == "/quit":
            break
        if not line.strip():
            continue
        if line == "/batch":
            coordinator.toggle_batch()
        elif line == "/send":
            coordinator.finalize_batch()
        elif line.startswith("/ocr "):
            coordinator.submit_ocr(line[len("/ocr "):])
        elif line.startswith("/"):
            print(HELP_TEXT, file=sys.stderr)
        else:
            coordinator.submit_speech(line)


async def _run_session(settings: Settings) -> None:
    coordinator = Coordinator.from_settings(settings, ConsoleSink(), _credentials(settings))
    async with coordinator:
        await _repl(coordinator)


def cmd_run(settings: Settings, args: argparse.Namespace) -> int:
    try:
        asyncio.run(_run_session(settings))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="overlay-assistant", description="Overlay assistant core")
    ap.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config path")
    ap.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = ap.add_subparsers(dest="command", required=True)

    p_key = sub.add_parser("set-key", help="Store the Gemini API key")
    p_key.add_argument("--key", default=None, help="API key (prompted when omitted)")
    p_key.set_defaults(func=cmd_set_key)

    p_ask = sub.add_parser("ask", help="Generate once and print the answer")
    p_ask.add_argument("--text", required=True, help="Input text")
    p_ask.add_argument("--kind", default=ContextKind.SPEECH.value, choices=[k.value for k in ContextKind])
    p_ask.set_defaults(func=cmd_ask)

    p_run = sub.add_parser("run", help="Interactive session reading stdin")
    p_run.set_defaults(func=cmd_run)
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config)
    except AssistantError as e:
        setup_logging()
        LOGGER.error("%s", e)
        return 2
    setup_logging(args.log_level or settings.log_level)
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
