"""Command-line entry point for serving, indexing and querying MenuBot."""

from __future__ import annotations

import argparse
import asyncio
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from menubot.config import config
from menubot.errors import MenuBotError
from menubot.orchestrator import ResponseOrchestrator
from menubot.pipeline import RAGPipeline
from menubot.playback import FileAudioSink, NullAudioSink, PlaybackController

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

    from menubot.playback import AudioSink

PROJECT_ROOT = Path(__file__).resolve().parent
APP_FACTORY = "menubot.api:create_app"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="MenuBot: answer questions about dishes and wines.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the API server (default: 8000).",
    )
    serve.add_argument(
        "--address",
        default="localhost",
        help="Bind address for the API server (default: localhost).",
    )
    serve.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change.",
    )

    commands.add_parser("reindex", help="Rebuild the knowledge base from the catalog.")

    ask = commands.add_parser("ask", help="Ask one question and print the answer.")
    ask.add_argument("question", help="Question about the menu.")
    ask.add_argument(
        "--audio-out",
        type=Path,
        default=None,
        help="Write the synthesized answer audio to this file.",
    )
    return parser.parse_args(argv)


def build_uvicorn_command(*, port: int, address: str, reload: bool) -> list[str]:
    """Construct the uvicorn CLI invocation."""  # noqa: DOC201
    command = [
        sys.executable,
        "-m",
        "uvicorn",
        APP_FACTORY,
        "--factory",
        "--host",
        address,
        "--port",
        str(port),
    ]
    if reload:
        command.append("--reload")
    return command


def run_server(command: Sequence[str], logger: Logger) -> int:
    """Execute the configured uvicorn command and return its exit code."""  # noqa: DOC201
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
        )
    except KeyboardInterrupt:
        logger.info("MenuBot stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch uvicorn")
        return 1
    return result.returncode


async def run_reindex() -> int:
    """Rebuild the vector store and print the summary."""  # noqa: DOC201
    result = await RAGPipeline().reindex()
    print(result.message)  # noqa: T201
    return 0


async def run_ask(question: str, audio_out: Path | None) -> int:
    """Run one orchestrated question end to end and print the final answer."""  # noqa: DOC201
    sink: AudioSink = FileAudioSink(audio_out) if audio_out else NullAudioSink()
    orchestrator = ResponseOrchestrator(
        RAGPipeline(),
        PlaybackController(sink),
        reveal_interval_ms=0,
        greeting_text="",
        auto_play=audio_out is not None,
    )
    message_id = await orchestrator.submit(question)
    await orchestrator.wait_idle()
    # let a file sink report the end of playback
    await asyncio.sleep(0)

    message = orchestrator.get(message_id)
    print(message.text)  # noqa: T201
    return 0 if message.text != orchestrator.apology_text else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and dispatch the chosen command."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.command == "serve":
        logger.info(
            "Starting MenuBot API at http://%s:%s (reload=%s)",
            args.address,
            args.port,
            args.reload,
        )
        command = build_uvicorn_command(
            port=args.port, address=args.address, reload=args.reload
        )
        return_code = run_server(command, logger)
        if return_code != 0:
            logger.error("uvicorn exited with status %s", return_code)
        return return_code

    try:
        if args.command == "reindex":
            return asyncio.run(run_reindex())
        return asyncio.run(run_ask(args.question, args.audio_out))
    except MenuBotError:
        logger.exception("%s failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
