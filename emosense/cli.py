"""
EmoSense - Console Companion

Interactive console loop over the same session core the HTTP API uses.
Each turn asks for three simulated sensor readings, then the message.

Usage:
    emosense                       # chat using settings from env/.env
    emosense chat --classifier dummy
    emosense serve --port 8000     # run the HTTP API with uvicorn

Exit codes:
    0  session ended normally (quit sentinel, escalation resolved, EOF)
    1  uncaught failure in the conversation loop
    2  configuration error, nothing was started
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, List, Optional

from emosense import __version__
from emosense.config import Settings, get_settings
from emosense.core.exceptions import ConfigurationError
from emosense.core.logging import setup_structured_logging
from emosense.core.pipeline import RiskPipeline, create_pipeline
from emosense.core.session import ConversationSession
from emosense.core.types import Assessment, MultimodalInput

logger = logging.getLogger(__name__)

ReadFn = Callable[[str], str]
WriteFn = Callable[[str], None]

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

RULE = "-" * 50

VISION_PROMPT = (
    "BOT (Computer Vision): What is your general facial expression now?\n"
    "(e.g., smiling, frowning, neutral, tense, tearful)\nYou: "
)
AUDIO_PROMPT = (
    "BOT (Audio Processing): How would you describe your tone of voice?\n"
    "(e.g., quiet, rapid, trembling, flat, loud)\nYou: "
)
PHYSIO_PROMPT = "BOT (Physiological Sensor): Is your heart rate feeling fast, slow, or normal?\nYou: "
TEXT_PROMPT = "BOT: Now, please tell me what's on your mind.\nYou: "
CHOICE_PROMPT = "You (Type 'Counselor' or 'Contacts'): "

ESCALATED_NOTICE = "BOT: The chat has been escalated. Ending this session to connect you with help."
GOODBYE = "BOT: Thank you for talking. Please stay safe. Exiting."


def format_assessment(assessment: Assessment) -> str:
    """Render the analysis block shown after every classified turn."""
    return "\n".join([
        "[EMOSENSE ANALYSIS]:",
        f"  - State: {assessment.emotional_state} (Intensity: {assessment.intensity}/10)",
        f"  - Crisis Detected: {str(assessment.is_crisis).lower()}",
        f"  - Reason: {assessment.reason}",
        f"  - Confidence: {assessment.confidence * 100:.1f}%",
    ])


async def _ask(read: ReadFn, prompt: str) -> str:
    # Blocking read runs off the event loop
    return await asyncio.to_thread(read, prompt)


async def run_console(
    pipeline: RiskPipeline,
    settings: Settings,
    read: ReadFn = input,
    write: WriteFn = print,
) -> int:
    """
    Drive one session until quit, escalation resolution, or end of input.

    The pipeline is shut down on exit.
    """
    session = ConversationSession.from_settings(pipeline, settings)

    write("\n--- EmoSense Companion ---")
    write(f"This is a simulation of a multimodal support agent. Type '{settings.quit_sentinel}' to exit.")
    write("I'll ask for some context to simulate my sensors before you type your message.")

    try:
        while True:
            write("\n" + RULE)
            try:
                vision = await _ask(read, VISION_PROMPT)
                audio = await _ask(read, AUDIO_PROMPT)
                physio = await _ask(read, PHYSIO_PROMPT)
                text = await _ask(read, TEXT_PROMPT)
            except EOFError:
                logger.info("Input closed, ending session")
                session.end()
                break

            result = await session.handle_turn(
                MultimodalInput(text=text, vision=vision, audio=audio, physio=physio)
            )
            if result.assessment is None:
                break

            write("\n" + format_assessment(result.assessment))
            write(RULE)
            write(f"\nBOT: {result.reply}")

            if result.is_crisis:
                await _run_escalation(session, result.escalation_prompt, read, write)
                write("\n" + ESCALATED_NOTICE)
                break
    finally:
        await pipeline.shutdown()

    write("\n" + GOODBYE)
    return EXIT_OK


async def _run_escalation(
    session: ConversationSession,
    opening_prompt: Optional[str],
    read: ReadFn,
    write: WriteFn,
) -> None:
    write(f"\nBOT: {opening_prompt}")
    while True:
        try:
            choice = await _ask(read, CHOICE_PROMPT)
        except EOFError:
            # Nobody left to answer; still show the emergency resources
            choice = "contacts"
        step = await session.submit_escalation_choice(choice)
        for message in step.messages:
            write(message)
        if step.resolved:
            return


# =============================================================================
# Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="emosense",
        description="EmoSense multimodal emotional triage companion",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override APP_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command")

    chat = subparsers.add_parser("chat", help="Interactive console session (default)")
    chat.add_argument(
        "--classifier",
        choices=["gemini", "dummy"],
        default=None,
        help="Override CLASSIFIER_BACKEND",
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Override BACKEND_HOST")
    serve.add_argument("--port", type=int, default=None, help="Override BACKEND_PORT")

    return parser


def main(
    argv: Optional[List[str]] = None,
    read: ReadFn = input,
    write: WriteFn = print,
) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    setup_structured_logging(args.log_level or settings.app_log_level, json_format=settings.log_json)

    if args.command == "serve":
        return _serve(settings, args.host, args.port)

    if getattr(args, "classifier", None):
        settings = settings.model_copy(update={"classifier_backend": args.classifier})

    try:
        pipeline = create_pipeline(settings)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        print(f"\nFATAL ERROR: {e.message}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        return asyncio.run(run_console(pipeline, settings, read=read, write=write))
    except KeyboardInterrupt:
        write("\n" + GOODBYE)
        return EXIT_OK
    except Exception as e:
        logger.exception("Fatal error in conversation loop")
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE


def _serve(settings: Settings, host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    uvicorn.run(
        "emosense.main:build_app",
        factory=True,
        host=host or settings.backend_host,
        port=port or settings.backend_port,
        log_level=settings.app_log_level.lower(),
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
