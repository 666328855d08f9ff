# src/main.py — v2
"""CLI entry point: models, chat, embed commands.

Usage:
    polyllm models [--provider P] [--capability C]
    polyllm chat "<prompt>" [-m MODEL] [--system TEXT] [--image FILE] [--stream]
    polyllm embed <text>... [-m MODEL]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from polyllm.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="polyllm",
        description=f"polyllm v{__version__}: one interface for OpenAI, Grok and Gemini",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- models ---
    p_models = subparsers.add_parser("models", help="List registered models")
    p_models.add_argument(
        "--provider", default=None, choices=["openai", "grok", "gemini"],
        help="Only list models of this provider",
    )
    p_models.add_argument(
        "--capability", default=None,
        help="Only list models with this capability (e.g. TEXT_CHAT, EMBEDDING)",
    )
    p_models.set_defaults(func=_cmd_models)

    # --- chat ---
    p_chat = subparsers.add_parser("chat", help="Send a single prompt")
    p_chat.add_argument("prompt", help="User prompt")
    p_chat.add_argument(
        "-m", "--model", default="gpt-4o",
        help="Logical model id (default: gpt-4o)",
    )
    p_chat.add_argument("--system", default=None, help="System prompt")
    p_chat.add_argument(
        "--image", type=Path, action="append", default=[],
        help="Attach an image file (repeatable)",
    )
    p_chat.add_argument(
        "--stream", action="store_true",
        help="Print the reply as it arrives",
    )
    p_chat.add_argument(
        "--timeout", type=float, default=None,
        help="Maximum wait in seconds",
    )
    p_chat.set_defaults(func=_cmd_chat)

    # --- embed ---
    p_embed = subparsers.add_parser("embed", help="Embed one or more texts")
    p_embed.add_argument("texts", nargs="+", help="Texts to embed")
    p_embed.add_argument(
        "-m", "--model", default="openai-embedding-small",
        help="Logical embedding model id (default: openai-embedding-small)",
    )
    p_embed.set_defaults(func=_cmd_embed)

    return parser


async def _cmd_models(args: argparse.Namespace) -> int:
    """Print the model table."""
    from polyllm.llm.model_registry import DEFAULT_REGISTRY, AICapability, AIProvider

    specs = list(DEFAULT_REGISTRY.get_all().values())
    if args.provider:
        specs = [s for s in specs if s.provider == AIProvider(args.provider)]
    if args.capability:
        try:
            capability = AICapability[args.capability.upper()]
        except KeyError:
            logger.error("Unknown capability: %s", args.capability)
            return 1
        specs = [s for s in specs if s.supports(capability)]

    for spec in specs:
        flags = ",".join(
            f.name for f in AICapability if f.value and f in spec.capabilities
        )
        print(f"{spec.model.value:32s} {spec.provider.value:8s} {spec.model_id:34s} {flags}")
    return 0


async def _cmd_chat(args: argparse.Namespace) -> int:
    """Send one prompt and print the reply."""
    from polyllm.api.facade import AIManager
    from polyllm.llm.models import ContentPart, Message

    for image in args.image:
        if not image.exists():
            logger.error("File not found: %s", image)
            return 1

    messages: list[Message] = []
    if args.system:
        messages.append(Message.system(args.system))
    if args.image:
        parts = [ContentPart.from_text(args.prompt)]
        parts.extend(ContentPart.from_image_file(image) for image in args.image)
        messages.append(Message(role="user", parts=parts))
    else:
        messages.append(Message.user(args.prompt))

    manager = AIManager()
    if args.stream:
        reply = await manager.send_message_stream(
            messages, args.model, _print_delta, timeout=args.timeout,
        )
        print()
    else:
        reply = await manager.send_message(messages, args.model, timeout=args.timeout)
        if reply is not None:
            print(reply)
    return 0 if reply is not None else 1


async def _cmd_embed(args: argparse.Namespace) -> int:
    """Embed texts and print their dimensions."""
    from polyllm.api.facade import AIManager

    manager = AIManager()
    embeddings = await manager.create_embeddings(args.texts, args.model)
    for embedding in embeddings:
        preview = ", ".join(f"{v:.4f}" for v in embedding.to_floats()[:4])
        print(f"{embedding.model} dim={embedding.dimension} [{preview}, ...]")
    return 0 if embeddings else 1


def _print_delta(delta: str) -> None:
    sys.stdout.write(delta)
    sys.stdout.flush()


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage from settings."""
    from polyllm.config.settings import Settings
    from polyllm.logging.logger import setup_logging

    settings = Settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
