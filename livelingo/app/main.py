from __future__ import annotations

import argparse
import asyncio
import logging

from livelingo.app.config import resolve_args
from livelingo.app.diagnostics import hint_for_exception, summarize_exception
from livelingo.app.logging_setup import setup_app_logger
from livelingo.app.services import build_live_controller, build_server
from livelingo.audio.framer import AudioFramer
from livelingo.contracts import ErrorEvent, TranscriptEvent, TranslationEvent
from livelingo.errors import LiveLingoError
from livelingo.transport.messages import ServerEvent


def format_event(event: ServerEvent) -> str | None:
    """Console line for one server event; interim results are not printed."""
    if isinstance(event, TranscriptEvent):
        return f"{event.text}" if event.is_final and event.text.strip() else None
    if isinstance(event, TranslationEvent):
        return f"  -> [{event.target_language}] {event.translated}" if event.is_final else None
    if isinstance(event, ErrorEvent):
        return f"! {event.kind}: {event.error}"
    return None


def _print_event(event: ServerEvent) -> None:
    line = format_event(event)
    if line is not None:
        print(line, flush=True)


async def _serve(args: argparse.Namespace) -> None:
    server = build_server(args)
    ready = asyncio.Event()
    task = asyncio.create_task(server.serve_forever(ready))
    await ready.wait()
    print(f"LiveLingo orchestrator on ws://{server.host}:{server.port} (Ctrl+C to stop)", flush=True)
    await task


async def _listen(args: argparse.Namespace, logger: logging.Logger) -> None:
    controller = build_live_controller(args)
    controller.add_listener(_print_event)
    try:
        await controller.connect()
        await controller.start()
        print(f"Listening via {args.server_url} (Ctrl+C to stop and save)", flush=True)
        receiver = controller.receiver
        if receiver is not None:
            await receiver
    finally:
        try:
            if controller.reconciler.total_lines:
                saved = await controller.end_session(str(args.title))
                print(f"Saved {len(saved.transcript_lines)} lines to {controller.recorder.path}", flush=True)
        finally:
            await controller.close()
            logger.info(
                "listen_finished",
                extra={"state": controller.state.state.value, "frames_sent": controller.frames_sent},
            )


def _print_devices() -> None:
    for src in AudioFramer.list_sources():
        print(f"{src['id']}: {src['name']} ({src['channels']} ch)")


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, _log_dir, log_path = setup_app_logger(debug=bool(args.debug))
    logger.info("app_start", extra={"command": args.command, "config_path": str(args.config or "")})

    try:
        if args.command == "devices":
            _print_devices()
        elif args.command == "serve":
            asyncio.run(_serve(args))
        elif args.command == "listen":
            asyncio.run(_listen(args, logger))
    except KeyboardInterrupt:
        logger.info("app_interrupted", extra={"command": args.command})
    except (LiveLingoError, OSError) as e:
        summary = summarize_exception(str(e))
        logger.error("app_failed", extra={"command": args.command, "error": summary})
        print(f"Error: {summary}")
        print(f"Hint: {hint_for_exception(summary)}")
        print(f"Logs: {log_path}")
        return 1

    logger.info("app_quit", extra={"command": args.command})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
