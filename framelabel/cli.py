"""
Run a single pipeline step from an event document.

    framelabel run event.json --workflow video --remaining-ms 600000
"""

import argparse
import asyncio
import json
import sys

from loguru import logger

from framelabel.config.settings import FrameLabelConfig
from framelabel.utils.error_handler import ErrorHandler
from framelabel.utils.logging_config import log_manager
from framelabel.video_pipeline.handler import WORKFLOWS, handle_event
from framelabel.video_pipeline.states import StepContext


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="framelabel", description="Custom-label video/image pipeline steps")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run the step named by the event's 'state'")
    run.add_argument("event", help="path to the event JSON ('-' for stdin)")
    run.add_argument("--workflow", choices=sorted(WORKFLOWS), default="video")
    run.add_argument("--remaining-ms", type=int, default=None,
                     help="time budget of this invocation in milliseconds")
    run.add_argument("--output", default=None, help="write the step result here instead of stdout")
    return parser


def _read_event(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = FrameLabelConfig()
    log_manager.configure(config.logging)

    event = _read_event(args.event)
    context = StepContext(
        remaining_time_millis=args.remaining_ms,
        default_remaining_time_millis=config.pipeline.default_remaining_time_millis,
    )
    try:
        result = asyncio.run(handle_event(event, context, workflow=args.workflow))
    except Exception as e:
        logger.error(f"step failed: {e}")
        print(json.dumps(ErrorHandler.describe(e), indent=2), file=sys.stderr)
        return 1

    body = json.dumps(result, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(body)
    else:
        print(body)
    return 0


if __name__ == "__main__":
    sys.exit(main())
