"""
Command-line subscriber for a running push server.

- Connects, subscribes to the requested topics and prints each frame.
- With --count, sends a full unsubscribe after that many topic frames and exits.
"""
import argparse
import asyncio
import json
import logging
from typing import Callable, Iterable, Optional, Sequence

import websockets

from topicast.core.log import DATE_FORMAT, LOG_FORMAT

logger = logging.getLogger("topicast.subscriber")

DEFAULT_URL = "ws://localhost:4444/"


def build_subscribe(topics: Iterable[str]) -> str:
    return json.dumps({"type": "subscribe", "topic": list(topics)})


def build_unsubscribe(topics: Optional[Iterable[str]] = None) -> str:
    msg: dict = {"type": "unsubscribe"}
    if topics:
        msg["topic"] = list(topics)
    return json.dumps(msg)


def is_topic_frame(frame: dict) -> bool:
    data = frame.get("data")
    return isinstance(data, dict) and "topic" in data


def describe_frame(raw: str | bytes) -> str:
    """One readable line per server frame."""
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError):
        return f"?? {raw!r}"
    data = frame.get("data") if isinstance(frame, dict) else None
    if not isinstance(data, dict):
        return f"?? {raw!r}"
    if "error" in data:
        return f"error: {data['error']}"
    if "topic" in data:
        return f"[{data['topic']}] #{data.get('counter', '?')} {json.dumps(data.get('data'))}"
    topics = data.get("topics")
    if topics is not None:
        return f"{data.get('message')} {topics}"
    return str(data.get("message"))


async def run_subscriber(
    url: str,
    topics: Sequence[str],
    count: Optional[int] = None,
    out: Callable[[str], None] = print,
) -> int:
    """Stream frames until the server closes or ``count`` topic frames arrive.

    Returns the number of topic frames received.
    """
    received = 0
    async with websockets.connect(url, ping_interval=20, ping_timeout=30) as ws:
        await ws.send(build_subscribe(topics))
        logger.info("Subscribed to %s at %s", list(topics), url)
        async for raw in ws:
            out(describe_frame(raw))
            try:
                frame = json.loads(raw)
            except (TypeError, ValueError):
                continue
            if isinstance(frame, dict) and is_topic_frame(frame):
                received += 1
            if count is not None and received >= count:
                await ws.send(build_unsubscribe())
                logger.info("Received %d frames; unsubscribed", received)
                break
    return received


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="topicast-subscribe",
        description="Subscribe to topics on a push server and print the frames.",
    )
    parser.add_argument("--url", default=DEFAULT_URL, help=f"server URL (default {DEFAULT_URL})")
    parser.add_argument(
        "--topic",
        "-t",
        dest="topics",
        action="append",
        help="topic to follow; repeat for several (default navsatfix)",
    )
    parser.add_argument("--count", "-n", type=int, default=None, help="stop after N topic frames")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    args = parser.parse_args(argv)
    if not args.topics:
        args.topics = ["navsatfix"]
    if args.count is not None and args.count < 1:
        parser.error("--count must be at least 1")
    return args


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    try:
        asyncio.run(run_subscriber(args.url, args.topics, args.count))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
