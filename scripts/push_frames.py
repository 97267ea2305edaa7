#!/usr/bin/env python3
"""
Frame Push Script
=================

Replays a directory of JPEG files into a relay session.

This script:
    1. Connects to the relay's ingestion endpoint
    2. Sends the files as frames at a fixed rate (looping by default)
    3. Logs upload stats every few seconds
    4. Reports a final summary

Usage:
    python scripts/push_frames.py --url http://localhost:4873 --session 42 --frames ./frames
    python scripts/push_frames.py --session 42 --token <upload token> --fps 15 --duration 60
"""

import argparse
import asyncio
import logging
import sys

from mjpeg_relay.uploader import DirectoryFrameSource, FrameUploader, build_ingest_url


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_push(
    url: str,
    frames_dir: str,
    fps: float,
    duration: int,
    loop: bool,
    report_interval: int,
) -> dict:
    """
    Push frames until the duration elapses or the uploader stops.
    
    Returns:
        Uploader metrics plus whether the relay refused the credential.
    """
    uploader = FrameUploader(
        url=url,
        source=DirectoryFrameSource(frames_dir, loop=loop),
        fps=fps,
    )
    task = asyncio.create_task(uploader.run(), name="frame_uploader")
    
    elapsed = 0
    while not task.done() and (duration <= 0 or elapsed < duration):
        await asyncio.sleep(report_interval)
        elapsed += report_interval
        logger.info(f"[{elapsed}s] connected={uploader.connected} {uploader.metrics.to_dict()}")
    
    if not task.done():
        await uploader.stop()
    await task
    
    summary = uploader.metrics.to_dict()
    summary["refused"] = uploader.refused
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Replay JPEG files into a relay session")
    parser.add_argument("--url", default="http://localhost:4873", help="Relay base URL")
    parser.add_argument("--session", required=True, help="Target session key")
    parser.add_argument("--token", default=None, help="Upload token or digest")
    parser.add_argument("--frames", default="./frames", help="Directory of JPEG files")
    parser.add_argument("--path", default="/ws", help="Ingestion path")
    parser.add_argument("--fps", type=float, default=8.0, help="Frames per second")
    parser.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = until done)")
    parser.add_argument("--once", action="store_true", help="Send each file once, no looping")
    parser.add_argument("--report-interval", type=int, default=5, help="Seconds between reports")
    args = parser.parse_args()
    
    url = build_ingest_url(args.url, args.session, args.token, args.path)
    
    try:
        summary = asyncio.run(run_push(
            url=url,
            frames_dir=args.frames,
            fps=args.fps,
            duration=args.duration,
            loop=not args.once,
            report_interval=args.report_interval,
        ))
    except ValueError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    
    logger.info(f"Summary: {summary}")
    return 2 if summary["refused"] else 0


if __name__ == "__main__":
    sys.exit(main())
