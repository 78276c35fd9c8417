#!/usr/bin/env python3
"""
Stream Watch Script
===================

Standalone script that connects to a Pixel Socket server and saves the
images it pushes.

This script:
    1. Connects to a running Pixel Socket server
    2. Saves every received image to the save directory
    3. Logs connection stats every report interval
    4. Reports a final summary

Usage:
    python scripts/watch_stream.py --duration 120
    python scripts/watch_stream.py --url ws://localhost:8080/ws --save-dir ./images
    python scripts/watch_stream.py --duration 0    # run until Ctrl+C
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from pixel_socket import ClientConfig, NotificationPayload, PixelSocket


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def on_notification(payload: NotificationPayload) -> None:
    if payload.blob_data is None:
        logger.info(f"Job {payload.job_id} stored externally: {payload.object_url}")


def on_error(error: Exception) -> None:
    logger.warning(f"Client error: {error}")


async def watch(
    url: str,
    save_dir: str,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Watch the stream until the duration elapses.

    Args:
        url: WebSocket URL of the Pixel Socket server
        save_dir: Directory for received images ("" disables saving)
        duration: Run time in seconds (0 = until interrupted)
        report_interval: Seconds between progress reports

    Returns:
        Final stats dict
    """
    logger.info("=" * 60)
    logger.info("Pixel Socket Watch")
    logger.info("=" * 60)
    logger.info(f"Stream URL: {url}")
    logger.info(f"Save directory: {save_dir or '(disabled)'}")
    logger.info(f"Duration: {duration or 'unlimited'} seconds")
    logger.info("=" * 60)

    client = PixelSocket(
        ClientConfig(url=url, save_directory=save_dir or None),
        on_notification=on_notification,
        on_connect=lambda: logger.info("Connected to WebSocket server"),
        on_error=on_error,
    )
    await client.connect()

    start_time = time.time()
    last_report_time = start_time
    last_image_count = 0

    try:
        while duration <= 0 or time.time() - start_time < duration:
            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                stats = client.get_stats()
                rate = (stats.images_received - last_image_count) / time_since_report

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
                logger.info(f"  State: {client.state.value}")
                logger.info(f"  Images received: {stats.images_received}")
                logger.info(f"  Bytes received: {stats.bytes_received}")
                logger.info(f"  Images/s: {rate:.2f}")
                logger.info(f"  Reconnect attempts: {stats.reconnect_attempts}")

                last_report_time = time.time()
                last_image_count = stats.images_received

            await asyncio.sleep(0.5)

    except asyncio.CancelledError:
        logger.info("Watch interrupted by user")
    finally:
        await client.disconnect()

    total_time = time.time() - start_time
    stats = client.get_stats()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Images received: {stats.images_received}")
    logger.info(f"Bytes received: {stats.bytes_received}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        **stats.to_dict(),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Watch a Pixel Socket image stream and save received images"
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("PIXEL_SOCKET_URL", "ws://localhost:8080/ws"),
        help="WebSocket URL of the Pixel Socket server",
    )
    parser.add_argument(
        "--save-dir",
        type=str,
        default=os.environ.get("PIXEL_SOCKET_SAVE_DIRECTORY", "./received_images"),
        help="Directory for received images, empty to disable",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Run time in seconds, 0 for unlimited (default: 0)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    try:
        result = asyncio.run(watch(
            url=args.url,
            save_dir=args.save_dir,
            duration=args.duration,
            report_interval=args.report_interval,
        ))
    except KeyboardInterrupt:
        sys.exit(130)

    sys.exit(0 if result["images_received"] > 0 else 1)


if __name__ == "__main__":
    main()
