#!/usr/bin/env python3
# =============================================================================
# scripts/transform_portrait.py - Transform a Portrait from the Command Line
# =============================================================================
# Submits one image and prints every update until the operation settles.
#
# Usage:
#   python scripts/transform_portrait.py me.png --style Anime --num-images 2 \
#       --origin http://localhost:8000 --session "$(python scripts/create_session_token.py 1)"
# =============================================================================

import argparse
import asyncio
import logging
import mimetypes
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.models.operation import Operation
from lib.operation_launcher import SubmissionError
from lib.portrait_client import PortraitStudioClient


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Transform a portrait with live progress")
    parser.add_argument("image", help="Path to the portrait (png, jpg, jpeg, webp)")
    parser.add_argument("--origin", default="http://localhost:8000")
    parser.add_argument("--session", default=os.getenv("PORTRAIT_SESSION"), help="Session cookie value")
    parser.add_argument("--style", default="Random")
    parser.add_argument("--persona", default="None")
    parser.add_argument("--num-images", type=int, default=1)
    parser.add_argument("--output-format", choices=["png", "jpg"], default="png")
    parser.add_argument("--timeout", type=float, default=300)
    return parser.parse_args(argv)


def print_operation(operation_id: str, operation: Operation | None) -> None:
    if operation is None:
        return
    line = f"[{operation.status.value:>10}] {operation.progress:5.1f}%  {operation.message or ''}"
    if operation.preview_url:
        line += f"  preview: {operation.preview_url}"
    print(line)


async def run(args) -> int:
    with open(args.image, "rb") as f:
        content = f.read()
    content_type = mimetypes.guess_type(args.image)[0] or "application/octet-stream"

    cookies = {"session": args.session} if args.session else None

    async with PortraitStudioClient(args.origin, cookies=cookies) as client:
        client.registry.add_listener(print_operation)

        try:
            operation_id = await client.start_transformation(
                data={
                    "style": args.style,
                    "persona": args.persona,
                    "num_images": str(args.num_images),
                    "output_format": args.output_format,
                },
                files={"image": (os.path.basename(args.image), content, content_type)},
            )
        except SubmissionError as e:
            print(f"Submission failed: {e}")
            return 1

        print(f"Operation: {operation_id}")

        try:
            operation = await client.wait_for_operation(operation_id, timeout=args.timeout)
        except asyncio.TimeoutError:
            print(f"Timed out after {args.timeout:.0f}s")
            return 1

    if operation is None or operation.error:
        print(f"Failed: {operation.error if operation else 'operation cleared'}")
        return 1

    print("Results:")
    for url in operation.results or []:
        print(f"  {url}")
    return 0


def main():
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    sys.exit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
