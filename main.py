"""CLI entrypoint: storyboard -> per-shot code -> render -> optional stitch."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List

from rich.table import Table

from core import Shot
from orchestrator import ShotPipeline
from render import RenderJobClient
from utils.logger import console, setup_logger


def _shot_table(shots: List[Shot]) -> Table:
    table = Table(title="Shots", show_header=True)
    table.add_column("#", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Frames", style="white")
    table.add_column("Video / Error", style="white")

    for shot in shots:
        table.add_row(
            str(shot.shot_number),
            shot.status.value,
            str(shot.duration_frames),
            shot.video_url or shot.error or "",
        )
    return table


async def _create(args: argparse.Namespace) -> int:
    pipeline = ShotPipeline()
    try:
        shots = await pipeline.create_storyboard(args.prompt)
        console.print(f"Storyboard ready: {len(shots)} shots")

        await pipeline.generate_and_render_all()
        await pipeline.wait_until_settled()
        shots = pipeline.store.list_shots()
        console.print(_shot_table(shots))

        if args.stitch:
            result = await pipeline.stitch_final(
                on_progress=lambda value: console.print(f"stitch {value:.0%}", end="\r"),
            )
            if not result.success:
                console.print(f"[red]Stitch failed:[/red] {result.error}")
                return 1
            console.print(f"Final video: {result.video_url}")
        return 0 if all(shot.video_url for shot in shots) else 1
    finally:
        await pipeline.aclose()


async def _render(args: argparse.Namespace) -> int:
    code = Path(args.code_file).read_text(encoding="utf-8")
    client = RenderJobClient()
    try:
        result = await client.submit_and_await(
            code,
            int(args.duration_frames),
            on_progress=lambda value: console.print(f"render {value:.0%}", end="\r"),
        )
    finally:
        await client.backend.aclose()

    print(
        json.dumps(
            {
                "success": result.success,
                "video_url": result.video_url,
                "error": result.error,
                "config_error": result.config_error,
            },
            ensure_ascii=False,
        )
    )
    return 0 if result.success else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="ShotReel multi-shot video CLI")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="storyboard, generate and render every shot")
    create.add_argument("--prompt", required=True)
    create.add_argument("--stitch", action="store_true", help="stitch completed shots into one video")

    render = sub.add_parser("render", help="render one component file")
    render.add_argument("--code-file", required=True)
    render.add_argument("--duration-frames", type=int, required=True)

    args = parser.parse_args()
    setup_logger(level=getattr(logging, str(args.log_level).upper(), logging.INFO), log_file=args.log_file)

    if args.command == "create":
        return asyncio.run(_create(args))
    if args.command == "render":
        return asyncio.run(_render(args))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
