from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import asdict
from pathlib import Path

from omegaconf import OmegaConf

from omnisight.core.io_utils.media_stream import create_media_stream_reader, parse_source
from omnisight.core.pipeline import PerceptionSession, PipelineConfig, load_config_from_yaml, resolve_config

LOGGER = logging.getLogger(__name__)


def _default_pipeline_config() -> Path:
    return Path(__file__).resolve().parent / "config" / "pipeline.yaml"


def _load_config(path: Path | None) -> PipelineConfig:
    if path is None:
        return resolve_config()
    return load_config_from_yaml(path)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-model perception pipeline with per-role detection scheduling.")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Run the pipeline over a video, camera or image directory.")
    run_parser.add_argument(
        "source",
        type=str,
        help="Video file, image directory, or camera:<index>.",
    )
    run_parser.add_argument(
        "--config",
        type=Path,
        default=_default_pipeline_config(),
        help="Pipeline config YAML (default: config/pipeline.yaml).",
    )
    run_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="JSONL output path, one result per frame (default: results.jsonl).",
    )
    run_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional limit on the number of frames to process.",
    )
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    config_parser = sub.add_parser("config", help="Print the resolved configuration.")
    config_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Pipeline config YAML to merge over the defaults.",
    )

    return parser


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _process_stream(reader, session: PerceptionSession, handle, limit: int | None) -> int:
    """Runs every frame on one event loop and writes a JSON line per result."""
    processed = 0
    for frame in reader:
        result = await session.detect(frame)
        handle.write(result.to_json() + "\n")
        processed += 1
        if result.failed_roles:
            LOGGER.warning("Frame %s: failed roles %s", result.frame_id, [r.value for r in result.failed_roles])
        if limit and processed >= limit:
            break
    return processed


def _run(args: argparse.Namespace) -> None:
    config = _load_config(args.config)
    _setup_logging(config.debug or args.verbose)

    reader = create_media_stream_reader(parse_source(args.source))
    if not reader.is_video and config.video_optimized:
        LOGGER.info("Source frames are unrelated stills; disabling detection reuse")
        config = resolve_config({"video_optimized": False}, base=config)

    output = (args.output or Path("results.jsonl")).expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)

    with reader, PerceptionSession(config) as session, output.open("w", encoding="utf-8") as handle:
        processed = asyncio.run(_process_stream(reader, session, handle, args.limit))

    print(f"Processed {processed} frames; results saved to {output}")


def _print_config(args: argparse.Namespace) -> None:
    config = _load_config(args.config)
    print(OmegaConf.to_yaml(OmegaConf.create(asdict(config))))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        _run(args)
        return 0
    if args.command == "config":
        _print_config(args)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
