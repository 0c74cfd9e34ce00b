"""Command line entry point for Ellipsis Interchange."""

import argparse
import asyncio
import io
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional


def setup_logging(debug: bool = False):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    # Force UTF-8 encoding for stdout/stderr on Windows
    if sys.platform == 'win32':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

    handlers = [logging.StreamHandler(sys.stdout)]

    file_handler = None
    log_file = None

    if debug:
        from datetime import datetime
        log_dir = Path("data/debug_logs/interchange")
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"interchange_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    # Root stays at INFO so library debug output doesn't flood the log
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    package_logger = logging.getLogger('ellipsis_interchange')
    package_logger.setLevel(level)

    # Silence noisy third-party loggers
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    if debug:
        logging.getLogger(__name__).debug(f"Log file: {log_file}")

    return file_handler, log_file


async def _run_import(args: argparse.Namespace, config) -> int:
    from ellipsis_interchange.services import FileImageStore
    from ellipsis_interchange.services.interchange import NativeAdapter, StoryImporter
    from ellipsis_interchange.services.interchange.card_exporter import sanitize_filename

    logger = logging.getLogger(__name__)
    store = None if args.skip_images else FileImageStore(config.paths.images)
    importer = StoryImporter(config, store=store)
    result = await importer.import_file(args.file, skip_images=args.skip_images)

    for warning in result.warnings:
        logger.warning(warning)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{sanitize_filename(result.story.name, config.defaults.story_name)}.json"
    document = NativeAdapter.serialize(result.story, result.narratives)
    await asyncio.to_thread(
        output_path.write_text,
        json.dumps(document, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )

    print(f"Imported '{result.story.name}' ({result.format}) -> {output_path}")
    return 0


async def _run_export(args: argparse.Namespace, config) -> int:
    from ellipsis_interchange.services import FileImageStore
    from ellipsis_interchange.services.interchange import FormatDetector, NativeAdapter, StoryExporter
    from ellipsis_interchange.services.interchange.exceptions import ParseError

    raw_text = await asyncio.to_thread(Path(args.story).read_text, encoding="utf-8")
    try:
        raw = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Story file is not valid JSON: {e}") from e
    story, narratives = NativeAdapter.load(raw)

    narrative = None
    if args.narrative:
        narrative = next((n for n in narratives if n.id == args.narrative), None)
        if narrative is None:
            raise ValueError(f"Narrative not found in story file: {args.narrative}")
    elif narratives:
        narrative = narratives[0]

    fmt = FormatDetector.parse(args.format)
    exporter = StoryExporter(FileImageStore(config.paths.images), config)
    result = await exporter.export(
        story,
        narrative,
        fmt,
        primary_character_id=args.character,
        narratives=narratives,
    )

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / result.filename
    await asyncio.to_thread(output_path.write_bytes, result.content)

    print(f"Exported '{story.name}' ({result.format}) -> {output_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ellipsis-interchange",
        description="Convert stories between character cards, BYAF archives and native JSON."
    )
    parser.add_argument("--config", default=None, help="Path to interchange.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging plus a log file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import a .png, .byaf, .zip or .json file")
    import_parser.add_argument("file", help="File to import")
    import_parser.add_argument("--output-dir", default=".", help="Where to write the story JSON")
    import_parser.add_argument("--skip-images", action="store_true", help="Don't extract portraits")

    export_parser = subparsers.add_parser("export", help="Export a native story JSON file")
    export_parser.add_argument("story", help="Native story JSON file")
    export_parser.add_argument(
        "--format",
        default="card",
        help="Target format: card (png), archive (byaf) or native (json)",
    )
    export_parser.add_argument("--character", default=None, help="Primary character id")
    export_parser.add_argument("--narrative", default=None, help="Narrative id (defaults to the first)")
    export_parser.add_argument("--output-dir", default=".", help="Where to write the exported file")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Run the interchange CLI."""
    from ellipsis_interchange.config import ConfigLoader, ConfigLoadError, ConfigValidationError
    from ellipsis_interchange.services.interchange import InterchangeError

    args = build_parser().parse_args(argv)

    try:
        config = ConfigLoader().load_config(args.config)
    except (ConfigLoadError, ConfigValidationError) as e:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logging.getLogger(__name__).error(f"Could not load config: {e}")
        raise SystemExit(2)

    setup_logging(debug=args.debug or config.debug)
    logger = logging.getLogger(__name__)

    runner = _run_import if args.command == "import" else _run_export
    try:
        exit_code = asyncio.run(runner(args, config))
    except (InterchangeError, ValueError, OSError) as e:
        logger.error(f"{args.command.capitalize()} failed: {e}")
        exit_code = 1
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
