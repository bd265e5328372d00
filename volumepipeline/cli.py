#!/usr/bin/env python3
"""
Command-line interface for VolumePipeline.

Usage:
    # Process chapters stored on disk (<dir>/<volume>/<chapter>/<pages>)
    volumepipeline process --disk ./scans -o ./output --autocrop --split

    # Mix downloaded chapters from a manifest with local ones
    volumepipeline process --manifest chapters.json --disk ./scans --rotate

    # Show which volumes and chapters would be processed
    volumepipeline summary --manifest chapters.json --disk ./scans
"""

import argparse
import logging
import sys
from pathlib import Path

from .errors import PipelineError
from .pages import ChapterInfo, Origin, Volume

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def collect_volumes(args: argparse.Namespace) -> list[Volume]:
    """Gather chapters from the manifest and/or disk directory."""
    from .sources import assemble_volumes, load_disk_chapters, load_manifest

    chapters: list[ChapterInfo] = []
    if args.manifest:
        _, network_chapters = load_manifest(Path(args.manifest))
        chapters.extend(network_chapters)
    if args.disk:
        chapters.extend(load_disk_chapters(Path(args.disk)))

    volumes = assemble_volumes(chapters)
    if args.volumes:
        wanted = set(args.volumes)
        volumes = [v for v in volumes if v.identifier in wanted]
    return volumes


def cmd_process(args: argparse.Namespace) -> int:
    """Run the pipeline over every volume."""
    from .config import PipelineConfig
    from .merger import PageMerger
    from .pipeline import VolumePipeline, VolumeState
    from .sources import DiskSource, NetworkSource
    from .writer import DirectoryWriter

    try:
        config = PipelineConfig(
            autocrop=args.autocrop,
            rotate_and_split=args.split,
            rotate_only=args.rotate,
            gamma=args.gamma,
            right_to_left=not args.left_to_right,
            crop_tolerance=args.crop_tolerance,
            strict_transforms=args.strict,
        )
        volumes = collect_volumes(args)
    except PipelineError as e:
        print(f"✗ Failed: {e}", file=sys.stderr)
        return 1

    if not volumes:
        print("No chapters found", file=sys.stderr)
        return 1

    merger = PageMerger(
        network=NetworkSource(timeout=args.timeout, threads=args.threads),
        disk=DiskSource(),
    )
    pipeline = VolumePipeline(config, merger=merger)
    writer = DirectoryWriter(Path(args.output))

    results = pipeline.run_volumes(volumes, writer=writer, force=args.force)

    failed = [r for r in results if r.state == VolumeState.FAILED]
    written = [r for r in results if r.success]
    skipped = [r for r in results if r.state == VolumeState.SKIPPED]

    print(f"\n✓ {len(written)} volume(s) written to {args.output}")
    if skipped:
        print(f"  Skipped {len(skipped)} existing volume(s) (use --force to redo)")
    for result in failed:
        print(f"✗ Volume {result.volume_id}: {result.message}", file=sys.stderr)

    return 1 if failed else 0


def cmd_summary(args: argparse.Namespace) -> int:
    """Print the volumes and chapters that would be processed."""
    try:
        volumes = collect_volumes(args)
    except PipelineError as e:
        print(f"✗ Failed: {e}", file=sys.stderr)
        return 1

    if not volumes:
        print("No chapters found", file=sys.stderr)
        return 1

    for volume in volumes:
        chapters = volume.sorted_chapters()
        disk = sum(1 for c in chapters if c.origin is Origin.DISK)
        print(f"Volume {volume.identifier}: {len(chapters)} chapters ({disk} from disk)")
        for chapter in chapters:
            source = chapter.group or chapter.origin.value
            print(f"  Chapter {chapter.identifier} [{source}]")

    return 0


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--manifest", help="JSON manifest of network chapters and page URLs")
    parser.add_argument("--disk", help="Directory with <volume>/<chapter>/<pages> images")
    parser.add_argument("--volumes", nargs="+", help="Only these volume identifiers")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="volumepipeline",
        description="Prepare manga volume pages for e-reader documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # process command (full pipeline)
    p_process = subparsers.add_parser(
        "process",
        help="Fetch, transform and write volumes",
    )
    _add_source_args(p_process)
    p_process.add_argument("-o", "--output", default="./output", help="Output directory")
    p_process.add_argument("--autocrop", action="store_true", help="Crop uniform page margins")
    mode = p_process.add_mutually_exclusive_group()
    mode.add_argument("--split", action="store_true",
                      help="Rotate double pages and also add their halves as single pages")
    mode.add_argument("--rotate", action="store_true", help="Rotate double pages only")
    p_process.add_argument("--gamma", type=float, default=1.0,
                           help="Gamma applied when splitting (<1 brightens, default: 1.0)")
    p_process.add_argument("--left-to-right", action="store_true",
                           help="Left-to-right reading order for split halves")
    p_process.add_argument("--crop-tolerance", type=float, default=0.1,
                           help="Max fraction of each side autocrop may remove (default: 0.1)")
    p_process.add_argument("--strict", action="store_true",
                           help="Fail a volume when a page cannot be rotated or split")
    p_process.add_argument("--force", action="store_true", help="Overwrite existing volumes")
    p_process.add_argument("--threads", type=int, default=4, help="Download threads")
    p_process.add_argument("--timeout", type=float, default=30.0, help="Download timeout in seconds")
    p_process.set_defaults(func=cmd_process)

    # summary command
    p_summary = subparsers.add_parser(
        "summary",
        help="List volumes and chapters without processing",
    )
    _add_source_args(p_summary)
    p_summary.set_defaults(func=cmd_summary)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.manifest and not args.disk:
        parser.error("at least one of --manifest or --disk is required")
    if args.command == "process" and args.gamma != 1.0 and not args.split:
        parser.error("--gamma only applies together with --split")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
