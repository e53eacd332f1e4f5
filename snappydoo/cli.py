from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from snappydoo.constants import MANIFEST_FILENAME
from snappydoo.errors import ConfigError, SnappydooError
from snappydoo.services.config import load_manifest_config, merge_config
from snappydoo.services.pipeline import run_local

LOGGER = logging.getLogger("snappydoo.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snappydoo",
        description="Render Jest snapshots of Slack messages into screenshots.",
    )
    parser.add_argument("-i", "--in", dest="input_path", metavar="PATH", help="Input folder containing Jest snapshots")
    parser.add_argument("-o", "--out", dest="output_path", metavar="PATH", help="Output folder that images will be saved to")
    parser.add_argument(
        "-a",
        "--all",
        dest="render_all",
        action="store_true",
        help="Run snappydoo for all snapshots, not just modified ones",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help=f"Project manifest holding the 'snappydoo' settings (default: ./{MANIFEST_FILENAME})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[snappydoo] %(message)s",
    )
    cwd = Path.cwd()
    try:
        manifest = load_manifest_config(args.manifest or cwd / MANIFEST_FILENAME)
        config = merge_config(manifest, {"in": args.input_path, "out": args.output_path})
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        report = asyncio.run(run_local(config, cwd=cwd, render_all=args.render_all))
    except SnappydooError as exc:
        LOGGER.error("%s", exc)
        return 1
    LOGGER.info("%s", report.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
