import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path

from .explorer import build_explorer
from .highlight import ParcelDataset
from .logging_setup import configure_logging
from .settings import get_settings


async def _run(args):
    settings = get_settings()
    if args.timeout is not None:
        settings = replace(settings, http_timeout_s=float(args.timeout))
    dataset = ParcelDataset.from_path(Path(args.parcels)) if args.parcels else None
    explorer = build_explorer(settings, dataset=dataset)
    try:
        out = {}
        if args.pin:
            panel = await explorer.select_parcel(args.pin)
            out["parcel"] = panel.to_dict()
        if args.grantee:
            origin = args.origin_pin or args.pin or ""
            selection = await explorer.select_grantee(args.grantee, origin)
            out["highlight"] = selection.to_dict() if selection is not None else None
        out["error"] = explorer.error_message
        out["stats"] = explorer.stats()
        return out
    finally:
        await explorer.aclose()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Look up parcel documents and grantee-related parcels",
    )
    parser.add_argument(
        "--pin",
        help="Parcel PIN to load documents for",
        default=None,
    )
    parser.add_argument(
        "--grantee",
        help="Grantee name whose associated parcels should be highlighted",
        default=None,
    )
    parser.add_argument(
        "--origin-pin",
        help="Parcel the grantee was selected from (defaults to --pin)",
        default=None,
    )
    parser.add_argument(
        "--parcels",
        help="GeoJSON FeatureCollection of parcels in view",
        default=None,
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Request timeout in seconds",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, etc.)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit log records as JSON lines on stderr",
    )
    args = parser.parse_args(argv)

    if not args.pin and not args.grantee:
        parser.error("one of --pin or --grantee is required")

    configure_logging(args.log_level, json_lines=args.log_json)
    try:
        out = asyncio.run(_run(args))
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
