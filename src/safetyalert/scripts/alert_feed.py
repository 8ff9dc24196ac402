#!/usr/bin/env python3
"""Community safety alert CLI for watching and reporting incidents.

Commands:
    watch   - Print the live incident list as it changes
    report  - Submit a new incident report
    suggest - Show place suggestions for a location query

Uses Cosmos DB when COSMOS_ENDPOINT is set, otherwise an in-memory
collection (useful only for trying the commands out).
"""

import argparse
import asyncio
import logging
import sys

from safetyalert.core.categories import ALL_CATEGORIES, CATEGORY_META, Category
from safetyalert.core.config import get_timezone
from safetyalert.core.errors import LocationUnavailable, SubmitFailed, ValidationError
from safetyalert.incidents.channel import open_collection
from safetyalert.incidents.models import Coordinates, format_timestamp
from safetyalert.incidents.viewport import BoundsViewport
from safetyalert.live import LiveIncidentView, ViewState
from safetyalert.location.resolver import LocationResolver, StaticPositionProvider

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("azure").setLevel(logging.WARNING)


def _print_state(state: ViewState) -> None:
    tz = get_timezone()
    status = "LIVE" if state.live else "live updates unavailable"
    print(f"\n[{status}] Showing {state.shown} of {state.total}")
    if not state.subset:
        print("  No incidents match your filters.")
    for incident in state.subset:
        meta = incident.meta
        print(
            f"  {meta.emoji} {meta.label:<18} "
            f"{format_timestamp(incident.created_at, tz):<17} "
            f"{incident.location_label or 'GPS'}"
        )
        print(f"      {incident.description or 'No description'}")

    viewport = state.viewport
    if isinstance(viewport, BoundsViewport):
        print(f"  Map: bounds {viewport.south_west} - {viewport.north_east}")
    else:
        print(f"  Map: center {viewport.center} zoom {viewport.zoom}")


async def cmd_watch(args) -> int:
    """Print the filtered live list until the duration elapses."""
    async with open_collection() as collection:
        async with LiveIncidentView(collection) as view:
            view.set_category(args.category)
            view.set_search(args.search)
            view.subscribe(_print_state)
            await asyncio.sleep(args.seconds)
    return 0


async def cmd_report(args) -> int:
    """Submit an incident report."""
    position = None
    if args.lat is not None and args.lng is not None:
        position = Coordinates(lat=args.lat, lng=args.lng)

    resolver = LocationResolver(position_provider=StaticPositionProvider(position))
    async with open_collection() as collection:
        view = LiveIncidentView(collection, resolver)
        workflow = view.new_workflow(require_coordinates=args.require_coordinates or None)
        workflow.draft.category = args.category
        workflow.draft.description = args.description
        workflow.draft.location_label = args.location or ""

        if position is not None and not args.location:
            try:
                location = await workflow.use_current_position()
            except LocationUnavailable as e:
                print(f"Error: {e}")
                return 1
            if location.label_degraded:
                print(f"Address lookup failed, using {location.label}")
        elif position is not None:
            workflow.draft.coordinates = position

        try:
            outcome = await workflow.submit()
        except ValidationError as e:
            print(f"Please fill all required fields: {', '.join(e.fields)}")
            return 1
        except SubmitFailed as e:
            print(f"Failed to submit incident. Try again. ({e})")
            return 1

    print(f"Incident reported successfully: {outcome.incident_id}")
    return 0


async def cmd_suggest(args) -> int:
    """Show place suggestions."""
    result = await LocationResolver().suggest(args.query)
    if result.failed:
        print(f"Suggestion lookup failed: {result.error}")
        return 1
    if not result.suggestions:
        print("No matching places.")
        return 0
    for suggestion in result.suggestions:
        print(f"  {suggestion.label}  ({suggestion.lat:.5f}, {suggestion.lng:.5f})")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Community safety alert feed")
    subparsers = parser.add_subparsers(dest="command", required=True)

    categories = [c.value for c in Category]

    watch = subparsers.add_parser("watch", help="Print the live incident list")
    watch.add_argument(
        "--category",
        default=ALL_CATEGORIES,
        choices=[ALL_CATEGORIES, *categories],
        help="Only show one category",
    )
    watch.add_argument("--search", default="", help="Filter by description/location/category")
    watch.add_argument("--seconds", type=float, default=60, help="How long to watch")

    report = subparsers.add_parser("report", help="Submit an incident report")
    report.add_argument(
        "--category",
        required=True,
        choices=categories,
        help=", ".join(f"{c.value}={m.label}" for c, m in CATEGORY_META.items()),
    )
    report.add_argument("--description", required=True)
    report.add_argument("--location", help="Address or place name")
    report.add_argument("--lat", type=float, help="Latitude (use with --lng)")
    report.add_argument("--lng", type=float, help="Longitude (use with --lat)")
    report.add_argument(
        "--require-coordinates",
        action="store_true",
        help="Reject the report unless it has a geocoded point",
    )

    suggest = subparsers.add_parser("suggest", help="Look up place suggestions")
    suggest.add_argument("query")

    args = parser.parse_args()

    commands = {"watch": cmd_watch, "report": cmd_report, "suggest": cmd_suggest}
    return asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
