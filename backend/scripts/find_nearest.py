"""Print the nearest public toilets around a coordinate.

Usage:
    python -m scripts.find_nearest 45.4642 9.19 --radius 800 --likely

Run from the `backend/` directory. Queries the Overpass mirrors configured in
settings (OVERPASS_ENDPOINTS) and, with --directory, also the user-submitted
places served by a running instance of the API.

Radius, --likely and --emergency default to the saved preferences
(PREFERENCES_PATH); --save stores the values used for this search.
"""

from __future__ import annotations

import argparse
import logging
import sys

from domain.errors import DirectoryError
from services.directory_client import PlaceDirectoryClient, average_stars
from services.distance import format_distance
from services.overpass_client import OverpassClient
from services.preferences import Preferences, PreferencesStore
from services.proximity_search import ProximitySearchService, build_transport
from services.scoring import utility_score

LOG = logging.getLogger("find_nearest")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("lat", type=float)
    parser.add_argument("lon", type=float)
    parser.add_argument("--radius", type=float, help="search radius in meters (default: saved preference)")
    parser.add_argument("--likely", action="store_true", default=None, help="include bars, cafes, stations and similar")
    parser.add_argument("--emergency", action="store_true", default=None, help="cap the radius at 300 m")
    parser.add_argument("--save", action="store_true", help="remember radius, --likely and --emergency")
    parser.add_argument("--directory", metavar="BASE_URL", help="place directory origin, e.g. http://localhost:8000")
    parser.add_argument("--ratings", action="store_true", help="show average review stars (needs --directory)")
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def resolve_preferences(args: argparse.Namespace, store: PreferencesStore) -> Preferences:
    """Command-line values win over saved ones."""
    saved = store.load()
    prefs = Preferences(
        radius_meters=args.radius if args.radius is not None else saved.radius_meters,
        emergency=args.emergency if args.emergency is not None else saved.emergency,
        include_likely=args.likely if args.likely is not None else saved.include_likely,
    )
    if args.save and not store.save(prefs):
        print("Could not save preferences", file=sys.stderr)
    return prefs


def rating_label(directory: PlaceDirectoryClient, place_id: str) -> str:
    reviews = directory.list_reviews(place_id)
    if not reviews:
        return "  -"
    return f"{average_stars(reviews):3.1f}"


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    prefs = resolve_preferences(args, PreferencesStore())

    transport = build_transport()
    directory = PlaceDirectoryClient(args.directory, transport=transport) if args.directory else None
    service = ProximitySearchService(OverpassClient(transport=transport), directory)
    outcome = service.search(
        args.lat,
        args.lon,
        radius_meters=prefs.radius_meters,
        include_likely=prefs.include_likely,
        emergency=prefs.emergency,
    )

    if outcome.request is None:
        LOG.error("%s", outcome.error.message if outcome.error else "Invalid input")
        return 2
    if outcome.error:
        print(f"Search failed: {outcome.error.message} (retry in a moment)", file=sys.stderr)
    if outcome.directory_error:
        print(f"User places unavailable: {outcome.directory_error.message}", file=sys.stderr)
    if not outcome.results:
        print("No toilets found. Increase the radius or move a little.")
        return 1 if outcome.error else 0

    show_ratings = args.ratings and directory is not None
    for place in outcome.results[: args.limit]:
        line = (
            f"{format_distance(place.distance_meters):>8}  "
            f"{utility_score(place):4.2f}  {place.source.value:<16}  {place.name}"
        )
        if show_ratings:
            try:
                line = f"{rating_label(directory, place.id)}  {line}"
            except DirectoryError as exc:
                LOG.warning("Ratings unavailable: %s", exc.message)
                show_ratings = False
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
