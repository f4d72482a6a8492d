"""Entry point for manual autocomplete, search and hotel availability runs."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from contextlib import AsyncExitStack
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

from hotel_broker.config.settings import Settings
from hotel_broker.core.http import GEOCODE_A, GEOCODE_B, INVENTORY, ClientFactory
from hotel_broker.core.logging import configure_logging
from hotel_broker.core.resilience import ResilienceRegistry
from hotel_broker.errors import HotelBrokerError
from hotel_broker.facets.filters import RangeSelection
from hotel_broker.hotels.party import build_party, parse_party
from hotel_broker.pricing.engine import PricingEngine
from hotel_broker.services import HereLocationClient, InventoryClient, MapboxLocationClient
from hotel_broker.storage.json_writer import JsonStore, snapshot_name
from hotel_broker.tasks.search import AutocompleteTask, HotelAvailabilityTask, SearchTask
from hotel_broker.tasks.search_payloads import SearchParams, parse_date

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run hotel broker workflows against the live upstreams")
    parser.add_argument("--lang", default="en", help="Response language (en or el)")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Directory for JSON snapshots of the results (printed to stdout when omitted)",
    )
    parser.add_argument(
        "--override",
        action="append",
        metavar="KEY=VALUE",
        help="Override a Settings attribute (repeatable). Values accept JSON literals.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    autocomplete = commands.add_parser("autocomplete", help="Suggest hotels and places for a query")
    autocomplete.add_argument("query")

    search = commands.add_parser("search", help="Search availability inside a location's bounding box")
    search.add_argument("location_id", help="Location id in the form [w,s,e,n]-lat-lon")
    _add_stay_arguments(search)
    search.add_argument("--sort-by", choices=["price", "distance", "rating"], default="price")
    search.add_argument("--sort-order", choices=["asc", "desc"], default="asc")
    search.add_argument("--min-price", default=None, help="Lower bound on the nightly price")
    search.add_argument("--max-price", default=None, help="Upper bound on the nightly price")
    search.add_argument("--rating", action="append", help="Star rating to keep (repeatable)")
    search.add_argument("--hotel-type", action="append", help="Property category to keep (repeatable)")
    search.add_argument("--board", action="append", help="Board id every listed hotel must offer (repeatable)")

    hotel = commands.add_parser("hotel", help="Rates for one hotel, with alternative dates when sold out")
    hotel.add_argument("hotel_code")
    _add_stay_arguments(hotel)
    return parser


def _add_stay_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--check-in", default=None, help="dd/mm/yyyy; defaults to two weeks from today")
    parser.add_argument("--nights", type=int, default=2)
    parser.add_argument("--party", default=None, help='JSON party, e.g. [{"adults":2,"children":[5]}]')
    parser.add_argument("--adults", type=int, default=2)
    parser.add_argument("--children", default=None, help="Comma-separated child ages")


def _decode_override(value: str) -> object:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _apply_overrides(settings: Settings, overrides: dict[str, object]) -> None:
    for key, raw in overrides.items():
        if not hasattr(settings, key):
            logger.warning("Ignoring unknown override '%s'", key)
            continue
        setattr(settings, key, raw)
        logger.info("Override: set %s=%r", key, raw)


def _stay(args: argparse.Namespace) -> tuple[date, date, str]:
    check_in = parse_date(args.check_in, field="check-in") if args.check_in else date.today() + timedelta(days=14)
    party = args.party or build_party(args.adults, args.children)
    return check_in, check_in + timedelta(days=args.nights), party


def _selections(args: argparse.Namespace) -> dict[str, object]:
    selections: dict[str, object] = {}
    if args.min_price is not None or args.max_price is not None:
        selections["price"] = RangeSelection(
            minimum=None if args.min_price is None else Decimal(args.min_price),
            maximum=None if args.max_price is None else Decimal(args.max_price),
        )
    if args.rating:
        selections["rating"] = args.rating
    if args.hotel_type:
        selections["hotelTypes"] = args.hotel_type
    if args.board:
        selections["boardTypes"] = args.board
    return selections


async def run(settings: Settings, args: argparse.Namespace) -> object:
    registry = ResilienceRegistry(settings.resilience_options())
    factory = ClientFactory(settings, registry)
    engine = PricingEngine(settings.pricing_options(), settings.special_hotel_codes)

    async with AsyncExitStack() as stack:
        inventory = InventoryClient(await stack.enter_async_context(factory.create(INVENTORY)), lang=args.lang)

        if args.command == "autocomplete":
            lookups = [
                MapboxLocationClient(
                    await stack.enter_async_context(factory.create(GEOCODE_A)),
                    api_key=settings.geocode_a_api_key,
                    countries=settings.geocode_a_countries,
                    limit=settings.geocode_a_limit,
                ),
                HereLocationClient(
                    await stack.enter_async_context(factory.create(GEOCODE_B)),
                    api_key=settings.geocode_b_api_key,
                    countries=settings.geocode_b_countries,
                    limit=settings.geocode_b_limit,
                ),
            ]
            found = await AutocompleteTask(inventory, lookups).run(args.query, args.lang)
            return {key: [candidate.to_dict() for candidate in values] for key, values in found.items()}

        check_in, check_out, party = _stay(args)
        if args.command == "search":
            params = SearchParams.from_request(
                location_id=args.location_id,
                check_in=check_in,
                check_out=check_out,
                party=party,
                sort_by=args.sort_by,
                sort_order=args.sort_order,
                lang=args.lang,
            )
            result = await SearchTask(inventory, engine).run(params, _selections(args))
            return result.to_dict()

        availability = await HotelAvailabilityTask(inventory, engine).run(
            args.hotel_code, check_in, check_out, parse_party(party), lang=args.lang
        )
        return availability.to_dict()


async def _write(output: Path, command: str, payload: object) -> Path:
    store = JsonStore(output)
    items = payload.get("hotels") if isinstance(payload, dict) and "hotels" in payload else [payload]
    meta = {key: value for key, value in payload.items() if key != "hotels"} if isinstance(payload, dict) else {}
    return await store.write(items or [], filename=snapshot_name(command, date.today().isoformat()), meta=meta)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    settings = Settings()

    overrides: dict[str, object] = {}
    for entry in args.override or []:
        if "=" not in entry:
            parser.error(f"Override must be in KEY=VALUE form (got '{entry}')")
        key, value = entry.split("=", 1)
        overrides[key.strip()] = _decode_override(value.strip())

    configure_logging(settings.log_level, settings.log_dir)
    settings.ensure_directories()
    if overrides:
        _apply_overrides(settings, overrides)

    try:
        payload = asyncio.run(run(settings, args))
    except HotelBrokerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        raise SystemExit(1) from exc

    output: Optional[Path] = args.output
    if output is None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    path = asyncio.run(_write(output, args.command, payload))
    logger.info("Wrote %s results to %s", args.command, path)


if __name__ == "__main__":
    main()
