"""
CLI for looking up aggregated KYC profiles or serving the HTTP API.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Callable, Optional, Sequence

from rich.console import Console
from rich.table import Table

from kyc.errors import DurableStoreFailure, IncompleteUpstreamData, UpstreamUnavailable
from kyc.observability import configure_logging
from kyc.services.aggregation import KycAggregationService
from kyc.services.factories import build_aggregation_service
from kyc.settings import get_settings

console = Console()

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_FAILURE = 2

_FIELD_LABELS = (
    ("identifier", "Identifier"),
    ("firstName", "First name"),
    ("lastName", "Last name"),
    ("address", "Address"),
    ("phoneNumber", "Phone"),
    ("email", "Email"),
    ("taxCountry", "Tax country"),
    ("income", "Income"),
    ("cachedAt", "Cached at"),
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Look up the aggregated KYC profile for a customer.")
    parser.add_argument("identifier", nargs="?", help="Customer identifier (e.g. SSN)")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON document")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API instead of a single lookup")
    parser.add_argument("--host", default=None, help="Bind host for --serve")
    parser.add_argument("--port", type=int, default=None, help="Bind port for --serve")
    return parser


def _render(document: dict) -> Table:
    table = Table(title="Aggregated KYC data", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, label in _FIELD_LABELS:
        value = document.get(key)
        table.add_row(label, "" if value is None else str(value))
    return table


def _serve(host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "kyc.api.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_level=settings.runtime.log_level.lower(),
    )
    return EXIT_OK


def main(
    argv: Sequence[str] | None = None,
    *,
    service_factory: Callable[[], KycAggregationService] = build_aggregation_service,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if args.serve:
        return _serve(args.host, args.port)

    if not args.identifier or not args.identifier.strip():
        parser.error("identifier is required unless --serve is given")

    service = service_factory()
    try:
        record = service.get_aggregated_data(args.identifier)
    except IncompleteUpstreamData as exc:
        console.print(f"[yellow]Customer data not found:[/yellow] {exc}")
        return EXIT_NOT_FOUND
    except (UpstreamUnavailable, DurableStoreFailure) as exc:
        console.print(f"[red]Lookup failed:[/red] {exc}")
        return EXIT_FAILURE

    document = record.to_dict()
    if args.json:
        print(json.dumps(document, ensure_ascii=False))
    else:
        console.print(_render(document))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
