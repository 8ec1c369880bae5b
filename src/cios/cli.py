"""Command-line entry point issuing one request through the pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Sequence

from cios.client import AsyncCiosClient
from cios.models import Blob, FormData, Outcome, ResponseType

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def _parse_pairs(parser: argparse.ArgumentParser, values: Sequence[str], flag: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            parser.error(f"{flag} expects KEY=VALUE, got {raw!r}")
        pairs[key] = value
    return pairs


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cios", description="Send one HTTP request and print the decoded body.")
    parser.add_argument("method", type=str.upper, choices=HTTP_METHODS)
    parser.add_argument("url")
    parser.add_argument("--param", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--header", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--json", dest="json_body", default=None, help="JSON request body")
    parser.add_argument("--timeout", type=float, default=None, help="deadline in seconds")
    parser.add_argument("--retries", type=int, default=0)
    parser.add_argument("--retry-delay", type=float, default=None)
    parser.add_argument(
        "--response-type",
        default=ResponseType.JSON.value,
        choices=[member.value for member in ResponseType],
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log pipeline activity")
    return parser


def _build_client(args: argparse.Namespace) -> AsyncCiosClient:
    if args.timeout is None:
        return AsyncCiosClient(log_errors=args.verbose)
    return AsyncCiosClient(timeout=args.timeout, log_errors=args.verbose)


def _render(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    if isinstance(data, Blob):
        return f"<{data.size} bytes {data.content_type or 'application/octet-stream'}>"
    if isinstance(data, (bytes, bytearray)):
        return f"<{len(data)} bytes>"
    if isinstance(data, FormData):
        data = [[name, value if isinstance(value, str) else _render(value)] for name, value in data]
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


async def _send(args: argparse.Namespace, params: dict[str, str], headers: dict[str, str]) -> Outcome:
    body = json.loads(args.json_body) if args.json_body is not None else None
    overrides: dict[str, Any] = {
        "params": params or None,
        "headers": headers or None,
        "retries": args.retries,
        "response_type": args.response_type,
    }
    if args.retry_delay is not None:
        overrides["retry_delay"] = args.retry_delay
    async with _build_client(args) as client:
        return await client.request(args.method, args.url, json_data=body, **overrides)


def _main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    params = _parse_pairs(parser, args.param, "--param")
    headers = _parse_pairs(parser, args.header, "--header")
    if args.json_body is not None:
        try:
            json.loads(args.json_body)
        except ValueError as exc:
            parser.error(f"--json is not valid JSON: {exc}")

    data, error = asyncio.run(_send(args, params, headers))
    if error is not None:
        print(f"error: {error}", file=sys.stderr)
        return 1
    rendered = _render(data)
    if rendered:
        print(rendered)
    return 0


def main() -> None:
    raise SystemExit(_main())
