"""Command-line interface for api-endpoints."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from api_endpoints import __version__
from api_endpoints.core.client import EndpointsClient
from api_endpoints.core.exceptions import EndpointsError


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load configuration from JSON file."""
    try:
        with open(config_path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {config_path}", file=sys.stderr)
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in configuration file: {e}", file=sys.stderr)
        sys.exit(1)


def create_default_config() -> Dict[str, Any]:
    """Create a default configuration."""
    import os

    # Use environment variable for database path if set (for CI)
    db_path = os.environ.get("API_ENDPOINTS_DB_PATH", "api_endpoints_cache.db")
    log_level = os.environ.get("API_ENDPOINTS_LOG_LEVEL", "WARNING")

    return {
        "http": {"timeout": 60, "max_workers": 8},
        "rate_limit": {"fallback_wait_ms": 10000},
        "batch": {"rate_limit": 50, "max_rounds": 10},
        "cache": {"enabled": True, "database_path": db_path, "default_ttl_seconds": 21600},  # 6 hours
        "auth": {"use_ambient_identity": False, "token_env_var": "API_ENDPOINTS_ACCESS_TOKEN"},
        "logging": {"level": log_level},
    }


def _parse_pairs(values: Optional[List[str]], separator: str, label: str) -> Dict[str, Any]:
    """Turn ``["a=1", "a=2", "b=3"]`` into ``{"a": ["1", "2"], "b": "3"}``."""
    result: Dict[str, Any] = {}
    for item in values or []:
        if separator not in item:
            raise argparse.ArgumentTypeError(f"Invalid {label} {item!r}; expected KEY{separator}VALUE")
        key, value = item.split(separator, 1)
        key, value = key.strip(), value.strip()
        if key in result:
            existing = result[key]
            result[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            result[key] = value
    return result


def _response_summary(response) -> Dict[str, Any]:
    return {
        "url": response.request.url if response.request else None,
        "status": response.status_code,
        "json": response.json,
    }


def _command_get(client: EndpointsClient, args: argparse.Namespace) -> Any:
    options: Dict[str, Any] = {}
    if args.token:
        options["credential"] = args.token
    endpoint = client.create_endpoint(**options)
    request = endpoint.httpget(
        url=args.url,
        query=_parse_pairs(args.query, "=", "query parameter"),
        headers=_parse_pairs(args.header, ":", "header"),
    )
    for fields in args.fields or []:
        request.set_fields(fields)
    return _response_summary(request.fetch())


def _command_batch(client: EndpointsClient, args: argparse.Namespace) -> Any:
    with open(args.file, "r") as f:
        urls = [line.strip() for line in f if line.strip() and not line.startswith("#")]

    options: Dict[str, Any] = {}
    if args.token:
        options["credential"] = args.token
    endpoint = client.create_endpoint(**options)
    batch_options = {"rate_limit": args.rate_limit} if args.rate_limit else {}
    batch = client.batch(**batch_options)
    for url in urls:
        batch.add(endpoint.httpget(url=url))

    responses = list(batch) if args.iterate else batch.fetch_all()
    return [_response_summary(response) for response in responses]


def _command_discover(client: EndpointsClient, args: argparse.Namespace) -> Any:
    url = client.discovery_cache.get_url(args.name, args.version, args.resource, args.method)
    return {"url": url}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="api-endpoints",
        description="api-endpoints - rate-limit-aware REST requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  api-endpoints get https://example.com/api --query q=term --query q=other
  api-endpoints get https://www.googleapis.com/drive/v3/files --token $TOKEN
  api-endpoints batch urls.txt --rate-limit 10 --iterate
  api-endpoints discover sheets v4 spreadsheets.values get
  api-endpoints --generate-config                   # Generate default config

Rate limiting:
  HTTP 429 responses are retried once after the time given by the
  x-ratelimit-reset header (rate_limit.fallback_wait_ms when absent).
        """,
    )

    parser.add_argument("--config", "-c", type=Path, help="Path to configuration JSON file")

    parser.add_argument("--generate-config", action="store_true", help="Generate a default configuration file and exit")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (default: from configuration)",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    get_parser = subparsers.add_parser("get", help="Fetch a single URL")
    get_parser.add_argument("url", help="URL to fetch")
    get_parser.add_argument("--query", "-q", action="append", help="Query parameter KEY=VALUE (repeatable)")
    get_parser.add_argument("--header", "-H", action="append", help="Header KEY:VALUE (repeatable)")
    get_parser.add_argument("--fields", "-f", action="append", help="Partial-response fields selector (repeatable)")
    get_parser.add_argument("--token", help="Bearer token sent as the Authorization header")

    batch_parser = subparsers.add_parser("batch", help="Fetch every URL listed in a file")
    batch_parser.add_argument("file", type=Path, help="File with one URL per line")
    batch_parser.add_argument("--rate-limit", type=int, help="Requests per second (default: from configuration)")
    batch_parser.add_argument("--iterate", action="store_true", help="Send in paced chunks instead of all at once")
    batch_parser.add_argument("--token", help="Bearer token sent as the Authorization header")

    discover_parser = subparsers.add_parser("discover", help="Resolve a Discovery descriptor to a path template")
    discover_parser.add_argument("name", help="API name, e.g. sheets")
    discover_parser.add_argument("version", help="API version, e.g. v4")
    discover_parser.add_argument("resource", help="Resource, dotted for nested ones, e.g. spreadsheets.values")
    discover_parser.add_argument("method", help="Method name, e.g. get")

    return parser


COMMANDS = {"get": _command_get, "batch": _command_batch, "discover": _command_discover}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        config = create_default_config()
        config_file = Path("api_endpoints_config.json")
        with open(config_file, "w") as f:
            json.dump(config, f, indent=2)
        print(f"Generated default configuration: {config_file}")
        return 0

    if not args.command:
        parser.print_help()
        return 1

    config = load_config(args.config) if args.config else {}
    if args.log_level:
        config.setdefault("logging", {})["level"] = args.log_level

    try:
        with EndpointsClient(config) as client:
            result = COMMANDS[args.command](client, args)
    except (EndpointsError, argparse.ArgumentTypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
