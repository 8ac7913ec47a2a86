#!/usr/bin/env python3
"""Command-line interface for zenodo-cli.

Exposes the Zenodo REST API from the terminal: searching and viewing
records, editing deposition metadata, and browsing communities and
licenses.

Commands:
- records: list, search, get and versions
- deposit: get, edit, update, discard and publish depositions
- communities: list your communities or search all of them
- licenses: search the license vocabulary
- access: list share links of a record
- config: read and write the configuration file
- version: print the version

Exit codes: 0=success, 1=API error, 2=auth error, 3=validation error,
4=rate limit, 5=user cancelled.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from zenodo_cli import __version__
from zenodo_cli.core.config import Config, TokenKeyring, mask_token
from zenodo_cli.core.data_models import Metadata, Record, RecordListParams
from zenodo_cli.core.errors import (
    APIError,
    ExitCode,
    ValidationError,
    ZenodoError,
    exit_code_for,
)
from zenodo_cli.core.http_client import ZenodoClient
from zenodo_cli.core.logging_setup import configure_logging, log_performance
from zenodo_cli.integrations.zenodo_api import CITATION_FORMATS, ZenodoAPI
from zenodo_cli.utils.formatters import diff_metadata, format_output, render_diff
from zenodo_cli.utils.validators import validate_metadata

logger = logging.getLogger(__name__)

RECORD_FIELDS = "id,title,doi,stats.version_views,stats.version_downloads,created"
COMMUNITY_RECORD_FIELDS = "community,title,doi,stats.version_views,stats.version_downloads,created"
USER_RECORD_FIELDS = "title,community,doi,created"
AUTHORED_FIELDS = "title,community,doi,stats.version_views,stats.version_downloads,created"

# Shortcuts accepted by "config set/get" that live under the active profile
PROFILE_KEYS = ("token", "base_url")


@dataclass
class AppContext:
    """Resolved runtime state shared by every command."""

    config: Config
    profile: str
    token: str
    base_url: str
    output: str
    fields: str = ""
    verbose: bool = False


def default_output_format() -> str:
    """``table`` on an interactive terminal, ``json`` when piped."""
    return "table" if sys.stdout.isatty() else "json"


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="zenodo",
        description="CLI for the Zenodo REST API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zenodo config set token <YOUR_TOKEN>
  zenodo records list --status draft
  zenodo records search "climate change" --all
  zenodo records get 12345 --format bibtex
  zenodo deposit update 12345 --title "New Title" --dry-run
  zenodo communities list --all "open science"

Exit codes: 0=success, 1=API error, 2=auth error, 3=validation error,
            4=rate limit, 5=user cancelled
        """,
    )
    parser.add_argument("--token", default="", help="API token (prefer ZENODO_TOKEN or the keyring)")
    parser.add_argument("--profile", default="", help="Config profile to use")
    parser.add_argument("--sandbox", action="store_true", help="Use the Zenodo sandbox")
    parser.add_argument(
        "--output",
        "-o",
        choices=["json", "table", "csv"],
        default=None,
        help="Output format (default: table for a terminal, json when piped)",
    )
    parser.add_argument("--fields", default="", help="Comma-separated list of fields to display")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    parser.add_argument("--json-logs", action="store_true", help="Use JSON structured logging format")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Records
    records_parser = subparsers.add_parser("records", help="List, search, and view records")
    records_sub = records_parser.add_subparsers(dest="action", required=True)

    list_parser = records_sub.add_parser("list", help="List your records and drafts")
    list_parser.add_argument("--status", default="", help="Filter by status: draft, published")
    list_parser.add_argument(
        "--community",
        nargs="?",
        const="*",
        default=None,
        help="Community slug (omit the value to aggregate across your communities)",
    )
    list_parser.add_argument(
        "--authored", action="store_true", help="List records where you are a creator (by ORCID)"
    )

    search_parser = records_sub.add_parser("search", help="Search published records")
    search_parser.add_argument("query", help="Elasticsearch query string")
    search_parser.add_argument("--community", default="", help="Filter by community")
    search_parser.add_argument("--all", action="store_true", help="Fetch all pages (up to 10k results)")

    get_parser = records_sub.add_parser("get", help="Get a record by ID")
    get_parser.add_argument("id", type=int, help="Record ID")
    get_parser.add_argument(
        "--format",
        choices=["json"] + sorted(CITATION_FORMATS),
        default="json",
        help="Response format (default: json, rendered with --output)",
    )

    versions_parser = records_sub.add_parser("versions", help="List all versions of a record")
    versions_parser.add_argument("id", type=int, help="Record ID")

    # Depositions
    deposit_parser = subparsers.add_parser("deposit", help="Edit and manage depositions")
    deposit_sub = deposit_parser.add_subparsers(dest="action", required=True)

    dep_get = deposit_sub.add_parser("get", help="Show a deposition")
    dep_get.add_argument("id", type=int, help="Deposition ID")

    dep_edit = deposit_sub.add_parser("edit", help="Unlock a published record for editing")
    dep_edit.add_argument("id", type=int, help="Deposition ID")

    dep_update = deposit_sub.add_parser("update", help="Update metadata on a deposition")
    dep_update.add_argument("id", type=int, help="Deposition ID")
    dep_update.add_argument("--title", default="", help="Set title")
    dep_update.add_argument("--description", default="", help="Set description")
    dep_update.add_argument("--file", type=Path, default=None, help="JSON file with metadata changes")
    dep_update.add_argument("--stdin", action="store_true", help="Read metadata changes from stdin")
    dep_update.add_argument("--dry-run", action="store_true", help="Show the diff without applying")
    dep_update.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    dep_discard = deposit_sub.add_parser("discard", help="Discard unpublished changes")
    dep_discard.add_argument("id", type=int, help="Deposition ID")

    dep_publish = deposit_sub.add_parser("publish", help="Publish a deposition")
    dep_publish.add_argument("id", type=int, help="Deposition ID")
    dep_publish.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # Communities
    communities_parser = subparsers.add_parser("communities", help="Search and list communities")
    communities_sub = communities_parser.add_subparsers(dest="action", required=True)
    comm_list = communities_sub.add_parser("list", help="List your communities")
    comm_list.add_argument("query", nargs="?", default="", help="Search query")
    comm_list.add_argument("--all", action="store_true", help="Search all communities, not just yours")

    # Licenses
    licenses_parser = subparsers.add_parser("licenses", help="Search available licenses")
    licenses_sub = licenses_parser.add_subparsers(dest="action", required=True)
    lic_search = licenses_sub.add_parser("search", help="Search available licenses")
    lic_search.add_argument("query", nargs="?", default="", help="Search query")

    # Access links
    access_parser = subparsers.add_parser("access", help="Manage access links")
    access_sub = access_parser.add_subparsers(dest="action", required=True)
    links_parser = access_sub.add_parser("links", help="Share links for records")
    links_sub = links_parser.add_subparsers(dest="links_action", required=True)
    links_list = links_sub.add_parser("list", help="List share links for a record")
    links_list.add_argument("id", type=int, help="Record ID")

    # Config
    config_parser = subparsers.add_parser("config", help="Manage CLI configuration")
    config_sub = config_parser.add_subparsers(dest="action", required=True)
    config_set = config_sub.add_parser("set", help="Set a configuration value")
    config_set.add_argument("key", help="Dotted key, or 'token' / 'base_url' for the active profile")
    config_set.add_argument("value", help="Value to store")
    config_get = config_sub.add_parser("get", help="Get a configuration value")
    config_get.add_argument("key", help="Dotted key, or 'token' / 'base_url' for the active profile")
    config_sub.add_parser("path", help="Print the config file path")
    config_validate = config_sub.add_parser("validate", help="Validate configuration")
    config_validate.add_argument(
        "--strict", action="store_true", help="Exit with error if validation fails"
    )

    subparsers.add_parser("version", help="Print version information")

    return parser.parse_args(argv)


def build_context(args: argparse.Namespace, config: Config) -> AppContext:
    """Resolve profile, token, base URL and output format from flags and config."""
    if args.token:
        print(
            "Warning: passing a token via --token is insecure; "
            "prefer ZENODO_TOKEN or `zenodo config set token`",
            file=sys.stderr,
        )
    profile = config.resolve_profile(args.profile)
    ctx = AppContext(
        config=config,
        profile=profile,
        token=config.resolve_token(args.token, profile),
        base_url=config.resolve_base_url(profile, args.sandbox),
        output=args.output or default_output_format(),
        fields=args.fields,
        verbose=args.verbose,
    )
    logger.debug(
        "Resolved context: profile=%s base_url=%s output=%s has_token=%s",
        ctx.profile,
        ctx.base_url,
        ctx.output,
        bool(ctx.token),
    )
    return ctx


def emit(ctx: AppContext, data: Any, fields: str = "") -> None:
    """Write data to stdout in the selected output format."""
    text = format_output(data, ctx.output, ctx.fields or fields)
    if text:
        print(text)


def status(message: str) -> None:
    print(message, file=sys.stderr)


def confirm(prompt: str) -> bool:
    """Ask a y/N question on stderr; anything but yes declines."""
    print(f"{prompt} [y/N] ", end="", file=sys.stderr, flush=True)
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def community_rows(records: List[Record]) -> List[Dict[str, Any]]:
    """Rows with a top-level ``community`` column built from metadata.communities."""
    rows = []
    for record in records:
        row = record.to_dict()
        row["community"] = ", ".join(c.slug for c in record.metadata.communities if c.slug)
        rows.append(row)
    return rows


def inject_community(records: List[Record], slug: str) -> List[Dict[str, Any]]:
    rows = []
    for record in records:
        row = record.to_dict()
        row["community"] = slug
        rows.append(row)
    return rows


async def handle_records(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """Handle the records command."""
    if args.action == "list":
        return await handle_records_list(args, ctx, api)

    if args.action == "search":
        params = RecordListParams(community=args.community)
        if args.all:
            with log_performance("records search --all", logger):
                paged = await api.search_all_records(args.query, params)
            if paged.error is not None:
                status(f"Warning: {paged.error}")
            status(f"Total: {paged.total} records")
            emit(ctx, paged.hits, RECORD_FIELDS)
            return ExitCode.OK

        with log_performance("records search", logger):
            result = await api.search_records(args.query, params)
        status(f"Showing {len(result.hits)} of {result.total} records")
        emit(ctx, result.hits, RECORD_FIELDS)
        return ExitCode.OK

    if args.action == "get":
        if args.format != "json":
            data = await api.get_record_formatted(args.id, args.format)
            print(data.decode("utf-8", errors="replace"))
            return ExitCode.OK
        record = await api.get_record(args.id)
        emit(ctx, record)
        return ExitCode.OK

    if args.action == "versions":
        result = await api.list_versions(args.id)
        emit(ctx, result.hits, RECORD_FIELDS)
        return ExitCode.OK

    raise ValueError(f"unknown records action: {args.action}")


async def handle_records_list(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """List the user's records, authored records, or records of communities."""
    community = args.community

    if args.authored:
        if args.status == "draft":
            raise ValueError(
                "--authored cannot be used with --status draft "
                "(drafts are not available via the search API)"
            )
        orcid = ctx.config.get("orcid")
        if not orcid:
            raise ValueError("ORCID not configured. Run: zenodo config set orcid <your-orcid>")
        params = RecordListParams(community="" if community in (None, "*") else community)
        result = await api.search_records(f"creators.orcid:{orcid}", params)
        status(f"Showing {len(result.hits)} of {result.total} authored records")
        emit(ctx, community_rows(result.hits), AUTHORED_FIELDS)
        return ExitCode.OK

    if community not in (None, "", "*"):
        params = RecordListParams(status=args.status, community=community)
        result = await api.search_records("", params)
        status(f"Showing {len(result.hits)} of {result.total} records in {community}")
        emit(ctx, inject_community(result.hits, community), COMMUNITY_RECORD_FIELDS)
        return ExitCode.OK

    if community is not None:
        communities = await api.list_user_communities()
        if not communities.hits:
            status("No communities found")
            return ExitCode.OK
        rows: List[Dict[str, Any]] = []
        for comm in communities.hits:
            params = RecordListParams(status=args.status, community=comm.slug)
            try:
                result = await api.search_records("", params)
            except ZenodoError as e:
                logger.warning("Could not fetch records for %s: %s", comm.slug, e)
                status(f"Warning: could not fetch records for {comm.slug}: {e}")
                continue
            rows.extend(inject_community(result.hits, comm.slug))
        status(f"Total: {len(rows)} records across {len(communities.hits)} communities")
        emit(ctx, rows, COMMUNITY_RECORD_FIELDS)
        return ExitCode.OK

    result = await api.list_user_records(RecordListParams(status=args.status))
    status(f"Showing {len(result.hits)} of {result.total} records")
    emit(ctx, community_rows(result.hits), USER_RECORD_FIELDS)
    return ExitCode.OK


def merge_metadata(metadata: Metadata, overlay: Any) -> Metadata:
    """Overlay a partial metadata document; keys it specifies win."""
    if not isinstance(overlay, dict):
        raise ValueError("metadata changes must be a JSON object")
    base = metadata.to_dict()
    base.update(overlay)
    return Metadata.from_dict(base)


def apply_changes(args: argparse.Namespace, metadata: Metadata) -> Metadata:
    """Merge changes from inline flags, --file and --stdin into metadata."""
    merged = Metadata.from_dict(metadata.to_dict())
    if args.title:
        merged.title = args.title
    if args.description:
        merged.description = args.description

    if args.file is not None:
        try:
            overlay = json.loads(args.file.read_text(encoding="utf-8"))
        except OSError as e:
            raise ValueError(f"reading metadata file: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"parsing metadata file: {e}") from e
        merged = merge_metadata(merged, overlay)

    if args.stdin:
        try:
            overlay = json.loads(sys.stdin.read())
        except json.JSONDecodeError as e:
            raise ValueError(f"parsing stdin metadata: {e}") from e
        merged = merge_metadata(merged, overlay)

    return merged


async def handle_deposit(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """Handle the deposit command."""
    if args.action == "get":
        emit(ctx, await api.get_deposition(args.id))
        return ExitCode.OK

    if args.action == "edit":
        dep = await api.edit_deposition(args.id)
        status(f"Deposition {dep.id} unlocked for editing (state: {dep.state})")
        return ExitCode.OK

    if args.action == "discard":
        dep = await api.discard_deposition(args.id)
        status(f"Changes discarded on deposition {dep.id} (state: {dep.state})")
        return ExitCode.OK

    if args.action == "update":
        return await handle_deposit_update(args, api)

    if args.action == "publish":
        dep = await api.get_deposition(args.id)
        status(f"Publishing deposition {dep.id}: {dep.metadata.title}")
        if not args.yes and not confirm("Publish this deposition?"):
            status("Cancelled.")
            return ExitCode.CANCELLED
        result = await api.publish_deposition(args.id)
        status(f"Deposition {result.id} published (state: {result.state})")
        if result.doi:
            status(f"DOI: {result.doi}")
        return ExitCode.OK

    raise ValueError(f"unknown deposit action: {args.action}")


async def handle_deposit_update(args: argparse.Namespace, api: ZenodoAPI) -> int:
    """GET the deposition, merge changes, validate, show a diff, confirm, PUT."""
    dep = await api.get_deposition(args.id)
    merged = apply_changes(args, dep.metadata)

    validation = validate_metadata(merged)
    if not validation.valid:
        raise ValidationError(validation.errors)

    changes = diff_metadata(dep.metadata, merged)
    status(render_diff(changes))
    if not changes:
        return ExitCode.OK

    if args.dry_run:
        status("Dry run: no changes applied.")
        return ExitCode.OK

    if not args.yes and not confirm("Apply these changes?"):
        status("Cancelled.")
        return ExitCode.CANCELLED

    result = await api.update_deposition(args.id, merged)
    status(f"Deposition {result.id} metadata updated.")
    return ExitCode.OK


async def handle_communities(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """Handle the communities command."""
    if args.all:
        result = await api.search_communities(args.query)
    else:
        result = await api.list_user_communities(args.query)
    emit(ctx, result.hits)
    return ExitCode.OK


async def handle_licenses(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """Handle the licenses command."""
    result = await api.search_licenses(args.query)
    emit(ctx, result.hits)
    return ExitCode.OK


async def handle_access(args: argparse.Namespace, ctx: AppContext, api: ZenodoAPI) -> int:
    """Handle the access command."""
    links = await api.list_access_links(args.id)
    emit(ctx, links)
    return ExitCode.OK


def _config_key(key: str, profile: str) -> str:
    if key in PROFILE_KEYS:
        return f"profiles.{profile}.{key}"
    return key


def handle_config(args: argparse.Namespace, config: Config, profile: str) -> int:
    """Handle the config command."""
    if args.action == "path":
        print(config.path)
        return ExitCode.OK

    if args.action == "validate":
        result = config.validate()
        print(result)
        if args.strict and not result.is_valid:
            return ExitCode.API_ERROR
        return ExitCode.OK

    key = _config_key(args.key, profile)

    if args.action == "set" and args.key == "token":
        in_keyring = config.store_token(profile, args.value)
        config.save()
        where = "OS keyring" if in_keyring else "config file"
        status(f"Stored token for profile {profile} in the {where} ({mask_token(args.value)})")
        return ExitCode.OK

    if args.action == "set":
        config.set(key, args.value)
        config.save()
        shown = mask_token(args.value) if key.endswith(".token") else args.value
        status(f"Set {key} = {shown}")
        return ExitCode.OK

    if args.action == "get":
        if args.key == "token":
            value = config.stored_token(profile) or None
        else:
            value = config.get(key)
        if value is None:
            raise ValueError(f"key {args.key!r} not found")
        if key.endswith(".token"):
            value = mask_token(str(value))
        if isinstance(value, (dict, list)):
            print(json.dumps(value, indent=2))
        else:
            print(value)
        return ExitCode.OK

    raise ValueError(f"unknown config action: {args.action}")


HANDLERS = {
    "records": handle_records,
    "deposit": handle_deposit,
    "communities": handle_communities,
    "licenses": handle_licenses,
    "access": handle_access,
}


async def main_async(args: argparse.Namespace) -> int:
    """Main async entry point.

    Returns:
        Exit code
    """
    configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
        use_json=args.json_logs,
    )

    if args.command == "version":
        print(f"zenodo {__version__}")
        return ExitCode.OK

    config = Config(token_store=TokenKeyring())
    warning = config.check_permissions()
    if warning:
        logger.warning(warning)
    if not config.keyring_available:
        logger.debug("OS keyring not available, using config file fallback for tokens")
    config.migrate_token(config.resolve_profile(args.profile))

    if args.command == "config":
        return handle_config(args, config, config.resolve_profile(args.profile))

    ctx = build_context(args, config)
    handler = HANDLERS[args.command]

    async with ZenodoClient(ctx.base_url, ctx.token) as client:
        api = ZenodoAPI(client)
        code = await handler(args, ctx, api)
        logger.debug("Request stats: %s", client.stats)
    return code


def report_error(exc: BaseException, output_format: str) -> int:
    """Print an error to stderr and return the matching exit code."""
    code = int(exit_code_for(exc))

    if output_format == "json":
        payload: Dict[str, Any] = {"error": str(exc), "code": code}
        if isinstance(exc, APIError):
            payload.update(exc.to_dict())
        elif isinstance(exc, ValidationError):
            payload["errors"] = exc.errors
        print(json.dumps(payload), file=sys.stderr)
        return code

    print(f"Error: {exc}", file=sys.stderr)
    if isinstance(exc, ValidationError):
        for error in exc.errors:
            print(f"  - {error}", file=sys.stderr)
    elif isinstance(exc, APIError) and exc.hint():
        print(f"Hint: {exc.hint()}", file=sys.stderr)
    return code


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    output_format = args.output or default_output_format()
    try:
        exit_code = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        print("\nAborted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        exit_code = report_error(e, output_format)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
