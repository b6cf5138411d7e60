"""
Listing Contact Extractor - CLI Runner

Usage:
  python -m leadx.run \
    --url "https://www.google.com/maps/search/pizzaria+em+curitiba" \
    --config config/example.yaml \
    --out ./out

Dry run (validate only):
  python -m leadx.run --url ... --config config/example.yaml --out ./out --dry-run

Merge a previous export (deduped by detail URL):
  python -m leadx.run --url ... --out ./out --merge ./out/contacts_20240101_120000.json

Exit codes:
  0 - success
  1 - config error (file missing or invalid YAML/values)
  2 - input error (unsupported listing URL or unreadable --merge file)
  3 - processing error (extraction or export failed)
"""
from __future__ import annotations

import argparse
import asyncio
import re
import sys
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from src.config import ExtractorConfig, load_config
from src.errors import ConfigError, ExtractionError
from src.ops_logger import OpsLogger, ops_enabled
from src.pipeline.export import ResultExporter, dedupe_results, load_results
from src.pipeline.extract import ListingExtractionPipeline
from src.pipeline.progress import console_reporter
from src.schemas import ExtractionResult


# Listing pages this tool is tuned for (host contains "google.", path starts with /maps)
DEFAULT_URL_PATTERN = r"^https?://(www\.)?google\.[a-z.]+/maps"


def validate_url(url: str, pattern: Optional[str]) -> Optional[str]:
    """Return an error message, or None when the URL is acceptable."""
    p = urlparse((url or "").strip())
    if p.scheme not in ("http", "https") or not p.netloc:
        return f"not an http(s) URL: {url!r}"
    if pattern and not re.search(pattern, url.strip(), re.IGNORECASE):
        return f"URL does not look like a supported listing page: {url!r} (use --no-url-check to skip)"
    return None


def ensure_out_dir(out_dir: Path) -> None:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        # sanity check: can we write here?
        test_file = out_dir / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError as e:
        print(f"Output error: cannot write to {out_dir}: {e}", file=sys.stderr)
        sys.exit(3)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadx.run", description="Extract name/phone contacts from a listing page")
    parser.add_argument("--url", "-u", required=True, help="Listing URL (e.g. a Google Maps search)")
    parser.add_argument("--config", "-c", default=None, help="Path to YAML config file (optional)")
    parser.add_argument("--out", "-o", required=True, help="Output directory")
    parser.add_argument("--dry-run", action="store_true", help="Validate inputs/config and exit")
    parser.add_argument("--concurrency", "-k", type=int, default=None, help="Detail-page workers (overrides config)")
    parser.add_argument("--format", choices=["csv", "json", "both"], default="both", help="Output format (default: both)")
    parser.add_argument("--with-phone-only", action="store_true", help="Export only rows where a phone was found")
    parser.add_argument("--merge", action="append", default=[], metavar="JSON", help="Previous JSON export to merge into this run (repeatable; deduped by detail URL)")
    parser.add_argument("--no-url-check", action="store_true", help="Accept any http(s) listing URL")
    parser.add_argument("--headful", action="store_true", help="Show the browser window (debugging)")
    parser.add_argument("--ops-log", default=None, help="Path to ops JSONL log file (default: <out>/ops.log)")
    parser.add_argument("--ops-stdout", action="store_true", help="Also mirror ops JSON to stdout")
    parser.add_argument("--quiet", "-q", action="store_true", help="Do not print progress lines")
    return parser


def apply_cli_overrides(cfg: ExtractorConfig, args: argparse.Namespace) -> ExtractorConfig:
    if args.concurrency is not None:
        if args.concurrency < 1:
            raise ConfigError("--concurrency must be >= 1")
        cfg.workers.concurrency = args.concurrency
    if args.headful:
        cfg.browser.headless = False
    return cfg


def print_summary(results: List[ExtractionResult]) -> None:
    with_phone = sum(1 for r in results if r.has_phone)
    print(f"   Total contacts: {len(results)}")
    print(f"   With phone: {with_phone}")
    print(f"   Without phone: {len(results) - with_phone}")


def main(argv: list[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        cur = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
        print(f"Python 3.11+ required. Current: {cur}.", file=sys.stderr)
        return 1

    args = build_parser().parse_args(argv)
    out_dir = Path(args.out)

    try:
        cfg = apply_cli_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    url_error = validate_url(args.url, None if args.no_url_check else DEFAULT_URL_PATTERN)
    if url_error:
        print(f"Input error: {url_error}", file=sys.stderr)
        return 2

    previous: List[ExtractionResult] = []
    for merge_path in args.merge:
        try:
            previous.extend(load_results(merge_path))
        except (OSError, ValueError) as e:
            print(f"Input error: cannot merge {merge_path}: {e}", file=sys.stderr)
            return 2

    ensure_out_dir(out_dir)

    if args.dry_run:
        print("✅ Dry-run validation passed")
        print(f" - URL: {args.url}")
        print(f" - Config: {args.config or '(defaults)'}")
        print(f" - Output dir: {out_dir}")
        print(f" - Concurrency: {cfg.workers.concurrency}")
        if previous:
            print(f" - Merging: {len(previous)} previous contacts")
        return 0

    ops_logger = None
    if ops_enabled(cfg.ops.ops_json) or args.ops_log or args.ops_stdout:
        ops_log_path = Path(args.ops_log or cfg.ops.ops_log_path or (out_dir / "ops.log"))
        ops_logger = OpsLogger(ops_log_path, also_stdout=bool(args.ops_stdout or cfg.ops.ops_stdout))

    print(f"Workers: {cfg.workers.concurrency}, detail view: {cfg.workers.detail_view}, locale: {cfg.locale}")
    pipeline = ListingExtractionPipeline(config=cfg, ops_logger=ops_logger)
    on_progress = None if args.quiet else console_reporter()

    try:
        results = asyncio.run(pipeline.extract(args.url, on_progress))
    except ExtractionError as e:
        print(f"Extraction error: {e}", file=sys.stderr)
        return 3

    if previous:
        results = dedupe_results(results + previous)

    exporter = ResultExporter(output_dir=out_dir)
    try:
        if args.format in ("csv", "both"):
            csv_path = exporter.to_csv(results, with_phone_only=args.with_phone_only)
            print(f"💾 CSV: {csv_path}")
        if args.format in ("json", "both"):
            json_path = exporter.to_json(
                results,
                with_phone_only=args.with_phone_only,
                metadata={"listing_url": args.url, "concurrency": cfg.workers.concurrency},
            )
            print(f"💾 JSON: {json_path}")
    except OSError as e:
        print(f"Export error: {e}", file=sys.stderr)
        return 3

    print("🏁 Done.")
    print_summary(results)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
