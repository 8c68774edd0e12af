#!/usr/bin/env python3
"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

cli.py
dupindex CLI — index a folder, list duplicate groups and resolve them from the console.
Deletion goes to the system trash unless `--action delete` is given explicitly.
"""
from __future__ import annotations  # Enable postponed evaluation of annotations (PEP 563)
import argparse
import json
import sys
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, NoReturn
import logging

logging.basicConfig(
    level=logging.ERROR,
    format="%(levelname)-8s | %(name)-25s | %(message)s"
)

# === EARLY DEPENDENCY VALIDATION ===
_MISSING_DEPS = []
try:
    from send2trash import send2trash
except ImportError:
    _MISSING_DEPS.append("send2trash")

try:
    import xxhash
except ImportError:
    _MISSING_DEPS.append("xxhash")

if _MISSING_DEPS:
    print("❌ Missing required dependencies:", file=sys.stderr)
    print(f"   pip install {' '.join(_MISSING_DEPS)}", file=sys.stderr)
    print("\nOr reinstall the package:", file=sys.stderr)
    print("   pip install dupindex", file=sys.stderr)
    sys.exit(1)

# === NORMAL IMPORTS (after validation) ===
from dupindex.core.errors import DupIndexError
from dupindex.core.models import (
    ActionKind, EngineConfig, ResolutionResult, ScanParams, ScanReport, SymlinkPolicy,
)
from dupindex.commands import DedupEngine
from dupindex.utils.convert_utils import ConvertUtils
from dupindex.aliases import (
    ACTION_ALIASES, ACTION_CHOICES, ACTION_HELP_TEXT,
    ALGORITHM_CHOICES, ALGORITHM_HELP_TEXT,
    SYMLINK_ALIASES, SYMLINK_CHOICES, SYMLINK_HELP_TEXT,
    EPILOG_TEXT,
)

ACTION_LABELS = {
    "trash": "TRASH",
    "delete": "DEL",
    "hardlink": "HLINK",
    "symlink": "SLINK",
    "move": "MOVE",
}


class CLIApplication:
    """Main CLI application controller."""

    def __init__(self):
        self.start_time: float = time.time()
        self.verbose: bool = False
        self.quiet: bool = False
        self.json_output: bool = False

        # Fix encoding for Windows consoles to prevent UnicodeEncodeError
        for stream in (sys.stdout, sys.stderr):
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding='utf-8')

    @staticmethod
    def parse_args(args=None) -> argparse.Namespace:
        """Parse command-line arguments."""
        parser = argparse.ArgumentParser(
            prog="dupindex",
            description="dupindex — content-hash duplicate file indexer with safe resolution",
            formatter_class=argparse.RawTextHelpFormatter,
            epilog=EPILOG_TEXT
        )

        # Required arguments
        parser.add_argument(
            "--input", "-i",
            required=True,
            type=str,
            help="Input directory to scan for duplicates"
        )

        # Filtering options
        parser.add_argument(
            "--min-size", "-m",
            default="0",
            type=str,
            metavar='',
            help="Minimum file size (e.g., 500KB, 1MB). Default: 0"
        )
        parser.add_argument(
            "--max-size", "-M",
            default="",
            type=str,
            metavar='',
            help="Maximum file size (e.g., 10MB, 1GB). Default: no limit"
        )
        parser.add_argument(
            "--extensions", "-x",
            nargs="+",
            default=[],
            type=str,
            metavar='',
            help="File extensions (space separated) to include (e.g., .jpg .png)"
        )
        parser.add_argument(
            "--excluded-dirs", '-e',
            nargs="+",
            default=[],
            type=str,
            metavar='',
            dest="excluded_dirs",
            help="Excluded/ignored directories (space separated)"
        )
        parser.add_argument(
            "--no-recursive",
            action="store_true",
            help="Scan only the top level of the input directory"
        )
        parser.add_argument(
            "--skip-empty",
            action="store_true",
            help="Ignore zero-byte files (by default all empty files form one group)"
        )
        parser.add_argument(
            "--exclude-hidden",
            action="store_true",
            help="Ignore hidden files and directories"
        )
        parser.add_argument(
            "--symlinks",
            choices=SYMLINK_CHOICES,
            default="follow-once",
            type=str,
            help=SYMLINK_HELP_TEXT
        )

        # Engine options
        parser.add_argument(
            "--algorithm",
            choices=ALGORITHM_CHOICES,
            default="sha256",
            type=str,
            help=ALGORITHM_HELP_TEXT
        )
        parser.add_argument(
            "--workers",
            type=int,
            default=None,
            metavar='',
            help="Number of hashing threads. Default: CPU count (2..8)"
        )
        parser.add_argument(
            "--timeout",
            type=float,
            default=None,
            metavar='',
            help="Abort the scan after this many seconds and report what was indexed"
        )

        # Actions
        parser.add_argument(
            "--keep-one",
            action="store_true",
            help="Keep the first file of every duplicate group and resolve the rest.\n"
                 "Always shows a preview first unless --force is given."
        )
        parser.add_argument(
            "--action",
            choices=ACTION_CHOICES,
            default="trash",
            type=str,
            help=ACTION_HELP_TEXT
        )
        parser.add_argument(
            "--dest",
            type=str,
            default=None,
            metavar='',
            help="Destination folder for --action move"
        )
        parser.add_argument(
            "--symlink-fallback",
            action="store_true",
            help="With --action hardlink, use a symlink where a hard link is impossible (other volume)"
        )

        # Output options
        parser.add_argument(
            "--force",
            action="store_true",
            help="Skip confirmation prompt when used with --keep-one (for automation/scripts)"
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print a machine-readable JSON report instead of text"
        )
        parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output"
        )
        parser.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Show detailed statistics, progress and engine log messages"
        )

        return parser.parse_args(args)

    def validate_args(self, args: argparse.Namespace) -> None:
        """Validate command-line arguments before execution."""
        if args.force and not args.keep_one:
            self.error_exit("--force can only be used with --keep-one")

        if args.action == "move" and args.keep_one and not args.dest:
            self.error_exit("--action move requires --dest")
        if args.dest and args.action != "move":
            self.error_exit("--dest can only be used with --action move")

        if args.json and args.keep_one and not args.force:
            self.error_exit("--json with --keep-one requires --force (no interactive preview in JSON mode)")

        # Prevent interactive confirmation in non-TTY environments
        if args.keep_one and not args.force:
            if not sys.stdin.isatty() or not sys.stdout.isatty():
                self.error_exit(
                    "Cannot request interactive confirmation in non-interactive session.\n"
                    "Use --force flag to proceed without confirmation when piping output or running in scripts."
                )

        root_path = Path(args.input).resolve()
        if not root_path.exists():
            self.error_exit(f"Directory not found: {args.input}")
        if not root_path.is_dir():
            self.error_exit(f"Path is not a directory: {args.input}")

        # Validate size formats
        try:
            min_size = ConvertUtils.human_to_bytes(args.min_size)
            if args.max_size:
                max_size = ConvertUtils.human_to_bytes(args.max_size)
                if max_size < min_size:
                    self.error_exit("Maximum size cannot be less than minimum size")
        except ValueError as e:
            self.error_exit(f"Invalid size format: {e}")

        if args.workers is not None and args.workers < 1:
            self.error_exit("--workers must be at least 1")
        if args.timeout is not None and args.timeout <= 0:
            self.error_exit("--timeout must be positive")

        # Validate excluded directories
        for excl_dir in args.excluded_dirs:
            excl_path = Path(excl_dir).resolve()
            if not excl_path.exists():
                self.warning(f"Excluded directory not found: {excl_dir}")
            elif not excl_path.is_dir():
                self.warning(f"Excluded path is not a directory: {excl_dir}")

    def create_params(self, args: argparse.Namespace) -> ScanParams:
        """Create ScanParams from CLI arguments."""
        try:
            return ScanParams.from_human_readable(
                root_dir=str(Path(args.input).resolve()),
                min_size_str=args.min_size,
                max_size_str=args.max_size,
                extensions_str=",".join(args.extensions),
                excluded_dirs=[str(Path(item.strip()).resolve()) for item in args.excluded_dirs],
                recursive=not args.no_recursive,
                include_hidden=not args.exclude_hidden,
                skip_empty=args.skip_empty,
                symlink_policy=SYMLINK_ALIASES.get(args.symlinks, SymlinkPolicy.FOLLOW_ONCE),
                timeout=args.timeout,
            )
        except ValueError as e:
            self.error_exit(f"Parameter error: {e}")

    def create_config(self, args: argparse.Namespace) -> EngineConfig:
        """Create EngineConfig from CLI arguments."""
        try:
            options: Dict[str, Any] = {
                "algorithm": args.algorithm,
                "use_trash": args.action != "delete",
                "allow_symlink_fallback": args.symlink_fallback,
            }
            if args.workers is not None:
                options["workers"] = args.workers
            return EngineConfig(**options)
        except ValueError as e:
            self.error_exit(f"Parameter error: {e}")

    def progress_callback(self, stage: str, current: int, total: Optional[int]) -> None:
        """CLI progress callback - shows progress in console."""
        if not self.verbose:
            return

        if total and total > 0:
            percent = (current / total) * 100
            sys.stderr.write(
                f"\r  [{stage}] {current}/{total} ({percent:.1f}%)"
            )
            sys.stderr.flush()
        else:
            sys.stderr.write(f"\r  [{stage}] {current} files processed...")
            sys.stderr.flush()

    @staticmethod
    def stopped_flag() -> bool:
        """Check if operation should stop (placeholder for signal handling)."""
        return False

    def run_scan(self, engine: DedupEngine, params: ScanParams) -> ScanReport:
        """Execute the indexing workflow."""
        if self.verbose:
            print(f"Indexing duplicates (algorithm: {engine.config.algorithm}, workers: {engine.config.workers})...")

        try:
            report = engine.scan(
                params,
                progress_callback=self.progress_callback if self.verbose else None,
                stopped_flag=self.stopped_flag
            )
        except DupIndexError as e:
            self.error_exit(f"Scan failed: {e}")

        if self.verbose:
            sys.stderr.write("\n")
            print("\nScan Statistics:")
            print(report.stats.print_summary())

        if report.timed_out:
            self.warning(f"Scan timed out after {params.timeout}s; results are partial")
        elif report.cancelled:
            self.warning("Scan cancelled; results are partial")

        if report.issues and not self.json_output:
            self.warning(f"{len(report.issues)} file(s) could not be indexed")
            if self.verbose:
                for issue in report.issues:
                    self.warning(f"  {issue}")

        return report

    def output_results(self, report: ScanReport) -> None:
        """Output duplicate groups as plain text in group-number order."""
        if self.quiet:
            return

        groups = report.groups
        if not groups:
            print("No duplicate groups found.")
            return

        print(f"\nFound {len(groups)} duplicate groups ({report.duplicate_files} files)")

        for group in groups:
            size_str = ConvertUtils.bytes_to_human(group.size)
            print(f"\n📁 Group {group.group_number} | {group.digest.short()} | Size: {size_str} | Files: {len(group.members)}")
            for path in group.members:
                link_marker = " 🔗" if path in group.linked else ""
                print(f"   {path}{link_marker}")

    def output_json(self, report: ScanReport, results: Optional[List[ResolutionResult]] = None) -> None:
        """Machine-readable report: groups in group-number order, issues and action results."""
        payload = {
            "groups": [
                {
                    "group": group.group_number,
                    "digest": group.digest.hex,
                    "algorithm": group.digest.algorithm,
                    "size": group.size,
                    "files": [str(path) for path in group.members],
                }
                for group in report.groups
            ],
            "issues": [
                {"path": issue.path, "kind": issue.kind, "message": issue.message}
                for issue in report.issues
            ],
            "cancelled": report.cancelled,
            "timed_out": report.timed_out,
        }
        if results is not None:
            payload["results"] = [result.to_dict() for result in results]
        print(json.dumps(payload, indent=2))

    def preview_keep_one(self, report: ScanReport, action_name: str, dest: Optional[str]) -> int:
        """Prints what --keep-one is about to do. Returns the number of files affected."""
        label = ACTION_LABELS[action_name]
        affected = 0
        estimate = 0
        print()
        for group in report.groups:
            size_str = ConvertUtils.bytes_to_human(group.size)
            print(f"📁 Group {group.group_number} | Size: {size_str} | Files: {len(group.members)}")
            print("-" * 60)
            print(f"   [KEEP]  {group.primary}")
            print(f"           Reason: first discovered")
            for path in group.members[1:]:
                print(f"   [{label}] {path}")
                affected += 1
                if path not in group.linked:
                    estimate += group.size
            print()

        print("=" * 60)
        target = f" into {dest}" if dest else ""
        print(f"Summary: keep 1 file per group ({len(report.groups)} files preserved, "
              f"{affected} files -> {action_name}{target})")
        if action_name != "move":
            print(f"Estimated space saved: {ConvertUtils.bytes_to_human(estimate)}")
        print()
        return affected

    def execute_keep_one(self, engine: DedupEngine, report: ScanReport, args: argparse.Namespace) -> List[ResolutionResult]:
        """Keep one file per group and resolve the rest with the chosen action."""
        if not report.groups:
            if not self.quiet and not self.json_output:
                print("No duplicate groups found.")
            return []

        action, extra = ACTION_ALIASES[args.action]
        extra = dict(extra)
        if action == ActionKind.MOVE:
            extra["dest_dir"] = str(Path(args.dest).resolve())

        if not self.json_output:
            affected = self.preview_keep_one(report, args.action, args.dest)

            # Skip confirmation if --force is used
            if args.force:
                print("⚠️  WARNING: --force flag skips confirmation. Proceeding...")
            else:
                # Safety check: confirm we're still in interactive mode
                if not sys.stdin.isatty() or not sys.stdout.isatty():
                    self.error_exit(
                        "Lost interactive terminal during operation. "
                        "Use --force to proceed in non-interactive environments."
                    )

                response = input(f"Are you sure you want to {args.action} {affected} files? [y/N]: ")
                if response.strip().lower() not in ("y", "yes"):
                    print("Operation cancelled by user.")
                    return []

        try:
            if action == ActionKind.MOVE:
                os.makedirs(extra["dest_dir"], exist_ok=True)
            results = engine.keep_one_everywhere(action, **extra)
        except (DupIndexError, OSError, ValueError) as e:
            self.error_exit(f"Failed during {args.action}: {e}")

        if not self.json_output:
            self.report_results(results, args.action)
        return results

    def report_results(self, results: List[ResolutionResult], action_name: str) -> None:
        """Summarizes per-file outcomes; individual failures do not stop the batch."""
        succeeded = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        freed = sum(r.freed_bytes for r in succeeded)

        if self.verbose:
            for i, result in enumerate(results, 1):
                status = "ok" if result.success else f"failed ({result.error_kind})"
                print(f"  [{i}/{len(results)}] {os.path.basename(result.path)}: {status}")

        if failed:
            print(f"\n⚠️  Partial success: {len(succeeded)}/{len(results)} files processed ({action_name}).")
            print(f"Failed for {len(failed)} file(s):")
            for result in failed[:5]:  # Show first 5 errors
                print(f"  • {os.path.basename(result.path)}: {result.error_kind}: {result.reason}")
            if len(failed) > 5:
                print(f"  ...and {len(failed) - 5} more files")
        else:
            print(f"✅ Successfully processed {len(succeeded)} files ({action_name}).")
        if freed:
            print(f"Total space saved: {ConvertUtils.bytes_to_human(freed)}")

    def warning(self, message: str) -> None:
        """Print a warning message to stderr."""
        if not self.quiet:
            print(f"⚠️  {message}", file=sys.stderr)

    @staticmethod
    def error_exit(message: str, code: int = 1) -> NoReturn:
        """Print error and exit."""
        print(f"❌ Error: {message}", file=sys.stderr)
        sys.exit(code)

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Main entry point with conditional output behavior."""
        args = self.parse_args(argv)
        self.verbose = args.verbose
        self.quiet = args.quiet
        self.json_output = args.json

        if self.verbose:
            logging.getLogger().setLevel(logging.INFO)

        self.validate_args(args)
        params = self.create_params(args)
        config = self.create_config(args)
        engine = DedupEngine(params.root_dir, config)

        if not self.quiet and not self.json_output:
            print(f"Scanning directory: {params.root_dir}")

        report = self.run_scan(engine, params)

        results = None
        if args.keep_one:
            results = self.execute_keep_one(engine, report, args)

        if self.json_output:
            self.output_json(report, results)
        elif not args.keep_one:
            self.output_results(report)

        # Show completion time
        elapsed = time.time() - self.start_time
        if self.verbose and not self.json_output:
            print(f"\n✅ Completed in {elapsed:.2f} seconds")


def main(argv: Optional[List[str]] = None) -> None:
    """Application entry point."""
    app = CLIApplication()
    try:
        app.run(argv)
    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user (Ctrl+C)")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("DEBUG"):
            raise
        print(f"❌ Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
