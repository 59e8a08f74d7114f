"""
lualens command line entry point.

Usage:
    lualens [paths ...] [options]

Options:
    # BASIC USAGE
    --report [file]   Generate a report (supports .txt, .html, .json)
    --dead-code       Also report statements that can never run
    --passes N        Inference passes per file (default: 2)
    --fixpoint        Repeat inference until nothing changes
    --lua-path PATH   Module search templates, e.g. "./?.lua;lib/?.lua"

    # EDITOR QUERIES
    --describe LINE:COL
                      Describe the identifier at a position of a single file
    --highlight       Read "line\\ncolumn\\nsource" from stdin and print one
                      highlight line per identifier

    # MULTIPROCESS processing
    --workers / -j    Number of parallel workers (default: CPU count, max 8)
    --single-thread   Disable multiprocessing (for debugging)

    --verbose / -v    Show detailed output
    --quiet / -q      Only show summary
"""

import argparse
import logging
import os
import sys
from concurrent.futures import BrokenExecutor, ProcessPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from lualens.config import InspectOptions
from lualens.diagnostics import describe_node, node_at_position
from lualens.discovery import discover_direct
from lualens.errors import LuaSyntaxError
from lualens.highlight import highlight_request
from lualens.inspector import LuaInspector, analyze_file
from lualens.reporter import Reporter

logger = logging.getLogger(__name__)


def analyze_file_worker(args_tuple):
    """Worker function for parallel analyze_file calls."""
    group, script_path, options = args_tuple
    try:
        return (group, script_path, analyze_file(script_path, options), None)
    except OSError as e:
        return (group, script_path, [], str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lualens",
        description="Static semantic analysis for Lua sources"
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Lua files or directories to analyse"
    )
    parser.add_argument(
        "--report",
        type=str,
        default=None,
        help="Generate a report (supports .txt, .html, .json)"
    )
    parser.add_argument(
        "--dead-code",
        action="store_true",
        default=None,
        help="Report statements that can never run"
    )
    parser.add_argument(
        "--passes",
        type=int,
        default=None,
        help="Inference passes per file (default: 2)"
    )
    parser.add_argument(
        "--fixpoint",
        action="store_true",
        default=None,
        help="Repeat inference until no value changes"
    )
    parser.add_argument(
        "--lua-path",
        type=str,
        default=None,
        help="Module search templates separated by ';' ('?' is the module name)"
    )
    parser.add_argument(
        "--describe",
        type=str,
        default=None,
        metavar="LINE:COL",
        help="Describe the identifier at a position (needs exactly one file)"
    )
    parser.add_argument(
        "--highlight",
        action="store_true",
        help="Answer an editor highlight request read from stdin"
    )
    parser.add_argument(
        "--single-thread",
        action="store_true",
        help="Disable multiprocessing (for debugging)"
    )
    parser.add_argument(
        "--workers", "-j",
        type=int,
        default=None,
        help="Number of parallel workers (default: CPU count)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed output"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only show summary"
    )
    return parser


def setup_logging(verbose: bool, quiet: bool):
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def options_from_args(args) -> InspectOptions:
    return InspectOptions.from_env(
        passes=args.passes,
        fixpoint=args.fixpoint,
        detect_dead_code=args.dead_code,
        search_path=args.lua_path,
    )


def parse_position(text: str) -> Tuple[int, int]:
    line, _, column = text.partition(':')
    return int(line), int(column or 1)


def describe(path: Path, position: str, options: InspectOptions) -> int:
    line, column = parse_position(position)
    try:
        inspection = LuaInspector(options).inspect_file(path)
    except LuaSyntaxError as e:
        print(f"{path}: {e}")
        return 1
    node = node_at_position(inspection, line, column)
    if node is None:
        print(f"{path}:{line}:{column}: no identifier here")
        return 1
    print(describe_node(inspection, node))
    return 0


def collect_files(paths: List[str]) -> List[Tuple[str, Path]]:
    all_files = []
    for raw in paths:
        path = Path(raw.strip('"\'').rstrip('/\\') or raw)
        if not path.exists():
            print(f"Path not found: {path}")
            continue
        for group, scripts in discover_direct(path).items():
            for script_path in scripts:
                all_files.append((group, script_path))
    return all_files


def run_analysis(all_files, options: InspectOptions, args, reporter: Reporter) -> Tuple[int, int]:
    """Analyse every file into the reporter; returns (analysed, skipped)."""
    files_analyzed = 0
    files_skipped = 0
    done = set()

    def record(group, script_path, findings, error):
        nonlocal files_analyzed, files_skipped
        done.add((group, script_path))
        if error:
            files_skipped += 1
            if args.verbose:
                print(f"\n  [ERROR] {script_path.name}: {error}")
            return
        files_analyzed += 1
        reporter.add_findings(group, script_path, findings)

    work_items = [(group, script_path, options) for group, script_path in all_files]

    pool_crashed = False
    if not args.single_thread and len(work_items) > 1:
        num_workers = args.workers or min(os.cpu_count() or 4, 8)
        if not args.quiet:
            print(f"Analyzing with {num_workers} workers...")
        start_time = datetime.now()
        try:
            with ProcessPoolExecutor(max_workers=num_workers) as executor:
                futures = {executor.submit(analyze_file_worker, item): item for item in work_items}
                for completed, future in enumerate(as_completed(futures), 1):
                    try:
                        record(*future.result())
                    except BrokenExecutor:
                        pool_crashed = True
                        break
                    if not args.quiet:
                        progress = completed / len(work_items) * 100
                        elapsed = (datetime.now() - start_time).total_seconds()
                        print(f"\r[{progress:5.1f}%] {completed}/{len(work_items)} | {elapsed:.1f}s  ",
                              end="", flush=True)
        except BrokenExecutor:
            pool_crashed = True
        if not args.quiet:
            print("\r" + " " * 60 + "\r", end="")
        if pool_crashed:
            logger.warning("worker pool crashed, falling back to single-threaded mode")
            if not args.quiet:
                print("Worker crashed. Falling back to single-threaded mode...")

    for group, script_path, item_options in work_items:
        if (group, script_path) in done:
            continue
        record(*analyze_file_worker((group, script_path, item_options)))

    return files_analyzed, files_skipped


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)
    options = options_from_args(args)

    if args.highlight:
        for line in highlight_request(sys.stdin.read(), LuaInspector(options)):
            print(line)
        return 0

    if not args.paths:
        parser.print_help()
        return 2

    if args.describe:
        if len(args.paths) != 1 or not Path(args.paths[0]).is_file():
            print("--describe needs exactly one file")
            return 2
        return describe(Path(args.paths[0]), args.describe, options)

    all_files = collect_files(args.paths)
    if not all_files:
        print("No Lua files found.")
        return 1

    reporter = Reporter()
    files_analyzed, files_skipped = run_analysis(all_files, options, args, reporter)

    if not args.quiet:
        reporter.print_detailed()
        reporter.print_summary()

    if args.report:
        report_path = Path(args.report)
        print(f"\nGenerating report: {report_path.name}...")
        reporter.save(report_path, verbose=args.verbose)
        print(f"Report saved to: {report_path}")

    if not args.quiet:
        print(f"\n{'=' * 55}")
    print(f"Files analyzed: {files_analyzed}")
    if files_skipped > 0:
        print(f"Files skipped (read error): {files_skipped}")
    syntax_errors = sum(1 for f in reporter.all_findings if f.pattern_name == 'syntax-error')
    if syntax_errors > 0:
        print(f"Files with parse errors: {syntax_errors}")

    return 1 if reporter.count_by_severity('error') else 0


def run():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        sys.exit(1)


if __name__ == "__main__":
    run()
