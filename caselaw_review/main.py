"""
Case-Law Review - command-line entry point.

Runs the full pipeline over a set of .docx rulings and prints the review.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from caselaw_review.ai import OpenAICompatibleClient
from caselaw_review.config import OUTPUT_DIR, RUN_TIMEOUT_SECONDS, STAGE_NAMES, USE_FLEX_TIER
from caselaw_review.logging_config import Timer, close_debug_log, error, format_duration, info
from caselaw_review.review import PipelineResult, ResultWriter, ReviewPipeline, SourceDocument


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="caselaw-review",
        description="Case-Law Review - build a case-law review from court rulings (.docx)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Review three rulings, save artifacts under ./processed
  caselaw-review ruling1.docx ruling2.docx ruling3.docx

  # Use the cheaper flex tier and print the full result as JSON
  caselaw-review --flex --json rulings/*.docx

  # Debug mode (verbose logging)
  DEBUG=true caselaw-review ruling.docx
        """
    )

    parser.add_argument(
        'files',
        nargs='+',
        help='Court rulings to review (.docx)'
    )

    parser.add_argument(
        '--flex',
        action='store_true',
        default=USE_FLEX_TIER,
        help='Request the flex tier first (falls back to standard when busy)'
    )

    parser.add_argument(
        '--output-dir',
        default=str(OUTPUT_DIR),
        help=f'Directory for run artifacts (default: {OUTPUT_DIR})'
    )

    parser.add_argument(
        '--no-save',
        action='store_true',
        help='Do not write run artifacts to disk'
    )

    parser.add_argument(
        '--json',
        action='store_true',
        help='Print the full result as JSON instead of the Markdown review'
    )

    parser.add_argument(
        '--timeout',
        type=float,
        default=RUN_TIMEOUT_SECONDS,
        help='Wall-clock budget for the run in seconds (default: %(default)s)'
    )

    return parser


def load_documents(paths: list[str]) -> list[SourceDocument]:
    """Read each file into a SourceDocument named after the file."""
    documents = []
    for path_str in paths:
        path = Path(path_str)
        documents.append(SourceDocument(file_name=path.name, content=path.read_bytes()))
    return documents


def print_progress(stage: int, completed: int, total: int, message: str) -> None:
    print(f"[{STAGE_NAMES.get(stage, stage)}] {completed}/{total} {message}", file=sys.stderr)


def print_summary(result: PipelineResult) -> None:
    """Per-document status and cost summary on stderr."""
    print("\n" + "=" * 60, file=sys.stderr)
    print("PROCESSING SUMMARY", file=sys.stderr)
    print("=" * 60, file=sys.stderr)

    for doc in result.documents:
        status_symbol = '[ERROR]' if doc.has_error else '[OK]'
        print(f"\n{status_symbol} {doc.file_name}", file=sys.stderr)
        if doc.case_number:
            print(f"  Case number: {doc.case_number}", file=sys.stderr)
        if doc.error:
            print(f"  Error: {doc.error}", file=sys.stderr)

    print("", file=sys.stderr)
    for entry in result.cost_statistics.stages:
        print(
            f"  Stage {entry.stage} {entry.stage_name}: {entry.calls} calls, "
            f"{entry.tokens.total} tokens, ${entry.cost.total:.4f}",
            file=sys.stderr,
        )
    total = result.cost_statistics.total
    print(f"  Total: {total.tokens.total} tokens, ${total.cost.total:.4f}", file=sys.stderr)

    if result.output_dir:
        print(f"\nSaved to: {result.output_dir}", file=sys.stderr)
    if result.save_error:
        print(f"\nSave failed: {result.save_error}", file=sys.stderr)
    if result.error:
        print(f"\nRun failed: {result.error}", file=sys.stderr)


async def run_review(args: argparse.Namespace) -> PipelineResult:
    documents = load_documents(args.files)
    writer = None if args.no_save else ResultWriter(Path(args.output_dir))

    async with OpenAICompatibleClient() as client:
        pipeline = ReviewPipeline(client, result_writer=writer, use_flex=args.flex)
        return await pipeline.run(documents, progress_callback=print_progress, timeout=args.timeout)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the caselaw-review command.

    Returns:
        Process exit code (0 when a review was produced)
    """
    args = build_parser().parse_args(argv)
    info(f"caselaw-review started with {len(args.files)} files (flex={args.flex})")

    run_timer = Timer("Review run", auto_log=False)
    try:
        with run_timer:
            result = asyncio.run(run_review(args))
    except asyncio.TimeoutError:
        # Must precede OSError: on 3.11+ asyncio.TimeoutError is the builtin TimeoutError
        error(f"Review did not finish within {args.timeout} seconds")
        print(f"Error: review did not finish within {args.timeout} seconds", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        error(f"Could not start review: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        close_debug_log()

    print_summary(result)
    print(f"Finished in {format_duration(run_timer.duration_ms)}", file=sys.stderr)
    if args.json:
        print(json.dumps(result.to_response(), ensure_ascii=False, indent=2))
    elif result.review:
        print(result.review)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
