#!/usr/bin/env python3
"""
Batch Engine CLI

Command-line interface for tracking and controlling batch image jobs.

Usage:
    python -m batch_engine.batch_cli register manifest.json
    python -m batch_engine.batch_cli poll
    python -m batch_engine.batch_cli list
    python -m batch_engine.batch_cli pause <batch_id>
    python -m batch_engine.batch_cli cancel <batch_id>
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Callable, Optional

from config.settings import get_settings

from .batch_job import BatchItem, BatchJob, BatchState, ItemStatus, NamingConfig
from .exceptions import BatchEngineError
from .lifecycle import LifecycleAction
from .naming import format_filename
from .presentation import ActionPrompt, ProgressView, Toast
from .runtime import BatchRuntime, create_runtime


def print_header():
    """Print header"""
    print("""
+======================================================================+
|                                                                      |
|             Batch Engine - Image Jobs                                |
|                                                                      |
+======================================================================+
""")


STATE_ICONS = {
    BatchState.PROCESSING: "[PROCESSING]",
    BatchState.PAUSED: "[PAUSED]",
    BatchState.COMPLETED: "[COMPLETED]",
    BatchState.CANCELLED: "[CANCELLED]",
}

ITEM_ICONS = {
    ItemStatus.PENDING: "[ ]",
    ItemStatus.PROCESSING: "[~]",
    ItemStatus.COMPLETED: "[OK]",
    ItemStatus.FAILED: "[X]",
}


def print_batch(job: BatchJob, verbose: bool = False):
    """Print batch details"""
    view = ProgressView.from_job(job)
    icon = STATE_ICONS.get(job.state, "[?]")

    print(f"  {icon} [{job.id}] {job.name}")
    print(f"     {view.headline}: {view.percentage}% | {view.summary_line}, {view.failed} failed")
    if job.timed_out:
        print("     Timed out waiting for the worker")
    if job.credit_balance is not None:
        print(f"     Credits: balance {job.credit_balance}, refunded {job.credits_refunded or 0}")

    if verbose:
        print(f"     Aspect ratio: {job.aspect_ratio} | Preset: {job.preset_name or '-'}")
        for row in view.rows:
            print(f"       {ITEM_ICONS[row.status]} {row.filename} ({row.progress}%)")
            if row.error:
                print(f"           Error: {row.error}")
    print()


def print_toast(toast: Toast):
    print(f"  [{toast.level.upper()}] {toast.message}")
    if toast.description:
        print(f"     {toast.description}")


def ask_confirmation(prompt: ActionPrompt, assume_yes: bool) -> bool:
    """Second step of the confirmation gesture on a terminal"""
    print(f"\n[?] {prompt.title}")
    print(f"    {prompt.message}")
    if prompt.progress:
        p = prompt.progress
        print(f"    Progress: {p['completed']}/{p['total']} ({p['processing']} processing)")
    if assume_yes:
        return True
    answer = input(f"    {prompt.confirm_text}? [y/N] ").strip().lower()
    return answer in ("y", "yes")


def load_manifest(path: Path) -> BatchJob:
    """
    Build a BatchJob from a submission manifest.

    The manifest describes a batch the worker service already accepted:
    {"id", "name", "aspect_ratio", "preset_name", "naming_config",
     "items": [{"id", "filename", "original_url"}]}
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    naming = data.get("naming_config")
    items = [
        BatchItem(
            id=item.get("id") or "",
            local_id=item.get("local_id") or item.get("id") or BatchItem().local_id,
            filename=item.get("filename", ""),
            original_url=item.get("original_url"),
        )
        for item in data.get("items", [])
    ]
    return BatchJob(
        id=data["id"],
        name=data.get("name", ""),
        aspect_ratio=data.get("aspect_ratio", "auto"),
        preset_name=data.get("preset_name"),
        jewelry_type=data.get("jewelry_type"),
        gender=data.get("gender"),
        naming_config=NamingConfig.from_dict(naming) if naming else None,
        items=items,
    )


def cmd_register(args, runtime: BatchRuntime):
    """Track a submitted batch"""
    job = load_manifest(Path(args.manifest))
    runtime.store.add_batch(job)
    print(f"  [OK] Registered: {job.name} [{job.id}] with {job.total_count} images")
    print("\nRun 'python -m batch_engine.batch_cli poll' to start processing.")


def cmd_list(args, runtime: BatchRuntime):
    """List all batches"""
    print("\n[i] Batches")
    print("=" * 50)

    jobs = runtime.store.get_all()
    if not jobs:
        print("  No batches")
        return

    for job in jobs:
        print_batch(job, verbose=args.verbose)
    print(f"[i] Active: {runtime.store.get_active_count()}")


def cmd_status(args, runtime: BatchRuntime):
    """Show one batch"""
    job = runtime.store.get_batch(args.batch_id)
    if job is None:
        print(f"  [X] Batch not found: {args.batch_id}")
        return 1
    print_batch(job, verbose=True)
    return 0


def cmd_names(args, runtime: BatchRuntime):
    """Show output filenames for completed images"""
    job = runtime.store.get_batch(args.batch_id)
    if job is None:
        print(f"  [X] Batch not found: {args.batch_id}")
        return 1

    for index, item in enumerate(job.items):
        if item.status != ItemStatus.COMPLETED and not args.all:
            continue
        print(f"  {item.filename} -> {format_filename(item.filename, index, job.naming_config)}")
    return 0


def _run_action(action: LifecycleAction, batch_id: Optional[str], runtime: BatchRuntime, assume_yes: bool):
    prompt = runtime.confirmation.request(action, batch_id)
    if not ask_confirmation(prompt, assume_yes):
        runtime.confirmation.dismiss()
        print("  [i] Dismissed")
        return False
    runtime.confirmation.confirm()
    return True


def _per_batch(action: LifecycleAction) -> Callable:
    def command(args, runtime: BatchRuntime):
        failures = 0
        for batch_id in args.batch_ids:
            try:
                if _run_action(action, batch_id, runtime, args.yes):
                    print(f"  [OK] {action.value}: {batch_id}")
            except BatchEngineError as e:
                failures += 1
                print(f"  [X] Could not {action.value} {batch_id}: {e}")
        return 1 if failures else 0
    command.__doc__ = f"{action.value.capitalize()} batches"
    return command


def cmd_clear_all(args, runtime: BatchRuntime):
    """Remove every batch"""
    if _run_action(LifecycleAction.CLEAR_ALL, None, runtime, args.yes):
        print("  [OK] Cleared all batches")


def cmd_clear_completed(args, runtime: BatchRuntime):
    """Remove finished and cancelled batches"""
    removed = runtime.controller.clear_completed()
    print(f"  [OK] Cleared {removed} finished batches")


def cmd_poll(args, runtime: BatchRuntime):
    """Drive processing until nothing is left to poll"""
    if not runtime.store.get_drivable():
        print("  [i] Nothing to process")
        return 0

    print("\n[>] Polling worker...\n")
    runtime.notifier.sink = print_toast

    async def run():
        try:
            await runtime.run_until_idle()
        finally:
            await runtime.aclose()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\n\n[!] Stopped. Progress is saved; run 'poll' again to continue.")

    if runtime.engine.timed_out:
        print("\n[!] Polling stopped at the time limit; some batches did not finish.")
    for job in runtime.store.get_all():
        print_batch(job)
    return 0


def cmd_config(args, runtime: BatchRuntime):
    """Show configuration"""
    runtime.settings.print_config()


def main(argv=None):
    print_header()

    parser = argparse.ArgumentParser(
        description="Batch Engine CLI for image batch jobs"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    register_parser = subparsers.add_parser("register", help="Track a submitted batch")
    register_parser.add_argument("manifest", help="Batch manifest JSON file")

    list_parser = subparsers.add_parser("list", help="List all batches")
    list_parser.add_argument("-v", "--verbose", action="store_true",
                             help="Show per-image details")

    status_parser = subparsers.add_parser("status", help="Show one batch")
    status_parser.add_argument("batch_id")

    names_parser = subparsers.add_parser("names", help="Show output filenames")
    names_parser.add_argument("batch_id")
    names_parser.add_argument("-a", "--all", action="store_true",
                              help="Include images that are not completed")

    for action in (LifecycleAction.PAUSE, LifecycleAction.RESUME,
                   LifecycleAction.CANCEL, LifecycleAction.CLEAR):
        action_parser = subparsers.add_parser(action.value, help=f"{action.value.capitalize()} batches")
        action_parser.add_argument("batch_ids", nargs="+", help="Batch IDs")
        action_parser.add_argument("-y", "--yes", action="store_true",
                                   help="Skip the confirmation question")

    clear_all_parser = subparsers.add_parser("clear-all", help="Remove every batch")
    clear_all_parser.add_argument("-y", "--yes", action="store_true",
                                  help="Skip the confirmation question")

    subparsers.add_parser("clear-completed", help="Remove finished batches")
    subparsers.add_parser("poll", help="Process until idle")
    subparsers.add_parser("config", help="Show configuration")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    runtime = create_runtime(get_settings())

    commands = {
        "register": cmd_register,
        "list": cmd_list,
        "status": cmd_status,
        "names": cmd_names,
        "pause": _per_batch(LifecycleAction.PAUSE),
        "resume": _per_batch(LifecycleAction.RESUME),
        "cancel": _per_batch(LifecycleAction.CANCEL),
        "clear": _per_batch(LifecycleAction.CLEAR),
        "clear-all": cmd_clear_all,
        "clear-completed": cmd_clear_completed,
        "poll": cmd_poll,
        "config": cmd_config,
    }

    try:
        return commands[args.command](args, runtime) or 0
    except BatchEngineError as e:
        print(f"  [X] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
