# quran_playback/cli.py
"""
Command-line interface for Quran Playback.
"""
import argparse
import asyncio
import json
import sys
import logging
from pathlib import Path

from .config import Config
from .models import AfterRepeatKind
from .playback.engine import TERMINAL_STATES
from .playback.events import EventKind
from .playback.output import SimulatedAudioOutput
from .playback.service import PlaybackService
from .settings import PlaybackSettingsRecord
from .utils.presets import PRESETS
from .utils.progress import ProgressReporter
from .exceptions import QuranPlaybackError

AFTER_ACTIONS = {
    "stop": AfterRepeatKind.STOP.value,
    "continue-ayaat": AfterRepeatKind.CONTINUE_AYAAT.value,
    "continue-pages": AfterRepeatKind.CONTINUE_PAGES.value,
}


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def settings_from_args(args, base: PlaybackSettingsRecord) -> PlaybackSettingsRecord:
    """Overlay command-line flags on the persisted preferences."""
    action = AFTER_ACTIONS[args.after_action] if args.after_action else None
    effective_action = action or base.after_repeat_action
    record = base.merged(
        ayah_repeat_count=args.ayah_repeat,
        range_repeat_count=args.range_repeat,
        connection_ayah_before=args.before,
        connection_ayah_after=args.after,
        gap_between_ayaat_ms=args.gap_ms,
        speed=args.speed,
        riwayah=args.riwayah,
        selected_reciter_id=args.reciter,
        after_repeat_action=action
    )
    if args.continue_count is not None:
        if effective_action == AfterRepeatKind.CONTINUE_PAGES.value:
            record = record.merged(after_repeat_continue_pages_count=args.continue_count)
        else:
            record = record.merged(after_repeat_continue_ayaat_count=args.continue_count)
    if args.extra_ayah:
        record = record.merged(after_repeat_continue_pages_extra_ayah=True)
    return record


def cmd_init(args):
    """Initialize configuration and data directories."""
    config = Config(
        base_dir=Path(args.base_dir),
        data_dir=Path(args.data_dir)
    )
    config.save()
    print(f"Initialized configuration at {config.config_path}")
    print(f"Data directory: {config.data_dir}")


def cmd_reciters(args):
    """List reciters in the library."""
    service = PlaybackService()
    reciters = service.library.reciters()

    if not reciters:
        print("No reciters registered. Use 'add-preset' to add one.")
        return

    print("\nReciters:")
    print("-" * 80)
    for r in reciters:
        riwayaat = ", ".join(sorted(rw.value for rw in r.riwayaat)) or "-"
        missing = f" ({len(r.missing_ayahs)} missing)" if r.missing_ayahs else ""
        print(f"  {r.reciter_id:<32} {r.name:<36} {riwayaat}{missing}")
    print()


def cmd_presets(args):
    """List built-in reciter presets."""
    print("\nBuilt-in presets:")
    print("-" * 80)
    for p in PRESETS:
        print(f"  {p.id:<32} {p.name:<36} {p.riwayah.value}")
    print()


def cmd_add_preset(args):
    """Register a built-in preset in the library."""
    service = PlaybackService()
    reciter = service.library.register_preset(args.preset_id)
    print(f"Registered reciter: {reciter.reciter_id}")


def cmd_plan(args):
    """Build and print the playback queue for a range."""
    service = PlaybackService()
    record = settings_from_args(args, service.config.playback)
    queue = service.plan(args.range, record)

    if args.json:
        print(json.dumps([u.to_dict() for u in queue], indent=2, ensure_ascii=False))
        return

    summary = queue.summary()
    print(f"\nQueue for {args.range}: {summary['units']} units "
          f"({summary['unavailable']} unavailable, {summary['padding']} padding, "
          f"{summary['continuation']} continuation)")
    if queue.infinite_range_repeat:
        print("  Range repeats forever")
    print("-" * 80)
    for idx, unit in enumerate(queue):
        tags = []
        if unit.is_connection_padding:
            tags.append("padding")
        if unit.is_continuation:
            tags.append("continuation")
        if unit.is_infinite_repeat:
            tags.append("∞")
        source = unit.audio_locator.reciter_name if unit.audio_locator else "UNAVAILABLE"
        print(f"  {idx:>4}  {str(unit.ayah):<8} rep {unit.repeat_index} range {unit.range_repeat_index}"
              f"  gap {unit.gap_after_ms}ms  {source} {' '.join(tags)}")
    print()


async def _play(service: PlaybackService, spec: str, record: PlaybackSettingsRecord, unit_seconds: float):
    ayah_range = service.parse_range(spec)
    engine = service.create_engine(SimulatedAudioOutput(unit_seconds=unit_seconds))
    subscription = engine.subscribe()

    async def print_events():
        async for event in subscription:
            print(f"  {event}")
            if event.kind == EventKind.STATE and event.state in TERMINAL_STATES:
                return

    printer = asyncio.create_task(print_events())
    try:
        await engine.play(ayah_range, service.snapshot(ayah_range, record))
        await printer
    finally:
        printer.cancel()
        subscription.close()

    if engine.unavailable_ayahs:
        print(f"\nUnavailable ayaat: {', '.join(str(a) for a in engine.unavailable_ayahs)}")


def cmd_play(args):
    """Drive a playback session against the simulated output."""
    service = PlaybackService()
    record = settings_from_args(args, service.config.playback)
    unit_seconds = args.unit_seconds if args.unit_seconds is not None else service.config.engine.simulated_unit_seconds
    asyncio.run(_play(service, args.range, record, unit_seconds))


def cmd_check_availability(args):
    """Probe a CDN reciter for missing ayaat."""
    service = PlaybackService()
    reporter = ProgressReporter(service.index.total_ayah_count, desc="Probing", unit="ayaat")
    missing = service.check_availability(args.reciter_id, args.source, progress=reporter.update)
    reporter.finish()

    print(f"\n{len(missing)} ayaat missing for {args.reciter_id}")
    for ref in missing[:20]:
        print(f"  - {ref}")
    if len(missing) > 20:
        print(f"  ... and {len(missing) - 20} more")


def cmd_status(args):
    """Show configuration status."""
    service = PlaybackService()
    service.config.print_status(
        reciter_count=len(service.library.reciters()),
        cache_bytes=service.cache.size_bytes()
    )


def cmd_clear_cache(args):
    """Clear cached audio."""
    service = PlaybackService()
    service.clear_cache(args.reciter)
    print(f"Cache cleared: {args.reciter or 'all'}")


def _add_settings_flags(p: argparse.ArgumentParser):
    p.add_argument("--ayah-repeat", type=int, help="Repeats per ayah (-1 = infinite)")
    p.add_argument("--range-repeat", type=int, help="Repeats of the whole range (-1 = infinite)")
    p.add_argument("--before", type=int, help="Connection ayaat before the range")
    p.add_argument("--after", type=int, help="Connection ayaat after the range")
    p.add_argument("--gap-ms", type=int, help="Silence between ayaat in milliseconds")
    p.add_argument("--speed", type=float, help="Playback rate multiplier")
    p.add_argument("--riwayah", help="Riwayah (e.g., hafs, warsh)")
    p.add_argument("--reciter", help="Play only this reciter id")
    p.add_argument("--after-action", choices=sorted(AFTER_ACTIONS), help="What to do after the last range repeat")
    p.add_argument("--continue-count", type=int, help="Ayaat or pages to continue with")
    p.add_argument("--extra-ayah", action="store_true", help="Append one ayah after page continuation")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="quran-playback",
        description="Plan and simulate ayah-by-ayah Quran recitation playback"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    p_init = subparsers.add_parser("init", help="Initialize configuration")
    p_init.add_argument("--base-dir", default=".", help="Base directory")
    p_init.add_argument("--data-dir", default="./quran_data", help="Data directory")
    p_init.set_defaults(func=cmd_init)

    # reciters / presets
    p_reciters = subparsers.add_parser("reciters", help="List reciters")
    p_reciters.set_defaults(func=cmd_reciters)

    p_presets = subparsers.add_parser("presets", help="List built-in presets")
    p_presets.set_defaults(func=cmd_presets)

    p_add = subparsers.add_parser("add-preset", help="Register a built-in preset")
    p_add.add_argument("preset_id", help="Preset ID (see 'presets')")
    p_add.set_defaults(func=cmd_add_preset)

    # plan
    p_plan = subparsers.add_parser("plan", help="Print the playback queue for a range")
    p_plan.add_argument("range", help="Range spec (e.g., 1:1-7, 2, 2:250-3:10, p10)")
    p_plan.add_argument("--json", action="store_true", help="Print units as JSON")
    _add_settings_flags(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    # play
    p_play = subparsers.add_parser("play", help="Simulate a playback session")
    p_play.add_argument("range", help="Range spec (e.g., 1:1-7, 2, 2:250-3:10, p10)")
    p_play.add_argument("--unit-seconds", type=float, help="Simulated seconds per ayah")
    _add_settings_flags(p_play)
    p_play.set_defaults(func=cmd_play)

    # check-availability
    p_check = subparsers.add_parser("check-availability", help="Find ayaat missing on a reciter's CDN")
    p_check.add_argument("reciter_id", help="Reciter ID")
    p_check.add_argument("--source", type=int, default=0, help="CDN source index")
    p_check.set_defaults(func=cmd_check_availability)

    # status
    p_status = subparsers.add_parser("status", help="Show status")
    p_status.set_defaults(func=cmd_status)

    # clear-cache
    p_cache = subparsers.add_parser("clear-cache", help="Clear cached audio")
    p_cache.add_argument("--reciter", help="Reciter ID (default: all)")
    p_cache.set_defaults(func=cmd_clear_cache)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)

    try:
        args.func(args)
    except QuranPlaybackError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
