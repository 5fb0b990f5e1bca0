#!/usr/bin/env python3
"""Live probe for keyboard obstruction notifications over MQTT.

Connects an MQTT notification source using ``KBINSET_*`` environment
variables (plus flags), attaches a KeyboardInsetController and prints every
inset change until interrupted.

Use this to check what a device actually publishes when the on-screen
keyboard appears, swaps between fields, or goes away.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from kbinset import InsetConfig, KbInsetError, KeyboardInsetController  # noqa: E402
from kbinset._mqtt import MqttNotificationSource  # noqa: E402

_LOG = logging.getLogger("inset_probe")


@dataclass
class ProbeStats:
    started_at: float
    changes: int = 0
    last_change_at: float | None = None

    def on_change(self, now: float) -> float | None:
        previous = self.last_change_at
        self.changes += 1
        self.last_change_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print keyboard inset changes derived from MQTT obstruction topics.",
    )
    parser.add_argument("--host", help="Broker host (overrides KBINSET_BROKER_HOST).")
    parser.add_argument("--port", type=int, help="Broker port (overrides KBINSET_BROKER_PORT).")
    parser.add_argument("--show-topic", help="Keyboard-will-show topic.")
    parser.add_argument("--hide-topic", help="Keyboard-will-hide topic.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _config_from_args(args: argparse.Namespace) -> InsetConfig:
    overrides: dict[str, Any] = {}
    if args.host:
        overrides["broker_host"] = args.host
    if args.port is not None:
        overrides["broker_port"] = args.port
    if args.show_topic:
        overrides["show_topic"] = args.show_topic
    if args.hide_topic:
        overrides["hide_topic"] = args.hide_topic
    if args.verbose:
        overrides["log_events"] = True
    return InsetConfig.from_env(**overrides)


def _print_summary(stats: ProbeStats, controller: KeyboardInsetController) -> None:
    snapshot = controller.snapshot()
    print("[probe] Summary")
    print(f"[probe]   runtime_s      : {time.time() - stats.started_at:.1f}")
    print(f"[probe]   inset_changes  : {stats.changes}")
    print(f"[probe]   events_applied : {snapshot.events_applied}")
    print(f"[probe]   final_phase    : {snapshot.phase}")
    print(f"[probe]   final_inset    : {snapshot.inset}")


async def _run(config: InsetConfig, duration: int) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    source = MqttNotificationSource(config, loop=loop, logger=_LOG)
    stats = ProbeStats(started_at=time.time())
    try:
        with KeyboardInsetController(source, log_events=config.log_events, logger=_LOG) as controller:

            def on_change(inset: float) -> None:
                now = time.time()
                delta = stats.on_change(now)
                gap_text = "first" if delta is None else f"{delta:.2f}s"
                print(f"[probe] change#{stats.changes} gap={gap_text} phase={controller.phase} inset={inset}")

            controller.on_change(on_change)
            print(f"[probe] Connecting to {config.broker_host}:{config.broker_port}...")
            await loop.run_in_executor(None, source.start)
            print(f"[probe] Listening on {config.show_topic} / {config.hide_topic}")

            try:
                if duration > 0:
                    await asyncio.wait_for(stop.wait(), duration)
                else:
                    await stop.wait()
            except TimeoutError:
                print(f"[probe] Reached --duration={duration}s, stopping.")

            _print_summary(stats, controller)
    finally:
        await loop.run_in_executor(None, source.close)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
        return asyncio.run(_run(config, args.duration))
    except KbInsetError as exc:  # pragma: no cover - network/system interaction
        print(f"[probe] Failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
