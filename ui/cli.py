# ui/cli.py
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# --- ensure project root on sys.path (so `import naw.*` works when running from /ui) ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
# ---------------------------------------------------------------------------------------

from naw.config import load_config, build_controller, source_settings
from naw.control.history import to_rows, write_history_csv
from naw.control.layout import describe
from naw.control.mode_resolver import ModeRules
from naw.io.signal_source import available_sources


def _nowstamp():
    return datetime.now().strftime("%Y%m%d-%H%M%S")


# --------- CLI ---------
def build_parser():
    p = argparse.ArgumentParser(
        prog="NAW CLI",
        description="Run the biometric-adaptive control loop and print mode/telemetry per tick."
    )
    p.add_argument("--config", default="configs/defaults.yaml", help="Path to defaults.yaml.")

    # Signal
    p.add_argument("--source", choices=available_sources(), help="Signal source.")
    p.add_argument("--device", type=str, help="BLE name or address (polar source).")
    p.add_argument("--seed", type=int, help="Random-walk seed (synthetic source).")
    p.add_argument("--scan", action="store_true", help="List nearby BLE devices and exit.")

    # Loop
    p.add_argument("--ticks", type=int, default=20, help="Stop after this many ticks.")
    p.add_argument("--interval", type=float, help="Seconds per tick.")
    p.add_argument("--calibration-sec", type=float, help="Sensor warm-up in seconds.")
    p.add_argument("--capacity", type=int, help="History window size.")

    # Operator override
    p.add_argument("--override", type=float, help="Pin the stress index to this value (0..1).")
    p.add_argument("--override-at", type=int, default=0, help="Apply --override after this tick (0 = at start).")
    p.add_argument("--release-at", type=int, help="Clear the override after this tick.")

    # Outputs
    p.add_argument("--history-csv", help="Write the session trace here on exit.")
    p.add_argument("--log-level", choices=["INFO", "DEBUG"], help="Console verbosity.")
    return p


def _resolve_config(args):
    return load_config(args.config, {
        "signal": {"source": args.source, "device": args.device, "seed": args.seed},
        "controller": {
            "interval_sec": args.interval,
            "calibration_sec": args.calibration_sec,
            "history_capacity": args.capacity,
        },
        "logging": {"level": args.log_level, "history_csv": args.history_csv},
    })


async def _scan():
    from naw.io.polar_bridge import discover
    print("Scanning 8s...")
    for name, address in await discover(timeout=8.0):
        print(name, ":", address)


async def run_session(cfg, args, trace):
    """Drive the controller for `args.ticks` ticks. Returns a process exit code."""
    controller = build_controller(cfg)
    last_mode = [None]

    def on_change(snap):
        s = snap.current_sample
        if s is not None and (not trace or trace[-1] is not s):
            trace.append(s)
            ov = f" override={snap.override_value:.2f}" if snap.override_active else ""
            print(f"[{snap.ticks:03d}] {snap.status.value:<8} hr={s.heart_rate:3d} hrv={s.hrv:5.1f} "
                  f"stress={s.stress_index:.3f} mode={snap.mode.value}{ov}")
        if snap.mode is not last_mode[0]:
            last_mode[0] = snap.mode
            print(f"        layout -> {describe(snap.mode)}")

    controller.add_listener(on_change)

    try:
        if not await controller.start():
            print(f"[ERROR] Sensor status {controller.status.value}: {controller.snapshot().error}")
            return 2
        if args.override is not None and args.override_at <= 0:
            controller.set_override(args.override)
        for k in range(1, int(args.ticks) + 1):
            if not await controller.wait_for_ticks(k):
                print(f"[ERROR] Loop stopped early at tick {controller.ticks} (status={controller.status.value}).")
                return 1
            if args.override is not None and k == args.override_at:
                controller.set_override(args.override)
            if args.release_at is not None and k == args.release_at:
                controller.clear_override()
    finally:
        await controller.stop()

    snap = controller.snapshot()
    print(f"[OK] {snap.ticks} ticks. Final mode {snap.mode.value}; history holds {len(snap.history)} samples.")
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.scan:
        asyncio.run(_scan())
        sys.exit(0)

    try:
        cfg = _resolve_config(args)
        rules = ModeRules(**cfg["modes"])
        source_settings(cfg)
    except ValueError as e:
        print(f"[ERROR] Invalid configuration: {e}")
        sys.exit(2)

    s = cfg["signal"]; c = cfg["controller"]; m = cfg["modes"]
    print("=== NAW Run Plan ===")
    print(f"Source           : {s['source']}  (seed={s['seed']}, device={s['device']})")
    print(f"Loop             : ticks={args.ticks} interval={c['interval_sec']}s calibration={c['calibration_sec']}s")
    print(f"History          : capacity={c['history_capacity']}")
    print(f"Thresholds       : flow<{m['flow_max']} balanced<{m['balanced_max']} focus<{m['focus_max']}")
    if args.override is not None:
        rel = args.release_at if args.release_at is not None else "never"
        print(f"Override         : {args.override} at tick {args.override_at}, release at {rel}")

    trace = []
    try:
        code = asyncio.run(run_session(cfg, args, trace))
    except KeyboardInterrupt:
        print("[WARN] Interrupted.")
        code = 130
    except Exception as e:
        print(f"[ERROR] Session failed: {e}")
        code = 1

    out = cfg["logging"].get("history_csv")
    if out and trace:
        p = Path(out)
        if p.is_dir() or p.suffix == "":
            p = p / f"{_nowstamp()}_history.csv"
        write_history_csv(p, to_rows(trace, rules))
        print(f"[OK] Session trace written to: {p}")
    sys.exit(code)


if __name__ == "__main__":
    main()
