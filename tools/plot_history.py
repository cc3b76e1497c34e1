#!/usr/bin/env python
"""
Turn an exported session trace (ui/cli.py --history-csv) into a dashboard.

Outputs:
- outputs/plots/history_dashboard.png
- outputs/plots/mode_summary.csv (per-mode aggregates)

Usage:
  python tools/plot_history.py --history outputs/history.csv
  python tools/plot_history.py --history outputs/history.csv --outdir outputs/plots
"""
from __future__ import annotations
import argparse
from pathlib import Path
import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

MODE_ORDER = ["FLOW", "BALANCED", "FOCUS", "RECOVERY"]
REQUIRED = ("timestamp", "heart_rate", "stress_index", "mode")


def load_history(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing: {path}")
    df = pd.read_csv(path)
    df.columns = [c.strip() for c in df.columns]
    for col in REQUIRED:
        if col not in df.columns:
            raise ValueError(f"{path.name} missing required column: {col}")
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    # seconds since the first sample
    start = df["timestamp"].iloc[0] if len(df) else 0
    df["t_sec"] = (df["timestamp"] - start) / 1000.0
    return df


def summarize(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["mode"] = pd.Categorical(df["mode"].str.upper(), categories=MODE_ORDER, ordered=True)
    agg = df.groupby("mode", observed=True).agg(
        samples=("stress_index", "size"),
        stress_mean=("stress_index", "mean"),
        stress_max=("stress_index", "max"),
        hr_mean=("heart_rate", "mean"),
        hr_std=("heart_rate", "std"),
    ).reset_index()
    agg["share"] = agg["samples"] / max(1, int(agg["samples"].sum()))
    return agg


def count_mode_switches(df: pd.DataFrame) -> int:
    modes = df["mode"].astype(str).to_numpy()
    if modes.size < 2:
        return 0
    return int(np.sum(modes[1:] != modes[:-1]))


def main(argv=None):
    ap = argparse.ArgumentParser()
    ap.add_argument("--history", default="outputs/history.csv")
    ap.add_argument("--outdir", default="outputs/plots")
    ap.add_argument("--flow-max", type=float, default=0.4)
    ap.add_argument("--balanced-max", type=float, default=0.75)
    ap.add_argument("--focus-max", type=float, default=0.9)
    args = ap.parse_args(argv)

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    df = load_history(Path(args.history))
    agg = summarize(df)
    agg.to_csv(outdir / "mode_summary.csv", index=False)

    fig, (ax_s, ax_hr) = plt.subplots(2, 1, figsize=(10, 6), dpi=120, sharex=True)

    ax_s.plot(df["t_sec"], df["stress_index"], lw=1.2)
    for y in (args.flow_max, args.balanced_max, args.focus_max):
        ax_s.axhline(y, ls=":", lw=0.8, color="gray")
    ax_s.set_ylim(0.0, 1.0)
    ax_s.set_ylabel("stress index")
    ax_s.set_title(f"Stress index ({count_mode_switches(df)} mode switches)")
    ax_s.grid(True, linestyle=":", alpha=0.5)

    ax_hr.plot(df["t_sec"], df["heart_rate"], lw=1.2, color="tab:red")
    ax_hr.set_ylabel("heart rate (bpm)")
    ax_hr.set_xlabel("time (s)")
    ax_hr.grid(True, linestyle=":", alpha=0.5)

    fig.suptitle("NAW Session Dashboard", y=0.98)
    fig.tight_layout()
    fig.savefig(outdir / "history_dashboard.png")
    plt.close(fig)

    print(f"[OK] Wrote: {outdir / 'history_dashboard.png'}")
    print(f"[OK] Wrote: {outdir / 'mode_summary.csv'}")


if __name__ == "__main__":
    main()
