# epusstviz/plot.py

"""
Console helpers for runners.

This module centralizes:
- pretty printing (hr, info, bullet, kv)
- plotting wrapper (passes verbose=True when supported)
- grid / raster stack / zonal table summary printers
- output listing

Keep these functions generic so any example script can reuse them.
"""

from __future__ import annotations
from typing import Any
import os
import glob
import textwrap
import inspect
import contextlib
import pandas as pd
import xarray as xr


# ---------------------------
# Pretty printing utilities
# ---------------------------
def hr(char: str = "=", width: int = 78) -> str:
    """Horizontal rule."""
    return char * width


def info(title: str) -> None:
    """Section header."""
    print()
    print(hr("="))
    print(title)
    print(hr("-"))


def bullet(msg: str, indent: int = 2) -> None:
    """Indented, wrapped bullet text."""
    pad = " " * indent
    for line in textwrap.dedent(str(msg)).rstrip().splitlines():
        print(pad + line)


def kv(label: str, value: Any) -> None:
    """Key: Value printing with basic alignment."""
    print(f"  - {label:<18} {value}")


# ---------------------------
# plotting wrapper
# ---------------------------
def plot_call(fn, *, verbose: bool = False, **kwargs):
    """
    Call a plotting function.

    Behavior:
      - `verbose` controls whether print() output from the function is shown.
        • verbose=False -> suppress stdout/stderr during the call
        • verbose=True  -> show stdout/stderr
      - If the target function has a `verbose` kwarg, we pass this same value.
        If it doesn't, we just silence/allow prints as requested.
    """
    if "verbose" in inspect.signature(fn).parameters:
        kwargs["verbose"] = verbose
    else:
        kwargs.pop("verbose", None)

    if verbose:
        return fn(**kwargs)

    with contextlib.ExitStack() as stack:
        with open(os.devnull, "w") as devnull:
            stack.enter_context(contextlib.redirect_stdout(devnull))
            stack.enter_context(contextlib.redirect_stderr(devnull))
            return fn(**kwargs)


# ---------------------------
# Data summaries
# ---------------------------
def print_grid_summary(grid: pd.DataFrame, field: str = "sst") -> None:
    """Print sample count, spatial extent, time coverage and value range of a Grid."""
    kv("Samples", f"{len(grid):,}")
    if grid.empty:
        return
    kv("Lon range", f"{grid['lon'].min():.3f} .. {grid['lon'].max():.3f}")
    kv("Lat range", f"{grid['lat'].min():.3f} .. {grid['lat'].max():.3f}")
    t = pd.to_datetime(grid["time"])
    kv("Time start", str(t.min()))
    kv("Time end", str(t.max()))
    kv("Timestamps", t.nunique())
    if field in grid:
        kv(f"{field} range", f"{grid[field].min():.2f} .. {grid[field].max():.2f}")


def print_stack_summary(stack: xr.DataArray) -> None:
    kv("Layers", stack.sizes.get("time", 0))
    kv("Cells per layer", f"{stack.sizes.get('lat', 0)} x {stack.sizes.get('lon', 0)}")
    kv("CRS", stack.attrs.get("crs", "undeclared"))
    if "layer" in stack.coords and stack.sizes.get("time", 0):
        names = [str(v) for v in stack["layer"].values]
        kv("First/last layer", f"{names[0]} / {names[-1]}")


def print_zonal_summary(rows: pd.DataFrame) -> None:
    """Count rows per statistic and flag region/statistic pairs that are all-NaN."""
    kv("Rows", len(rows))
    for stat, sub in rows.groupby("stat"):
        kv(f"'{stat}' rows", len(sub))
    empty = rows.groupby(["region", "stat"])["value"].apply(lambda s: s.isna().all())
    for (region, stat), is_empty in empty.items():
        if is_empty:
            bullet(f"[warn] Region '{region}': no cells for '{stat}' in any month")


def sample_output_listing(fig_folder: str, prefix: str) -> None:
    """List generated figure paths (PNG and HTML) to show success."""
    files = sorted(
        glob.glob(os.path.join(fig_folder, "**", f"{prefix}__*.png"), recursive=True)
        + glob.glob(os.path.join(fig_folder, "**", f"{prefix}__*.html"), recursive=True)
    )
    kv("Outputs created", len(files))
    for p in files[:5]:
        bullet(f"• {p}")
    if len(files) > 5:
        bullet("…")


__all__ = [
    "hr",
    "info",
    "bullet",
    "kv",
    "plot_call",
    "print_grid_summary",
    "print_stack_summary",
    "print_zonal_summary",
    "sample_output_listing",
]
