from __future__ import annotations
"""
Utilities shared by the plotting modules: output folders, file names, styles, labels.
"""

from pathlib import Path
import inspect
from typing import Iterable, Tuple, Optional, Dict, Any
import os
import numpy as np
import pandas as pd

PLOT_SUBDIR_ENV = "EPUSST_PLOT_SUBDIR"


def robust_clims(a: Iterable[float], q: Tuple[float, float] = (2, 98)) -> tuple[float, float]:
    """Percentile colour limits over the finite values; (0, 1) when there are none."""
    arr = np.asarray(a, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return 0.0, 1.0
    lo, hi = (float(v) for v in np.percentile(arr, q))
    # a flat field still needs a non-empty colour range
    return (lo, hi) if hi > lo else (lo - 0.5, lo + 0.5)


def file_prefix(base_dir: str) -> str:
    """Run tag used in figure names: basename of the run folder."""
    return os.path.basename(os.path.normpath(base_dir))


def _caller_plot_module_stem() -> Optional[str]:
    """'maps' / 'timeseries' when called from inside epusstviz.plots, else None."""
    for frame_info in inspect.stack():
        mod = inspect.getmodule(frame_info.frame)
        name = getattr(mod, "__name__", "") if mod else ""
        if name.startswith("epusstviz.plots.") and getattr(mod, "__file__", None):
            return Path(mod.__file__).stem
    return None


def out_dir(base_dir: str, figures_root: str) -> str:
    """
    Figure folder, created on demand.

    FIG_DIR/<basename(BASE_DIR)>/<subfolder>/, where the subfolder is the calling
    plot module ('maps', 'timeseries'). EPUSST_PLOT_SUBDIR overrides it; an empty
    value writes straight into FIG_DIR/<basename(BASE_DIR)>/.
    """
    base = os.path.join(figures_root, file_prefix(base_dir))
    env = os.environ.get(PLOT_SUBDIR_ENV)
    sub = env.strip() if env is not None else _caller_plot_module_stem()
    d = os.path.join(base, sub) if sub else base
    os.makedirs(d, exist_ok=True)
    return d


def style_get(region: str, styles: Optional[Dict[str, Dict[str, Any]]], key: str, default=None):
    """styles[region][key], or `default` when any level is missing."""
    return ((styles or {}).get(region) or {}).get(key, default)


def month_label(month) -> str:
    """'2021-06' for any timestamp in June 2021."""
    return pd.Timestamp(month).strftime("%Y-%m")


def date_range_label(start_date: Optional[Any], end_date: Optional[Any]) -> str:
    """Filename-safe window tag, e.g. '2003-01_to_2021-12' or 'AllTime'."""
    if start_date is None and end_date is None:
        return "AllTime"
    lo = month_label(start_date) if start_date is not None else "start"
    hi = month_label(end_date) if end_date is not None else "end"
    return f"{lo}_to_{hi}"
