# plots/timeseries.py
from __future__ import annotations
from typing import Dict, Any, Optional
import os
import numpy as np
import matplotlib.pyplot as plt
import pandas as pd
import plotly.express as px

from ..zonal import to_wide
from ..utils import (
    out_dir,
    file_prefix,
    style_get,
    date_range_label,
)


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


def _window_label(table: pd.DataFrame) -> str:
    if table.empty:
        return "AllTime"
    return date_range_label(table.index.min(), table.index.max())


def epu_timeseries(
    rows: pd.DataFrame,
    *,
    base_dir: str,
    figures_root: str,
    stat: str = "mean",
    title: str = "Mean SST by EPU",
    y_label: str = "SST (°C)",
    styles: Optional[Dict[str, Dict[str, Any]]] = None,
    verbose: bool = False,
) -> str:
    """
    Interactive line chart (plotly, standalone HTML) of one zonal statistic,
    one line per region, x = month.

    Parameters
    ----------
    rows : pd.DataFrame
        Long-form zonal rows (region, stat, month, value).
    stat : str, default "mean"
        Statistic to chart; rows of other statistics are ignored.
    styles : dict, optional
        Per-region overrides; supports "line_color".

    Returns
    -------
    str
        Path of the written HTML file.
    """
    table = to_wide(rows, stat)
    if table.empty:
        raise ValueError(f"No '{stat}' rows to plot.")
    _vprint(verbose, f"[timeseries] {table.shape[0]} months x {table.shape[1]} regions")

    color_map = {
        r: style_get(r, styles, "line_color") for r in table.columns
        if style_get(r, styles, "line_color") is not None
    }
    fig = px.line(
        table,
        x=table.index,
        y=list(table.columns),
        title=title,
        labels={"x": "Month", "value": y_label, "variable": "Region"},
        color_discrete_map=color_map or None,
        markers=True,
    )
    fig.update_layout(xaxis_title="Month", yaxis_title=y_label, legend_title_text="Region")

    outdir = out_dir(base_dir, figures_root)
    fname = os.path.join(
        outdir, f"{file_prefix(base_dir)}__Regions__{stat}__{_window_label(table)}__Timeseries.html"
    )
    fig.write_html(fname, include_plotlyjs="cdn")
    _vprint(verbose, f"[timeseries] Saved: {fname}")
    return fname


def epu_timeseries_static(
    rows: pd.DataFrame,
    *,
    base_dir: str,
    figures_root: str,
    show_sd: bool = True,
    sd_alpha: float = 0.2,
    linewidth: float = 1.5,
    figsize: tuple = (10, 4),
    dpi: int = 150,
    y_label: str = "SST (°C)",
    styles: Optional[Dict[str, Dict[str, Any]]] = None,
    verbose: bool = False,
) -> str:
    """
    PNG counterpart of `epu_timeseries`: mean per region, optionally shaded ±1 sd.

    Regions with no finite mean are skipped. Returns the saved path.
    """
    mean = to_wide(rows, "mean")
    if mean.empty:
        raise ValueError("No 'mean' rows to plot.")
    sd = to_wide(rows, "sd").reindex(index=mean.index, columns=mean.columns) if show_sd else None

    fig, ax = plt.subplots(figsize=figsize)
    for region in mean.columns:
        y = mean[region].to_numpy(dtype=float)
        if not np.isfinite(y).any():
            _vprint(verbose, f"[timeseries] '{region}' has no finite values; skipping.")
            continue
        color = style_get(region, styles, "line_color", None)
        (line,) = ax.plot(mean.index, y, lw=linewidth, color=color, label=region)
        if sd is not None:
            s = sd[region].to_numpy(dtype=float)
            ax.fill_between(mean.index, y - s, y + s, color=line.get_color(), alpha=sd_alpha, lw=0)

    ax.set_title(f"Regions - mean ({_window_label(mean)})")
    ax.set_xlabel("Month"); ax.set_ylabel(y_label)
    ax.legend(loc="best")

    outdir = out_dir(base_dir, figures_root)
    fname = os.path.join(
        outdir, f"{file_prefix(base_dir)}__Regions__mean__{_window_label(mean)}__Timeseries.png"
    )
    fig.savefig(fname, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    _vprint(verbose, f"[timeseries] Saved: {fname}")
    return fname
