# epusstviz/plots/maps.py
from __future__ import annotations

from typing import Optional, Tuple, Union
import os
import numpy as np
import pandas as pd
import geopandas as gpd

import matplotlib.pyplot as plt
import cartopy.crs as ccrs
import cartopy.feature as cfeature

from ..raster import build_raster_stack
from ..utils import (
    out_dir, file_prefix,
    robust_clims,
    month_label,
)


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


def latest_snapshot(grid: pd.DataFrame, *, time_col: str = "time") -> pd.DataFrame:
    """All samples stamped with the most recent timestamp in the grid."""
    if grid.empty:
        raise ValueError("Grid is empty; no snapshot to select.")
    t = pd.to_datetime(grid[time_col])
    return grid.loc[t == t.max()]


def snapshot_map(
    grid: pd.DataFrame,
    regions: gpd.GeoDataFrame,
    *,
    base_dir: str,
    figures_root: str,
    field: str = "sst",
    decimals: Optional[Union[int, Tuple[int, int]]] = None,
    cmap: str = "RdYlBu_r",
    clim: Optional[Tuple[float, float]] = None,
    robust_q: Tuple[float, float] = (2, 98),
    coastline: bool = True,
    coastline_scale: str = "50m",
    outlines_on_top: bool = False,
    region_edgecolor: str = "k",
    dpi: int = 150,
    figsize: Tuple[float, float] = (8, 7),
    cbar_label: str = "SST (°C)",
    verbose: bool = False,
) -> str:
    """
    Map the most recent month of `grid` as filled tiles with region outlines and a
    coastline as context.

    Workflow
    --------
    1. `latest_snapshot(grid)` keeps samples at the maximum timestamp.
    2. The slice is placed on a regular (lat, lon) raster with `build_raster_stack`.
       Pass the monthly stack's ``(lon_decimals, lat_decimals)`` as `decimals` so the
       map uses the same cells; None infers them from the latest slice alone.
    3. Tiles are drawn with `pcolormesh` on a PlateCarree GeoAxes; region outlines
       and the coastline sit underneath unless `outlines_on_top=True`.
    4. Color limits: `clim` if given, else robust percentiles `robust_q`.

    Returns
    -------
    str
        Path of the saved PNG.
    """
    snap = latest_snapshot(grid)
    layer = build_raster_stack(snap, field=field, decimals=decimals).isel(time=0)
    when = month_label(layer["time"].values)
    _vprint(verbose, f"[maps] Latest month {when}: {len(snap)} samples")

    vals = np.asarray(layer.values, dtype=float)
    vmin, vmax = clim if clim is not None else robust_clims(vals, q=robust_q)

    lonlat = ccrs.PlateCarree()
    context_z, tiles_z = (3, 2) if outlines_on_top else (1, 2)

    fig, ax = plt.subplots(figsize=figsize, subplot_kw={"projection": lonlat})

    if coastline:
        ax.add_feature(
            cfeature.NaturalEarthFeature("physical", "land", coastline_scale),
            facecolor="0.85", edgecolor="0.3", linewidth=0.5, zorder=context_z,
        )
    if not regions.empty:
        regions_ll = regions.to_crs("EPSG:4326") if regions.crs is not None else regions
        ax.add_geometries(
            regions_ll.geometry, crs=lonlat,
            facecolor="none", edgecolor=region_edgecolor, linewidth=0.8, zorder=context_z,
        )

    pcm = ax.pcolormesh(
        layer["lon"].values, layer["lat"].values, np.ma.masked_invalid(vals),
        cmap=cmap, vmin=vmin, vmax=vmax, shading="nearest",
        transform=lonlat, zorder=tiles_z,
    )

    lon = layer["lon"].values
    lat = layer["lat"].values
    ax.set_extent([lon.min(), lon.max(), lat.min(), lat.max()], crs=lonlat)
    gl = ax.gridlines(draw_labels=True, linewidth=0.3, color="0.5", alpha=0.5)
    gl.top_labels = False
    gl.right_labels = False

    ax.set_title(f"{field.upper()} - {when}")
    cbar = fig.colorbar(pcm, ax=ax, shrink=0.8, pad=0.04)
    cbar.set_label(cbar_label)

    outdir = out_dir(base_dir, figures_root)
    fname = os.path.join(outdir, f"{file_prefix(base_dir)}__Map-Snapshot__{field}__{when}.png")
    fig.savefig(fname, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    _vprint(verbose, f"[maps] Saved {fname}")
    return fname
