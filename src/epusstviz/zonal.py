"""
Zonal statistics of a monthly raster stack over region polygons.

Rows are long-form: (region, stat, month, value). Each statistic is produced by its
own extraction pass over the stack.
"""

from __future__ import annotations
from typing import Callable, Dict, Sequence
import numpy as np
import pandas as pd
import xarray as xr
import geopandas as gpd
from pyproj import CRS

from .regions import points_in_polygon

STAT_COLUMNS = ["region", "stat", "month", "value"]


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


def _mean(values: np.ndarray) -> float:
    return float(values.mean()) if values.size else np.nan


def _sd(values: np.ndarray) -> float:
    # sample sd; undefined for fewer than two cells
    return float(values.std(ddof=1)) if values.size > 1 else np.nan


STATS: Dict[str, Callable[[np.ndarray], float]] = {
    "mean": _mean,
    "sd": _sd,
}


def _regions_in_stack_crs(stack: xr.DataArray, regions: gpd.GeoDataFrame, verbose: bool) -> gpd.GeoDataFrame:
    stack_crs = stack.attrs.get("crs")
    if stack_crs is None or regions.crs is None:
        return regions
    if CRS.from_user_input(stack_crs) != CRS.from_user_input(regions.crs):
        _vprint(verbose, f"[zonal] Reprojecting regions {regions.crs} -> {stack_crs}")
        return regions.to_crs(stack_crs)
    return regions


def region_cell_mask(stack: xr.DataArray, polygon, *, include_boundary: bool = True) -> np.ndarray:
    """(lat, lon) boolean mask of stack cells whose centre the polygon covers."""
    lon2d, lat2d = np.meshgrid(stack["lon"].values, stack["lat"].values)
    mask = np.zeros(lon2d.shape, dtype=bool)
    minx, miny, maxx, maxy = polygon.bounds
    cand = (lon2d >= minx) & (lon2d <= maxx) & (lat2d >= miny) & (lat2d <= maxy)
    if cand.any():
        mask[cand] = points_in_polygon(
            lon2d[cand], lat2d[cand], polygon, include_boundary=include_boundary
        )
    return mask


def extract_zonal(
    stack: xr.DataArray,
    regions: gpd.GeoDataFrame,
    stat: str,
    *,
    name_field: str = "EPU",
    include_boundary: bool = True,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    One extraction pass: `stat` over the cells of each region, for every layer.

    NaN cells are ignored. A region with no valid cells in a layer yields NaN
    for that (region, month).
    """
    if stat not in STATS:
        raise ValueError(f"Unknown statistic '{stat}'; choose from {sorted(STATS)}.")
    fn = STATS[stat]
    regions = _regions_in_stack_crs(stack, regions, verbose)

    data = np.asarray(stack.transpose("time", "lat", "lon").values, dtype=float)
    months = pd.DatetimeIndex(stack["time"].values)

    rows = []
    for name, geom in zip(regions[name_field], regions.geometry):
        mask = region_cell_mask(stack, geom, include_boundary=include_boundary)
        _vprint(verbose, f"[zonal/{stat}] {name}: {int(mask.sum())} cells")
        cells = data[:, mask]                       # (time, ncell)
        for month, vals in zip(months, cells):
            vals = vals[np.isfinite(vals)]
            rows.append((str(name), stat, month, fn(vals)))

    return pd.DataFrame(rows, columns=STAT_COLUMNS)


def zonal_statistics(
    stack: xr.DataArray,
    regions: gpd.GeoDataFrame,
    *,
    stats: Sequence[str] = ("mean", "sd"),
    name_field: str = "EPU",
    include_boundary: bool = True,
    verbose: bool = False,
) -> pd.DataFrame:
    """Concatenate one `extract_zonal` pass per statistic."""
    parts = [
        extract_zonal(
            stack, regions, s,
            name_field=name_field, include_boundary=include_boundary, verbose=verbose,
        )
        for s in stats
    ]
    return pd.concat(parts, ignore_index=True)


def to_wide(rows: pd.DataFrame, stat: str = "mean") -> pd.DataFrame:
    """Time-Series Table: month index, one column per region, for one statistic."""
    sub = rows[rows["stat"] == stat]
    wide = sub.pivot(index="month", columns="region", values="value").sort_index()
    wide.columns.name = None
    return wide


def to_long(table: pd.DataFrame, stat: str = "mean") -> pd.DataFrame:
    """Inverse of `to_wide`: back to (region, stat, month, value) rows."""
    long = (
        table.rename_axis("month")
        .reset_index()
        .melt(id_vars="month", var_name="region", value_name="value")
    )
    long["stat"] = stat
    return long[STAT_COLUMNS].sort_values(["region", "month"]).reset_index(drop=True)
