"""
End-to-end run: regions -> SST grid -> monthly stack -> snapshot map -> zonal stats
-> time-series chart.
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
import pandas as pd
import xarray as xr
import geopandas as gpd

from .io import DEFAULT_CACHE, FIELD, fetch_grid
from .regions import BoundingBox, load_regions
from .raster import build_raster_stack
from .zonal import zonal_statistics
from .plots.maps import snapshot_map
from .plots.timeseries import epu_timeseries


@dataclass
class PipelineResult:
    regions: gpd.GeoDataFrame
    bbox: BoundingBox
    stack: xr.DataArray
    rows: pd.DataFrame
    snapshot_png: str
    timeseries_html: str


def run_pipeline(
    region_source: str,
    start_date: str,
    end_date: str,
    *,
    base_dir: str,
    figures_root: str,
    name_field: str = "EPU",
    cache_path: Union[str, Path] = DEFAULT_CACHE,
    keyed_cache: bool = False,
    field: str = FIELD,
    decimals: Optional[Union[int, Tuple[int, int]]] = None,
    coastline: bool = True,
    verbose: bool = True,
) -> PipelineResult:
    """
    Run the whole SST-by-region workflow once, forward only.

    The grid is only needed until the stack exists; it is not kept on the result.
    """
    regions, bbox = load_regions(region_source, name_field=name_field, verbose=verbose)

    grid = fetch_grid(
        bbox, start_date, end_date,
        cache_path=cache_path, keyed=keyed_cache, field=field, verbose=verbose,
    )
    if verbose:
        print(f"[pipeline] Grid: {len(grid):,} samples over {grid['time'].nunique()} timestamps")

    stack = build_raster_stack(grid, field=field, decimals=decimals, crs=str(regions.crs), verbose=verbose)

    # map the latest month on the stack's cells
    snapshot_png = snapshot_map(
        grid, regions,
        base_dir=base_dir, figures_root=figures_root,
        field=field, decimals=(stack.attrs["lon_decimals"], stack.attrs["lat_decimals"]),
        coastline=coastline, verbose=verbose,
    )
    del grid

    rows = zonal_statistics(stack, regions, name_field=name_field, verbose=verbose)
    timeseries_html = epu_timeseries(
        rows, base_dir=base_dir, figures_root=figures_root, verbose=verbose,
    )

    return PipelineResult(
        regions=regions,
        bbox=bbox,
        stack=stack,
        rows=rows,
        snapshot_png=snapshot_png,
        timeseries_html=timeseries_html,
    )
