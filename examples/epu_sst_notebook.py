#!/usr/bin/env python3
# examples/epu_sst_notebook.py

from __future__ import annotations

import matplotlib
matplotlib.use("Agg", force=True)  # headless backend

from epusstviz.io import fetch_grid, DATASET_ID, ERDDAP_SERVER
from epusstviz.regions import load_regions
from epusstviz.raster import build_raster_stack
from epusstviz.zonal import zonal_statistics, to_wide
from epusstviz.plot import (
    plot_call, info, hr, kv, bullet,
    print_grid_summary, print_stack_summary, print_zonal_summary,
    sample_output_listing,
)
from epusstviz.utils import out_dir, file_prefix
from epusstviz.plots.maps import snapshot_map
from epusstviz.plots.timeseries import epu_timeseries, epu_timeseries_static

# ---------------------------------------------------------------------
# Project paths (EDIT)
# ---------------------------------------------------------------------
BASE_DIR = "./runs/epu_sst"
FIG_DIR = "./figures"
CACHE_PATH = "./data/sst_grid.nc"

# EPU polygons (any vector source geopandas can read) and the identifier column
EPU_SOURCE = "./data/shapefiles/EPU_NOESTUARIES.shp"
EPU_NAME_FIELD = "EPU"

# Inclusive date window for the griddap request
START_DATE = "2003-01-01"
END_DATE = "2021-12-31"

# Set True to key the cache on the request instead of on file presence
KEYED_CACHE = False

# None -> infer the rounding precision from the coordinate spacing
ROUND_DECIMALS = None

# ---------------------------------------------------------------------
# Per-region line colours
# ---------------------------------------------------------------------
PLOT_STYLES = {
    "MAB": {"line_color": "#1b9e77"},
    "GB":  {"line_color": "#d95f02"},
    "GOM": {"line_color": "#7570b3"},
    "SS":  {"line_color": "#e7298a"},
}


def main():
    print(hr("="))
    print("epusstviz: SST by Ecosystem Production Unit")
    print(hr("="))

    info(" Loading EPU regions")
    regions, bbox = load_regions(EPU_SOURCE, name_field=EPU_NAME_FIELD)
    kv("Regions", ", ".join(regions[EPU_NAME_FIELD]))
    kv("Bounding box", bbox)

    info(" Fetching SST grid")
    kv("Server", ERDDAP_SERVER)
    kv("Dataset", DATASET_ID)
    kv("Window", f"{START_DATE} .. {END_DATE}")
    grid = fetch_grid(bbox, START_DATE, END_DATE, cache_path=CACHE_PATH, keyed=KEYED_CACHE, verbose=True)
    print_grid_summary(grid)

    out_folder = out_dir(BASE_DIR, FIG_DIR)
    prefix = file_prefix(BASE_DIR)
    kv("Figure folder", out_folder)
    kv("Filename prefix", prefix)

    info(" Building monthly raster stack")
    stack = build_raster_stack(grid, decimals=ROUND_DECIMALS, crs=str(regions.crs))
    print_stack_summary(stack)

    bullet("\n Latest-month snapshot map")
    plot_call(
        snapshot_map,
        grid=grid,
        regions=regions,
        base_dir=BASE_DIR, figures_root=FIG_DIR,
        decimals=(stack.attrs["lon_decimals"], stack.attrs["lat_decimals"]),
        cmap="RdYlBu_r",
        verbose=False,
    )
    del grid

    info(" Zonal statistics (mean, sd) per EPU")
    rows = zonal_statistics(stack, regions, name_field=EPU_NAME_FIELD)
    print_zonal_summary(rows)
    print(to_wide(rows, "mean").tail())

    bullet("\n Mean SST time series per EPU (interactive)")
    plot_call(
        epu_timeseries,
        rows=rows,
        base_dir=BASE_DIR, figures_root=FIG_DIR,
        styles=PLOT_STYLES,
        verbose=False,
    )

    bullet("\n Mean SST time series per EPU with ±1 sd (static)")
    plot_call(
        epu_timeseries_static,
        rows=rows,
        base_dir=BASE_DIR, figures_root=FIG_DIR,
        styles=PLOT_STYLES,
        verbose=False,
    )

    info(" Outputs")
    sample_output_listing(FIG_DIR, prefix)
    print(hr("="))


if __name__ == "__main__":
    main()
