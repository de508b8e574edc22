import os

import numpy as np
import pandas as pd
import pytest

from epusstviz.plots.maps import latest_snapshot, snapshot_map
from epusstviz.plots.timeseries import epu_timeseries, epu_timeseries_static
from epusstviz.raster import build_raster_stack
from epusstviz.utils import robust_clims, style_get
from epusstviz.zonal import zonal_statistics
from conftest import make_grid


def test_latest_snapshot_selects_most_recent_month():
    grid = make_grid(["2020-06-16", "2020-07-16", "2021-06-16"])
    snap = latest_snapshot(grid)
    assert len(snap) == len(grid) // 3
    assert snap["time"].unique().tolist() == [pd.Timestamp("2021-06-16")]


def test_latest_snapshot_of_empty_grid_raises():
    with pytest.raises(ValueError):
        latest_snapshot(pd.DataFrame(columns=["lon", "lat", "time", "sst"]))


def test_robust_clims_ignores_nan_and_widens_flat_fields():
    lo, hi = robust_clims([np.nan, 10.0, 12.0, 14.0], q=(0, 100))
    assert (lo, hi) == (10.0, 14.0)
    assert robust_clims([7.0, 7.0, np.nan]) == (6.5, 7.5)
    assert robust_clims([np.nan]) == (0.0, 1.0)


def test_style_get_defaults():
    styles = {"GB": {"line_color": "#d95f02"}}
    assert style_get("GB", styles, "line_color") == "#d95f02"
    assert style_get("GOM", styles, "line_color", "k") == "k"
    assert style_get("GB", None, "line_color") is None


def test_snapshot_map_writes_png(two_month_grid, regions, fig_root):
    path = snapshot_map(
        two_month_grid, regions,
        base_dir="/runs/epu_sst", figures_root=fig_root, coastline=False,
    )
    assert os.path.isfile(path)
    assert path.endswith("epu_sst__Map-Snapshot__sst__2020-07.png")
    assert os.path.basename(os.path.dirname(path)) == "maps"


def test_snapshot_map_respects_subdir_override(two_month_grid, regions, fig_root, monkeypatch):
    monkeypatch.setenv("EPUSST_PLOT_SUBDIR", "")
    path = snapshot_map(
        two_month_grid, regions,
        base_dir="/runs/epu_sst", figures_root=fig_root, coastline=False,
        clim=(8.0, 16.0), outlines_on_top=True,
    )
    assert os.path.dirname(path) == os.path.join(fig_root, "epu_sst")


@pytest.fixture
def rows(two_month_grid, regions):
    return zonal_statistics(build_raster_stack(two_month_grid), regions)


def test_interactive_timeseries_html(rows, fig_root):
    path = epu_timeseries(
        rows, base_dir="/runs/epu_sst", figures_root=fig_root,
        styles={"A": {"line_color": "#1f77b4"}},
    )
    assert path.endswith("epu_sst__Regions__mean__2020-06_to_2020-07__Timeseries.html")
    html = open(path, encoding="utf-8").read()
    assert "Mean SST by EPU" in html
    assert '"A"' in html


def test_interactive_timeseries_needs_rows(rows, fig_root):
    with pytest.raises(ValueError):
        epu_timeseries(rows[rows["stat"] == "sd"], base_dir="/runs/x", figures_root=fig_root)


def test_static_timeseries_png(rows, fig_root):
    path = epu_timeseries_static(rows, base_dir="/runs/epu_sst", figures_root=fig_root)
    assert os.path.isfile(path)
    assert np.isfinite(rows.loc[rows["region"] == "A", "value"]).all()
