import matplotlib

matplotlib.use("Agg", force=True)  # headless backend

import numpy as np
import pandas as pd
import pytest
import xarray as xr
import geopandas as gpd
from shapely.geometry import box


LONS = np.round(np.arange(-70.0, -69.0 + 1e-9, 0.125), 6)
LATS = np.round(np.arange(40.0, 40.75 + 1e-9, 0.125), 6)


def make_grid(months, lons=LONS, lats=LATS, jitter=0.0, field="sst"):
    """Long-form grid: one sample per (month, lat, lon); value = 10 + lat offset + month index."""
    frames = []
    for i, m in enumerate(months):
        lon2d, lat2d = np.meshgrid(lons, lats)
        sign = 1.0 if i % 2 == 0 else -1.0
        frames.append(pd.DataFrame({
            "lon": lon2d.ravel() + sign * jitter,
            "lat": lat2d.ravel() - sign * jitter,
            "time": pd.Timestamp(m),
            field: 10.0 + (lat2d.ravel() - lats.min()) * 4 + i,
        }))
    return pd.concat(frames, ignore_index=True)


def make_dataset(months, lons=LONS, lats=LATS, field="sst", lat_descending=True):
    """Gridded dataset shaped like a griddap .nc response."""
    lat = lats[::-1] if lat_descending else lats
    times = pd.DatetimeIndex([pd.Timestamp(m) for m in months])
    vals = np.stack([
        np.broadcast_to((10.0 + (lat - lats.min()) * 4 + i)[:, None], (lat.size, lons.size))
        for i in range(len(times))
    ])
    vals = vals.copy()
    vals[0, 0, 0] = np.nan
    return xr.Dataset(
        {field: (("time", "latitude", "longitude"), vals)},
        coords={"time": times, "latitude": lat, "longitude": lons},
    )


@pytest.fixture
def two_month_grid():
    return make_grid(["2020-06-16", "2020-07-16"])


@pytest.fixture
def regions():
    """'A' covers every grid cell, 'B' sits far away from the grid."""
    return gpd.GeoDataFrame(
        {"EPU": ["A", "B"]},
        geometry=[box(-71.0, 39.0, -68.0, 42.0), box(10.0, 10.0, 11.0, 11.0)],
        crs="EPSG:4326",
    )


@pytest.fixture
def fig_root(tmp_path, monkeypatch):
    monkeypatch.delenv("EPUSST_PLOT_SUBDIR", raising=False)
    return str(tmp_path / "figs")
