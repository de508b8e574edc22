"""I/O helpers.

Implement:
 - griddap_url(bbox, start_date, end_date, ...) -> str
 - fetch_grid(bbox, start_date, end_date, cache_path=...) -> pd.DataFrame
 - load_grid(path, field) -> pd.DataFrame
 - grid_from_dataset(ds, field) -> pd.DataFrame
"""

from __future__ import annotations
from pathlib import Path
from typing import Sequence, Union
from urllib.parse import quote
import hashlib
import pandas as pd
import requests
import xarray as xr

from .regions import BoundingBox


# --------------------------
# Service defaults
# --------------------------
# MODIS Aqua, Level-3 SMI, 4km, monthly composite daytime SST.
# Latitude is stored north-to-south on this dataset.
ERDDAP_SERVER = "https://coastwatch.pfeg.noaa.gov/erddap"
DATASET_ID = "erdMH1sstdmday"
FIELD = "sst"
LAT_DESCENDING = True
DEFAULT_CACHE = "data/sst_grid.nc"
TIMEOUT = 600

_COORD_RENAMES = {"longitude": "lon", "latitude": "lat"}


def _vprint(verbose: bool, *args, **kwargs):
    if verbose:
        print(*args, **kwargs)


# --------------------------
# Request construction
# --------------------------
def _iso_day(date: Union[str, pd.Timestamp]) -> str:
    return pd.Timestamp(date).strftime("%Y-%m-%dT00:00:00Z")


def griddap_url(
    bbox: BoundingBox,
    start_date: Union[str, pd.Timestamp],
    end_date: Union[str, pd.Timestamp],
    *,
    server: str = ERDDAP_SERVER,
    dataset_id: str = DATASET_ID,
    field: str = FIELD,
    lat_descending: bool = LAT_DESCENDING,
    extra_axes: Sequence[float] = (),
) -> str:
    """
    Build a griddap ``.nc`` subset URL:

        {server}/griddap/{dataset}.nc?{field}[(start):1:(end)][(lat_a):1:(lat_b)][(lon_a):1:(lon_b)]

    `extra_axes` holds values for singleton axes sitting between time and latitude
    (e.g. ``altitude`` = 0.0 on some SST products).
    """
    if pd.Timestamp(start_date) > pd.Timestamp(end_date):
        raise ValueError(f"start_date {start_date!r} is after end_date {end_date!r}.")

    lat_a, lat_b = (bbox.lat_max, bbox.lat_min) if lat_descending else (bbox.lat_min, bbox.lat_max)
    axes = [f"[({_iso_day(start_date)}):1:({_iso_day(end_date)})]"]
    axes += [f"[({v}):1:({v})]" for v in extra_axes]
    axes.append(f"[({lat_a}):1:({lat_b})]")
    axes.append(f"[({bbox.lon_min}):1:({bbox.lon_max})]")
    query = quote(field + "".join(axes), safe="():,")
    return f"{server.rstrip('/')}/griddap/{dataset_id}.nc?{query}"


def request_cache_path(
    cache_path: Union[str, Path],
    *,
    bbox: BoundingBox,
    start_date: Union[str, pd.Timestamp],
    end_date: Union[str, pd.Timestamp],
    server: str = ERDDAP_SERVER,
    dataset_id: str = DATASET_ID,
    field: str = FIELD,
) -> Path:
    """
    Cache path keyed on the full request: ``sst_grid.nc`` -> ``sst_grid__3f2a9c1b0d4e.nc``.
    Equal requests map to the same file; any differing parameter maps elsewhere.
    """
    key = "|".join([
        server.rstrip("/"),
        dataset_id,
        field,
        _iso_day(start_date),
        _iso_day(end_date),
        *(f"{v:.6f}" for v in bbox.as_bounds()),
    ])
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
    p = Path(cache_path)
    return p.with_name(f"{p.stem}__{digest}{p.suffix}")


# --------------------------
# Grid conversion
# --------------------------
def grid_from_dataset(ds: xr.Dataset, field: str = FIELD) -> pd.DataFrame:
    """
    Flatten a gridded Dataset into the long-form Grid: columns lon, lat, time, <field>.
    Singleton axes (altitude, depth, ...) are squeezed away; NaN samples are dropped.
    """
    if field not in ds:
        raise KeyError(f"Field '{field}' not found in dataset; have {list(ds.data_vars)}.")
    da = ds[field].rename({k: v for k, v in _COORD_RENAMES.items() if k in ds[field].dims})
    extra = [d for d in da.dims if d not in ("time", "lat", "lon")]
    for d in extra:
        if da.sizes[d] != 1:
            raise ValueError(f"Axis '{d}' has {da.sizes[d]} levels; expected a single level.")
    if extra:
        da = da.squeeze(extra, drop=True)
    missing = [d for d in ("time", "lat", "lon") if d not in da.dims]
    if missing:
        raise ValueError(f"Field '{field}' lacks required axes {missing}; dims={da.dims}.")

    df = da.to_dataframe(name=field).reset_index()
    df = df[["lon", "lat", "time", field]]
    df["time"] = pd.to_datetime(df["time"])
    if getattr(df["time"].dt, "tz", None) is not None:
        df["time"] = df["time"].dt.tz_localize(None)
    return df.dropna(subset=[field]).reset_index(drop=True)


def load_grid(path: Union[str, Path], field: str = FIELD) -> pd.DataFrame:
    """Read a cached griddap NetCDF response into the Grid frame."""
    with xr.open_dataset(path) as ds:
        ds = ds.load()
    return grid_from_dataset(ds, field)


# --------------------------
# Fetch (read-through cache)
# --------------------------
def fetch_grid(
    bbox: BoundingBox,
    start_date: Union[str, pd.Timestamp],
    end_date: Union[str, pd.Timestamp],
    *,
    cache_path: Union[str, Path] = DEFAULT_CACHE,
    keyed: bool = False,
    server: str = ERDDAP_SERVER,
    dataset_id: str = DATASET_ID,
    field: str = FIELD,
    lat_descending: bool = LAT_DESCENDING,
    extra_axes: Sequence[float] = (),
    timeout: float = TIMEOUT,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Return the SST Grid for `bbox` over the inclusive [start_date, end_date] window.

    Cache policy
    ------------
    - keyed=False (default): if `cache_path` exists it is returned as-is, whatever
      the requested dates/box. Delete the file to force a refresh.
    - keyed=True: the cache file name carries a digest of the request (see
      `request_cache_path`), so only an identical request hits the cache.

    On a miss, one HTTP request is made; the raw response is written to the cache
    and parsed. Transport errors and non-2xx responses propagate (no retry).
    """
    path = Path(cache_path)
    if keyed:
        path = request_cache_path(
            path, bbox=bbox, start_date=start_date, end_date=end_date,
            server=server, dataset_id=dataset_id, field=field,
        )

    if path.exists():
        _vprint(verbose, f"[io] Cache hit: {path}")
        return load_grid(path, field)

    url = griddap_url(
        bbox, start_date, end_date,
        server=server, dataset_id=dataset_id, field=field,
        lat_descending=lat_descending, extra_axes=extra_axes,
    )
    _vprint(verbose, f"[io] Cache miss; requesting {url}")
    r = requests.get(url, timeout=timeout)
    r.raise_for_status()

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(r.content)
    _vprint(verbose, f"[io] Wrote {len(r.content) / (1024 * 1024):.1f} MB to {path}")
    return load_grid(path, field)
