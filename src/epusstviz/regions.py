from __future__ import annotations
"""
Region helpers.

"""

from dataclasses import dataclass
from typing import Optional, Tuple, Sequence
import numpy as np
import geopandas as gpd
from shapely.geometry import Point
from shapely.prepared import prep as prep_geom


LONLAT_CRS = "EPSG:4326"


@dataclass(frozen=True)
class BoundingBox:
    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    def __post_init__(self):
        if self.lon_min > self.lon_max or self.lat_min > self.lat_max:
            raise ValueError(f"Degenerate bounding box: {self}")

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "BoundingBox":
        """From shapely/geopandas order (minx, miny, maxx, maxy)."""
        minx, miny, maxx, maxy = (float(b) for b in bounds)
        return cls(lon_min=minx, lon_max=maxx, lat_min=miny, lat_max=maxy)

    def as_bounds(self) -> Tuple[float, float, float, float]:
        return (self.lon_min, self.lat_min, self.lon_max, self.lat_max)

    def padded(self, margin: float) -> "BoundingBox":
        return BoundingBox(
            self.lon_min - margin, self.lon_max + margin,
            self.lat_min - margin, self.lat_max + margin,
        )


def _dissolve_by_name(gdf: gpd.GeoDataFrame, name_field: str) -> gpd.GeoDataFrame:
    """One row per region name; duplicate names are merged into a single geometry."""
    if name_field not in gdf.columns:
        raise KeyError(f"Name field '{name_field}' not in region columns {list(gdf.columns)}.")
    gdf = gdf[[name_field, "geometry"]].copy()
    gdf[name_field] = gdf[name_field].astype(str)
    if gdf[name_field].duplicated().any():
        gdf = gdf.dissolve(by=name_field, as_index=False)
    return gdf.sort_values(name_field).reset_index(drop=True)


def regions_bbox(regions: gpd.GeoDataFrame) -> BoundingBox:
    """Bounding box spanning every region geometry."""
    if regions.empty:
        raise ValueError("Cannot compute a bounding box for an empty region set.")
    return BoundingBox.from_bounds(regions.total_bounds)


def load_regions(
    source: str,
    *,
    name_field: str = "EPU",
    source_crs: Optional[str] = None,
    target_crs: str = LONLAT_CRS,
    verbose: bool = False,
) -> Tuple[gpd.GeoDataFrame, BoundingBox]:
    """
    Load named region polygons (e.g. EPUs) and reproject them to lon/lat.

    Parameters
    ----------
    source : str
        Anything `geopandas.read_file` accepts (shapefile, GeoJSON, zip, URL).
    name_field : str
        Column holding the region identifier.
    source_crs : str, optional
        CRS assumed when the source declares none.
    target_crs : str
        Output CRS, EPSG:4326 by default.

    Returns
    -------
    (regions, bbox)
        GeoDataFrame with columns [name_field, geometry] in `target_crs` and the
        BoundingBox spanning all regions.
    """
    gdf = gpd.read_file(source)
    if gdf.crs is None:
        if source_crs is None:
            raise ValueError(f"Region source {source!r} declares no CRS; pass source_crs.")
        gdf = gdf.set_crs(source_crs)
    gdf = gdf.to_crs(target_crs)
    gdf = _dissolve_by_name(gdf, name_field)
    bbox = regions_bbox(gdf)
    if verbose:
        print(f"[regions] Loaded {len(gdf)} regions: {', '.join(gdf[name_field])}")
        print(f"[regions] Bounding box: {bbox}")
    return gdf, bbox


def points_in_polygon(
    lon: np.ndarray,
    lat: np.ndarray,
    polygon,
    *,
    include_boundary: bool = True,
) -> np.ndarray:
    """Boolean mask (same shape as lon/lat) for points covered by `polygon`."""
    lon = np.asarray(lon, dtype=float)
    lat = np.asarray(lat, dtype=float)
    if lon.shape != lat.shape:
        raise ValueError(f"lon/lat shapes differ: {lon.shape} vs {lat.shape}")
    if include_boundary:
        f = np.frompyfunc(lambda x, y: polygon.covers(Point(x, y)), 2, 1)
    else:
        P = prep_geom(polygon)
        f = np.frompyfunc(lambda x, y: P.contains(Point(x, y)), 2, 1)
    return f(lon, lat).astype(bool)
