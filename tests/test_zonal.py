import numpy as np
import pandas as pd
import pytest
import geopandas as gpd
from shapely.geometry import box

from epusstviz.raster import build_raster_stack
from epusstviz.regions import points_in_polygon
from epusstviz.zonal import (
    STAT_COLUMNS,
    extract_zonal,
    region_cell_mask,
    to_long,
    to_wide,
    zonal_statistics,
)
from conftest import make_grid


@pytest.fixture
def stack(two_month_grid):
    return build_raster_stack(two_month_grid)


def test_full_and_empty_regions_over_two_months(stack, regions):
    rows = zonal_statistics(stack, regions)
    assert list(rows.columns) == STAT_COLUMNS
    assert len(rows) == 2 * 2 * 2  # regions x stats x months

    a = rows[rows["region"] == "A"]
    b = rows[rows["region"] == "B"]
    assert np.isfinite(a["value"]).all()
    assert b["value"].isna().all()
    assert sorted(a["month"].dt.month.unique()) == [6, 7]


def test_mean_and_sd_match_numpy(stack, regions):
    rows = zonal_statistics(stack, regions)
    june = stack.isel(time=0).values.ravel()
    june = june[np.isfinite(june)]
    a_june = rows[(rows["region"] == "A") & (rows["month"].dt.month == 6)].set_index("stat")["value"]
    assert a_june["mean"] == pytest.approx(june.mean())
    assert a_june["sd"] == pytest.approx(june.std(ddof=1))


def test_pass_order_does_not_change_results(stack, regions):
    keys = ["region", "stat", "month"]
    forward = zonal_statistics(stack, regions, stats=("mean", "sd")).sort_values(keys).reset_index(drop=True)
    backward = zonal_statistics(stack, regions, stats=("sd", "mean")).sort_values(keys).reset_index(drop=True)
    pd.testing.assert_frame_equal(forward, backward)

    sd_alone = extract_zonal(stack, regions, "sd")
    pd.testing.assert_frame_equal(
        sd_alone.reset_index(drop=True),
        forward[forward["stat"] == "sd"].sort_values(["region", "month"]).reset_index(drop=True),
    )


def test_partial_region_uses_only_covered_cells(stack):
    # southern half of the grid only (lat <= 40.25, boundary inclusive)
    south = gpd.GeoDataFrame({"EPU": ["S"]}, geometry=[box(-71, 39, -68, 40.25)], crs="EPSG:4326")
    rows = extract_zonal(stack, south, "mean")
    layer = stack.isel(time=0)
    expected = float(layer.where(layer["lat"] <= 40.25).mean())
    assert rows.iloc[0]["value"] == pytest.approx(expected)


def test_missing_cells_are_ignored(two_month_grid, regions):
    grid = two_month_grid.copy()
    grid.loc[grid.index[:5], "sst"] = np.nan
    rows = zonal_statistics(build_raster_stack(grid), regions)
    assert np.isfinite(rows.loc[rows["region"] == "A", "value"]).all()


def test_single_cell_region_has_mean_but_no_sd(stack):
    tiny = gpd.GeoDataFrame(
        {"EPU": ["T"]}, geometry=[box(-70.01, 39.99, -69.99, 40.01)], crs="EPSG:4326"
    )
    rows = zonal_statistics(stack, tiny).set_index(["stat", "month"])["value"]
    assert np.isfinite(rows["mean"]).all()
    assert rows["sd"].isna().all()


def test_regions_are_reprojected_to_stack_crs(stack, regions):
    plain = zonal_statistics(stack, regions)
    projected = zonal_statistics(stack, regions.to_crs("EPSG:3857"))
    pd.testing.assert_frame_equal(plain, projected)


def test_unknown_stat_raises(stack, regions):
    with pytest.raises(ValueError, match="Unknown statistic"):
        extract_zonal(stack, regions, "median")


def test_wide_long_round_trip(stack, regions):
    rows = zonal_statistics(stack, regions)
    means = rows[rows["stat"] == "mean"].sort_values(["region", "month"]).reset_index(drop=True)

    wide = to_wide(rows, "mean")
    assert list(wide.columns) == ["A", "B"]
    assert wide.shape == (2, 2)

    back = to_long(wide, "mean")
    pd.testing.assert_frame_equal(back, means, check_dtype=False)


def test_region_cell_mask_matches_point_test(stack, regions):
    poly = box(-69.8, 40.1, -69.3, 40.6)
    mask = region_cell_mask(stack, poly)
    lon2d, lat2d = np.meshgrid(stack["lon"].values, stack["lat"].values)
    np.testing.assert_array_equal(mask, points_in_polygon(lon2d, lat2d, poly))
    assert mask.sum() > 0


def test_single_row_grid_inside_region():
    lons = -70.5 + (2 * np.arange(24) + 1) / 48.0
    grid = make_grid(["2020-06-16", "2020-07-16"], lons=lons, lats=np.array([40.979]))
    regions = gpd.GeoDataFrame({"EPU": ["Strip"]}, geometry=[box(-71.0, 40.95, -69.0, 40.99)], crs="EPSG:4326")

    rows = zonal_statistics(build_raster_stack(grid), regions)
    means = rows[rows["stat"] == "mean"].sort_values("month")["value"]
    assert len(means) == 2
    assert np.isfinite(means).all()
    np.testing.assert_allclose(means.to_numpy(), [10.0, 11.0])
