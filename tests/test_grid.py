import pytest

from kartqueue.enterprise.config.settings import GridSettings
from kartqueue.enterprise.core import GridCell, InvalidLocation
from kartqueue.grid import euclidean, grid_distance, iter_sectors, parse_sector, sector_name


def test_letter_is_row_and_number_is_column():
    assert parse_sector("A1") == GridCell(x=0, y=0)
    assert parse_sector("A2") == GridCell(x=1, y=0)
    assert parse_sector("B1") == GridCell(x=0, y=1)
    assert parse_sector("C3") == GridCell(x=2, y=2)


def test_parse_is_case_and_whitespace_insensitive():
    assert parse_sector(" b2 ") == GridCell(x=1, y=1)


@pytest.mark.parametrize("name", ["", "A", "1A", "A0", "AA1", "A-1", None])
def test_malformed_sector_names_are_rejected(name):
    with pytest.raises(InvalidLocation):
        parse_sector(name)


def test_sector_outside_grid_is_rejected():
    grid = GridSettings(rows=3, columns=3)

    assert parse_sector("C3", grid) == GridCell(x=2, y=2)
    with pytest.raises(InvalidLocation):
        parse_sector("D1", grid)
    with pytest.raises(InvalidLocation):
        parse_sector("A4", grid)


def test_distances_are_rounded_to_two_decimals():
    assert grid_distance("A1", "A1") == 0.0
    assert grid_distance("A1", "A2") == 1.0
    assert grid_distance("A1", "B2") == 1.41
    assert grid_distance("A1", "C3") == 2.83
    assert euclidean(GridCell(x=0, y=0), GridCell(x=2, y=1)) == 2.24


def test_sector_names_round_trip_over_the_grid():
    grid = GridSettings(rows=2, columns=3)

    names = list(iter_sectors(grid))

    assert names == ["A1", "A2", "A3", "B1", "B2", "B3"]
    assert [sector_name(parse_sector(name, grid)) for name in names] == names
