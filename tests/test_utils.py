"""Date normalizer, dues status and the list/report helpers in utils."""

from datetime import date, timedelta

import pytest

import utils
from errors import ValidationError
from factories import make_member
from models import STATUS_ALDIA, STATUS_DEBAJA, STATUS_ENDEUDA


# ---------------------------------------------------------------------------
# parse_date / to_storage / to_display
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2024-06-15", date(2024, 6, 15)),
        ("15-06-2024", date(2024, 6, 15)),
        ("15/06/2024", date(2024, 6, 15)),
        ("06/2024", date(2024, 6, 1)),
        ("  15/06/2024 ", date(2024, 6, 15)),
        ("5/6/2024", date(2024, 6, 5)),
    ],
)
def test_parse_date_accepts_known_shapes(text, expected):
    assert utils.parse_date(text) == expected


@pytest.mark.parametrize("text", ["", "   ", None, "2024/06/15", "hello", "15.06.2024", "13/2024"])
def test_parse_date_returns_none_for_unknown_input(text):
    assert utils.parse_date(text) is None


def test_parse_date_rejects_impossible_calendar_dates():
    """Numbers that match a pattern but are not a real date give None."""
    assert utils.parse_date("2024-13-01") is None
    assert utils.parse_date("31/02/2024") is None
    assert utils.parse_date("29/02/2023") is None
    assert utils.parse_date("29/02/2024") == date(2024, 2, 29)


def test_storage_and_display_forms():
    d = date(2024, 1, 5)
    assert utils.to_storage(d) == "2024-01-05"
    assert utils.to_display(d) == "05/01/2024"


def test_storage_and_display_of_none_are_empty():
    assert utils.to_storage(None) == ""
    assert utils.to_display(None) == ""


def test_display_round_trip_over_two_years():
    """toStorage(parse(toDisplay(d))) == toStorage(d) for every day."""
    d = date(2023, 1, 1)
    while d < date(2025, 1, 1):
        assert utils.to_storage(utils.parse_date(utils.to_display(d))) == utils.to_storage(d)
        d += timedelta(days=1)


def test_normalize_date_converts_to_storage_form():
    assert utils.normalize_date("15/06/2024") == "2024-06-15"
    assert utils.normalize_date("06/2024") == "2024-06-01"
    assert utils.normalize_date("") is None
    assert utils.normalize_date(None) is None


def test_normalize_date_rejects_garbage():
    with pytest.raises(ValidationError):
        utils.normalize_date("not a date", "birth date")


def test_display_date_keeps_unparsable_text():
    assert utils.display_date("2024-06-15") == "15/06/2024"
    assert utils.display_date("sometime") == "sometime"
    assert utils.display_date(None) == ""


# ---------------------------------------------------------------------------
# format_as_user_types
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", ""),
        ("1", "1"),
        ("15", "15"),
        ("150", "15/0"),
        ("1506", "15/06"),
        ("15062", "15/06/2"),
        ("15062024", "15/06/2024"),
        ("1506202499", "15/06/2024"),
        ("15/06/2024", "15/06/2024"),
        ("15a06", "15/06"),
    ],
)
def test_format_as_user_types(raw, expected):
    assert utils.format_as_user_types(raw) == expected


# ---------------------------------------------------------------------------
# infer_status
# ---------------------------------------------------------------------------

NOW = date(2024, 6, 15)


@pytest.mark.parametrize(
    "paid, expected",
    [
        ("2024-06-01", STATUS_ALDIA),
        ("2024-01-01", STATUS_ENDEUDA),
        ("2023-01-01", STATUS_DEBAJA),
        ("2024-08-01", STATUS_ALDIA),
        ("2024-05-31", STATUS_ENDEUDA),
        ("2023-12-01", STATUS_ENDEUDA),
        ("2023-11-30", STATUS_DEBAJA),
        ("06/2024", STATUS_ALDIA),
        ("01/12/2023", STATUS_ENDEUDA),
        ("30-11-2023", STATUS_DEBAJA),
    ],
)
def test_infer_status_by_whole_months(paid, expected):
    assert utils.infer_status(paid, NOW) == expected


@pytest.mark.parametrize("paid", ["", None, "   ", "garbage", "2024-02-30"])
def test_infer_status_unknown_dates_are_in_debt(paid):
    assert utils.infer_status(paid, NOW) == STATUS_ENDEUDA


def test_infer_status_never_improves_as_months_pass():
    order = {STATUS_ALDIA: 0, STATUS_ENDEUDA: 1, STATUS_DEBAJA: 2}
    previous = 0
    for months_ago in range(0, 24):
        y, m = divmod(NOW.year * 12 + NOW.month - 1 - months_ago, 12)
        rank = order[utils.infer_status(f"{m + 1:02d}/{y}", NOW)]
        assert rank >= previous
        previous = rank


# ---------------------------------------------------------------------------
# Validation, filtering, pagination
# ---------------------------------------------------------------------------


def test_validate_member_inputs_lists_every_problem():
    errors = utils.validate_member_inputs("", " ", "UNKNOWN", "99/99/9999", "x")
    assert len(errors) == 5


def test_validate_member_inputs_accepts_blank_optional_dates():
    assert utils.validate_member_inputs("Ana", "Gómez", "ACTIVO", "", "") == []


def test_filter_members_by_search_and_status():
    members = [
        make_member("Ana", "Gómez", last_payment_date="2024-06-01", national_id="111"),
        make_member("Bruno", "Díaz", last_payment_date="2023-01-01", national_id="222"),
        make_member("Carla", "Gómez", last_payment_date=None, national_id="333"),
    ]
    assert [m.first_name for m in utils.filter_members(members, "gómez", today=NOW)] == ["Ana", "Carla"]
    assert [m.first_name for m in utils.filter_members(members, "222", today=NOW)] == ["Bruno"]
    assert [m.first_name for m in utils.filter_members(members, status=STATUS_ENDEUDA, today=NOW)] == ["Carla"]
    assert len(utils.filter_members(members, status="All", today=NOW)) == 3


def test_paginate_clamps_page_and_counts_pages():
    items = list(range(53))
    page, total = utils.paginate(items, 1, 25)
    assert page == list(range(25)) and total == 3
    page, total = utils.paginate(items, 3, 25)
    assert page == [50, 51, 52]
    page, _ = utils.paginate(items, 99, 25)
    assert page == [50, 51, 52]
    assert utils.paginate([], 1, 25) == ([], 1)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def test_status_summary_counts_per_chapter():
    members = [
        make_member(chapter="Consulado A", last_payment_date="2024-06-01"),
        make_member(chapter="Consulado A", last_payment_date="2023-01-01"),
        make_member(chapter=None, last_payment_date="2024-03-01"),
    ]
    table = utils.status_summary(members, NOW, "SEDE CENTRAL").set_index("chapter")

    assert table.loc["Consulado A", STATUS_ALDIA] == 1
    assert table.loc["Consulado A", STATUS_DEBAJA] == 1
    assert table.loc["Consulado A", "total"] == 2
    assert table.loc["SEDE CENTRAL", STATUS_ENDEUDA] == 1


def test_status_summary_empty():
    table = utils.status_summary([], NOW)
    assert table.empty
    assert list(table.columns) == ["chapter", STATUS_ALDIA, STATUS_ENDEUDA, STATUS_DEBAJA, "total"]


def test_members_csv_includes_dues_status():
    csv = utils.members_to_csv_bytes([make_member("Ana", "Gómez", last_payment_date="2024-06-01")], NOW)
    header, row = csv.decode("utf-8").splitlines()[:2]
    assert "dues_status" in header
    assert STATUS_ALDIA in row


def test_insert_sample_data_goes_through_the_cache(cache):
    utils.insert_sample_data(cache, today=NOW)
    utils.insert_sample_data(cache, today=NOW)

    assert cache.get_chapter_by_name("Consulado Rosario") is not None
    assert len([c for c in cache.get_chapters() if c.name == "Consulado Madrid"]) == 1
    assert len(cache.get_members()) == 8
    assert len(cache.get_members("SEDE CENTRAL")) == 2
