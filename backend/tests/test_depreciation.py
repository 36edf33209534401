import pytest

from itam.depreciation import DepreciationSettings, calculate_depreciated_value


class TestStraightLine:
    def test_same_year_keeps_full_value(self):
        assert calculate_depreciated_value(1000, 2020, 2020, "straight", 4, []) == 1000

    def test_fully_depreciated_after_term(self):
        assert calculate_depreciated_value(1000, 2020, 2024, "straight", 4, []) == 0

    def test_partial_term(self):
        assert calculate_depreciated_value(1000, 2020, 2022, "straight", 4, []) == pytest.approx(500)

    def test_never_below_zero_after_term(self):
        assert calculate_depreciated_value(1000, 2010, 2024, "straight", 4, []) == 0

    def test_future_purchase_is_worth_nothing(self):
        assert calculate_depreciated_value(1000, 2025, 2024, "straight", 4, []) == 0


class TestDeclining:
    def test_first_year(self):
        assert calculate_depreciated_value(1000, 2020, 2021, "declining", 4, [50, 25, 12.5, 12.5]) == 500

    def test_compounds_on_remaining_value(self):
        value = calculate_depreciated_value(1000, 2020, 2022, "declining", 4, [50, 25, 12.5, 12.5])
        assert value == pytest.approx(375)

    def test_years_past_list_remove_nothing(self):
        value = calculate_depreciated_value(1000, 2020, 2023, "declining", 5, [50])
        assert value == pytest.approx(500)

    def test_stops_at_term(self):
        four = calculate_depreciated_value(1000, 2020, 2024, "declining", 4, [50, 25, 12.5, 12.5])
        ten = calculate_depreciated_value(1000, 2020, 2030, "declining", 4, [50, 25, 12.5, 12.5])
        assert four == ten


def test_zero_years_is_rejected():
    with pytest.raises(ValueError):
        calculate_depreciated_value(1000, 2020, 2021, "straight", 0, [])


class TestDepreciationSettings:
    def test_defaults_when_missing(self):
        s = DepreciationSettings.from_json(None)
        assert (s.method, s.years, s.declining_percents) == ("straight", 4, [50, 25, 12.5, 12.5])

    def test_unknown_method_falls_back_to_straight(self):
        s = DepreciationSettings.from_json({"method": "sum-of-digits", "years": 3})
        assert s.method == "straight"
        assert s.years == 3

    def test_round_trips_json_keys(self):
        data = {"method": "declining", "years": 2, "decliningPercents": [40, 60]}
        assert DepreciationSettings.from_json(data).to_json() == data
