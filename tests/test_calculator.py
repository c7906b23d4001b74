import datetime

import pytest

from oncotrack_pkg.treatment.calculator import (
    compute_body_surface_area, compute_dose, generate_cycle_schedule
)


class TestBodySurfaceArea:

    def test_dubois_reference_patient(self):
        assert compute_body_surface_area(70, 170) == pytest.approx(1.81)

    def test_result_is_rounded_to_two_decimals(self):
        bsa = compute_body_surface_area(63.4, 158.2)
        assert bsa == round(bsa, 2)

    @pytest.mark.parametrize("weight,height", [
        (0, 170), (70, 0), (-70, 170), (70, -1), (None, 170), (70, None), ("70", 170), (float('nan'), 170),
    ])
    def test_invalid_input_returns_zero(self, weight, height):
        assert compute_body_surface_area(weight, height) == 0


class TestComputeDose:

    def test_per_square_metre(self):
        assert compute_dose(100, 'mg/m2', 1.8) == pytest.approx(180)

    def test_per_kilogram(self):
        assert compute_dose(5, 'mg/kg', 1.8, weight_kg=70) == pytest.approx(350)

    def test_per_kilogram_without_weight_is_zero(self):
        assert compute_dose(5, 'mg/kg', 1.8) == 0

    def test_flat_dose_is_unchanged(self):
        assert compute_dose(400, 'mg', 1.8, weight_kg=70) == 400

    def test_unknown_unit_falls_back_to_reference_dose(self):
        assert compute_dose(75, 'AUC', 1.8) == 75

    def test_missing_bsa_contributes_zero(self):
        assert compute_dose(100, 'mg/m2', None) == 0

    def test_invalid_reference_dose(self):
        assert compute_dose(None, 'mg', 1.8) == 0
        assert compute_dose(-10, 'mg/m2', 1.8) == 0


class TestCycleSchedule:

    def test_every_21_days(self):
        schedule = generate_cycle_schedule(datetime.date(2024, 1, 1), 4, 21)
        assert schedule == [
            datetime.date(2024, 1, 1),
            datetime.date(2024, 1, 22),
            datetime.date(2024, 2, 12),
            datetime.date(2024, 3, 4),
        ]

    def test_length_matches_cycle_count(self):
        assert len(generate_cycle_schedule(datetime.date(2024, 6, 30), 12, 14)) == 12

    def test_crosses_year_boundary(self):
        schedule = generate_cycle_schedule(datetime.date(2024, 12, 20), 2, 14)
        assert schedule[1] == datetime.date(2025, 1, 3)

    @pytest.mark.parametrize("start,cycles,days", [
        ("2024-01-01", 4, 21),
        (None, 4, 21),
        (datetime.date(2024, 1, 1), "four", 21),
        (datetime.date(2024, 1, 1), 4, None),
        (datetime.date(2024, 1, 1), True, 21),
    ])
    def test_invalid_input_returns_empty_schedule(self, start, cycles, days):
        assert generate_cycle_schedule(start, cycles, days) == []

    def test_zero_cycles(self):
        assert generate_cycle_schedule(datetime.date(2024, 1, 1), 0, 21) == []
