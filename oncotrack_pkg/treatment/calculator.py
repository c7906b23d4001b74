# oncotrack_pkg/treatment/calculator.py
"""
Body-surface-area, dose and cycle-schedule calculations.

All functions are total: invalid or missing numeric input degrades to 0 (or an
empty schedule) instead of raising, so UI previews can call them freely.
Anything persisted or shown as clinical dosing must be validated by the caller.
"""
import datetime
import math

DOSE_UNITS = ('mg', 'mg/m2', 'mg/kg')

# DuBois & DuBois (1916). Historical plans persist the computed BSA, so any
# change of formula needs explicit versioning.
DUBOIS_COEFFICIENT = 0.007184
DUBOIS_WEIGHT_EXPONENT = 0.425
DUBOIS_HEIGHT_EXPONENT = 0.725


def _positive_number(value):
    """Returns value as float if it is a finite number > 0, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def compute_body_surface_area(weight_kg, height_cm):
    """
    BSA (m²) = 0.007184 × weight^0.425 × height^0.725, rounded to 2 decimals.

    Returns 0 if either input is missing, zero, negative or not a number.
    """
    weight = _positive_number(weight_kg)
    height = _positive_number(height_cm)
    if weight is None or height is None:
        return 0

    bsa = DUBOIS_COEFFICIENT * (weight ** DUBOIS_WEIGHT_EXPONENT) * (height ** DUBOIS_HEIGHT_EXPONENT)
    return round(bsa, 2)


def compute_dose(reference_dose, dose_unit, bsa, weight_kg=None):
    """
    Calculates the absolute dose for one drug line.

    Args:
        reference_dose: Prescribed magnitude per unit (e.g. 100 for 100 mg/m2).
        dose_unit: 'mg', 'mg/m2' or 'mg/kg'.
        bsa: Body surface area in m².
        weight_kg: Patient weight, only used for 'mg/kg'.

    Returns:
        The dose in mg. 'mg' and unrecognized units return reference_dose
        unchanged; a missing BSA or weight contributes 0.
    """
    dose = _positive_number(reference_dose)
    if dose is None:
        return 0

    if dose_unit == 'mg/m2':
        return dose * (_positive_number(bsa) or 0)
    if dose_unit == 'mg/kg':
        return dose * (_positive_number(weight_kg) or 0)
    return dose


def generate_cycle_schedule(start_date, total_cycles, periodicity_days):
    """
    Returns exactly total_cycles dates: start_date, then one every
    periodicity_days. Plain day arithmetic, no calendar adjustments.
    """
    if not isinstance(start_date, (datetime.date, datetime.datetime)):
        return []
    if isinstance(total_cycles, bool) or isinstance(periodicity_days, bool):
        return []
    try:
        count = int(total_cycles)
        stride = datetime.timedelta(days=int(periodicity_days))
        return [start_date + stride * i for i in range(max(count, 0))]
    except (TypeError, ValueError, OverflowError):
        return []
