# oncotrack_pkg/connections/normalize.py
"""
Maps partner vaccination payloads onto the canonical summary and record shapes.

The partner has used several field names over time, so every field is read
through an explicit, ordered list of candidate keys.
"""
import datetime
import re

LIST_KEYS = ('vaccines', 'vaccinations', 'data')

NAME_KEYS = ('name', 'vaccine_name', 'vaccine')
DATE_KEYS = ('date', 'application_date', 'applied_at')
DOSE_KEYS = ('dose', 'dose_number')
STATUS_KEYS = ('status',)
OBSERVATION_KEYS = ('observations', 'notes')
SOURCE_KEYS = ('source',)

ALERT_LEVEL_KEYS = ('severity', 'type', 'level')

VACCINE_STATUSES = ('up_to_date', 'pending', 'overdue')
ALERT_LEVELS = ('info', 'warning', 'critical')
ALERT_SOURCES = ('minha_caderneta', 'oncotrack')


def _now_iso():
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def first_present(record, keys, default=None):
    """Returns the value of the first key in `keys` that is present and not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def extract_result_list(payload):
    """The first of LIST_KEYS holding a list wins; otherwise an empty list."""
    for key in LIST_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return []


def synthetic_id(*parts, prefix='vac'):
    """
    Deterministic id from the given fields: joined, lowercased, and runs of
    non-alphanumerics collapsed to '-'. Equal inputs collide by construction.
    """
    joined = '|'.join('' if p is None else str(p) for p in parts).lower()
    slug = re.sub(r'[^a-z0-9]+', '-', joined).strip('-')
    return f"{prefix}-{slug}" if slug else prefix


def _text(value):
    return None if value is None else str(value)


def normalize_vaccine(item):
    name = _text(first_present(item, NAME_KEYS))
    date = _text(first_present(item, DATE_KEYS))
    dose = _text(first_present(item, DOSE_KEYS))
    status = first_present(item, STATUS_KEYS)
    raw_id = item.get('id')

    return {
        "id": str(raw_id) if raw_id not in (None, '') else synthetic_id(name, date, dose),
        "name": name or '',
        "date": date,
        "dose": dose,
        "status": status if status in VACCINE_STATUSES else 'unknown',
        "observations": _text(first_present(item, OBSERVATION_KEYS)),
        "source": _text(first_present(item, SOURCE_KEYS)) or 'minha_caderneta',
    }


def normalize_vaccines(payload):
    return [normalize_vaccine(item) for item in extract_result_list(payload) if isinstance(item, dict)]


def normalize_alert(alert):
    level = first_present(alert, ALERT_LEVEL_KEYS)
    message = _text(alert.get('message')) or ''
    created_at = _text(alert.get('created_at')) or _now_iso()
    source = 'oncotrack' if alert.get('source') == 'oncotrack' else 'minha_caderneta'
    raw_id = alert.get('id')

    return {
        "id": str(raw_id) if raw_id not in (None, '') else synthetic_id(source, message, created_at, prefix='alert'),
        "source": source,
        "severity": level if level in ALERT_LEVELS else 'info',
        "message": message,
        "created_at": created_at,
    }


def _count(payload, key, fallback):
    value = payload.get(key)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return fallback


def normalize_summary(payload, vaccines=None):
    """
    Canonical summary. Explicit partner counters win; when absent, totals come
    from the result list and status counters from the item statuses.
    """
    if vaccines is None:
        vaccines = normalize_vaccines(payload)
    alerts = payload.get('clinical_alerts')

    return {
        "total_vaccines": _count(payload, 'total_vaccines', len(extract_result_list(payload))),
        "up_to_date": _count(payload, 'up_to_date', sum(1 for v in vaccines if v["status"] == 'up_to_date')),
        "pending": _count(payload, 'pending', sum(1 for v in vaccines if v["status"] == 'pending')),
        "overdue": _count(payload, 'overdue', sum(1 for v in vaccines if v["status"] == 'overdue')),
        "last_updated": _text(payload.get('last_updated')) or _now_iso(),
        "clinical_alerts": [normalize_alert(a) for a in alerts if isinstance(a, dict)] if isinstance(alerts, list) else [],
    }


def normalize_vaccination_payload(payload):
    vaccines = normalize_vaccines(payload)
    return {"summary": normalize_summary(payload, vaccines), "vaccines": vaccines}
