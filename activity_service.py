from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from record_normalization import parse_record_datetime

ACTIVE_LABEL = 'Active'
INACTIVE_LABEL = 'Inactive'
GREEN_MONTH_MIN_REPORTS = 4


def _report_date(record: dict[str, object]) -> object:
    return record.get('date')


def _report_cell_id(record: dict[str, object]) -> object:
    return record.get('cell_id')


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_start(reference_date: datetime) -> datetime:
    ref = _as_utc(reference_date)
    return ref.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def within_window(
    records: Sequence[dict[str, object]],
    reference_date: datetime,
    window_days: int,
    *,
    date_of: Callable[[dict[str, object]], object] = _report_date,
) -> list[dict[str, object]]:
    cutoff = _as_utc(reference_date) - timedelta(days=window_days)
    selected: list[dict[str, object]] = []
    for record in records:
        dt = parse_record_datetime(date_of(record))
        if dt is None or dt < cutoff:
            continue
        selected.append(record)
    return selected


def within_current_month(
    records: Sequence[dict[str, object]],
    reference_date: datetime,
    *,
    date_of: Callable[[dict[str, object]], object] = _report_date,
) -> list[dict[str, object]]:
    start = month_start(reference_date)
    selected: list[dict[str, object]] = []
    for record in records:
        dt = parse_record_datetime(date_of(record))
        if dt is None or dt < start:
            continue
        selected.append(record)
    return selected


def count_by_cell(
    records: Sequence[dict[str, object]],
    cell_id_of: Callable[[dict[str, object]], object] = _report_cell_id,
) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in records:
        raw_id = cell_id_of(record)
        cell_key = str(raw_id).strip() if raw_id is not None else ''
        if not cell_key:
            continue
        counts[cell_key] = counts.get(cell_key, 0) + 1
    return counts


# 30-day activity policy: binary Active/Inactive per cell.

def active_cell_ids_30d(
    reports: Sequence[dict[str, object]],
    now: datetime,
    *,
    window_days: int = 30,
) -> set[str]:
    return set(count_by_cell(within_window(reports, now, window_days)).keys())


def activity_status_30d(
    cell_id: str,
    reports: Sequence[dict[str, object]],
    now: datetime,
    *,
    window_days: int = 30,
) -> str:
    if str(cell_id) in active_cell_ids_30d(reports, now, window_days=window_days):
        return ACTIVE_LABEL
    return INACTIVE_LABEL


def summarize_cell_activity_30d(
    cells: Sequence[dict[str, object]],
    reports: Sequence[dict[str, object]],
    now: datetime,
    *,
    window_days: int = 30,
) -> dict[str, int]:
    active_ids = active_cell_ids_30d(reports, now, window_days=window_days)
    active = sum(1 for cell in cells if str(cell.get('id')) in active_ids)
    return {'active': active, 'inactive': len(cells) - active}


# Current-month policies. The tier badge and the dashboard progress label use
# different thresholds for a count of 3.

def tier_status_for_count(count: int) -> dict[str, str]:
    if count <= 2:
        return {'label': 'Below Target (0-2)', 'class_name': 'red'}
    if count == 3:
        return {'label': 'At Risk (3)', 'class_name': 'amber'}
    return {'label': 'On Track (4+)', 'class_name': 'green'}


def progress_status_for_count(count: int) -> dict[str, str]:
    if count >= 4:
        return {'label': ACTIVE_LABEL, 'class_name': 'status-active'}
    if count <= 2:
        return {'label': INACTIVE_LABEL, 'class_name': 'status-inactive'}
    return {'label': 'Making Progress', 'class_name': 'status-progress'}


def current_month_counts(reports: Sequence[dict[str, object]], now: datetime) -> dict[str, int]:
    return count_by_cell(within_current_month(reports, now))


def tier_status_for_cell(cell_id: str, reports: Sequence[dict[str, object]], now: datetime) -> dict[str, str]:
    return tier_status_for_count(current_month_counts(reports, now).get(str(cell_id), 0))


def progress_status_for_cell(cell_id: str, reports: Sequence[dict[str, object]], now: datetime) -> dict[str, str]:
    return progress_status_for_count(current_month_counts(reports, now).get(str(cell_id), 0))


def monthly_report_counts(cell_id: str, reports: Sequence[dict[str, object]], now: datetime) -> list[int]:
    """Report counts per month of the current year, January through the month of ``now``."""
    ref = _as_utc(now)
    counts = [0] * ref.month
    target = str(cell_id)
    for report in reports:
        if str(report.get('cell_id') or '') != target:
            continue
        dt = parse_record_datetime(report.get('date'))
        if dt is None or dt.year != ref.year or dt.month > ref.month:
            continue
        counts[dt.month - 1] += 1
    return counts


def green_month_percentage(monthly_counts: Sequence[int]) -> dict[str, int]:
    months_elapsed = len(monthly_counts)
    green_months = sum(1 for count in monthly_counts if count >= GREEN_MONTH_MIN_REPORTS)
    if not months_elapsed:
        return {'green_months': 0, 'percentage': 0}
    # half-up, matching the dashboard's rounding
    percentage = int(green_months * 100 / months_elapsed + 0.5)
    return {'green_months': green_months, 'percentage': percentage}


def build_cell_status_rows(
    cells: Sequence[dict[str, object]],
    members: Sequence[dict[str, object]],
    reports: Sequence[dict[str, object]],
    now: datetime,
    *,
    window_days: int = 30,
) -> list[dict[str, object]]:
    member_counts = count_by_cell(members)
    month_counts = current_month_counts(reports, now)
    active_ids = active_cell_ids_30d(reports, now, window_days=window_days)

    rows: list[dict[str, object]] = []
    for cell in cells:
        cell_id = str(cell.get('id') or '')
        count = month_counts.get(cell_id, 0)
        green = green_month_percentage(monthly_report_counts(cell_id, reports, now))
        rows.append(
            {
                **cell,
                'member_count': member_counts.get(cell_id, 0),
                'reports_this_month': count,
                'activity_30d': ACTIVE_LABEL if cell_id in active_ids else INACTIVE_LABEL,
                'progress_status': progress_status_for_count(count),
                'tier_status': tier_status_for_count(count),
                'green_months': green['green_months'],
                'green_percentage': green['percentage'],
            }
        )
    rows.sort(key=lambda row: (-int(row['green_percentage']), str(row.get('name') or '').lower()))
    return rows
