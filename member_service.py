from datetime import datetime, timezone
from typing import Sequence

from activity_service import within_window
from record_normalization import parse_record_datetime


def unassigned_members(members: Sequence[dict[str, object]]) -> list[dict[str, object]]:
    return [member for member in members if not str(member.get('cell_id') or '').strip()]


def member_attendance_summary(member_id: str, reports: Sequence[dict[str, object]]) -> dict[str, object]:
    """Present/absent tally for one member across every report that lists them.

    Reports that do not list the member are ignored rather than counted as absences.
    """
    target = str(member_id)
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    ordered = sorted(
        reports,
        key=lambda report: parse_record_datetime(report.get('date')) or epoch,
        reverse=True,
    )

    present = 0
    absent = 0
    records: list[dict[str, object]] = []
    for report in ordered:
        attendees = report.get('attendees')
        if not isinstance(attendees, list):
            continue
        hit = next((item for item in attendees if str(item.get('member_id') or '') == target), None)
        if hit is None:
            continue
        is_present = hit.get('present') is True
        if is_present:
            present += 1
        else:
            absent += 1
        records.append(
            {
                'report_id': report.get('id'),
                'cell_id': report.get('cell_id'),
                'report_date': report.get('date') or None,
                'meeting_type': report.get('meeting_type') or None,
                'present': is_present,
            }
        )

    return {
        'member_id': target,
        'present': present,
        'absent': absent,
        'total': present + absent,
        'records': records,
    }


def recent_report_summaries(
    reports: Sequence[dict[str, object]],
    cells: Sequence[dict[str, object]],
    now: datetime,
    *,
    window_days: int = 7,
) -> list[dict[str, object]]:
    cell_names = {str(cell.get('id')): str(cell.get('name') or '') for cell in cells}
    summaries: list[dict[str, object]] = []
    for report in within_window(reports, now, window_days):
        attendees = report.get('attendees') if isinstance(report.get('attendees'), list) else []
        cell_id = str(report.get('cell_id') or '')
        summaries.append(
            {
                **report,
                'cell_name': cell_names.get(cell_id) or 'Cell Report',
                'present_count': sum(1 for item in attendees if item.get('present') is True),
                'absent_count': sum(1 for item in attendees if item.get('present') is False),
            }
        )
    return summaries


def birthdays_in_month(members: Sequence[dict[str, object]], month: int) -> list[dict[str, object]]:
    matched = [
        member
        for member in members
        if member.get('dob_month') == month and isinstance(member.get('dob_day'), int)
    ]
    return sorted(matched, key=lambda member: (int(member['dob_day']), str(member.get('name') or '').lower()))
