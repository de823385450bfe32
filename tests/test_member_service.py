from datetime import datetime, timezone

import member_service

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def test_unassigned_members_skips_blank_cell_ids():
    members = [
        {'id': 'm1', 'cell_id': 'c1'},
        {'id': 'm2', 'cell_id': None},
        {'id': 'm3', 'cell_id': ''},
        {'id': 'm4', 'cell_id': 'c1'},
    ]
    assert [member['id'] for member in member_service.unassigned_members(members)] == ['m2', 'm3']


def test_member_attendance_summary_ignores_reports_without_member():
    reports = [
        {
            'id': 'r1',
            'cell_id': 'c1',
            'date': '2026-10-01',
            'meeting_type': 'bible study 1',
            'attendees': [{'member_id': 'm1', 'name': 'Ada', 'present': True}],
        },
        {
            'id': 'r2',
            'cell_id': 'c1',
            'date': '2026-10-08',
            'meeting_type': '',
            'attendees': [{'member_id': 'm1', 'name': 'Ada', 'present': False}],
        },
        {
            'id': 'r3',
            'cell_id': 'c1',
            'date': '2026-10-15',
            'attendees': [{'member_id': 'm2', 'present': True}],
        },
    ]
    summary = member_service.member_attendance_summary('m1', reports)
    assert summary['present'] == 1
    assert summary['absent'] == 1
    assert summary['total'] == 2
    assert [record['report_id'] for record in summary['records']] == ['r2', 'r1']
    assert summary['records'][0]['meeting_type'] is None


def test_recent_report_summaries_counts_attendance_and_names_cells():
    cells = [{'id': 'c1', 'name': 'Zion'}]
    reports = [
        {
            'id': 'r1',
            'cell_id': 'c1',
            'date': '2026-10-17',
            'attendees': [
                {'member_id': 'm1', 'present': True},
                {'member_id': 'm2', 'present': False},
                {'member_id': 'm3', 'present': True},
            ],
        },
        {'id': 'r2', 'cell_id': 'gone', 'date': '2026-10-18', 'attendees': []},
        {'id': 'r3', 'cell_id': 'c1', 'date': '2026-10-01', 'attendees': []},
    ]
    summaries = member_service.recent_report_summaries(reports, cells, NOW)
    assert [summary['id'] for summary in summaries] == ['r1', 'r2']
    assert summaries[0]['cell_name'] == 'Zion'
    assert summaries[0]['present_count'] == 2
    assert summaries[0]['absent_count'] == 1
    assert summaries[1]['cell_name'] == 'Cell Report'


def test_birthdays_in_month_sorted_by_day():
    members = [
        {'name': 'Ruth', 'dob_day': 20, 'dob_month': 10},
        {'name': 'Ada', 'dob_day': 3, 'dob_month': 10},
        {'name': 'Peter', 'dob_day': 3, 'dob_month': 11},
        {'name': 'Silas', 'dob_day': None, 'dob_month': 10},
    ]
    assert [member['name'] for member in member_service.birthdays_in_month(members, 10)] == ['Ada', 'Ruth']


def test_attendance_summary_tolerates_out_of_range_dates():
    reports = [
        {'id': 'r1', 'date': '9999-12-31T23:00:00-05:00', 'attendees': [{'member_id': 'm1', 'present': True}]},
        {'id': 'r2', 'date': '2026-10-01', 'attendees': [{'member_id': 'm1', 'present': False}]},
    ]
    summary = member_service.member_attendance_summary('m1', reports)
    assert summary['total'] == 2
    assert [record['report_id'] for record in summary['records']] == ['r2', 'r1']
