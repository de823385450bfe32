from datetime import datetime, timedelta, timezone

import activity_service

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _report(cell_id, when, **extra):
    value = when.isoformat() if isinstance(when, datetime) else when
    return {'id': extra.pop('id', None), 'cell_id': cell_id, 'date': value, 'attendees': [], **extra}


def test_within_window_is_inclusive_and_skips_bad_dates():
    reports = [
        _report('c1', NOW - timedelta(days=30)),
        _report('c1', NOW - timedelta(days=31)),
        _report('c1', 'not-a-date'),
        _report('c1', None),
        _report('c1', NOW),
    ]
    selected = activity_service.within_window(reports, NOW, 30)
    assert [report['date'] for report in selected] == [
        (NOW - timedelta(days=30)).isoformat(),
        NOW.isoformat(),
    ]


def test_within_window_accepts_naive_reference_and_date_only_values():
    naive_now = datetime(2026, 10, 19)
    reports = [_report('c1', '2026-10-12'), _report('c1', '2026-10-11')]
    selected = activity_service.within_window(reports, naive_now, 7)
    assert [report['date'] for report in selected] == ['2026-10-12']


def test_within_current_month_starts_at_first_of_month():
    reports = [
        _report('c1', '2026-10-01T00:00:00Z'),
        _report('c1', '2026-09-30T23:59:59Z'),
        _report('c1', '2026-10-18'),
    ]
    selected = activity_service.within_current_month(reports, NOW)
    assert [report['date'] for report in selected] == ['2026-10-01T00:00:00Z', '2026-10-18']


def test_count_by_cell_skips_missing_cell_ids():
    reports = [
        _report('c1', NOW),
        _report('c1', NOW),
        _report('c2', NOW),
        _report(None, NOW),
        _report('  ', NOW),
    ]
    counts = activity_service.count_by_cell(reports)
    assert counts == {'c1': 2, 'c2': 1}
    assert sum(counts.values()) == len(reports) - 2


def test_count_by_cell_uses_custom_accessor():
    records = [{'group': 'a'}, {'group': 'a'}, {'group': 'b'}]
    assert activity_service.count_by_cell(records, lambda record: record.get('group')) == {'a': 2, 'b': 1}


def test_activity_status_30d_flips_on_report_today_only():
    assert activity_service.activity_status_30d('c1', [], NOW) == 'Inactive'
    old = [_report('c1', NOW - timedelta(days=31))]
    assert activity_service.activity_status_30d('c1', old, NOW) == 'Inactive'
    today = old + [_report('c1', NOW)]
    assert activity_service.activity_status_30d('c1', today, NOW) == 'Active'


def test_summarize_cell_activity_30d_counts_every_cell():
    cells = [{'id': 'c1'}, {'id': 'c2'}, {'id': 'c3'}]
    reports = [_report('c1', NOW - timedelta(days=3)), _report('c2', NOW - timedelta(days=45))]
    assert activity_service.summarize_cell_activity_30d(cells, reports, NOW) == {'active': 1, 'inactive': 2}


def test_tier_and_progress_policies_keep_separate_thresholds():
    for count in (0, 1, 2):
        assert activity_service.tier_status_for_count(count)['class_name'] == 'red'
        assert activity_service.progress_status_for_count(count)['label'] == 'Inactive'
    assert activity_service.tier_status_for_count(3) == {'label': 'At Risk (3)', 'class_name': 'amber'}
    assert activity_service.progress_status_for_count(3) == {
        'label': 'Making Progress',
        'class_name': 'status-progress',
    }
    for count in (4, 5, 12):
        assert activity_service.tier_status_for_count(count)['class_name'] == 'green'
        assert activity_service.progress_status_for_count(count)['label'] == 'Active'


def test_cell_without_reports_this_month_falls_in_lowest_tier():
    reports = [_report('c1', '2026-09-10'), _report('c2', '2026-10-02')]
    assert activity_service.tier_status_for_cell('c1', reports, NOW)['class_name'] == 'red'
    assert activity_service.progress_status_for_cell('c1', reports, NOW)['label'] == 'Inactive'


def test_monthly_report_counts_and_green_percentage():
    reports = [_report('c1', f'2026-01-{day:02d}') for day in (3, 10, 17, 24)]
    reports += [_report('c1', f'2026-10-{day:02d}') for day in (1, 8, 15, 18)]
    reports += [_report('c1', '2025-12-20'), _report('c2', '2026-02-01'), _report('c1', 'bogus')]
    counts = activity_service.monthly_report_counts('c1', reports, NOW)
    assert len(counts) == 10
    assert counts[0] == 4
    assert counts[9] == 4
    assert sum(counts) == 8
    assert activity_service.green_month_percentage(counts) == {'green_months': 2, 'percentage': 20}


def test_green_month_percentage_rounds_half_up():
    assert activity_service.green_month_percentage([4, 0, 0, 0, 0, 0, 0, 0])['percentage'] == 13
    assert activity_service.green_month_percentage([]) == {'green_months': 0, 'percentage': 0}


def test_build_cell_status_rows_merges_counts_and_sorts_by_green_share():
    cells = [
        {'id': 'c1', 'name': 'Zion'},
        {'id': 'c2', 'name': 'Bethel'},
        {'id': 'c3', 'name': 'Antioch'},
    ]
    members = [{'id': 'm1', 'cell_id': 'c1'}, {'id': 'm2', 'cell_id': 'c1'}, {'id': 'm3', 'cell_id': None}]
    reports = [_report('c1', f'2026-10-{day:02d}') for day in (1, 5, 9, 13)]
    reports.append(_report('c2', '2026-10-02'))

    rows = activity_service.build_cell_status_rows(cells, members, reports, NOW)

    assert [row['id'] for row in rows] == ['c1', 'c3', 'c2']
    top = rows[0]
    assert top['member_count'] == 2
    assert top['reports_this_month'] == 4
    assert top['tier_status']['class_name'] == 'green'
    assert top['progress_status']['label'] == 'Active'
    assert top['activity_30d'] == 'Active'
    assert top['green_months'] == 1
    assert rows[1]['activity_30d'] == 'Inactive'
    assert rows[2]['reports_this_month'] == 1


def test_out_of_range_dates_are_excluded_from_every_window():
    reports = [
        _report('c1', '0001-01-01T00:00:00+05:00'),
        _report('c1', '9999-12-31T23:00:00-05:00'),
        _report('c1', '2026-10-18'),
    ]
    assert [r['date'] for r in activity_service.within_window(reports, NOW, 30)] == ['2026-10-18']
    assert [r['date'] for r in activity_service.within_current_month(reports, NOW)] == ['2026-10-18']
    assert activity_service.monthly_report_counts('c1', reports, NOW)[9] == 1
    assert activity_service.tier_status_for_cell('c1', reports, NOW)['class_name'] == 'red'
