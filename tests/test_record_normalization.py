from datetime import datetime, timedelta, timezone

import record_normalization


def test_normalize_report_accepts_legacy_aliases():
    report = record_normalization.normalize_report(
        {
            'id': 7,
            'cellId': 3,
            'reportDate': '2026-10-05',
            'meetingType': '  Bible Study 1 ',
            'venue': ' Hall ',
            'attendees': '[{"memberId": 11, "name": "Ada", "present": true}, {"id": "12", "present": "yes"}]',
        }
    )
    assert report['id'] == '7'
    assert report['cell_id'] == '3'
    assert report['date'] == '2026-10-05'
    assert report['meeting_type'] == 'bible study 1'
    assert report['venue'] == 'Hall'
    assert report['attendees'] == [
        {'member_id': '11', 'name': 'Ada', 'present': True},
        {'member_id': '12', 'name': '', 'present': False},
    ]


def test_normalize_report_prefers_snake_case_and_tolerates_garbage():
    report = record_normalization.normalize_report({'cell_id': 'a', 'cellId': 'b', 'date': '', 'report_date': '2026-01-01'})
    assert report['cell_id'] == 'a'
    assert report['date'] == '2026-01-01'
    assert record_normalization.normalize_report(None)['attendees'] == []
    assert record_normalization.normalize_report(['x'])['cell_id'] is None


def test_normalize_attendees_drops_unparseable_items():
    attendees = record_normalization.normalize_attendees(
        ['{"memberId": "1", "present": true}', 'not json', 5, {'name': 'no id'}, {'member_id': '2'}]
    )
    assert attendees == [
        {'member_id': '1', 'name': '', 'present': True},
        {'member_id': '2', 'name': '', 'present': False},
    ]
    assert record_normalization.normalize_attendees('{broken') == []


def test_normalize_session_and_member_fields():
    session = record_normalization.normalize_session(
        {
            'username': ' admin ',
            'loginTime': '2026-10-19T08:00:00Z',
            'logoutTime': '',
            'ipAddress': '10.0.0.1',
            'userAgent': 'Firefox/120.0',
            'activeMs': 1500.7,
            'idleMs': -4,
        }
    )
    assert session['username'] == 'admin'
    assert session['logout_time'] is None
    assert session['active_ms'] == 1500
    assert session['idle_ms'] is None

    member = record_normalization.normalize_member(
        {'name': 'Ada', 'cellId': '', 'dobDay': '31', 'dobMonth': 13, 'email': ' Ada@Example.org '}
    )
    assert member['cell_id'] is None
    assert member['dob_day'] == 31
    assert member['dob_month'] is None
    assert member['email'] == 'ada@example.org'


def test_parse_record_datetime_variants():
    assert record_normalization.parse_record_datetime('2026-10-19T10:00:00Z') == datetime(
        2026, 10, 19, 10, 0, tzinfo=timezone.utc
    )
    assert record_normalization.parse_record_datetime('2026-10-19') == datetime(2026, 10, 19, tzinfo=timezone.utc)
    assert record_normalization.parse_record_datetime('Mon, 19 Oct 2026 10:00:00 +0000') == datetime(
        2026, 10, 19, 10, 0, tzinfo=timezone.utc
    )
    assert record_normalization.parse_record_datetime('') is None
    assert record_normalization.parse_record_datetime('next tuesday') is None
    assert record_normalization.parse_record_datetime(None) is None


def test_meeting_type_validation():
    assert record_normalization.is_allowed_meeting_type('Outreach  Meeting')
    assert record_normalization.is_allowed_meeting_type('')
    assert not record_normalization.is_allowed_meeting_type('choir practice')


def test_changed_fields_only_reports_fields_present_in_payload():
    payload = {'cellId': None, 'name': 'Ada'}
    member = record_normalization.normalize_member(payload)
    changes = record_normalization.changed_fields(payload, member, record_normalization.MEMBER_FIELD_ALIASES)
    assert changes == {'cell_id': None, 'name': 'Ada'}
    assert record_normalization.unknown_payload_fields(
        {'name': 'x', 'colour': 'red'},
        record_normalization.accepted_fields(record_normalization.CELL_FIELD_ALIASES),
    ) == ['colour']


def test_parse_record_datetime_returns_none_when_offset_leaves_datetime_range():
    assert record_normalization.parse_record_datetime('0001-01-01T00:00:00+05:00') is None
    assert record_normalization.parse_record_datetime('9999-12-31T23:00:00-05:00') is None
    assert record_normalization.parse_record_datetime('Fri, 31 Dec 9999 23:00:00 -0500') is None
    edge = datetime(1, 1, 1, tzinfo=timezone(timedelta(hours=5)))
    assert record_normalization.parse_record_datetime(edge) is None
    assert record_normalization.parse_record_datetime('9999-12-31T23:00:00Z') == datetime(
        9999, 12, 31, 23, 0, tzinfo=timezone.utc
    )
