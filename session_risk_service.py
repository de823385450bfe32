from datetime import datetime, timedelta, timezone
from typing import Sequence

from record_normalization import parse_record_datetime

UNKNOWN = 'Unknown'
STATE_ACTIVE = 'active'
STATE_ENDED = 'ended'
RISK_NORMAL = 'normal'
RISK_SUSPICIOUS = 'suspicious'
LOOPBACK_ADDRESSES = {'127.0.0.1', '::1'}
PRIVATE_IPV4_PREFIXES = ('10.', '192.168.') + tuple(f'172.{octet}.' for octet in range(16, 32))
PRIVATE_IPV6_PREFIXES = ('fd', 'fc')
SESSION_CSV_HEADER = [
    'User', 'Start Time', 'Logout Time', 'IP Address', 'Browser', 'OS', 'Device',
    'Location', 'Active Time', 'Idle Time', 'Total Time', 'Status', 'Risk',
]


def parse_user_agent(user_agent: str | None) -> dict[str, str]:
    agent = str(user_agent or '')
    browser = UNKNOWN
    os_name = UNKNOWN
    device = 'Desktop'

    # Edge agents also carry "Chrome/", Chrome agents also carry "Safari/".
    if 'Edg/' in agent:
        browser = 'Edge'
    elif 'Chrome/' in agent:
        browser = 'Chrome'
    elif 'Firefox/' in agent:
        browser = 'Firefox'
    elif 'Safari/' in agent:
        browser = 'Safari'

    # First match wins: iPhone/iPad agents carry "like Mac OS X" and report
    # macOS, Android agents carry "Linux" and report Android.
    if 'Windows' in agent:
        os_name = 'Windows'
    elif 'Mac OS X' in agent:
        os_name = 'macOS'
    elif 'Android' in agent:
        os_name = 'Android'
    elif 'iPhone' in agent or 'iPad' in agent:
        os_name = 'iOS'
    elif 'Linux' in agent:
        os_name = 'Linux'

    if 'Mobile' in agent:
        device = 'Mobile'
    if 'Tablet' in agent or 'iPad' in agent:
        device = 'Tablet'

    return {'browser': browser, 'os': os_name, 'device': device}


def classify_ip_location(ip_address: str | None) -> str:
    value = str(ip_address or '').strip().lower()
    if value.startswith('::ffff:'):
        value = value[len('::ffff:'):]
    if not value:
        return UNKNOWN
    if value in LOOPBACK_ADDRESSES:
        return 'Localhost'
    if value.startswith(PRIVATE_IPV4_PREFIXES) or value.startswith(PRIVATE_IPV6_PREFIXES):
        return 'Private Network'
    return 'Public Network'


def assess_session_risk(
    session: dict[str, object],
    now: datetime,
    *,
    stale_after_hours: int = 24,
) -> dict[str, object]:
    if str(session.get('logout_time') or '').strip():
        return {'state': STATE_ENDED, 'risk': RISK_NORMAL, 'reasons': []}

    reasons: list[str] = []
    login_dt = parse_record_datetime(session.get('login_time'))
    reference = now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)
    if login_dt is not None and reference - login_dt > timedelta(hours=stale_after_hours):
        reasons.append('stale_active')

    agent = parse_user_agent(str(session.get('user_agent') or ''))
    if agent['browser'] == UNKNOWN:
        reasons.append('unknown_browser')
    if agent['os'] == UNKNOWN:
        reasons.append('unknown_os')
    if not str(session.get('ip_address') or '').strip():
        reasons.append('missing_ip')

    return {
        'state': STATE_ACTIVE,
        'risk': RISK_SUSPICIOUS if reasons else RISK_NORMAL,
        'reasons': reasons,
    }


def _minutes_label(milliseconds: int) -> str:
    return f'{int(milliseconds / 60000 + 0.5)} min'


def session_duration_summary(session: dict[str, object]) -> dict[str, str]:
    active_ms = session.get('active_ms')
    idle_ms = session.get('idle_ms')
    active = active_ms if isinstance(active_ms, int) and not isinstance(active_ms, bool) else 0
    idle = idle_ms if isinstance(idle_ms, int) and not isinstance(idle_ms, bool) else 0
    total = active + idle
    if not total:
        return {'active_time': '-', 'idle_time': '-', 'total_time': '-'}
    return {
        'active_time': _minutes_label(active),
        'idle_time': _minutes_label(idle),
        'total_time': _minutes_label(total),
    }


def describe_session(
    session: dict[str, object],
    now: datetime,
    *,
    stale_after_hours: int = 24,
) -> dict[str, object]:
    assessment = assess_session_risk(session, now, stale_after_hours=stale_after_hours)
    return {
        **session,
        **parse_user_agent(str(session.get('user_agent') or '')),
        'location': classify_ip_location(str(session.get('ip_address') or '')),
        **session_duration_summary(session),
        'state': assessment['state'],
        'risk': assessment['risk'],
        'risk_reasons': assessment['reasons'],
    }


def search_sessions(sessions: Sequence[dict[str, object]], term: str | None) -> list[dict[str, object]]:
    needle = str(term or '').strip().lower()
    if not needle:
        return list(sessions)
    matched: list[dict[str, object]] = []
    for session in sessions:
        agent = parse_user_agent(str(session.get('user_agent') or ''))
        haystack = ' '.join(
            str(value)
            for value in (
                session.get('username'),
                session.get('ip_address'),
                agent['browser'],
                agent['os'],
            )
            if value
        ).lower()
        if needle in haystack:
            matched.append(session)
    return matched


def sort_sessions_newest_first(sessions: Sequence[dict[str, object]]) -> list[dict[str, object]]:
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(
        sessions,
        key=lambda session: parse_record_datetime(session.get('login_time')) or epoch,
        reverse=True,
    )


def sessions_csv_rows(
    sessions: Sequence[dict[str, object]],
    now: datetime,
    *,
    stale_after_hours: int = 24,
) -> list[list[str]]:
    rows = [list(SESSION_CSV_HEADER)]
    for session in sort_sessions_newest_first(sessions):
        row = describe_session(session, now, stale_after_hours=stale_after_hours)
        rows.append(
            [
                str(row.get('username') or ''),
                str(row.get('login_time') or ''),
                str(row.get('logout_time') or ''),
                str(row.get('ip_address') or ''),
                str(row['browser']),
                str(row['os']),
                str(row['device']),
                str(row['location']),
                str(row['active_time']),
                str(row['idle_time']),
                str(row['total_time']),
                'Ended' if row['state'] == STATE_ENDED else 'Active',
                str(row['risk']),
            ]
        )
    return rows
