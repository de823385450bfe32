import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

ALLOWED_MEETING_TYPES = (
    'prayer and planning',
    'bible study 1',
    'bible study 2',
    'outreach meeting',
)


def _first_present(raw: dict[str, object], *keys: str) -> object:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != '':
            return value
    return None


def _clean_text(value: object, max_len: int = 255) -> str:
    if value is None:
        return ''
    return str(value).strip()[:max_len]


def _clean_id(value: object) -> str | None:
    text = _clean_text(value)
    return text or None


def _clean_int(value: object, *, lower: int | None = None, upper: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        try:
            number = int(value)
        except (OverflowError, ValueError):
            return None
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            return None
    if lower is not None and number < lower:
        return None
    if upper is not None and number > upper:
        return None
    return number


def _as_utc(dt: datetime) -> datetime | None:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        # offset pushes the instant past datetime.min/max
        return None


def parse_record_datetime(value: object) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return _as_utc(datetime.fromisoformat(text.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return _as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def normalize_meeting_type(value: object) -> str:
    return ' '.join(_clean_text(value, 80).lower().split())


def is_allowed_meeting_type(value: object) -> bool:
    meeting_type = normalize_meeting_type(value)
    return not meeting_type or meeting_type in ALLOWED_MEETING_TYPES


def normalize_cell(raw: object) -> dict[str, object]:
    source = raw if isinstance(raw, dict) else {}
    return {
        'id': _clean_id(source.get('id')),
        'name': _clean_text(source.get('name'), 160),
        'venue': _clean_text(source.get('venue'), 200),
        'day': _clean_text(source.get('day'), 80),
        'time': _clean_text(source.get('time'), 40),
        'description': _clean_text(source.get('description'), 3000),
    }


def normalize_member(raw: object) -> dict[str, object]:
    source = raw if isinstance(raw, dict) else {}
    return {
        'id': _clean_id(source.get('id')),
        'cell_id': _clean_id(_first_present(source, 'cell_id', 'cellId')),
        'title': _clean_text(source.get('title'), 40),
        'name': _clean_text(source.get('name'), 160),
        'gender': _clean_text(source.get('gender'), 20),
        'mobile': _clean_text(source.get('mobile'), 40),
        'email': _clean_text(source.get('email'), 200).lower(),
        'role': _clean_text(source.get('role'), 80),
        'department_id': _clean_id(_first_present(source, 'department_id', 'departmentId')),
        'dob_day': _clean_int(_first_present(source, 'dob_day', 'dobDay'), lower=1, upper=31),
        'dob_month': _clean_int(_first_present(source, 'dob_month', 'dobMonth'), lower=1, upper=12),
        'joined_date': _clean_text(_first_present(source, 'joined_date', 'joinedDate'), 40),
    }


def _attendee_from_item(item: object) -> dict[str, object] | None:
    if isinstance(item, str):
        try:
            item = json.loads(item)
        except ValueError:
            return None
    if not isinstance(item, dict):
        return None
    member_id = _clean_id(_first_present(item, 'member_id', 'memberId', 'id'))
    if member_id is None:
        return None
    return {
        'member_id': member_id,
        'name': _clean_text(item.get('name'), 160),
        'present': item.get('present') is True,
    }


def normalize_attendees(raw: object) -> list[dict[str, object]]:
    value = raw
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    attendees: list[dict[str, object]] = []
    for item in value:
        attendee = _attendee_from_item(item)
        if attendee is not None:
            attendees.append(attendee)
    return attendees


def normalize_report(raw: object) -> dict[str, object]:
    source = raw if isinstance(raw, dict) else {}
    return {
        'id': _clean_id(source.get('id')),
        'cell_id': _clean_id(_first_present(source, 'cell_id', 'cellId')),
        'date': _clean_text(_first_present(source, 'date', 'report_date', 'reportDate'), 64),
        'venue': _clean_text(source.get('venue'), 200),
        'meeting_type': normalize_meeting_type(_first_present(source, 'meeting_type', 'meetingType')),
        'description': _clean_text(source.get('description'), 5000),
        'attendees': normalize_attendees(source.get('attendees')),
    }


def normalize_session(raw: object) -> dict[str, object]:
    source = raw if isinstance(raw, dict) else {}
    return {
        'id': _clean_id(source.get('id')),
        'username': _clean_text(source.get('username'), 160),
        'login_time': _clean_text(_first_present(source, 'login_time', 'loginTime'), 64),
        'logout_time': _clean_text(_first_present(source, 'logout_time', 'logoutTime'), 64) or None,
        'ip_address': _clean_text(_first_present(source, 'ip_address', 'ipAddress'), 64),
        'user_agent': _clean_text(_first_present(source, 'user_agent', 'userAgent'), 512),
        'active_ms': _clean_int(_first_present(source, 'active_ms', 'activeMs'), lower=0),
        'idle_ms': _clean_int(_first_present(source, 'idle_ms', 'idleMs'), lower=0),
        'last_activity': _clean_text(_first_present(source, 'last_activity', 'lastActivity'), 64) or None,
    }


def unknown_payload_fields(payload: dict[str, object], allowed_fields: set[str]) -> list[str]:
    return sorted(str(key) for key in payload if key not in allowed_fields)


CELL_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'name': ('name',),
    'venue': ('venue',),
    'day': ('day',),
    'time': ('time',),
    'description': ('description',),
}
MEMBER_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'cell_id': ('cell_id', 'cellId'),
    'title': ('title',),
    'name': ('name',),
    'gender': ('gender',),
    'mobile': ('mobile',),
    'email': ('email',),
    'role': ('role',),
    'department_id': ('department_id', 'departmentId'),
    'dob_day': ('dob_day', 'dobDay'),
    'dob_month': ('dob_month', 'dobMonth'),
    'joined_date': ('joined_date', 'joinedDate'),
}
REPORT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'cell_id': ('cell_id', 'cellId'),
    'date': ('date', 'report_date', 'reportDate'),
    'venue': ('venue',),
    'meeting_type': ('meeting_type', 'meetingType'),
    'description': ('description',),
    'attendees': ('attendees',),
}
SESSION_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'username': ('username',),
    'login_time': ('login_time', 'loginTime'),
    'logout_time': ('logout_time', 'logoutTime'),
    'ip_address': ('ip_address', 'ipAddress'),
    'user_agent': ('user_agent', 'userAgent'),
    'active_ms': ('active_ms', 'activeMs'),
    'idle_ms': ('idle_ms', 'idleMs'),
}


def accepted_fields(aliases: dict[str, tuple[str, ...]]) -> set[str]:
    return {alias for names in aliases.values() for alias in names}


def changed_fields(
    payload: dict[str, object],
    normalized: dict[str, object],
    aliases: dict[str, tuple[str, ...]],
) -> dict[str, object]:
    return {
        field: normalized[field]
        for field, names in aliases.items()
        if any(name in payload for name in names)
    }
