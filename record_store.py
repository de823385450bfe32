import json
import sqlite3
import uuid

CELL_COLUMNS = ('id', 'name', 'venue', 'day', 'time', 'description')
MEMBER_COLUMNS = (
    'id', 'cell_id', 'title', 'name', 'gender', 'mobile', 'email', 'role',
    'department_id', 'dob_day', 'dob_month', 'joined_date',
)
REPORT_COLUMNS = ('id', 'cell_id', 'date', 'venue', 'meeting_type', 'description', 'attendees_json')
SESSION_COLUMNS = (
    'id', 'username', 'login_time', 'logout_time', 'ip_address', 'user_agent',
    'active_ms', 'idle_ms', 'last_activity',
)


def new_id() -> str:
    return str(uuid.uuid4())


def initialize_schema(db_path: str) -> None:
    with sqlite3.connect(db_path) as connection:
        connection.execute(
            '''
            CREATE TABLE IF NOT EXISTS cells (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                venue TEXT NOT NULL DEFAULT '',
                day TEXT NOT NULL DEFAULT '',
                time TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
            '''
        )
        connection.execute(
            '''
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                cell_id TEXT,
                title TEXT NOT NULL DEFAULT '',
                name TEXT NOT NULL,
                gender TEXT NOT NULL DEFAULT '',
                mobile TEXT NOT NULL DEFAULT '',
                email TEXT NOT NULL DEFAULT '',
                role TEXT NOT NULL DEFAULT '',
                department_id TEXT,
                dob_day INTEGER,
                dob_month INTEGER,
                joined_date TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
            '''
        )
        connection.execute(
            '''
            CREATE TABLE IF NOT EXISTS reports (
                id TEXT PRIMARY KEY,
                cell_id TEXT NOT NULL,
                date TEXT NOT NULL,
                venue TEXT NOT NULL DEFAULT '',
                meeting_type TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                attendees_json TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL
            )
            '''
        )
        connection.execute('CREATE INDEX IF NOT EXISTS idx_reports_cell_id ON reports(cell_id)')
        connection.execute(
            '''
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                login_time TEXT NOT NULL,
                logout_time TEXT,
                ip_address TEXT NOT NULL DEFAULT '',
                user_agent TEXT NOT NULL DEFAULT '',
                active_ms INTEGER,
                idle_ms INTEGER,
                last_activity TEXT
            )
            '''
        )
        connection.commit()


def _cell_from_row(row: tuple[object, ...]) -> dict[str, object]:
    return dict(zip(CELL_COLUMNS, row))


def _member_from_row(row: tuple[object, ...]) -> dict[str, object]:
    return dict(zip(MEMBER_COLUMNS, row))


def _report_from_row(row: tuple[object, ...]) -> dict[str, object]:
    report = dict(zip(REPORT_COLUMNS, row))
    raw_attendees = report.pop('attendees_json')
    try:
        attendees = json.loads(str(raw_attendees or '[]'))
    except ValueError:
        attendees = []
    report['attendees'] = attendees if isinstance(attendees, list) else []
    return report


def _session_from_row(row: tuple[object, ...]) -> dict[str, object]:
    return dict(zip(SESSION_COLUMNS, row))


def cell_exists(connection: sqlite3.Connection, cell_id: str) -> bool:
    row = connection.execute('SELECT id FROM cells WHERE id = ?', (cell_id,)).fetchone()
    return row is not None


def list_cells(db_path: str) -> list[dict[str, object]]:
    with sqlite3.connect(db_path) as connection:
        rows = connection.execute(
            f'SELECT {", ".join(CELL_COLUMNS)} FROM cells ORDER BY created_at, name'
        ).fetchall()
    return [_cell_from_row(row) for row in rows]


def get_cell(db_path: str, cell_id: str) -> dict[str, object] | None:
    with sqlite3.connect(db_path) as connection:
        row = connection.execute(
            f'SELECT {", ".join(CELL_COLUMNS)} FROM cells WHERE id = ?',
            (cell_id,),
        ).fetchone()
    return _cell_from_row(row) if row is not None else None


def insert_cell(db_path: str, cell: dict[str, object], *, created_at: str) -> dict[str, object]:
    record = {**cell, 'id': new_id()}
    with sqlite3.connect(db_path) as connection:
        connection.execute(
            '''
            INSERT INTO cells (id, name, venue, day, time, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ''',
            (
                record['id'],
                record['name'],
                record['venue'],
                record['day'],
                record['time'],
                record['description'],
                created_at,
            ),
        )
        connection.commit()
    return {column: record.get(column) for column in CELL_COLUMNS}


def update_cell(db_path: str, cell_id: str, changes: dict[str, object]) -> dict[str, object] | None:
    fields = [column for column in CELL_COLUMNS if column != 'id' and column in changes]
    with sqlite3.connect(db_path) as connection:
        if not cell_exists(connection, cell_id):
            return None
        if fields:
            assignments = ', '.join(f'{column} = ?' for column in fields)
            connection.execute(
                f'UPDATE cells SET {assignments} WHERE id = ?',
                [changes[column] for column in fields] + [cell_id],
            )
            connection.commit()
    return get_cell(db_path, cell_id)


def delete_cell(db_path: str, cell_id: str) -> bool:
    with sqlite3.connect(db_path) as connection:
        if not cell_exists(connection, cell_id):
            return False
        connection.execute('UPDATE members SET cell_id = NULL WHERE cell_id = ?', (cell_id,))
        connection.execute('DELETE FROM cells WHERE id = ?', (cell_id,))
        connection.commit()
    return True


def list_members(db_path: str) -> list[dict[str, object]]:
    with sqlite3.connect(db_path) as connection:
        rows = connection.execute(
            f'SELECT {", ".join(MEMBER_COLUMNS)} FROM members ORDER BY created_at, name'
        ).fetchall()
    return [_member_from_row(row) for row in rows]


def get_member(db_path: str, member_id: str) -> dict[str, object] | None:
    with sqlite3.connect(db_path) as connection:
        row = connection.execute(
            f'SELECT {", ".join(MEMBER_COLUMNS)} FROM members WHERE id = ?',
            (member_id,),
        ).fetchone()
    return _member_from_row(row) if row is not None else None


def insert_member(db_path: str, member: dict[str, object], *, created_at: str) -> dict[str, object]:
    record = {**member, 'id': new_id()}
    columns = list(MEMBER_COLUMNS) + ['created_at']
    with sqlite3.connect(db_path) as connection:
        connection.execute(
            f'INSERT INTO members ({", ".join(columns)}) VALUES ({", ".join("?" for _ in columns)})',
            [record.get(column) for column in MEMBER_COLUMNS] + [created_at],
        )
        connection.commit()
    return {column: record.get(column) for column in MEMBER_COLUMNS}


def update_member(db_path: str, member_id: str, changes: dict[str, object]) -> dict[str, object] | None:
    fields = [column for column in MEMBER_COLUMNS if column != 'id' and column in changes]
    with sqlite3.connect(db_path) as connection:
        row = connection.execute('SELECT id FROM members WHERE id = ?', (member_id,)).fetchone()
        if row is None:
            return None
        if fields:
            assignments = ', '.join(f'{column} = ?' for column in fields)
            connection.execute(
                f'UPDATE members SET {assignments} WHERE id = ?',
                [changes[column] for column in fields] + [member_id],
            )
            connection.commit()
    return get_member(db_path, member_id)


def delete_member(db_path: str, member_id: str) -> bool:
    with sqlite3.connect(db_path) as connection:
        cursor = connection.execute('DELETE FROM members WHERE id = ?', (member_id,))
        connection.commit()
    return cursor.rowcount > 0


def list_reports(db_path: str, cell_id: str | None = None) -> list[dict[str, object]]:
    query = f'SELECT {", ".join(REPORT_COLUMNS)} FROM reports'
    params: list[object] = []
    if cell_id:
        query += ' WHERE cell_id = ?'
        params.append(cell_id)
    query += ' ORDER BY date DESC'
    with sqlite3.connect(db_path) as connection:
        rows = connection.execute(query, params).fetchall()
    return [_report_from_row(row) for row in rows]


def get_report(db_path: str, report_id: str) -> dict[str, object] | None:
    with sqlite3.connect(db_path) as connection:
        row = connection.execute(
            f'SELECT {", ".join(REPORT_COLUMNS)} FROM reports WHERE id = ?',
            (report_id,),
        ).fetchone()
    return _report_from_row(row) if row is not None else None


def insert_report(
    connection: sqlite3.Connection,
    report: dict[str, object],
    *,
    created_at: str,
) -> dict[str, object]:
    record = {**report, 'id': new_id()}
    connection.execute(
        '''
        INSERT INTO reports (id, cell_id, date, venue, meeting_type, description, attendees_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''',
        (
            record['id'],
            record['cell_id'],
            record['date'],
            record['venue'],
            record['meeting_type'],
            record['description'],
            json.dumps(record['attendees']),
            created_at,
        ),
    )
    return {
        'id': record['id'],
        'cell_id': record['cell_id'],
        'date': record['date'],
        'venue': record['venue'],
        'meeting_type': record['meeting_type'],
        'description': record['description'],
        'attendees': record['attendees'],
    }


def update_report(db_path: str, report_id: str, changes: dict[str, object]) -> dict[str, object] | None:
    fields = [column for column in ('date', 'venue', 'meeting_type', 'description') if column in changes]
    values = [changes[column] for column in fields]
    if 'attendees' in changes:
        fields.append('attendees_json')
        values.append(json.dumps(changes['attendees']))
    with sqlite3.connect(db_path) as connection:
        row = connection.execute('SELECT id FROM reports WHERE id = ?', (report_id,)).fetchone()
        if row is None:
            return None
        if fields:
            assignments = ', '.join(f'{column} = ?' for column in fields)
            connection.execute(f'UPDATE reports SET {assignments} WHERE id = ?', values + [report_id])
            connection.commit()
    return get_report(db_path, report_id)


def delete_report(db_path: str, report_id: str) -> bool:
    with sqlite3.connect(db_path) as connection:
        cursor = connection.execute('DELETE FROM reports WHERE id = ?', (report_id,))
        connection.commit()
    return cursor.rowcount > 0


def list_sessions(db_path: str) -> list[dict[str, object]]:
    with sqlite3.connect(db_path) as connection:
        rows = connection.execute(
            f'SELECT {", ".join(SESSION_COLUMNS)} FROM sessions ORDER BY login_time DESC'
        ).fetchall()
    return [_session_from_row(row) for row in rows]


def insert_session(db_path: str, session: dict[str, object]) -> dict[str, object]:
    record = {**session, 'id': new_id()}
    with sqlite3.connect(db_path) as connection:
        connection.execute(
            f'INSERT INTO sessions ({", ".join(SESSION_COLUMNS)}) VALUES ({", ".join("?" for _ in SESSION_COLUMNS)})',
            [record.get(column) for column in SESSION_COLUMNS],
        )
        connection.commit()
    return {column: record.get(column) for column in SESSION_COLUMNS}


def end_session(db_path: str, session_id: str, *, logout_time: str) -> bool | None:
    """Stamp the first logout only. None when the session is unknown, False when it already ended."""
    with sqlite3.connect(db_path) as connection:
        row = connection.execute('SELECT logout_time FROM sessions WHERE id = ?', (session_id,)).fetchone()
        if row is None:
            return None
        cursor = connection.execute(
            'UPDATE sessions SET logout_time = ? WHERE id = ? AND logout_time IS NULL',
            (logout_time, session_id),
        )
        connection.commit()
    return cursor.rowcount > 0


def update_session_metrics(
    db_path: str,
    session_id: str,
    *,
    active_ms: int | None,
    idle_ms: int | None,
    last_activity: str,
) -> bool:
    with sqlite3.connect(db_path) as connection:
        cursor = connection.execute(
            '''
            UPDATE sessions
            SET idle_ms = COALESCE(?, idle_ms),
                active_ms = COALESCE(?, active_ms),
                last_activity = ?
            WHERE id = ?
            ''',
            (idle_ms, active_ms, last_activity, session_id),
        )
        connection.commit()
    return cursor.rowcount > 0


def clear_sessions(db_path: str) -> int:
    with sqlite3.connect(db_path) as connection:
        cursor = connection.execute('DELETE FROM sessions')
        connection.commit()
    return cursor.rowcount
