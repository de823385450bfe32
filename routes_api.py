import csv
import io
import logging
import sqlite3

import member_service
import record_store
import route_paths
import session_risk_service
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from record_normalization import (
    CELL_FIELD_ALIASES,
    MEMBER_FIELD_ALIASES,
    REPORT_FIELD_ALIASES,
    SESSION_FIELD_ALIASES,
    accepted_fields,
    changed_fields,
    is_allowed_meeting_type,
    normalize_cell,
    normalize_member,
    normalize_report,
    normalize_session,
    parse_record_datetime,
    unknown_payload_fields,
)

logger = logging.getLogger(__name__)


async def _read_json_object(request: Request) -> dict[str, object]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='request body must be valid JSON') from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail='request body must be a JSON object')
    return payload


def _reject_unknown_fields(payload: dict[str, object], allowed: set[str]) -> None:
    unknown = unknown_payload_fields(payload, allowed)
    if unknown:
        raise HTTPException(status_code=400, detail=f'Unknown field(s): {", ".join(unknown)}')


def validate_report_fields(report: dict[str, object]) -> None:
    if not report.get('cell_id') or not report.get('date'):
        raise HTTPException(status_code=400, detail='cell_id and date are required')
    if parse_record_datetime(report.get('date')) is None:
        raise HTTPException(status_code=400, detail='date must be an ISO-8601 date or datetime')
    if not is_allowed_meeting_type(report.get('meeting_type')):
        raise HTTPException(status_code=400, detail='Invalid meeting type')


def create_api_router(*, deps: dict[str, object]) -> APIRouter:
    router = APIRouter()

    _db_path = deps['db_path']
    _utc_now_iso = deps['utc_now_iso']
    _utc_now = deps['utc_now']
    _enforce_request_size = deps['enforce_request_size']
    _default_body_limit_bytes = deps['default_body_limit_bytes']
    _import_body_limit_bytes = deps['import_body_limit_bytes']
    _report_body_limit_bytes = deps['report_body_limit_bytes']
    _stale_session_hours = deps['stale_session_hours']

    cell_fields = accepted_fields(CELL_FIELD_ALIASES)
    member_fields = accepted_fields(MEMBER_FIELD_ALIASES)
    report_fields = accepted_fields(REPORT_FIELD_ALIASES)
    report_update_fields = report_fields - {'cell_id', 'cellId'}
    session_fields = accepted_fields(SESSION_FIELD_ALIASES)

    def _require_cell(connection: sqlite3.Connection, cell_id: str | None) -> None:
        if cell_id and not record_store.cell_exists(connection, cell_id):
            raise HTTPException(status_code=404, detail='cell not found')

    @router.get(route_paths.HEALTH)
    def health() -> dict[str, str]:
        return {'status': 'ok'}

    # cells

    @router.get(route_paths.CELLS)
    def get_cells() -> list[dict[str, object]]:
        return record_store.list_cells(_db_path())

    @router.post(route_paths.CELLS)
    async def create_cell(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, cell_fields)
        cell = normalize_cell(payload)
        if not cell['name']:
            raise HTTPException(status_code=400, detail='name is required')
        created = record_store.insert_cell(_db_path(), cell, created_at=_utc_now_iso())
        logger.info('created cell %s (%s)', created['id'], created['name'])
        return created

    @router.put(route_paths.CELL_DETAIL)
    async def edit_cell(cell_id: str, request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, cell_fields)
        changes = changed_fields(payload, normalize_cell(payload), CELL_FIELD_ALIASES)
        if 'name' in changes and not changes['name']:
            raise HTTPException(status_code=400, detail='name cannot be empty')
        updated = record_store.update_cell(_db_path(), cell_id, changes)
        if updated is None:
            raise HTTPException(status_code=404, detail='cell not found')
        return updated

    @router.delete(route_paths.CELL_DETAIL)
    def remove_cell(cell_id: str) -> dict[str, bool]:
        if not record_store.delete_cell(_db_path(), cell_id):
            raise HTTPException(status_code=404, detail='cell not found')
        logger.info('deleted cell %s', cell_id)
        return {'ok': True}

    # members

    @router.get(route_paths.MEMBERS)
    def get_members() -> list[dict[str, object]]:
        return record_store.list_members(_db_path())

    @router.get(route_paths.MEMBERS_UNASSIGNED)
    def get_unassigned_members() -> list[dict[str, object]]:
        return member_service.unassigned_members(record_store.list_members(_db_path()))

    @router.post(route_paths.MEMBERS)
    async def create_member(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, member_fields)
        member = normalize_member(payload)
        if not member['name']:
            raise HTTPException(status_code=400, detail='name is required')
        with sqlite3.connect(_db_path()) as connection:
            _require_cell(connection, member['cell_id'])
        created = record_store.insert_member(_db_path(), member, created_at=_utc_now_iso())
        logger.info('created member %s', created['id'])
        return created

    @router.put(route_paths.MEMBER_DETAIL)
    async def edit_member(member_id: str, request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, member_fields)
        changes = changed_fields(payload, normalize_member(payload), MEMBER_FIELD_ALIASES)
        if 'name' in changes and not changes['name']:
            raise HTTPException(status_code=400, detail='name cannot be empty')
        with sqlite3.connect(_db_path()) as connection:
            _require_cell(connection, changes.get('cell_id'))
        updated = record_store.update_member(_db_path(), member_id, changes)
        if updated is None:
            raise HTTPException(status_code=404, detail='member not found')
        return updated

    @router.delete(route_paths.MEMBER_DETAIL)
    def remove_member(member_id: str) -> dict[str, bool]:
        if not record_store.delete_member(_db_path(), member_id):
            raise HTTPException(status_code=404, detail='member not found')
        logger.info('deleted member %s', member_id)
        return {'ok': True}

    @router.get(route_paths.MEMBER_ATTENDANCE)
    def get_member_attendance(member_id: str) -> dict[str, object]:
        return member_service.member_attendance_summary(member_id, record_store.list_reports(_db_path()))

    # reports

    @router.get(route_paths.REPORTS)
    def get_reports(cell_id: str | None = None) -> list[dict[str, object]]:
        return record_store.list_reports(_db_path(), cell_id=(cell_id or '').strip() or None)

    @router.post(route_paths.REPORTS)
    async def create_report(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _report_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, report_fields)
        report = normalize_report(payload)
        validate_report_fields(report)
        with sqlite3.connect(_db_path()) as connection:
            _require_cell(connection, str(report['cell_id']))
            created = record_store.insert_report(connection, report, created_at=_utc_now_iso())
            connection.commit()
        logger.info('created report %s for cell %s', created['id'], created['cell_id'])
        return created

    @router.post(route_paths.REPORTS_IMPORT)
    async def import_reports(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _import_body_limit_bytes)
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail='request body must be valid JSON') from exc
        items = payload.get('reports') if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise HTTPException(status_code=400, detail='reports must be a JSON array')

        imported: list[str] = []
        skipped: list[dict[str, object]] = []
        created_at = _utc_now_iso()
        with sqlite3.connect(_db_path()) as connection:
            for index, item in enumerate(items):
                report = normalize_report(item)
                try:
                    validate_report_fields(report)
                    _require_cell(connection, str(report['cell_id']))
                except HTTPException as exc:
                    skipped.append({'index': index, 'reason': exc.detail})
                    continue
                imported.append(str(record_store.insert_report(connection, report, created_at=created_at)['id']))
            connection.commit()
        if skipped:
            logger.warning('report import skipped %d of %d record(s)', len(skipped), len(items))
        logger.info('imported %d report(s)', len(imported))
        return {'imported': len(imported), 'ids': imported, 'skipped': skipped}

    @router.put(route_paths.REPORT_DETAIL)
    async def edit_report(report_id: str, request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _report_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, report_update_fields)
        changes = changed_fields(payload, normalize_report(payload), REPORT_FIELD_ALIASES)
        if 'date' in changes and parse_record_datetime(changes['date']) is None:
            raise HTTPException(status_code=400, detail='date must be an ISO-8601 date or datetime')
        if not is_allowed_meeting_type(changes.get('meeting_type')):
            raise HTTPException(status_code=400, detail='Invalid meeting type')
        updated = record_store.update_report(_db_path(), report_id, changes)
        if updated is None:
            raise HTTPException(status_code=404, detail='report not found')
        return updated

    @router.delete(route_paths.REPORT_DETAIL)
    def remove_report(report_id: str) -> dict[str, bool]:
        if not record_store.delete_report(_db_path(), report_id):
            raise HTTPException(status_code=404, detail='report not found')
        logger.info('deleted report %s', report_id)
        return {'ok': True}

    # sessions

    @router.post(route_paths.SESSIONS)
    async def record_session(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, session_fields)
        session = normalize_session(payload)
        if not session['username']:
            raise HTTPException(status_code=400, detail='username is required')
        if not session['login_time']:
            session['login_time'] = _utc_now_iso()
        return record_store.insert_session(_db_path(), session)

    @router.get(route_paths.SESSIONS)
    def get_sessions(search: str | None = None) -> list[dict[str, object]]:
        now = _utc_now()
        sessions = session_risk_service.sort_sessions_newest_first(
            session_risk_service.search_sessions(record_store.list_sessions(_db_path()), search)
        )
        return [
            session_risk_service.describe_session(session, now, stale_after_hours=_stale_session_hours)
            for session in sessions
        ]

    @router.get(route_paths.SESSIONS_EXPORT_CSV)
    def export_sessions_csv(search: str | None = None) -> Response:
        sessions = session_risk_service.search_sessions(record_store.list_sessions(_db_path()), search)
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerows(
            session_risk_service.sessions_csv_rows(sessions, _utc_now(), stale_after_hours=_stale_session_hours)
        )
        return Response(
            content=buffer.getvalue(),
            media_type='text/csv; charset=utf-8',
            headers={'Content-Disposition': 'attachment; filename="sessions.csv"'},
        )

    @router.put(route_paths.SESSION_END)
    def end_session(session_id: str) -> dict[str, bool]:
        ended = record_store.end_session(_db_path(), session_id, logout_time=_utc_now_iso())
        if ended is None:
            raise HTTPException(status_code=404, detail='session not found')
        if not ended:
            raise HTTPException(status_code=409, detail='session already ended')
        return {'ok': True}

    @router.put(route_paths.SESSION_METRICS)
    async def update_session_metrics(session_id: str, request: Request) -> dict[str, bool]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        payload = await _read_json_object(request)
        _reject_unknown_fields(payload, {'active_ms', 'activeMs', 'idle_ms', 'idleMs'})
        metrics = normalize_session(payload)
        updated = record_store.update_session_metrics(
            _db_path(),
            session_id,
            active_ms=metrics['active_ms'],
            idle_ms=metrics['idle_ms'],
            last_activity=_utc_now_iso(),
        )
        if not updated:
            raise HTTPException(status_code=404, detail='session not found')
        return {'ok': True}

    @router.delete(route_paths.SESSIONS)
    def clear_sessions() -> dict[str, object]:
        deleted = record_store.clear_sessions(_db_path())
        logger.info('cleared %d session(s)', deleted)
        return {'ok': True, 'deleted': deleted}

    return router
