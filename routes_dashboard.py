import logging
from datetime import datetime

import activity_service
import member_service
import record_store
import route_paths
import settings_store
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse

logger = logging.getLogger(__name__)


def build_dashboard_summary_core(
    *,
    cells: list[dict[str, object]],
    members: list[dict[str, object]],
    reports: list[dict[str, object]],
    now: datetime,
    activity_window_days: int,
) -> dict[str, int]:
    activity = activity_service.summarize_cell_activity_30d(
        cells,
        reports,
        now,
        window_days=activity_window_days,
    )
    return {
        'members': len(members),
        'unassigned_members': len(member_service.unassigned_members(members)),
        'cells': len(cells),
        'active_cells': activity['active'],
        'inactive_cells': activity['inactive'],
        'reports_this_month': len(activity_service.within_current_month(reports, now)),
    }


def render_dashboard_root(*, request: Request, notice: str | None, deps: dict[str, object]) -> HTMLResponse:
    _db_path = deps['db_path']
    _utc_now = deps['utc_now']
    _templates = deps['templates']
    _settings_store = deps['settings_store']
    _activity_window_days = deps['activity_window_days']
    _recent_report_window_days = deps['recent_report_window_days']

    now = _utc_now()
    db_path = _db_path()
    cells = record_store.list_cells(db_path)
    members = record_store.list_members(db_path)
    reports = record_store.list_reports(db_path)
    settings = settings_store.load_dashboard_settings(_settings_store())

    return _templates.TemplateResponse(
        request,
        'dashboard.html',
        {
            'settings': settings,
            'navigation': settings_store.navigation_for_user(settings, request.query_params.get('username')),
            'summary': build_dashboard_summary_core(
                cells=cells,
                members=members,
                reports=reports,
                now=now,
                activity_window_days=_activity_window_days,
            ),
            'cell_rows': activity_service.build_cell_status_rows(
                cells,
                members,
                reports,
                now,
                window_days=_activity_window_days,
            ),
            'recent_reports': member_service.recent_report_summaries(
                reports,
                cells,
                now,
                window_days=_recent_report_window_days,
            ),
            'notice': notice,
        },
    )


def create_dashboard_router(*, deps: dict[str, object]) -> APIRouter:
    router = APIRouter()

    _db_path = deps['db_path']
    _utc_now = deps['utc_now']
    _settings_store = deps['settings_store']
    _enforce_request_size = deps['enforce_request_size']
    _default_body_limit_bytes = deps['default_body_limit_bytes']
    _activity_window_days = deps['activity_window_days']
    _recent_report_window_days = deps['recent_report_window_days']

    @router.get(route_paths.DASHBOARD_ROOT, response_class=HTMLResponse)
    def dashboard_root(request: Request, notice: str | None = None) -> HTMLResponse:
        return render_dashboard_root(request=request, notice=notice, deps=deps)

    @router.get(route_paths.DASHBOARD_SUMMARY)
    def dashboard_summary() -> dict[str, int]:
        db_path = _db_path()
        return build_dashboard_summary_core(
            cells=record_store.list_cells(db_path),
            members=record_store.list_members(db_path),
            reports=record_store.list_reports(db_path),
            now=_utc_now(),
            activity_window_days=_activity_window_days,
        )

    @router.get(route_paths.DASHBOARD_CELLS)
    def dashboard_cells() -> list[dict[str, object]]:
        db_path = _db_path()
        return activity_service.build_cell_status_rows(
            record_store.list_cells(db_path),
            record_store.list_members(db_path),
            record_store.list_reports(db_path),
            _utc_now(),
            window_days=_activity_window_days,
        )

    @router.get(route_paths.DASHBOARD_RECENT_REPORTS)
    def dashboard_recent_reports() -> list[dict[str, object]]:
        db_path = _db_path()
        return member_service.recent_report_summaries(
            record_store.list_reports(db_path),
            record_store.list_cells(db_path),
            _utc_now(),
            window_days=_recent_report_window_days,
        )

    @router.get(route_paths.BIRTHDAYS)
    def birthdays(month: int | None = None) -> dict[str, object]:
        selected_month = month if month is not None else _utc_now().month
        if selected_month < 1 or selected_month > 12:
            raise HTTPException(status_code=400, detail='month must be between 1 and 12')
        return {
            'month': selected_month,
            'members': member_service.birthdays_in_month(record_store.list_members(_db_path()), selected_month),
        }

    @router.get(route_paths.SETTINGS)
    def get_settings() -> dict[str, object]:
        return settings_store.load_dashboard_settings(_settings_store())

    @router.put(route_paths.SETTINGS)
    async def update_settings(request: Request) -> dict[str, object]:
        await _enforce_request_size(request, _default_body_limit_bytes)
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail='request body must be valid JSON') from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail='request body must be a JSON object')
        unknown = sorted(key for key in payload if key not in settings_store.DEFAULT_SETTINGS)
        if unknown:
            raise HTTPException(status_code=400, detail=f'Unknown field(s): {", ".join(unknown)}')
        settings = settings_store.save_dashboard_settings(_settings_store(), payload)
        logger.info('dashboard settings updated: %s', ', '.join(sorted(payload)) or 'no fields')
        return settings

    @router.get(route_paths.NAVIGATION)
    def navigation(username: str | None = None) -> list[dict[str, str]]:
        settings = settings_store.load_dashboard_settings(_settings_store())
        return settings_store.navigation_for_user(settings, username)

    return router
