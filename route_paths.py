HEALTH = '/health'
DASHBOARD_ROOT = '/'

CELLS = '/api/cells'
CELL_DETAIL = '/api/cells/{cell_id}'

MEMBERS = '/api/members'
MEMBERS_UNASSIGNED = '/api/members/unassigned'
MEMBER_DETAIL = '/api/members/{member_id}'
MEMBER_ATTENDANCE = '/api/members/{member_id}/attendance'

REPORTS = '/api/reports'
REPORTS_IMPORT = '/api/reports/import'
REPORT_DETAIL = '/api/reports/{report_id}'

SESSIONS = '/api/sessions'
SESSIONS_EXPORT_CSV = '/api/sessions/export.csv'
SESSION_END = '/api/sessions/{session_id}/end'
SESSION_METRICS = '/api/sessions/{session_id}/metrics'

DASHBOARD_SUMMARY = '/api/dashboard/summary'
DASHBOARD_CELLS = '/api/dashboard/cells'
DASHBOARD_RECENT_REPORTS = '/api/dashboard/recent-reports'
BIRTHDAYS = '/api/birthdays'

SETTINGS = '/api/settings'
NAVIGATION = '/api/navigation'
