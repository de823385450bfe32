"""Dashboard presentation settings and their key/value persistence.

Settings are loaded into one plain dict and passed to whatever needs them.
Storage goes through a small adapter with ``get``/``set``/``delete`` so the
sqlite table can be swapped for an in-memory store in tests.
"""

import json
import sqlite3
from typing import Protocol

SETTINGS_KEY = 'dashboard_settings'
THEMES = ('light', 'dark')
DEFAULT_PAGES = [
    {'id': '/', 'label': 'Dashboard', 'icon': 'fas fa-home', 'section': 'Main'},
    {'id': '/members', 'label': 'Members', 'icon': 'fas fa-users', 'section': 'Main'},
    {'id': '/first-timers', 'label': 'First-Timers', 'icon': 'fas fa-user-check', 'section': 'Main'},
    {'id': '/birthdays', 'label': 'Birthdays', 'icon': 'fas fa-birthday-cake', 'section': 'Main'},
    {'id': '/cells', 'label': 'All Cells', 'icon': 'fas fa-layer-group', 'section': 'Cell Groups'},
    {'id': '/notifications', 'label': 'Notifications', 'icon': 'fas fa-bell', 'section': 'Administrator'},
    {'id': '/page-management', 'label': 'Page Management', 'icon': 'fas fa-file-alt', 'section': 'Administrator'},
    {'id': '/access-management', 'label': 'Access Management', 'icon': 'fas fa-user-shield', 'section': 'Administrator'},
    {'id': '/sessions', 'label': 'Sessions', 'icon': 'fas fa-history', 'section': 'Administrator'},
    {'id': '/settings', 'label': 'Settings', 'icon': 'fas fa-cog', 'section': 'Administrator'},
]
DEFAULT_SETTINGS: dict[str, object] = {
    'theme': 'light',
    'logo_title': 'Christ Embassy',
    'logo_subtitle': 'Church Cell Data',
    'page_visibility': {},
    'page_meta': {},
    'section_visibility': {},
    'restricted_menus': {},
}


class KeyValueStore(Protocol):
    def get(self, key: str) -> object | None: ...

    def set(self, key: str, value: object) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> object | None:
        raw = self._values.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: object) -> None:
        self._values[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SqliteKeyValueStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def ensure_table(self) -> None:
        with sqlite3.connect(self.db_path) as connection:
            connection.execute(
                '''
                CREATE TABLE IF NOT EXISTS app_settings (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL
                )
                '''
            )
            connection.commit()

    def get(self, key: str) -> object | None:
        with sqlite3.connect(self.db_path) as connection:
            row = connection.execute(
                'SELECT value_json FROM app_settings WHERE key = ?',
                (key,),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError:
            return None

    def set(self, key: str, value: object) -> None:
        with sqlite3.connect(self.db_path) as connection:
            connection.execute(
                '''
                INSERT INTO app_settings (key, value_json)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json
                ''',
                (key, json.dumps(value)),
            )
            connection.commit()

    def delete(self, key: str) -> None:
        with sqlite3.connect(self.db_path) as connection:
            connection.execute('DELETE FROM app_settings WHERE key = ?', (key,))
            connection.commit()


def _bool_map(value: object) -> dict[str, bool]:
    if not isinstance(value, dict):
        return {}
    return {str(key): item for key, item in value.items() if isinstance(item, bool)}


def _page_meta(value: object) -> dict[str, dict[str, str]]:
    if not isinstance(value, dict):
        return {}
    meta: dict[str, dict[str, str]] = {}
    for page_id, entry in value.items():
        if not isinstance(entry, dict):
            continue
        cleaned = {
            field: str(entry[field]).strip()
            for field in ('label', 'icon')
            if isinstance(entry.get(field), str) and str(entry[field]).strip()
        }
        if cleaned:
            meta[str(page_id)] = cleaned
    return meta


def _restricted_menus(value: object) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    menus: dict[str, list[str]] = {}
    for username, pages in value.items():
        if not isinstance(pages, list):
            continue
        key = str(username).strip().lower()
        if key:
            menus[key] = sorted({str(page).strip() for page in pages if str(page).strip()})
    return menus


def normalize_dashboard_settings(raw: object) -> dict[str, object]:
    source = raw if isinstance(raw, dict) else {}
    theme = str(source.get('theme') or '').strip().lower()
    logo_title = str(source.get('logo_title') or '').strip()[:120]
    logo_subtitle = str(source.get('logo_subtitle') or '').strip()[:160]
    return {
        'theme': theme if theme in THEMES else DEFAULT_SETTINGS['theme'],
        'logo_title': logo_title or DEFAULT_SETTINGS['logo_title'],
        'logo_subtitle': logo_subtitle or DEFAULT_SETTINGS['logo_subtitle'],
        'page_visibility': _bool_map(source.get('page_visibility')),
        'page_meta': _page_meta(source.get('page_meta')),
        'section_visibility': _bool_map(source.get('section_visibility')),
        'restricted_menus': _restricted_menus(source.get('restricted_menus')),
    }


def load_dashboard_settings(store: KeyValueStore) -> dict[str, object]:
    return normalize_dashboard_settings(store.get(SETTINGS_KEY))


def save_dashboard_settings(store: KeyValueStore, updates: dict[str, object]) -> dict[str, object]:
    current = load_dashboard_settings(store)
    merged = {**current, **{key: value for key, value in updates.items() if key in DEFAULT_SETTINGS}}
    settings = normalize_dashboard_settings(merged)
    store.set(SETTINGS_KEY, settings)
    return settings


def navigation_for_user(settings: dict[str, object], username: str | None) -> list[dict[str, str]]:
    page_meta = settings.get('page_meta') or {}
    page_visibility = settings.get('page_visibility') or {}
    section_visibility = settings.get('section_visibility') or {}
    restricted = set((settings.get('restricted_menus') or {}).get(str(username or '').strip().lower(), []))

    pages: list[dict[str, str]] = []
    for page in DEFAULT_PAGES:
        page_id = page['id']
        if page_visibility.get(page_id) is False:
            continue
        if section_visibility.get(page['section']) is False:
            continue
        if page_id in restricted:
            continue
        overrides = page_meta.get(page_id, {})
        pages.append(
            {
                'id': page_id,
                'label': overrides.get('label') or page['label'],
                'icon': overrides.get('icon') or page['icon'],
                'section': page['section'],
            }
        )
    return pages
