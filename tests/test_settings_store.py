import settings_store


def test_load_returns_defaults_for_empty_store():
    store = settings_store.MemoryKeyValueStore()
    settings = settings_store.load_dashboard_settings(store)
    assert settings['theme'] == 'light'
    assert settings['logo_title'] == 'Christ Embassy'
    assert settings['restricted_menus'] == {}


def test_save_merges_and_normalizes_values():
    store = settings_store.MemoryKeyValueStore()
    settings_store.save_dashboard_settings(store, {'theme': 'DARK', 'logo_title': '  Grace Chapel '})
    saved = settings_store.save_dashboard_settings(
        store,
        {
            'theme': 'neon',
            'page_visibility': {'/sessions': False, '/members': 'no'},
            'restricted_menus': {' Grace ': ['/settings', '/settings', ''], 'bob': 'all'},
            'ignored': True,
        },
    )
    assert saved['theme'] == 'light'
    assert saved['logo_title'] == 'Grace Chapel'
    assert saved['page_visibility'] == {'/sessions': False}
    assert saved['restricted_menus'] == {'grace': ['/settings']}
    assert 'ignored' not in saved
    assert settings_store.load_dashboard_settings(store) == saved


def test_sqlite_store_round_trips_and_deletes(tmp_path):
    store = settings_store.SqliteKeyValueStore(str(tmp_path / 'settings.db'))
    store.ensure_table()
    assert store.get('missing') is None
    store.set('k', {'a': 1})
    store.set('k', {'a': 2})
    assert store.get('k') == {'a': 2}
    store.delete('k')
    assert store.get('k') is None


def test_navigation_applies_visibility_meta_and_user_restrictions():
    settings = settings_store.normalize_dashboard_settings(
        {
            'page_visibility': {'/first-timers': False},
            'section_visibility': {'Administrator': False},
            'page_meta': {'/cells': {'label': 'Cell Groups', 'icon': 7}},
            'restricted_menus': {'usher': ['/birthdays']},
        }
    )
    pages = settings_store.navigation_for_user(settings, 'Usher')
    assert [page['id'] for page in pages] == ['/', '/members', '/cells']
    cells_page = pages[-1]
    assert cells_page['label'] == 'Cell Groups'
    assert cells_page['icon'] == 'fas fa-layer-group'

    admin_pages = settings_store.navigation_for_user(settings, None)
    assert '/birthdays' in [page['id'] for page in admin_pages]
