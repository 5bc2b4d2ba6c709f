from marktree.config import Settings, load_settings


def _clear_env(monkeypatch):
    for name in (
        "MARKTREE_HISTORY_MAX_DEPTH",
        "MARKTREE_ICON_FETCH_JOBS",
        "MARKTREE_ICON_FETCH_TIMEOUT_S",
        "MARKTREE_ICON_FETCH_UA",
        "MARKTREE_ICON_DISCOVER_PAGE_LINK",
        "MARKTREE_DEFAULT_ROOT_TITLE",
        "MARKTREE_IMPORT_WRAPPER_TITLE",
        "MARKTREE_TOAST_TTL_S",
        "MARKTREE_LOG_LEVEL",
        "MARKTREE_NO_COLOR",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear_env(monkeypatch)
    s = Settings.from_env()
    assert s.history_max_depth == 50
    assert s.icon_fetch_jobs == 6
    assert s.icon_fetch_timeout_s == 10.0
    assert s.icon_discover_page_link is True
    assert s.default_root_title == "Bookmarks"
    assert s.import_wrapper_title == "Imported"
    assert s.toast_ttl_s == 3.0


def test_env_overrides(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("MARKTREE_ICON_FETCH_JOBS", "2")
    monkeypatch.setenv("MARKTREE_ICON_FETCH_TIMEOUT_S", "2.5")
    monkeypatch.setenv("MARKTREE_ICON_DISCOVER_PAGE_LINK", "off")
    monkeypatch.setenv("MARKTREE_NO_COLOR", "yes")
    s = Settings.from_env()
    assert s.icon_fetch_jobs == 2
    assert s.icon_fetch_timeout_s == 2.5
    assert s.icon_discover_page_link is False
    assert s.no_color is True


def test_bad_numbers_fall_back_to_defaults(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("MARKTREE_HISTORY_MAX_DEPTH", "lots")
    monkeypatch.setenv("MARKTREE_TOAST_TTL_S", "")
    s = Settings.from_env()
    assert s.history_max_depth == 50
    assert s.toast_ttl_s == 3.0


def test_yaml_file_overrides_env(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    monkeypatch.setenv("MARKTREE_ICON_FETCH_JOBS", "2")
    monkeypatch.setenv("MARKTREE_LOG_LEVEL", "DEBUG")
    cfg = tmp_path / "marktree.yaml"
    cfg.write_text("icon_fetch_jobs: 9\ndefault_root_title: Favorites\nunknown_key: 1\n", encoding="utf-8")

    s = load_settings(str(cfg))
    assert s.icon_fetch_jobs == 9
    assert s.default_root_title == "Favorites"
    assert s.log_level == "DEBUG"
    assert not hasattr(s, "unknown_key")


def test_empty_yaml_file_is_accepted(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("", encoding="utf-8")
    assert load_settings(str(cfg)) == Settings.from_env()
    assert load_settings(None) == Settings()
