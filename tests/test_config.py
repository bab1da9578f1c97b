from pathlib import Path

import pytest

from markhive.config import Settings, load_settings


def test_defaults_put_database_under_home(tmp_path: Path):
    s = Settings.from_env()
    assert s.db_path == str(tmp_path / "home" / ".local" / "share" / "markhive" / "bookmarks.sqlite")
    assert s.busy_timeout_ms == 5000
    assert s.reject_cycles is True
    assert s.transactional_cascade is True
    assert s.log_file is None


def test_env_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MARKHIVE_DB_PATH", str(tmp_path / "db.sqlite"))
    monkeypatch.setenv("MARKHIVE_BUSY_TIMEOUT_MS", "250")
    monkeypatch.setenv("MARKHIVE_REJECT_CYCLES", "0")
    monkeypatch.setenv("MARKHIVE_TRANSACTIONAL_CASCADE", "no")
    monkeypatch.setenv("MARKHIVE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("MARKHIVE_NO_COLOR", "yes")
    monkeypatch.setenv("MARKHIVE_LOG_FILE", str(tmp_path / "markhive.log"))

    s = Settings.from_env()
    assert s.db_path == str(tmp_path / "db.sqlite")
    assert s.busy_timeout_ms == 250
    assert s.reject_cycles is False
    assert s.transactional_cascade is False
    assert s.log_level == "DEBUG"
    assert s.no_color is True
    assert s.log_file == str(tmp_path / "markhive.log")


def test_unparseable_int_env_keeps_default(monkeypatch):
    monkeypatch.setenv("MARKHIVE_BUSY_TIMEOUT_MS", "soon")
    assert Settings.from_env().busy_timeout_ms == 5000


def test_yaml_file_overrides_env_and_ignores_unknown_keys(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MARKHIVE_LOG_LEVEL", "WARNING")
    cfg = tmp_path / "markhive.yaml"
    cfg.write_text(
        "db_path: ~/bookmarks/main.sqlite\n"
        "reject_cycles: false\n"
        "busy_timeout_ms: 100\n"
        "not_a_setting: 1\n",
        encoding="utf-8",
    )

    s = load_settings(str(cfg))
    assert s.db_path == str(tmp_path / "home" / "bookmarks" / "main.sqlite")
    assert s.reject_cycles is False
    assert s.busy_timeout_ms == 100
    assert s.log_level == "WARNING"
    assert not hasattr(s, "not_a_setting")


def test_yaml_file_must_be_a_mapping(tmp_path: Path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Settings.from_file(cfg)


def test_empty_yaml_file_uses_env(tmp_path: Path):
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("", encoding="utf-8")
    assert Settings.from_file(cfg) == Settings.from_env()


def test_load_settings_without_file_reads_env(monkeypatch):
    monkeypatch.setenv("MARKHIVE_REJECT_CYCLES", "false")
    assert load_settings(None).reject_cycles is False


def test_yaml_values_are_coerced_to_setting_types(tmp_path: Path):
    cfg = tmp_path / "quoted.yaml"
    cfg.write_text(
        'busy_timeout_ms: "250"\n'
        'reject_cycles: "no"\n'
        "no_color: 1\n"
        "log_level: 10\n"
        "log_file: null\n",
        encoding="utf-8",
    )
    s = Settings.from_file(cfg)
    assert s.busy_timeout_ms == 250
    assert s.reject_cycles is False
    assert s.no_color is True
    assert s.log_level == "10"
    assert s.log_file is None


@pytest.mark.parametrize(
    "line",
    [
        "busy_timeout_ms: abc\n",
        "busy_timeout_ms: true\n",
        "transactional_cascade: maybe\n",
        "db_path:\n",
        "log_level: [DEBUG]\n",
    ],
)
def test_yaml_values_of_the_wrong_type_are_rejected(tmp_path: Path, line):
    cfg = tmp_path / "wrong.yaml"
    cfg.write_text(line, encoding="utf-8")
    with pytest.raises(ValueError):
        Settings.from_file(cfg)
