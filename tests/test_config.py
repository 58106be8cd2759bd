"""Tests für das Konfigurationssystem (ContestConfig, Defaults, YAML-Manager)."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.defaults import (
    DEFAULT_GRADES,
    DEFAULT_SUBJECTS,
    TWO_GRADE_SUBJECTS,
    default_classes,
    default_contest_config,
)
from config.manager import ConfigManager, StaticSettings
from config.schema import ContestConfig, DrawRules, SyncConfig


# ─── DEFAULT-KONFIGURATION ────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_default_lists(self):
        """Default-Fächer und -Khối sind vollständig."""
        config = default_contest_config()
        assert config.subjects == DEFAULT_SUBJECTS
        assert config.grades == ["Khối 6", "Khối 7", "Khối 8", "Khối 9"]
        assert len(config.subjects) == 12

    def test_every_default_class_has_known_grade(self):
        for c in default_classes():
            assert c.grade in DEFAULT_GRADES

    def test_two_grade_subjects(self):
        config = default_contest_config()
        assert config.rules.two_grade_subjects == TWO_GRADE_SUBJECTS
        assert config.rules.requires_two_grades(" tin học ")
        assert not config.rules.requires_two_grades("Toán")
        assert not config.rules.requires_two_grades(None)

    def test_sync_disabled_by_default(self):
        assert default_contest_config().sync.enabled is False
        assert SyncConfig(script_url="https://script.example/exec").enabled


# ─── VALIDIERUNG ──────────────────────────────────────────────────────────────

class TestValidation:
    def test_names_are_deduped(self):
        config = ContestConfig(subjects=["Toán", " Toán ", "", "Ngữ Văn"], grades=["Khối 6"])
        assert config.subjects == ["Toán", "Ngữ Văn"]

    def test_lock_timeout_positive(self):
        with pytest.raises(ValidationError):
            DrawRules(lock_timeout_seconds=0)

    def test_timeout_upper_bound(self):
        with pytest.raises(ValidationError):
            SyncConfig(timeout_seconds=500)


# ─── BEARBEITUNG ──────────────────────────────────────────────────────────────

class TestEditing:
    def test_remove_grade_drops_classes(self):
        """Entfernen eines Khối entfernt alle zugehörigen Klassen."""
        config = default_contest_config().without_grade("Khối 6")
        assert "Khối 6" not in config.grades
        assert config.classes_for_grade("Khối 6") == []
        assert config.classes_for_grade("Khối 7")

    def test_add_class_ignores_duplicates(self):
        config = default_contest_config()
        same = config.with_class("Khối 6", "6A1")
        assert len(same.classes) == len(config.classes)

    def test_add_class_unique_id(self):
        config = default_contest_config().with_class("Khối 7", "6A1")
        ids = [c.id for c in config.classes]
        assert len(ids) == len(set(ids))
        assert "c-6a1-2" in ids

    def test_with_subject_returns_copy(self):
        config = default_contest_config()
        updated = config.with_subject("Tiếng Pháp")
        assert "Tiếng Pháp" in updated.subjects
        assert "Tiếng Pháp" not in config.subjects


# ─── MANAGER ──────────────────────────────────────────────────────────────────

class TestConfigManager:
    def test_save_and_load_roundtrip(self, tmp_path):
        """YAML-Roundtrip erhält alle Werte."""
        path = tmp_path / "contest.yaml"
        mgr = ConfigManager(path)
        assert mgr.first_run_check()

        config = default_contest_config().with_class("Khối 9", "9A2")
        config = config.model_copy(update={
            "sync": SyncConfig(script_url="https://script.example/exec", mirror_draws=False),
        })
        mgr.save(config, quiet=True)

        assert not mgr.first_run_check()
        loaded = mgr.load()
        assert loaded == config

    def test_yaml_has_section_comments(self, tmp_path):
        path = tmp_path / "contest.yaml"
        ConfigManager(path).save(default_contest_config(), quiet=True)
        text = path.read_text(encoding="utf-8")
        assert "Bốc thăm tiết dạy" in text
        assert "─── Lớp ───" in text

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError) as exc:
            ConfigManager(tmp_path / "nope.yaml").load()
        assert "lesson-draw setup" in str(exc.value)

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("subjects: 5\n", encoding="utf-8")
        with pytest.raises(ValueError):
            ConfigManager(path).load()

    def test_static_settings(self):
        config = default_contest_config()
        assert StaticSettings(config).load() is config
