"""
Tests for the environment persistence manager.
"""

import subprocess
from pathlib import Path

import pytest

from wizardplane.core.errors import InvalidArgument, PersistenceFailed
from wizardplane.core.models.environment import EnvSource
from wizardplane.core.persistence import shell_config
from wizardplane.core.persistence.shell_config import ShellConfigStore, marker_lines
from wizardplane.core.services.env_manager import EnvironmentManager

BEGIN, END = marker_lines()


@pytest.fixture
def store(home: Path) -> ShellConfigStore:
    return ShellConfigStore(home)


@pytest.fixture
def manager(store, environ, reload_calls) -> EnvironmentManager:
    return EnvironmentManager(store, environ=environ, reloader=reload_calls.append)


class _FlakyStore(ShellConfigStore):
    """Fails every mutation of one file name."""

    def __init__(self, home: Path, broken: str):
        super().__init__(home)
        self.broken = broken

    def mutate(self, path, transform):
        if path.name == self.broken:
            raise PermissionError(f"read-only: {path}")
        return super().mutate(path, transform)


# ── get ──────────────────────────────────────────────────────────────


class TestGet:
    def test_process_value_wins(self, manager, home, environ):
        (home / ".zshrc").write_text('export A="from-file"\n')
        environ["A"] = "from-process"
        var = manager.get(["A"])["A"]
        assert var.value == "from-process"
        assert var.source is EnvSource.PROCESS
        assert var.path is None

    def test_empty_process_value_falls_through(self, manager, home, environ):
        (home / ".bashrc").write_text('export A="from-file"\n')
        environ["A"] = ""
        var = manager.get(["A"])["A"]
        assert var.source is EnvSource.SHELL_CONFIG_FILE
        assert var.path == str(home / ".bashrc")

    def test_first_candidate_file_wins(self, manager, home):
        (home / ".profile").write_text("export A=profile\n")
        (home / ".bashrc").write_text("export A=bashrc\n")
        assert manager.get(["A"])["A"].value == "bashrc"

    def test_missing_key_is_none(self, manager):
        assert manager.get(["NOPE"]) == {"NOPE": None}

    def test_invalid_key(self, manager):
        with pytest.raises(InvalidArgument):
            manager.get(["not valid"])

    def test_non_utf8_file_does_not_hide_others(self, manager, home):
        (home / ".zshrc").write_bytes(b"# caf\xe9\n")
        (home / ".bashrc").write_text('export FOO="bar"\n')
        var = manager.get(["FOO"])["FOO"]
        assert var.value == "bar"
        assert var.path == str(home / ".bashrc")


# ── set ──────────────────────────────────────────────────────────────


class TestSet:
    def test_writes_process_and_file(self, manager, home, environ, reload_calls):
        result = manager.set({"ANTHROPIC_BASE_URL": "https://api.example.com"})
        assert environ["ANTHROPIC_BASE_URL"] == "https://api.example.com"
        assert result.target == str(home / ".zshrc")
        assert result.appended == ["ANTHROPIC_BASE_URL"]
        assert result.reloaded is True
        assert result.warning is None
        assert reload_calls == [home / ".zshrc"]
        assert (home / ".zshrc").read_text() == (
            f'{BEGIN}\nexport ANTHROPIC_BASE_URL="https://api.example.com"\n{END}\n'
        )

    def test_idempotent(self, manager, home):
        manager.set({"A": "1", "B": "two words"})
        first = (home / ".zshrc").read_bytes()
        result = manager.set({"A": "1", "B": "two words"})
        assert (home / ".zshrc").read_bytes() == first
        assert result.updated == ["A", "B"]
        assert result.appended == []

    def test_update_in_place(self, manager, home):
        rc = home / ".bashrc"
        rc.write_text('# mine\nexport A="old"\nalias g=git\n')
        result = manager.set({"A": "new"})
        assert result.target == str(rc)
        assert result.updated == ["A"]
        assert rc.read_text() == '# mine\nexport A="new"\nalias g=git\n'

    def test_target_preference(self, manager, home):
        (home / ".bash_profile").write_text("")
        (home / ".bashrc").write_text("")
        assert manager.choose_target() == home / ".bashrc"
        (home / ".zshrc").write_text("")
        assert manager.choose_target() == home / ".zshrc"

    def test_login_shell_bash(self, store, environ):
        mgr = EnvironmentManager(store, environ=environ, reloader=None, login_shell="/usr/bin/bash")
        assert mgr.choose_target() == store.home / ".bashrc"

    def test_unknown_login_shell(self, store, environ):
        mgr = EnvironmentManager(store, environ=environ, reloader=None, login_shell="/bin/fish")
        assert mgr.choose_target() == store.home / ".zshrc"

    def test_reload_failure_is_a_warning(self, store, environ, home):
        def broken(path):
            raise subprocess.CalledProcessError(1, ["zsh"])

        mgr = EnvironmentManager(store, environ=environ, reloader=broken)
        result = mgr.set({"A": "1"})
        assert result.reloaded is False
        assert result.warning.kind == "PersistenceDegraded"
        assert result.warning.details["path"] == str(home / ".zshrc")
        assert 'export A="1"' in (home / ".zshrc").read_text()
        assert environ["A"] == "1"

    def test_write_failure(self, manager, monkeypatch):
        def fail(path, content):
            raise OSError("disk full")

        monkeypatch.setattr(shell_config, "write_atomic", fail)
        with pytest.raises(PersistenceFailed) as exc:
            manager.set({"A": "1"})
        assert "disk full" in exc.value.message

    def test_non_utf8_target_keeps_its_bytes(self, manager, home):
        rc = home / ".zshrc"
        rc.write_bytes(b"# caf\xe9\r\nalias g=git\r\n")
        result = manager.set({"A": "1"})
        assert result.target == str(rc)
        assert rc.read_bytes() == (
            b"# caf\xe9\r\nalias g=git\r\n\r\n"
            + f'{BEGIN}\r\nexport A="1"\r\n{END}\r\n'.encode()
        )

    def test_unencodable_value_is_persistence_failure(self, manager, home):
        with pytest.raises(PersistenceFailed):
            manager.set({"A": "\ud800"})
        assert not (home / ".zshrc").exists()

    @pytest.mark.parametrize("variables", [
        {"1BAD": "x"},
        {"A-B": "x"},
        {"A": "line1\nline2"},
        {},
    ])
    def test_invalid_input_changes_nothing(self, manager, home, environ, variables):
        with pytest.raises(InvalidArgument):
            manager.set(variables)
        assert environ == {}
        assert not (home / ".zshrc").exists()


# ── remove ───────────────────────────────────────────────────────────


class TestRemove:
    def test_removes_everywhere(self, manager, home, environ):
        environ["A"] = "1"
        (home / ".zshrc").write_text(f'{BEGIN}\nexport A="1"\n{END}\n')
        (home / ".profile").write_text('echo hi\nexport A=legacy\n')

        result = manager.remove(["A"])
        assert "A" not in environ
        assert result.removed_from == [str(home / ".zshrc"), str(home / ".profile")]
        assert (home / ".zshrc").read_text() == ""
        assert (home / ".profile").read_text() == "echo hi\n"
        assert manager.get(["A"]) == {"A": None}

    def test_absent_key_is_noop(self, manager, home):
        (home / ".bashrc").write_text("echo hi\n")
        result = manager.remove(["A"])
        assert result.removed_from == []
        assert result.failures == []

    def test_non_utf8_file_left_intact(self, manager, home):
        (home / ".zshrc").write_bytes(b"# caf\xe9\n")
        (home / ".bashrc").write_text('echo hi\nexport FOO="bar"\n')
        result = manager.remove(["FOO"])
        assert result.removed_from == [str(home / ".bashrc")]
        assert result.failures == []
        assert (home / ".zshrc").read_bytes() == b"# caf\xe9\n"
        assert (home / ".bashrc").read_text() == "echo hi\n"

    def test_failure_does_not_stop_other_files(self, home, environ):
        store = _FlakyStore(home, broken=".zshrc")
        (home / ".zshrc").write_text("export A=1\n")
        (home / ".bashrc").write_text("export A=1\n")

        result = EnvironmentManager(store, environ=environ, reloader=None).remove(["A"])
        assert result.removed_from == [str(home / ".bashrc")]
        assert len(result.failures) == 1
        assert result.failures[0].kind == "PersistenceFailed"
        assert result.failures[0].details == {"path": str(home / ".zshrc")}
        assert (home / ".zshrc").read_text() == "export A=1\n"
