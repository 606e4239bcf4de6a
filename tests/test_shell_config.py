"""
Tests for the shell config store — text transforms and atomic file edits.
"""

import os
import stat
import textwrap
from pathlib import Path

import pytest

from wizardplane.core.persistence.shell_config import (
    ShellConfigStore,
    find_export,
    marker_lines,
    parse_value,
    quote_value,
    strip_exports,
    upsert_exports,
    write_atomic,
)

BEGIN, END = marker_lines()


# ── Quoting ──────────────────────────────────────────────────────────


class TestQuoting:
    def test_plain(self):
        assert quote_value("https://api.example.com") == '"https://api.example.com"'

    def test_specials_escaped(self):
        assert quote_value('a"b$c`d\\e') == '"a\\"b\\$c\\`d\\\\e"'

    @pytest.mark.parametrize("raw, expected", [
        ('"quoted value"', "quoted value"),
        ('"a\\"b\\$c"', 'a"b$c'),
        ("'single $HOME'", "single $HOME"),
        ("bare", "bare"),
        ("bare # trailing comment", "bare"),
        ('""', ""),
        ("", ""),
    ])
    def test_parse(self, raw, expected):
        assert parse_value(raw) == expected

    def test_quote_then_parse_specials(self):
        value = 'p@ss "w$rd" `x` \\ end'
        assert parse_value(quote_value(value)) == value


# ── find_export ──────────────────────────────────────────────────────


class TestFindExport:
    def test_first_match_wins(self):
        text = 'export A="one"\nexport A="two"\n'
        assert find_export(text, "A") == "one"

    def test_key_prefix_not_matched(self):
        assert find_export('export AB="x"\n', "A") is None

    def test_indented_export(self):
        assert find_export('if true; then\n  export A=bare\nfi\n', "A") == "bare"

    def test_commented_export_ignored(self):
        assert find_export('# export A="x"\n', "A") is None

    def test_crlf_line(self):
        assert find_export('export A="x"\r\n', "A") == "x"


# ── upsert_exports ───────────────────────────────────────────────────


class TestUpsert:
    def test_append_creates_block(self):
        result = upsert_exports("alias ll='ls -l'\n", {"A": "1"})
        assert result.text == f"alias ll='ls -l'\n\n{BEGIN}\nexport A=\"1\"\n{END}\n"
        assert result.appended == ["A"]
        assert result.updated == []

    def test_append_to_empty_file(self):
        result = upsert_exports("", {"A": "1"})
        assert result.text == f'{BEGIN}\nexport A="1"\n{END}\n'

    def test_file_without_trailing_newline(self):
        result = upsert_exports("echo hi", {"A": "1"})
        assert result.text.startswith("echo hi\n\n")
        assert result.text.endswith(f"{END}\n")

    def test_append_inside_existing_block(self):
        text = f'{BEGIN}\nexport A="1"\n{END}\n'
        result = upsert_exports(text, {"B": "2"})
        assert result.text == f'{BEGIN}\nexport A="1"\nexport B="2"\n{END}\n'
        assert result.text.count(BEGIN) == 1

    def test_replace_in_place_keeps_surroundings(self):
        text = textwrap.dedent("""\
            # my settings
            export PATH="$HOME/bin:$PATH"
              export A="old"
            alias g=git
        """)
        result = upsert_exports(text, {"A": "new"})
        assert result.updated == ["A"]
        assert result.text == text.replace('  export A="old"', '  export A="new"')
        assert BEGIN not in result.text

    def test_replaces_every_occurrence(self):
        text = 'export A="1"\necho mid\nexport A="2"\n'
        result = upsert_exports(text, {"A": "3"})
        assert result.text == 'export A="3"\necho mid\nexport A="3"\n'

    def test_idempotent(self):
        once = upsert_exports("echo hi\n", {"A": "1", "B": "x y"}).text
        twice = upsert_exports(once, {"A": "1", "B": "x y"}).text
        assert once == twice

    def test_custom_label(self):
        result = upsert_exports("", {"A": "1"}, label="my label")
        assert result.text.startswith("# >>> my label >>>\n")

    def test_crlf_file_gets_crlf_block(self):
        result = upsert_exports("a\r\nb\r\n", {"A": "1"})
        assert result.text == f'a\r\nb\r\n\r\n{BEGIN}\r\nexport A="1"\r\n{END}\r\n'

    def test_append_inside_crlf_block(self):
        text = f'{BEGIN}\r\nexport A="1"\r\n{END}\r\n'
        result = upsert_exports(text, {"B": "2"})
        assert result.text == f'{BEGIN}\r\nexport A="1"\r\nexport B="2"\r\n{END}\r\n'
        assert result.text.count(BEGIN) == 1

    def test_replace_keeps_crlf(self):
        result = upsert_exports("export A=old\r\necho hi\r\n", {"A": "new"})
        assert result.text == 'export A="new"\r\necho hi\r\n'
        assert result.updated == ["A"]


# ── strip_exports ────────────────────────────────────────────────────


class TestStrip:
    def test_removes_key_and_empty_block(self):
        text = f'echo hi\n\n{BEGIN}\nexport A="1"\n{END}\n'
        result = strip_exports(text, ["A"])
        assert result.removed == ["A"]
        assert result.text == "echo hi\n\n"

    def test_keeps_non_empty_block(self):
        text = f'{BEGIN}\nexport A="1"\nexport B="2"\n{END}\n'
        result = strip_exports(text, ["A"])
        assert result.text == f'{BEGIN}\nexport B="2"\n{END}\n'

    def test_removes_lines_outside_block(self):
        result = strip_exports('export A=1\nexport A="2"\necho ok\n', ["A"])
        assert result.text == "echo ok\n"

    def test_absent_key_unchanged(self):
        text = "echo hi\n"
        result = strip_exports(text, ["A"])
        assert result.text == text
        assert result.removed == []

    def test_removes_crlf_block(self):
        text = f'echo hi\r\n{BEGIN}\r\nexport A="1"\r\n{END}\r\n'
        result = strip_exports(text, ["A"])
        assert result.text == "echo hi\r\n"


# ── Store ────────────────────────────────────────────────────────────


class TestShellConfigStore:
    def test_read_missing_is_empty(self, home: Path):
        store = ShellConfigStore(home)
        assert store.read(home / ".zshrc") == ""

    def test_existing_in_candidate_order(self, home: Path):
        (home / ".profile").write_text("")
        (home / ".bashrc").write_text("")
        store = ShellConfigStore(home)
        assert store.existing() == [home / ".bashrc", home / ".profile"]

    def test_mutate_writes_and_reports(self, home: Path):
        store = ShellConfigStore(home)
        path = home / ".zshrc"
        assert store.mutate(path, lambda text: text + "export A=1\n") is True
        assert path.read_text() == "export A=1\n"
        assert store.mutate(path, lambda text: text) is False

    def test_mutate_missing_noop_does_not_create(self, home: Path):
        store = ShellConfigStore(home)
        path = home / ".bashrc"
        assert store.mutate(path, lambda text: text) is False
        assert not path.exists()

    def test_mode_preserved(self, home: Path):
        path = home / ".zshrc"
        path.write_text("echo hi\n")
        os.chmod(path, 0o600)
        ShellConfigStore(home).mutate(path, lambda t: t + "export A=1\n")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_symlink_target_written(self, home: Path, tmp_path: Path):
        dotfiles = tmp_path / "dotfiles"
        dotfiles.mkdir()
        real = dotfiles / "zshrc"
        real.write_text("echo hi\n")
        link = home / ".zshrc"
        link.symlink_to(real)

        ShellConfigStore(home).mutate(link, lambda t: t + "export A=1\n")
        assert link.is_symlink()
        assert real.read_text() == "echo hi\nexport A=1\n"

    def test_failed_transform_leaves_file(self, home: Path):
        path = home / ".zshrc"
        path.write_text("original\n")

        def boom(text):
            raise OSError("disk full")

        with pytest.raises(OSError):
            ShellConfigStore(home).mutate(path, boom)
        assert path.read_text() == "original\n"

    def test_undecodable_bytes_survive_edit(self, home: Path):
        path = home / ".zshrc"
        path.write_bytes(b"# caf\xe9\nexport A=1\n")
        store = ShellConfigStore(home)
        assert find_export(store.read(path), "A") == "1"

        store.mutate(path, lambda t: upsert_exports(t, {"B": "2"}).text)
        raw = path.read_bytes()
        assert raw.startswith(b"# caf\xe9\nexport A=1\n")
        assert b'export B="2"\n' in raw

    def test_unencodable_text_leaves_file(self, home: Path):
        path = home / ".zshrc"
        path.write_text("original\n")
        with pytest.raises(UnicodeEncodeError):
            ShellConfigStore(home).mutate(path, lambda t: t + "export A=\ud800\n")
        assert path.read_text() == "original\n"
        assert [p.name for p in home.iterdir()] == [".zshrc"]


class TestWriteAtomic:
    def test_new_file_mode(self, tmp_path: Path):
        path = tmp_path / "new.rc"
        write_atomic(path, "x\n")
        assert path.read_text() == "x\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    def test_no_temp_files_left(self, tmp_path: Path):
        path = tmp_path / "rc"
        write_atomic(path, "a\n")
        write_atomic(path, "b\n")
        assert [p.name for p in tmp_path.iterdir()] == ["rc"]

    def test_crlf_preserved(self, tmp_path: Path):
        path = tmp_path / "rc"
        write_atomic(path, "a\r\nb\r\n")
        assert path.read_bytes() == b"a\r\nb\r\n"
