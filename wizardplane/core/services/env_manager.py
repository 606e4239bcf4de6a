"""
Environment persistence manager — named variables for this process
and for the user's future shells.

    get     process value first, then the first export found in the
            candidate files (.zshrc, .bashrc, .bash_profile, .profile)
    set     process env now → one target file (replace in place or
            append in the marker block) → best-effort re-source
    remove  process env → every candidate file, each on its own

``set`` is idempotent: a second identical call leaves the target file
byte-for-byte unchanged.  A failed re-source only means the new values
show up in the next shell; it is reported as a PersistenceDegraded
warning on the result and never undoes the write.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Iterable, Mapping, MutableMapping, Sequence
from pathlib import Path

from wizardplane.core.errors import (
    InvalidArgument,
    PersistenceDegraded,
    PersistenceFailed,
)
from wizardplane.core.models.environment import (
    EnvironmentVariable,
    EnvRemoveResult,
    EnvSetResult,
    EnvSource,
    check_env_key,
    check_env_value,
)
from wizardplane.core.persistence.shell_config import (
    PatchResult,
    ShellConfigStore,
    find_export,
    strip_exports,
    upsert_exports,
)

logger = logging.getLogger(__name__)

# Target probe order for ``set``.
TARGET_PREFERENCE: tuple[str, ...] = (".zshrc", ".bashrc", ".bash_profile")

# Login shell → rc file, used when none of the targets exist yet.
_PROFILE_MAP: dict[str, str] = {
    "zsh": ".zshrc",
    "bash": ".bashrc",
}

RELOAD_TIMEOUT_S = 5

Reloader = Callable[[Path], None]


def _redact(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return value[:2] + "****" + value[-2:]


def _shell_for(path: Path) -> str:
    """Pick an interpreter able to source ``path``."""
    preferred = "zsh" if path.name.startswith(".z") else "bash"
    for name in (preferred, "bash", "sh"):
        found = shutil.which(name)
        if found:
            return found
    raise FileNotFoundError(f"No shell available to source {path}")


def source_shell_file(path: Path) -> None:
    """Source ``path`` in a child shell; raises on any failure.

    The file path is passed as ``$1`` so it is never parsed as shell text.
    """
    shell = _shell_for(path)
    subprocess.run(
        [shell, "-c", '. "$1"', "wizardplane-reload", str(path)],
        check=True,
        capture_output=True,
        timeout=RELOAD_TIMEOUT_S,
    )


class EnvironmentManager:
    """Gets, sets and removes environment variables idempotently."""

    def __init__(
        self,
        store: ShellConfigStore,
        *,
        environ: MutableMapping[str, str] | None = None,
        reloader: Reloader | None = source_shell_file,
        target_preference: Sequence[str] = TARGET_PREFERENCE,
        login_shell: str | None = None,
    ) -> None:
        self.store = store
        self._environ = os.environ if environ is None else environ
        self._reloader = reloader
        self._target_preference = tuple(target_preference)
        self._login_shell = login_shell

    # ── Read ────────────────────────────────────────────────────

    def get(self, keys: Iterable[str]) -> dict[str, EnvironmentVariable | None]:
        """Resolve each key; a key found nowhere maps to None."""
        keys = [self._check_key(k) for k in keys]
        texts: dict[Path, str] | None = None
        result: dict[str, EnvironmentVariable | None] = {}

        for key in keys:
            value = self._environ.get(key)
            if value:
                result[key] = EnvironmentVariable(key=key, value=value, source=EnvSource.PROCESS)
                continue

            if texts is None:
                texts = {}
                for path in self.store.existing():
                    try:
                        texts[path] = self.store.read(path)
                    except (OSError, UnicodeError) as e:
                        logger.warning("Cannot read %s: %s", path, e)

            result[key] = None
            for path, text in texts.items():
                found = find_export(text, key)
                if found is not None:
                    result[key] = EnvironmentVariable(
                        key=key, value=found,
                        source=EnvSource.SHELL_CONFIG_FILE, path=str(path),
                    )
                    break

        logger.debug(
            "env get %s → %s", keys, {k: (v.source.value if v else None) for k, v in result.items()},
        )
        return result

    # ── Write ───────────────────────────────────────────────────

    def choose_target(self) -> Path:
        """First existing preferred file, else the login shell's rc file, else the first preference."""
        for name in self._target_preference:
            path = self.store.path(name)
            if path.is_file():
                return path

        shell = Path(self._login_shell or os.environ.get("SHELL", "")).name
        rc = _PROFILE_MAP.get(shell)
        if rc in self._target_preference:
            return self.store.path(rc)
        return self.store.path(self._target_preference[0])

    def set(self, variables: Mapping[str, str]) -> EnvSetResult:
        """Persist ``variables``.

        Raises:
            InvalidArgument: Bad key or value (nothing is changed).
            PersistenceFailed: The target file could not be written.
        """
        clean = {self._check_key(k): self._check_value(v) for k, v in variables.items()}
        if not clean:
            raise InvalidArgument("No variables to set")

        # 1. live process
        for key, value in clean.items():
            self._environ[key] = value

        # 2. one target file
        target = self.choose_target()
        patch: list[PatchResult] = []

        def _apply(text: str) -> str:
            patch.append(upsert_exports(text, clean, self.store.marker_label))
            return patch[-1].text

        try:
            changed = self.store.mutate(target, _apply)
        except (OSError, UnicodeError) as e:
            logger.error("Failed to write %s: %s", target, e)
            raise PersistenceFailed(
                f"Cannot write {target}: {e}", details={"path": str(target)},
            ) from e

        result = EnvSetResult(
            target=str(target),
            updated=patch[-1].updated,
            appended=patch[-1].appended,
        )
        logger.info(
            "env set %s in %s (updated=%s appended=%s changed=%s)",
            {k: _redact(v) for k, v in clean.items()}, target,
            result.updated, result.appended, changed,
        )

        # 3. best-effort re-source
        if self._reloader is not None:
            try:
                self._reloader(target)
                result.reloaded = True
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning(
                    "Re-sourcing %s failed; values apply from the next shell: %s", target, e,
                )
                result.warning = PersistenceDegraded(
                    f"Saved to {target}, but reloading it failed; open a new shell to apply",
                    details={"path": str(target), "reason": str(e)},
                ).to_info()
        return result

    def remove(self, keys: Iterable[str]) -> EnvRemoveResult:
        """Drop ``keys`` from the process and from every candidate file.

        Files are handled independently: a failure on one is reported in
        ``failures`` and the rest are still processed.
        """
        keys = [self._check_key(k) for k in keys]
        for key in keys:
            self._environ.pop(key, None)

        result = EnvRemoveResult()
        for path in self.store.existing():
            removed: list[str] = []

            def _apply(text: str) -> str:
                patch = strip_exports(text, keys, self.store.marker_label)
                removed[:] = patch.removed
                return patch.text

            try:
                self.store.mutate(path, _apply)
            except (OSError, UnicodeError) as e:
                logger.warning("Failed to remove %s from %s: %s", keys, path, e)
                result.failures.append(PersistenceFailed(
                    f"Cannot update {path}: {e}", details={"path": str(path)},
                ).to_info())
                continue
            if removed:
                result.removed_from.append(str(path))

        logger.info(
            "env remove %s (files=%s failures=%d)", keys, result.removed_from, len(result.failures),
        )
        return result

    # ── Validation ──────────────────────────────────────────────

    @staticmethod
    def _check_key(key: str) -> str:
        try:
            return check_env_key(key)
        except ValueError as e:
            raise InvalidArgument(str(e), details={"key": key}) from e

    @staticmethod
    def _check_value(value: str) -> str:
        try:
            return check_env_value(value)
        except ValueError as e:
            raise InvalidArgument(str(e)) from e
