"""Reader/writer for bitcoind-style ``key=value`` config files.

Edits touch only the directives they name; comments, ordering and unrelated
lines survive. Saves replace the file atomically (temp file in the same
directory, fsync, rename), so a crash leaves either the old or the new file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from nodefleet.models.errors import ConfigFileError

log = logging.getLogger(__name__)

# Section bitcoind reads when neither chain= nor a network flag is set
DEFAULT_SECTION = "main"

# Network flags that select a config section when chain= is absent
_NETWORK_FLAGS = {"testnet": "test", "regtest": "regtest", "signet": "signet"}


@dataclass
class _Line:
    raw: str
    section: str | None  # None for the top (global) part
    key: str | None = None
    value: str | None = None


def _parse(text: str) -> list[_Line]:
    lines: list[_Line] = []
    section: str | None = None
    for raw in text.splitlines():
        stripped = raw.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            section = stripped[1:-1].strip()
            lines.append(_Line(raw, section))
            continue
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            lines.append(_Line(raw, section))
            continue
        key, _, value = stripped.partition("=")
        lines.append(_Line(raw, section, key.strip(), value.strip()))
    return lines


class ConfFile:
    """An editable view of one daemon config file."""

    def __init__(self, path: str | Path, text: str = "", default_section: str = DEFAULT_SECTION) -> None:
        self.path = Path(path)
        self.default_section = default_section
        self._lines = _parse(text)

    @classmethod
    def load(cls, path: str | Path, default_section: str = DEFAULT_SECTION) -> "ConfFile":
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            text = ""
        except OSError as exc:
            raise ConfigFileError(f"cannot read {p}: {exc}") from exc
        return cls(p, text, default_section)

    # ── Queries ────────────────────────────────────────────

    @property
    def active_section(self) -> str:
        """Config section that applies to the configured network."""
        chain = self._global("chain")
        if chain:
            return chain
        for flag, section in _NETWORK_FLAGS.items():
            if self._global(flag) == "1":
                return section
        return self.default_section

    def _global(self, key: str) -> str | None:
        for line in self._lines:
            if line.section is None and line.key == key:
                return line.value
        return None

    def _applicable(self, line: _Line, section: str) -> bool:
        return line.section is None or line.section == section

    def get(self, key: str) -> str | None:
        """Value for key, section value winning over the global one."""
        section = self.active_section
        found: str | None = None
        for line in self._lines:
            if line.key != key or not self._applicable(line, section):
                continue
            if line.section == section:
                return line.value
            if found is None:
                found = line.value
        return found

    def get_int(self, key: str) -> int | None:
        value = self.get(key)
        if value is None or value == "":
            return None
        try:
            return int(value)
        except ValueError:
            log.warning("%s: %s=%r is not an integer", self.path, key, value)
            return None

    # ── Edits ──────────────────────────────────────────────

    def set(self, key: str, value: str | int) -> None:
        """Set key, replacing its first applicable occurrence.

        Duplicates that would shadow the new value are dropped. A new key
        goes into the network section when the file has one, else at the
        end of the global part.
        """
        section = self.active_section
        new_raw = f"{key}={value}"
        kept: list[_Line] = []
        placed = False
        for line in self._lines:
            if line.key == key and self._applicable(line, section):
                if not placed:
                    kept.append(_Line(new_raw, line.section, key, str(value)))
                    placed = True
                continue
            kept.append(line)
        if not placed:
            kept = self._insert(kept, _Line(new_raw, None, key, str(value)), section)
        self._lines = kept

    def remove(self, key: str) -> None:
        section = self.active_section
        self._lines = [
            line for line in self._lines
            if not (line.key == key and self._applicable(line, section))
        ]

    def _insert(self, lines: list[_Line], new: _Line, section: str) -> list[_Line]:
        header = next(
            (i for i, line in enumerate(lines) if line.key is None and line.section == section
             and line.raw.strip().startswith("[")),
            None,
        )
        if header is not None:
            # End of that section's block
            idx = header + 1
            while idx < len(lines) and lines[idx].section == section:
                idx += 1
            new.section = section
            return lines[:idx] + [new] + lines[idx:]

        first_section = next((i for i, line in enumerate(lines) if line.section is not None), None)
        if first_section is None:
            return lines + [new]
        return lines[:first_section] + [new] + lines[first_section:]

    def render(self) -> str:
        text = "\n".join(line.raw for line in self._lines)
        return text + "\n" if text else ""

    # ── Persistence ────────────────────────────────────────

    def save(self) -> None:
        """Atomically replace the file on disk with the current contents."""
        atomic_write(self.path, self.render())


def atomic_write(path: str | Path, text: str) -> None:
    """Write text to path via temp file + rename, keeping mode and owner."""
    p = Path(path)
    try:
        st = p.stat()
    except FileNotFoundError:
        st = None
    except OSError as exc:
        raise ConfigFileError(f"cannot stat {p}: {exc}") from exc

    tmp_name: str | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=p.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if st is not None:
            os.chmod(tmp_name, st.st_mode & 0o7777)
            if os.geteuid() == 0:
                os.chown(tmp_name, st.st_uid, st.st_gid)
        os.replace(tmp_name, p)
        tmp_name = None
    except OSError as exc:
        raise ConfigFileError(f"cannot write {p}: {exc}") from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                log.warning("Could not remove temp file %s", tmp_name)
    log.debug("Wrote %s (%d bytes)", p, len(text))
