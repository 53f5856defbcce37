"""
Secret store — read-only access to credentials and key material.

The engine never writes secrets. Stores are looked up by name;
``materialized_key`` turns private key material into a short-lived
0600 file for tools (ssh) that insist on a path.
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Abstract read-only secret lookup."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier (e.g., 'env', 'dotenv')."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the secret value, or None when absent."""

    @abstractmethod
    def names(self) -> list[str]:
        """All secret names this store can see."""

    def has(self, key: str) -> bool:
        value = self.get(key)
        return value is not None and value != ""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class EnvSecretStore(SecretStore):
    """Secrets from the process environment (optionally prefixed)."""

    def __init__(self, environ: Mapping[str, str] | None = None, prefix: str = ""):
        self._environ = environ if environ is not None else os.environ
        self._prefix = prefix

    @property
    def name(self) -> str:
        return "env"

    def get(self, key: str) -> str | None:
        return self._environ.get(f"{self._prefix}{key}")

    def names(self) -> list[str]:
        n = len(self._prefix)
        return sorted(k[n:] for k in self._environ if k.startswith(self._prefix))


class DotenvSecretStore(SecretStore):
    """Secrets from a ``.env``-style file. Read once, on first access."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._values: dict[str, str] | None = None

    @property
    def name(self) -> str:
        return "dotenv"

    def _load(self) -> dict[str, str]:
        if self._values is None:
            self._values = _parse_env_file(self.path)
            logger.debug("Loaded %d secret(s) from %s", len(self._values), self.path)
        return self._values

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def names(self) -> list[str]:
        return sorted(self._load())


class MemorySecretStore(SecretStore):
    """Secrets from a plain dict. Used by tests and by embedding callers."""

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values = dict(values or {})

    @property
    def name(self) -> str:
        return "memory"

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def names(self) -> list[str]:
        return sorted(self._values)


def _parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value"
    - KEY='value'
    - export KEY=value
    - Comments (#)
    - Empty lines
    - Escaped newlines (\\n) inside double quotes, for key material
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot read secrets file %s: %s", path, e)
        return result

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            quote = value[0]
            value = value[1:-1]
            if quote == '"':
                value = value.replace("\\n", "\n")

        result[key] = value

    return result


def ssh_key_secret_name(environment: str) -> str:
    """Secret holding the SSH private key for an environment (e.g. PROD_SSH)."""
    return f"{environment.upper().replace('-', '_')}_SSH"


def write_private_key(path: Path, material: str) -> Path:
    """Save newly created key material for the operator (0600, never overwrites)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(material if material.endswith("\n") else material + "\n")
    return path


@contextmanager
def materialized_key(material: str) -> Iterator[Path]:
    """Write key material to a 0600 temp file for the duration of the block."""
    fd, name = tempfile.mkstemp(prefix="stackfix-key-", suffix=".pem")
    path = Path(name)
    try:
        os.chmod(path, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(material if material.endswith("\n") else material + "\n")
        yield path
    finally:
        path.unlink(missing_ok=True)
