"""
Persistent storage for named environments.

All environments live in one JSON file (conventionally `.envelope`):

    {
      "format": "envelope",
      "version": 1,
      "environments": [
        {"name": "dev", "variables": [["API_URL", "http://localhost"]]}
      ]
    }

The whole file is read into memory on load and rewritten through a temporary
file plus rename on save, so readers never see a half-written store.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .errors import (
    AlreadyExists,
    CorruptStore,
    EnvironmentNotFound,
    InvalidName,
    StoreIOError,
    StoreNotFound,
)
from .lexer import key_problem

logger = logging.getLogger(__name__)

STORE_FORMAT = "envelope"
STORE_VERSION = 1

PathLike = Union[str, os.PathLike]
Pair = Tuple[str, str]


class ImportMode(Enum):
    """Conflict policy for keys present in both the store and an import."""
    OVERWRITE = "overwrite"
    KEEP_EXISTING = "keep-existing"


@dataclass(frozen=True)
class ImportResult:
    """Counts reported by an import."""
    added: int = 0
    overwritten: int = 0
    unchanged: int = 0
    created: bool = False


@dataclass(frozen=True)
class EnvironmentSummary:
    """One line of `list` output."""
    name: str
    variable_count: int


def validate_env_name(name: str) -> None:
    """Raise InvalidName unless `name` can name an environment."""
    if not isinstance(name, str) or not name:
        raise InvalidName("environment name must be a non-empty string")
    if '\n' in name or '\r' in name:
        raise InvalidName(f"environment name {name!r} contains a newline")


def validate_key(key: str) -> None:
    """Raise InvalidName unless `key` can name a variable and be exported."""
    if not isinstance(key, str) or not key:
        raise InvalidName("variable key must be a non-empty string")
    problem = key_problem(key)
    if problem:
        raise InvalidName(f"variable key {key!r} {problem}")


def _write_atomic(path: Path, text: str) -> None:
    """Write `text` to a temp file next to `path`, then rename it into place."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _create_exclusive(path: Path, text: str) -> None:
    """
    Write `text` to a temp file next to `path`, then hard-link it into place.

    The link fails with FileExistsError if `path` appeared in the meantime,
    so an existing file is never replaced.
    """
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.link(tmp_name, path)
    finally:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass


def _decode(path: Path, text: str) -> Dict[str, Dict[str, str]]:
    """Turn store file text into the in-memory mapping."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as err:
        raise CorruptStore(str(path), f"invalid JSON ({err.msg})") from err

    if not isinstance(data, dict) or data.get("format") != STORE_FORMAT:
        raise CorruptStore(str(path), "not an envelope store")

    version = data.get("version")
    if version != STORE_VERSION:
        raise CorruptStore(str(path), f"unsupported version {version!r}")

    records = data.get("environments")
    if not isinstance(records, list):
        raise CorruptStore(str(path), "'environments' must be a list")

    environments: Dict[str, Dict[str, str]] = {}
    for record in records:
        if not isinstance(record, dict):
            raise CorruptStore(str(path), "environment record must be an object")
        name = record.get("name")
        variables = record.get("variables")
        if not isinstance(name, str) or not name:
            raise CorruptStore(str(path), "environment record without a name")
        if name in environments:
            raise CorruptStore(str(path), f"duplicate environment '{name}'")
        if not isinstance(variables, list):
            raise CorruptStore(str(path), f"environment '{name}' has no variable list")

        env: Dict[str, str] = {}
        for item in variables:
            if (not isinstance(item, list) or len(item) != 2
                    or not all(isinstance(part, str) for part in item)):
                raise CorruptStore(str(path), f"bad variable entry in '{name}': {item!r}")
            key, value = item
            if not key or key in env:
                raise CorruptStore(str(path), f"bad or duplicate key {key!r} in '{name}'")
            env[key] = value
        environments[name] = env

    return environments


class EnvironmentStore:
    """
    In-memory view of an envelope store file.

    Mutating methods change memory only; call save() to persist. The path is
    passed in explicitly and never read from process-wide state.
    """

    def __init__(self, path: PathLike, environments: Optional[Dict[str, Dict[str, str]]] = None):
        """
        Initialize a store.

        Args:
            path: Location of the store file
            environments: Initial contents (copied, never shared)
        """
        self.path = Path(path)
        self._environments: Dict[str, Dict[str, str]] = {
            name: dict(variables)
            for name, variables in (environments or {}).items()
        }

    @classmethod
    def init(cls, path: PathLike) -> "EnvironmentStore":
        """
        Create a new, empty store file.

        Raises:
            AlreadyExists: a file is already present at `path`
            StoreIOError: the file could not be written
        """
        store = cls(path)
        text = json.dumps(store.to_dict(), indent=2) + "\n"
        try:
            _create_exclusive(store.path, text)
        except FileExistsError:
            raise AlreadyExists(f"an envelope store already exists at {store.path}") from None
        except OSError as err:
            raise StoreIOError(f"cannot create {store.path}: {err.strerror or err}", str(store.path)) from err
        logger.debug("initialized empty store at %s", store.path)
        return store

    @classmethod
    def load(cls, path: PathLike) -> "EnvironmentStore":
        """
        Read a store file from disk.

        Raises:
            StoreNotFound: no file at `path`
            CorruptStore: the file is not a valid envelope store
            StoreIOError: the file could not be read
        """
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError as err:
            raise StoreNotFound(str(path)) from err
        except UnicodeDecodeError as err:
            raise CorruptStore(str(path), "not valid UTF-8") from err
        except OSError as err:
            raise StoreIOError(f"cannot read {path}: {err.strerror or err}", str(path)) from err

        store = cls(path, _decode(path, text))
        logger.debug("loaded %d environment(s) from %s", len(store), path)
        return store

    def to_dict(self) -> dict:
        """Serializable representation of the store."""
        return {
            "format": STORE_FORMAT,
            "version": STORE_VERSION,
            "environments": [
                {
                    "name": name,
                    "variables": [[key, value] for key, value in variables.items()],
                }
                for name, variables in self._environments.items()
            ],
        }

    def save(self, path: Optional[PathLike] = None) -> None:
        """
        Write the whole store atomically.

        Args:
            path: Destination (defaults to the path the store was opened with)

        Raises:
            StoreIOError: the file could not be written; the previous file,
                if any, is left in place
        """
        target = Path(path) if path is not None else self.path
        text = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
        try:
            _write_atomic(target, text)
        except OSError as err:
            raise StoreIOError(f"cannot write {target}: {err.strerror or err}", str(target)) from err
        logger.debug("saved %d environment(s) to %s", len(self), target)

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    def __len__(self) -> int:
        return len(self._environments)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._environments))

    def names(self) -> List[str]:
        """Environment names in insertion order."""
        return list(self._environments)

    @property
    def environments(self) -> Dict[str, Dict[str, str]]:
        """A deep copy of all environments."""
        return {name: dict(variables) for name, variables in self._environments.items()}

    def _get(self, name: str) -> Dict[str, str]:
        try:
            return self._environments[name]
        except KeyError:
            raise EnvironmentNotFound(name) from None

    def import_pairs(
        self,
        env: str,
        pairs: Iterable[Pair],
        mode: ImportMode = ImportMode.OVERWRITE,
    ) -> ImportResult:
        """
        Merge key/value pairs into an environment, creating it if needed.

        Args:
            env: Target environment name
            pairs: (key, value) pairs, typically from the parser
            mode: What to do with keys the environment already has

        Returns:
            ImportResult with added/overwritten/unchanged counts, where
            unchanged covers every pre-existing key whose value stayed put
        """
        validate_env_name(env)
        pairs = list(pairs)
        for key, _ in pairs:
            validate_key(key)

        created = env not in self._environments
        variables = self._environments.setdefault(env, {})
        before = dict(variables)

        added_keys = set()
        for key, value in pairs:
            if key not in before:
                variables[key] = value
                added_keys.add(key)
            elif mode == ImportMode.OVERWRITE:
                variables[key] = value

        overwritten = sum(1 for key, value in before.items() if variables[key] != value)
        result = ImportResult(
            added=len(added_keys),
            overwritten=overwritten,
            unchanged=len(before) - overwritten,
            created=created,
        )
        logger.debug("import into '%s' (%s): %s", env, mode.value, result)
        return result

    def set_variable(self, env: str, key: str, value: str) -> ImportResult:
        """Set a single variable, creating the environment if needed."""
        return self.import_pairs(env, [(key, value)], ImportMode.OVERWRITE)

    def list(self) -> List[EnvironmentSummary]:
        """Environment names with their variable counts, in insertion order."""
        return [
            EnvironmentSummary(name, len(variables))
            for name, variables in self._environments.items()
        ]

    def list_variables(self, env: str) -> List[Pair]:
        """
        Ordered key/value pairs of one environment.

        Raises:
            EnvironmentNotFound: `env` is not in the store
        """
        return list(self._get(env).items())

    def duplicate(self, src: str, dst: str) -> None:
        """
        Copy environment `src` into a new environment `dst`.

        Raises:
            EnvironmentNotFound: `src` is not in the store
            AlreadyExists: `dst` is already in the store
        """
        source = self._get(src)
        validate_env_name(dst)
        if dst in self._environments:
            raise AlreadyExists(f"environment '{dst}' already exists")
        self._environments[dst] = dict(source)
        logger.debug("duplicated '%s' into '%s'", src, dst)

    def drop(self, env: str) -> bool:
        """Remove an environment. Returns False if it was not there."""
        removed = self._environments.pop(env, None) is not None
        logger.debug("drop '%s': %s", env, "removed" if removed else "absent")
        return removed

    def delete_variable(self, key: str, env: Optional[str] = None) -> int:
        """
        Remove `key` from one environment, or from all of them.

        Args:
            key: Variable to remove
            env: Environment to remove it from; None means every environment

        Returns:
            Number of environments the key was removed from

        Raises:
            EnvironmentNotFound: `env` is given but not in the store
        """
        if env is not None:
            targets = [self._get(env)]
        else:
            targets = list(self._environments.values())

        removed = 0
        for variables in targets:
            if variables.pop(key, None) is not None:
                removed += 1
        return removed
