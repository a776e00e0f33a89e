"""
Store file discovery.

Resolves which `.envelope` file a command should use. The resolved path is
handed to the store explicitly; nothing else reads it from the environment.
"""

import os
from pathlib import Path
from typing import Optional, Union

STORE_FILENAME = ".envelope"
STORE_PATH_ENV = "ENVELOPE_FILE"


def find_store(start: Union[str, Path] = ".") -> Optional[Path]:
    """
    Find the nearest store file in `start` or one of its ancestors.

    Args:
        start: Directory to start searching from

    Returns:
        Path of the store file, or None if there is none
    """
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        candidate = directory / STORE_FILENAME
        if candidate.is_file():
            return candidate
    return None


def resolve_store_path(
    explicit: Optional[Union[str, Path]] = None,
    start: Union[str, Path] = ".",
    for_init: bool = False,
) -> Path:
    """
    Decide which store file to use.

    Priority order:
    - an explicit path (the --store option)
    - the ENVELOPE_FILE environment variable
    - the nearest existing .envelope in `start` or an ancestor (skipped by init,
      which always creates in `start`)
    - `start`/.envelope

    Args:
        explicit: Path given on the command line, if any
        start: Directory the command was invoked from
        for_init: True when resolving the target of `init`

    Returns:
        Store path (it may not exist yet)
    """
    if explicit:
        return Path(explicit)

    from_env = os.getenv(STORE_PATH_ENV)
    if from_env:
        return Path(from_env)

    if not for_init:
        found = find_store(start)
        if found is not None:
            return found

    return Path(start) / STORE_FILENAME
