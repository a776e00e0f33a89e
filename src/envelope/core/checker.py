"""
Activity detection for stored environments.

An environment is active when every variable it stores appears with the
same value in the live environment. Extra live variables do not matter, so
a small `dev` overlay is active next to PATH, HOME and friends. An empty
environment is therefore always active.
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Set


@dataclass(frozen=True)
class ActivityReport:
    """Result of checking one environment against the live environment."""
    name: str
    active: bool
    missing: List[str] = field(default_factory=list)  # keys not set at all
    mismatched: List[str] = field(default_factory=list)  # keys set to another value


def is_active(variables: Mapping[str, str], live: Mapping[str, str]) -> bool:
    """True when every (key, value) in `variables` is present in `live`."""
    for key, value in variables.items():
        if key not in live or live[key] != value:
            return False
    return True


def check_environment(name: str, variables: Mapping[str, str], live: Mapping[str, str]) -> ActivityReport:
    """Compare one environment against `live`, recording what differs."""
    missing = []
    mismatched = []
    for key, value in variables.items():
        if key not in live:
            missing.append(key)
        elif live[key] != value:
            mismatched.append(key)

    return ActivityReport(
        name=name,
        active=not missing and not mismatched,
        missing=missing,
        mismatched=mismatched,
    )


def check(environments: Mapping[str, Mapping[str, str]], live: Mapping[str, str]) -> List[ActivityReport]:
    """
    Check every environment against the live environment.

    Args:
        environments: Environment name -> variables, e.g. EnvironmentStore.environments
        live: The live environment, e.g. os.environ

    Returns:
        One ActivityReport per environment, in the order given
    """
    return [
        check_environment(name, variables, live)
        for name, variables in environments.items()
    ]


def active_environments(environments: Mapping[str, Mapping[str, str]], live: Mapping[str, str]) -> Set[str]:
    """Names of all active environments. Overlapping matches are all reported."""
    return {
        name
        for name, variables in environments.items()
        if is_active(variables, live)
    }
