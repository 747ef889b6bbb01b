"""
Versioned configuration lookup

A config key may have several rows, each tagged with the lowest client
version it applies to. The active row for a client is the one with the
largest version not exceeding the client's; equal versions go to the row
with the highest id.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from chatcoach.models.app_config import Config

logger = logging.getLogger(__name__)

APP_VERSION_HEADER = "X-App-Version"
APP_ENV_HEADER = "X-App-Env"


@dataclass
class AppConfigCond:
    """Client version and environment a config lookup is made for"""
    version: str = ""
    env: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "AppConfigCond":
        return cls(
            version=(headers.get(APP_VERSION_HEADER) or "").strip(),
            env=(headers.get(APP_ENV_HEADER) or "").strip(),
        )


def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """
    Split a dotted version into integers.

    Empty means ``0.0.0``; a component that is not a number counts as 0.
    """
    if not version:
        return (0, 0, 0)
    parts = []
    for component in version.split("."):
        try:
            parts.append(int(component))
        except ValueError:
            parts.append(0)
    return tuple(parts)


def _version_key(version: Optional[str]) -> Tuple[int, ...]:
    # Trailing zeros dropped so "1.2" and "1.2.0" order the same
    parts = list(parse_version(version))
    while parts and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def compare_versions(v1: Optional[str], v2: Optional[str]) -> int:
    """Return -1, 0 or 1 comparing per numeric component"""
    k1, k2 = _version_key(v1), _version_key(v2)
    if k1 < k2:
        return -1
    if k1 > k2:
        return 1
    return 0


def _pick(rows: Iterable[Config], client_version: str, ignore_version: bool = False) -> Optional[Config]:
    client_key = _version_key(client_version)
    best = None
    best_rank = None
    for row in rows:
        if ignore_version:
            rank = ((), row.id)
        else:
            row_key = _version_key(row.version)
            if row_key > client_key:
                continue
            rank = (row_key, row.id)
        if best_rank is None or rank > best_rank:
            best, best_rank = row, rank
    return best


def filter_config_by_key_version(rows: Iterable[Config], key: str, client_version: str) -> Optional[Config]:
    """
    Active row for ``key`` among ``rows``.

    Args:
        rows: Candidate rows, any keys
        key: Config key to resolve
        client_version: Version reported by the client, empty meaning 0.0.0

    Returns:
        The matching row, or None when no row applies
    """
    return _pick((row for row in rows if row.key == key), client_version)


def filter_config_by_version(rows: Iterable[Config], client_version: str) -> Dict[str, Config]:
    """Active row per key; without a client version the newest row of each key wins"""
    grouped: Dict[str, list] = {}
    for row in rows:
        grouped.setdefault(row.key, []).append(row)

    result = {}
    for key, candidates in grouped.items():
        row = _pick(candidates, client_version, ignore_version=not client_version)
        if row is not None:
            result[key] = row
    return result


def load_app_config_by_key_version(db: Session, key: str, cond: AppConfigCond) -> str:
    """Value of the active row for ``key``, or an empty string when none applies"""
    rows = db.query(Config).filter(
        Config.key == key,
        Config.env.in_([cond.env, ""])
    ).all()

    row = filter_config_by_key_version(rows, key, cond.version)
    if row is None:
        logger.debug(f"No config row for key={key} version={cond.version!r} env={cond.env!r}")
        return ""
    return row.value
