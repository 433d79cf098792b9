"""
Navigation star catalog loading and lookup.

Loads the 57 navigation stars (plus Polaris, kept for the latitude
method) from the bundled CSV file. Sidereal hour angles and declinations
are almanac values at a fixed reference epoch; GHA is derived at query
time, never stored.
"""

import csv
import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple, Union

from ..errors import NotFound

logger = logging.getLogger(__name__)

NAVIGATION_STAR_COUNT = 57
DEFAULT_CATALOG_FILE = "navigation_stars.csv"


@dataclass(frozen=True)
class StarCatalogEntry:
    """Static catalog record for one star."""

    number: int           # almanac star number, 0 for stars outside the 57
    name: str
    constellation: str
    sha: float            # sidereal hour angle at the reference epoch, degrees
    dec: float            # declination, degrees
    magnitude: float

    @property
    def navigational(self) -> bool:
        return self.number > 0


def get_catalog_path(filename: str = DEFAULT_CATALOG_FILE) -> str:
    """Full path of a catalog file bundled in the stars/data directory."""
    module_dir = os.path.dirname(__file__)
    return os.path.join(module_dir, "data", filename)


def load_catalog(path: str) -> List[StarCatalogEntry]:
    """
    Load a star catalog from CSV.

    Columns: number, name, constellation, sha_deg, sha_min, dec_sign,
    dec_deg, dec_min, vmag.

    Args:
        path: Path to CSV catalog file

    Returns:
        List of catalog entries in file order

    Raises:
        FileNotFoundError: If catalog file doesn't exist
        ValueError: If catalog format is invalid
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Star catalog not found: {path}")

    stars = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)

        required_cols = ["number", "name", "sha_deg", "sha_min", "dec_sign", "dec_deg", "dec_min", "vmag"]
        missing_cols = [col for col in required_cols if col not in (reader.fieldnames or [])]
        if missing_cols:
            raise ValueError(f"Missing required columns in catalog: {missing_cols}")

        for line_count, row in enumerate(reader, 1):
            try:
                sha = float(row["sha_deg"]) + float(row["sha_min"]) / 60.0
                dec = float(row["dec_deg"]) + float(row["dec_min"]) / 60.0
                if row["dec_sign"].strip() == "-":
                    dec = -dec

                entry = StarCatalogEntry(
                    number=int(row["number"]),
                    name=row["name"].strip(),
                    constellation=(row.get("constellation") or "").strip(),
                    sha=sha,
                    dec=dec,
                    magnitude=float(row["vmag"]),
                )
            except (ValueError, KeyError) as e:
                raise ValueError(f"Malformed star record at line {line_count} of {path}: {e}")

            if not (0 <= entry.sha < 360):
                raise ValueError(f"Invalid SHA for star {entry.name}: {entry.sha}")
            if not (-90 <= entry.dec <= 90):
                raise ValueError(f"Invalid declination for star {entry.name}: {entry.dec}")

            stars.append(entry)

    logger.debug(f"Loaded {len(stars)} stars from {path}")
    return stars


@lru_cache(maxsize=1)
def _bundled_catalog() -> Tuple[Tuple[StarCatalogEntry, ...], Dict[str, StarCatalogEntry]]:
    stars = tuple(load_catalog(get_catalog_path()))
    index = {_normalize_name(s.name): s for s in stars}
    return stars, index


def _normalize_name(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def all_stars() -> Tuple[StarCatalogEntry, ...]:
    """Every bundled star, navigation stars first."""
    return _bundled_catalog()[0]


def navigation_stars() -> List[StarCatalogEntry]:
    """The 57 navigation stars in almanac order."""
    return [s for s in all_stars() if s.navigational]


def find_star(name: str) -> Union[StarCatalogEntry, NotFound]:
    """
    Look up a star by name (case, space and punctuation insensitive).

    Returns:
        The catalog entry, or a NotFound result for unknown names
    """
    entry: Optional[StarCatalogEntry] = _bundled_catalog()[1].get(_normalize_name(name or ""))
    if entry is None:
        return NotFound("star", name)
    return entry
