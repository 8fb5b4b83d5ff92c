"""
Rewrite raw analyzer output into the canonical chart pack shape.

The analyzer's JSON evolves on its own schedule; this module is the one place
that absorbs that drift. Each rule is a small step over a plain dict, applied
in order. Re-running the steps on their own output changes nothing.
"""

import copy
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

PROFILES = "profiles"
DEFAULT_PROFILE = "Default"
LEGACY_DEFAULTS = "defaults"
LEGACY_NAMED = "named"
HITS = "hitsFlat"
LEGACY_HITS = "hits"
SECTIONS = "sections"
REPEATS = "repeats"
REGIONS = "regions"
REGION_SECTIONS = "sections"
REGION_REPEATS = "repeatRegions"

Step = Callable[[Dict[str, Any]], None]


def _profiles(chart: Dict[str, Any]):
    profiles = chart.get(PROFILES)
    return profiles if isinstance(profiles, dict) else None


def ensure_profiles(chart: Dict[str, Any]) -> None:
    if chart.get(PROFILES) is None:
        chart[PROFILES] = {}


def promote_default_profile(chart: Dict[str, Any]) -> None:
    profiles = _profiles(chart)
    if profiles is not None and profiles.get(LEGACY_DEFAULTS) is not None:
        profiles[DEFAULT_PROFILE] = profiles[LEGACY_DEFAULTS]


def merge_named_profiles(chart: Dict[str, Any]) -> None:
    profiles = _profiles(chart)
    if profiles is None or LEGACY_NAMED not in profiles:
        return
    named = profiles[LEGACY_NAMED]
    if not isinstance(named, dict):
        logger.warning("Ignoring non-object profiles.%s (%s)", LEGACY_NAMED, type(named).__name__)
        return
    for name, data in named.items():
        if name == DEFAULT_PROFILE and profiles.get(LEGACY_DEFAULTS) is not None:
            # promoted default takes precedence over a same-named entry
            logger.warning("Dropping profiles.%s.%s: collides with promoted default", LEGACY_NAMED, name)
            continue
        if name in (LEGACY_DEFAULTS, LEGACY_NAMED):
            logger.warning("Dropping profiles.%s.%s: reserved legacy key", LEGACY_NAMED, name)
            continue
        profiles[name] = data


def drop_legacy_profile_keys(chart: Dict[str, Any]) -> None:
    profiles = _profiles(chart)
    if profiles is not None:
        profiles.pop(LEGACY_DEFAULTS, None)
        profiles.pop(LEGACY_NAMED, None)


def copy_legacy_hits(chart: Dict[str, Any]) -> None:
    if chart.get(HITS) is None and chart.get(LEGACY_HITS) is not None:
        chart[HITS] = chart[LEGACY_HITS]


def _region_list(chart: Dict[str, Any], key: str):
    regions = chart.get(REGIONS)
    if isinstance(regions, dict):
        return regions.get(key)
    return None


def lift_sections(chart: Dict[str, Any]) -> None:
    if chart.get(SECTIONS) is None:
        found = _region_list(chart, REGION_SECTIONS)
        if found is not None:
            chart[SECTIONS] = found


def lift_repeats(chart: Dict[str, Any]) -> None:
    if chart.get(REPEATS) is None:
        found = _region_list(chart, REGION_REPEATS)
        if found is not None:
            chart[REPEATS] = found


NORMALIZATION_STEPS: List[Step] = [
    ensure_profiles,
    promote_default_profile,
    merge_named_profiles,
    drop_legacy_profile_keys,
    copy_legacy_hits,
    lift_sections,
    lift_repeats,
]


def normalize_chart(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized deep copy of `raw`; the input is left untouched."""
    chart = copy.deepcopy(raw)
    for step in NORMALIZATION_STEPS:
        step(chart)
    return chart
