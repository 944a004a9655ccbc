"""
Per-mode matching policy and the route-identifier comparison rules.

Each rule's docstring names the false positives it can produce; the table
at the bottom decides which rule a mode uses.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from transit_eta.core.models import AgencyMode

BUS_AGENCY_PREFIXES = ("MTA NYCT_", "MTABC_")


def route_exact(wanted: str, reported: Optional[str]) -> bool:
    """Byte-for-byte equality. No false positives; misses renamed routes."""
    return reported is not None and reported == wanted


def route_any(wanted: str, reported: Optional[str]) -> bool:
    """
    Every trip in the feed qualifies.

    Used for single-operator rail feeds where the rider picks a station,
    not a branch; every branch serving the station is shown.
    """
    return True


def route_agency_prefixed(wanted: str, reported: Optional[str]) -> bool:
    """
    Equality after stripping a bus agency prefix ("MTA NYCT_M15" == "M15").

    Can collide when two agencies run a route with the same short name.
    """
    if reported is None:
        return False
    if reported == wanted:
        return True
    return any(reported == f"{prefix}{wanted}" for prefix in BUS_AGENCY_PREFIXES)


def route_loose(wanted: str, *reported: Optional[str]) -> bool:
    """
    Exact, published-name, or substring containment in either direction.

    The same route shows up as "MTA NYCT_M15", "M15" and "M15-SBS" across
    fields of one response. Containment makes "M1" match "M15" and
    "M15" match "M15-SBS"; callers that need precision must not use it.
    """
    target = normalize_line(wanted)
    if not target:
        return True
    for value in reported:
        candidate = normalize_line(value)
        if not candidate:
            continue
        if candidate == target or target in candidate or candidate in target:
            return True
    return False


def normalize_line(value: Optional[str]) -> str:
    """Lowercase, trimmed, without a leading "Line " label."""
    if not value:
        return ""
    text = value.strip()
    if text.lower().startswith("line "):
        text = text[5:]
    return text.strip().lower()


@dataclass(frozen=True)
class MatchPolicy:
    route_rule: str = "exact"  # exact | any | prefixed | loose | ferry
    direction_suffix: bool = False  # stop ids carry N/S suffix
    relaxed_destination: bool = False  # accept trips not yet reporting the destination
    directional_proxy: bool = False  # adjacent first stop stands in for a missing origin
    infer_line: bool = False  # derive route from stop set
    schedule_family: Optional[str] = None  # snapshot used for hybrid merge


POLICIES: Dict[AgencyMode, MatchPolicy] = {
    AgencyMode.SUBWAY: MatchPolicy(route_rule="exact", direction_suffix=True),
    AgencyMode.LIRR: MatchPolicy(route_rule="any", schedule_family="lirr"),
    AgencyMode.MNR: MatchPolicy(route_rule="any", schedule_family="mnr"),
    AgencyMode.PATH: MatchPolicy(route_rule="any", relaxed_destination=True, directional_proxy=True),
    AgencyMode.FERRY: MatchPolicy(
        route_rule="ferry",
        relaxed_destination=True,
        infer_line=True,
        schedule_family="ferry",
    ),
    # Bus adapters filter by route themselves
    AgencyMode.BUS: MatchPolicy(route_rule="any"),
    AgencyMode.MTA_BUS: MatchPolicy(route_rule="prefixed"),
    AgencyMode.NJT_RAIL: MatchPolicy(route_rule="loose", schedule_family="njt"),
    AgencyMode.NJT_BUS: MatchPolicy(route_rule="any"),
}

ROUTE_RULES = {
    "exact": route_exact,
    "any": route_any,
    "prefixed": route_agency_prefixed,
    "loose": route_loose,
}


def policy_for(mode: AgencyMode) -> MatchPolicy:
    return POLICIES[mode]


def schedule_families(modes: Iterable[AgencyMode] = POLICIES) -> Dict[AgencyMode, str]:
    """Modes that support scheduled fallback, with their snapshot family."""
    return {m: POLICIES[m].schedule_family for m in modes if POLICIES[m].schedule_family}
