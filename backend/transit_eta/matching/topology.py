"""
Static network tables used when a feed omits identifiers.

The NYC Ferry feed never reports a route id or headsign, so the line and
destination are inferred from the stops a trip reports. PATH trips that
start at a terminal often omit the terminal itself; the proxy table lists
which adjacent stop may stand in for it.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import structlog

logger = structlog.get_logger()

# Canonical terminal-to-terminal stop order per ferry line
FERRY_ROUTES: Dict[str, Tuple[str, ...]] = {
    "East River": ("87", "20", "8", "19", "18", "4", "17"),
    "Rockaway": ("104", "88", "46", "118", "87"),
    "Astoria": ("113", "89", "25", "90", "17", "120", "87"),
    "South Brooklyn": ("115", "20", "87", "11", "24", "118", "23"),
    "Soundview": ("141", "112", "113", "114", "17", "87"),
    "St. George": ("137", "136", "138"),
    "Coney Island": ("307", "23", "87"),
}

FERRY_STOP_NAMES: Dict[str, str] = {
    "87": "Wall St/Pier 11",
    "20": "Dumbo",
    "8": "South Williamsburg",
    "19": "North Williamsburg",
    "18": "Greenpoint",
    "4": "Hunters Point South",
    "17": "East 34th St",
    "104": "Rockaway Park",
    "88": "Rockaway",
    "46": "Beach 41st St",
    "118": "Sunset Park",
    "113": "East 90th St",
    "89": "Astoria",
    "25": "Roosevelt Island",
    "90": "Long Island City",
    "120": "Brooklyn Navy Yard",
    "115": "Corlears Hook",
    "11": "Atlantic Ave/Pier 6",
    "24": "Red Hook",
    "23": "Bay Ridge",
    "141": "Ferry Point Park",
    "112": "Soundview",
    "114": "Stuyvesant Cove",
    "137": "St. George",
    "136": "Battery Park City",
    "138": "Midtown West",
    "307": "Coney Island",
}

# Route ids that mean "whichever ferry line serves this stop"
GENERIC_FERRY_ROUTES = frozenset({"", "any", "nyc-ferry", "NYC_FERRY"})

PATH_STOP_NAMES: Dict[str, str] = {
    "26722": "14th St",
    "26723": "23rd St",
    "26724": "33rd St",
    "26725": "9th St",
    "26726": "Christopher St",
    "26727": "Exchange Place",
    "26728": "Grove St",
    "26729": "Harrison",
    "26730": "Hoboken",
    "26731": "Journal Square",
    "26732": "Newport",
    "26733": "Newark",
    "26734": "World Trade Center",
}

# PATH direction ids
TOWARD_NEW_JERSEY = 0
TOWARD_NEW_YORK = 1

# (origin terminal, first reported stop) -> direction of travel
PATH_PROXIES: Dict[Tuple[str, str], int] = {
    ("26733", "26729"): TOWARD_NEW_YORK,  # Newark, first stop Harrison
    ("26731", "26728"): TOWARD_NEW_YORK,  # Journal Square, first stop Grove St
    ("26730", "26732"): TOWARD_NEW_YORK,  # Hoboken, first stop Newport
    ("26730", "26726"): TOWARD_NEW_YORK,  # Hoboken, first stop Christopher St
    ("26734", "26727"): TOWARD_NEW_JERSEY,  # WTC, first stop Exchange Place
    ("26724", "26723"): TOWARD_NEW_JERSEY,  # 33rd St, first stop 23rd St
}


def is_generic_ferry_route(route_id: Optional[str]) -> bool:
    return (route_id or "") in GENERIC_FERRY_ROUTES


def candidate_lines(stop_ids: Sequence[str]) -> List[str]:
    """Every line whose stop set contains all of `stop_ids`, in table order."""
    if not stop_ids:
        return []
    wanted = set(stop_ids)
    return [name for name, stops in FERRY_ROUTES.items() if wanted.issubset(stops)]


def infer_line(
    stop_ids: Sequence[str],
    prefer: Optional[str] = None,
    anchors: Sequence[str] = (),
) -> Optional[str]:
    """
    Name the ferry line a trip belongs to from the stops it reports.

    When several lines contain the reported stops, `prefer` (the line the
    rider asked for) wins if it is among them, then lines that also serve
    every stop in `anchors` (the rider's origin and destination). Any tie
    left after that goes to the first line in table order.
    """
    candidates = candidate_lines(stop_ids)
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    if prefer in candidates:
        return prefer

    anchored = [name for name in candidates if set(a for a in anchors if a).issubset(FERRY_ROUTES[name])]
    if anchored:
        candidates = anchored
    if len(candidates) > 1:
        logger.debug("Ambiguous ferry line", stops=list(stop_ids), candidates=candidates, chosen=candidates[0])
    return candidates[0]


def infer_destination(line: str, stop_ids: Sequence[str]) -> Optional[str]:
    """
    Terminal the trip is heading for, as a display name.

    A trip whose first reported stop comes no later than its last one in
    the canonical order runs forward to the line's last stop; otherwise it
    runs back to the first. A single reported stop counts as forward.
    """
    stops = FERRY_ROUTES.get(line)
    if not stops or not stop_ids:
        return None
    try:
        first = stops.index(stop_ids[0])
        last = stops.index(stop_ids[-1])
    except ValueError:
        return None
    terminal = stops[-1] if first <= last else stops[0]
    return FERRY_STOP_NAMES.get(terminal, terminal)


def path_proxy_direction(origin: str, first_reported: str) -> Optional[int]:
    return PATH_PROXIES.get((origin, first_reported))
