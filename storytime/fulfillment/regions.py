"""
Region name normalisation for shipping addresses.
"""

from __future__ import annotations

REGION_CODES: dict[str, str] = {
    # Australia
    "new south wales": "NSW",
    "victoria": "VIC",
    "queensland": "QLD",
    "western australia": "WA",
    "south australia": "SA",
    "tasmania": "TAS",
    "australian capital territory": "ACT",
    "northern territory": "NT",
    # United States
    "california": "CA",
    "new york": "NY",
    "texas": "TX",
    "florida": "FL",
    "illinois": "IL",
    "pennsylvania": "PA",
    "ohio": "OH",
    "georgia": "GA",
    "north carolina": "NC",
    "michigan": "MI",
    # Canada
    "ontario": "ON",
    "quebec": "QC",
    "british columbia": "BC",
    "alberta": "AB",
    "manitoba": "MB",
    "saskatchewan": "SK",
}


def normalize_region(state: str | None) -> str:
    """Map a full region name to its postal code; anything unknown passes through trimmed."""
    if not state:
        return ""
    cleaned = state.strip()
    return REGION_CODES.get(cleaned.lower(), cleaned)
