import logging
import re
from typing import Dict, Iterable

from models import RawRow, STANDARD_COLUMNS
from validation import MAX_SCORE, MIN_SCORE, parse_number, round_score

logger = logging.getLogger(__name__)

DEFAULT_DOMAINS = [
    "Algebra",
    "Geometry",
    "Statistics",
    "Number Theory",
    "Precalculus",
    "Calculus",
]


def pretty_label(header: str) -> str:
    """``number_theory`` -> ``Number Theory``."""
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), header.replace("_", " "))


def extract_domains(row: RawRow, headers: Iterable[str]) -> Dict[str, float]:
    """Collect numeric values of every non-standard column as domain scores."""
    standard = set(STANDARD_COLUMNS)
    domains: Dict[str, float] = {}
    for header in headers:
        if header in standard or not header:
            continue
        value = parse_number(row.get(header))
        if value is None:
            continue
        if value < MIN_SCORE or value > MAX_SCORE:
            logger.warning("Ignoring out-of-range %s score %s", header, value)
            continue
        domains[pretty_label(header)] = round_score(value)
    return domains
