"""
Scores open items of the opposite kind against a lost report or found item.

Candidates share the target's category and are still active (found items
``listed``, lost reports ``reported``). Points: station 30, transit mode 10,
5 per shared keyword up to 20, plus 40 for the category itself.
"""
import re
from dataclasses import dataclass, field
from typing import List

from app.models.item import Item, ItemKind, ItemStatus
from app.services.item_store import ItemStore

MATCH_THRESHOLD = 30
CANDIDATE_LIMIT = 50

CATEGORY_POINTS = 40
STATION_POINTS = 30
MODE_POINTS = 10
KEYWORD_POINTS = 5
KEYWORD_CAP = 20

STOPWORDS = {
    "the", "and", "with", "for", "was", "were", "has", "have", "near", "from",
    "this", "that", "my", "on", "in", "at", "of", "it", "its", "left", "lost", "found",
}

ACTIVE_STATUS = {
    ItemKind.found: ItemStatus.listed,
    ItemKind.lost: ItemStatus.reported,
}


@dataclass
class MatchResult:
    item: Item
    score: int
    reasons: List[str] = field(default_factory=list)


def keywords(item: Item) -> set[str]:
    text = f"{item.title} {item.description}".lower()
    return {w for w in re.findall(r"[a-z0-9]+", text) if len(w) > 2 and w not in STOPWORDS}


def _same_station(target: Item, candidate: Item) -> bool:
    if not target.station or not candidate.station:
        return False
    return candidate.station.lower() in target.station.lower()


def score(target: Item, candidate: Item) -> int:
    points = 0

    if target.category == candidate.category:
        points += CATEGORY_POINTS
    if _same_station(target, candidate):
        points += STATION_POINTS
    if target.mode and target.mode == candidate.mode:
        points += MODE_POINTS

    shared = keywords(target) & keywords(candidate)
    points += min(len(shared) * KEYWORD_POINTS, KEYWORD_CAP)

    return points


def reasons(target: Item, candidate: Item, points: int) -> list[str]:
    found = []

    if _same_station(target, candidate):
        found.append("Same Station")
    if target.mode and target.mode == candidate.mode:
        found.append("Same Transit Mode")
    if points >= 60:
        found.append("High Keyword Match")
    elif points >= 40:
        found.append("Partial Keyword Match")

    return found


def find_matches(items: ItemStore, target: Item, threshold: int = MATCH_THRESHOLD) -> list[MatchResult]:
    """Candidates scoring at least ``threshold``, best first."""
    other = ItemKind.found if target.kind == ItemKind.lost else ItemKind.lost

    candidates = items.list(
        kind=other,
        category=target.category,
        status=ACTIVE_STATUS[other],
        limit=CANDIDATE_LIMIT,
    )

    matches = []
    for candidate in candidates:
        points = score(target, candidate)
        if points >= threshold:
            matches.append(MatchResult(candidate, points, reasons(target, candidate, points)))

    return sorted(matches, key=lambda m: m.score, reverse=True)
