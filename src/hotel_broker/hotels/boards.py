"""Meal-plan (board) names and the board summary shown to guests."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Board

NO_BOARD = 0
ROOM_ONLY = 14

BOARD_NAMES: Dict[int, Dict[str, str]] = {
    0: {"en": "No board or N/A", "el": "Χωρίς γεύματα ή Μη διαθέσιμο"},
    1: {"en": "All Inclusive", "el": "All Inclusive"},
    2: {"en": "American", "el": "Αμερικανικό Πρωινό"},
    3: {"en": "Bed & Breakfast", "el": "Διαμονή & Πρωινό"},
    4: {"en": "Buffet Breakfast", "el": "Πρωινό σε Μπουφέ"},
    5: {"en": "Caribbean Breakfast", "el": "Πρωινό Καραϊβικής"},
    6: {"en": "Continental Breakfast", "el": "Ηπειρωτικό Πρωινό"},
    7: {"en": "English Breakfast", "el": "Αγγλικό Πρωινό"},
    8: {"en": "European Plan", "el": "Ευρωπαϊκό Πρωινό"},
    9: {"en": "Family Plan", "el": "Οικογενειακό Πρωινό"},
    10: {"en": "Full Board", "el": "Πλήρης Διατροφή"},
    11: {"en": "Full Breakfast", "el": "Πλήρες Πρωινό"},
    12: {"en": "Half Board", "el": "Ημιδιατροφή"},
    13: {"en": "As Brochured", "el": "Πρωινό βάση φυλλαδίου"},
    14: {"en": "Room Only", "el": "Χωρίς διατροφή"},
    15: {"en": "Self Catering", "el": "Αυτοεξυπηρέτηση"},
    16: {"en": "Bermuda", "el": "Πρωινό Βερμούδων"},
    17: {"en": "Dinner Bed and Breakfast Plan", "el": "Δείπνο, Κρεβάτι και Πρωινό"},
    18: {"en": "Family American", "el": "Οικογενειακό Αμερικανικό Πρωινό"},
    19: {"en": "Breakfast", "el": "Πρωινό"},
    20: {"en": "Modified", "el": "Τροποποιημένο"},
    21: {"en": "Lunch", "el": "Μεσημεριανό"},
    22: {"en": "Dinner", "el": "Δείπνο"},
    23: {"en": "Breakfast & Lunch", "el": "Πρωινό & Μεσημεριανό"},
}

BOARD_LABELS: Dict[str, Dict[str, str]] = {
    "en": {"summary": "Board:", "options": "Board options:", "no_meals": "No meal options"},
    "el": {"summary": "Διατροφή:", "options": "Επιλογές Διατροφής:", "no_meals": "Χωρίς επιλογές διατροφής"},
}

# Boards folded into another id: the old id is dropped when the new one is present, relabelled otherwise.
BOARD_REPLACEMENTS: Tuple[Tuple[int, int], ...] = ((NO_BOARD, ROOM_ONLY),)


def board_name(board_id: int, lang: str = "en") -> str:
    for old, new in BOARD_REPLACEMENTS:
        if board_id == old:
            board_id = new
            break
    names = BOARD_NAMES.get(board_id) or BOARD_NAMES[ROOM_ONLY]
    return names.get(lang) or names["en"]


def normalize_board_ids(board_ids: Iterable[Optional[int]]) -> List[int]:
    """Apply the replacement rules and return the distinct known board ids in first-seen order."""
    ids = [ROOM_ONLY if board_id is None else board_id for board_id in board_ids]
    present = set(ids)
    for old, new in BOARD_REPLACEMENTS:
        if new in present:
            ids = [board_id for board_id in ids if board_id != old]
        else:
            ids = [new if board_id == old else board_id for board_id in ids]
    distinct: List[int] = []
    for board_id in ids:
        if board_id in BOARD_NAMES and board_id not in distinct:
            distinct.append(board_id)
    return distinct


def map_boards(board_ids: Iterable[Optional[int]], lang: str = "en") -> List[Board]:
    return [Board(id=board_id, name=board_name(board_id, lang)) for board_id in normalize_board_ids(board_ids)]


@dataclass(frozen=True, slots=True)
class BoardSummary:
    text: str
    has_boards: bool
    boards: Tuple[Board, ...]
    rule: str


@dataclass(frozen=True, slots=True)
class BoardTextRule:
    """One row of the board summary decision table."""

    name: str
    applies: Callable[[Sequence[Board]], bool]
    label: Optional[str]
    has_boards: bool
    transform: Callable[[Sequence[Board], Dict[str, str]], Tuple[Board, ...]]


def _has_room_only(boards: Sequence[Board]) -> bool:
    return any(board.id == ROOM_ONLY for board in boards)


def _keep(boards: Sequence[Board], _labels: Dict[str, str]) -> Tuple[Board, ...]:
    return tuple(boards)


def _rename_room_only(boards: Sequence[Board], labels: Dict[str, str]) -> Tuple[Board, ...]:
    return tuple(Board(id=board.id, name=labels["no_meals"]) for board in boards)


def _drop_room_only(boards: Sequence[Board], _labels: Dict[str, str]) -> Tuple[Board, ...]:
    return tuple(board for board in boards if board.id != ROOM_ONLY)


BOARD_TEXT_RULES: Tuple[BoardTextRule, ...] = (
    BoardTextRule("no_boards", lambda boards: not boards, None, False, _keep),
    BoardTextRule(
        "room_only_alone",
        lambda boards: len(boards) == 1 and boards[0].id == ROOM_ONLY,
        "summary",
        True,
        _rename_room_only,
    ),
    BoardTextRule("single_board", lambda boards: len(boards) == 1, "summary", True, _keep),
    BoardTextRule("room_only_with_others", _has_room_only, "options", True, _drop_room_only),
    BoardTextRule("several_boards", lambda boards: len(boards) > 1, "options", True, _keep),
)


def describe_boards(boards: Sequence[Board], lang: str = "en") -> BoardSummary:
    """Evaluate the decision table in order; the first matching rule wins."""
    labels = BOARD_LABELS.get(lang) or BOARD_LABELS["en"]
    for rule in BOARD_TEXT_RULES:
        if rule.applies(boards):
            text = labels[rule.label] if rule.label else ""
            return BoardSummary(text=text, has_boards=rule.has_boards, boards=rule.transform(boards, labels), rule=rule.name)
    raise AssertionError("board rules do not cover every input")
