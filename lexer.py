from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Union


class AnteError(Exception):
    """Base class for interpreter errors."""


class AnteLoadError(AnteError):
    """Raised when program source cannot be loaded."""


DIAMONDS = ord("♦")
HEARTS = ord("♥")
SPADES = ord("♠")
CLUBS = ord("♣")

JACK = 11
QUEEN = 12
KING = 13
ACE = 14

SUITS: Dict[str, int] = {
    "♦": DIAMONDS,
    "♥": HEARTS,
    "♠": SPADES,
    "♣": CLUBS,
}

RANKS: Dict[str, int] = {
    "2": 2,
    "3": 3,
    "4": 4,
    "5": 5,
    "6": 6,
    "7": 7,
    "8": 8,
    "9": 9,
    "J": JACK,
    "Q": QUEEN,
    "K": KING,
    "A": ACE,
}

RANK_NAMES: Dict[int, str] = {value: name for name, value in RANKS.items()}
RANK_NAMES[10] = "10"


def suit_glyph(suit: int) -> str:
    return chr(suit)


@dataclass(frozen=True)
class LineMarker:
    line: int

    def __str__(self) -> str:
        return f"<line {self.line}>"


@dataclass(frozen=True)
class Card:
    rank: int
    suit: int
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"{RANK_NAMES[self.rank]}{suit_glyph(self.suit)}"


Token = Union[LineMarker, Card]


class Lexer:
    def __init__(self, text: str, comment: str = "#") -> None:
        if not comment:
            raise ValueError("comment marker must be a non-empty string")
        self.text = text
        self.comment = comment
        self.index = 0
        self.line = 0
        self.column = 1
        self._line_text = ""

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        # Only "\n" ends a line; "\r" goes with the surrounding whitespace.
        for number, raw in enumerate(self.text.split("\n"), start=1):
            self.line = number
            tokens_append(LineMarker(number))
            indent = len(raw) - len(raw.lstrip())
            tokens.extend(self.scan_line(self.strip_line(raw), start_column=indent + 1))
        return tokens

    def strip_comment(self, raw: str) -> str:
        cut = raw.find(self.comment)
        if cut != -1:
            return raw[:cut]
        return raw

    def strip_line(self, raw: str) -> str:
        return self.strip_comment(raw).strip()

    def scan_line(self, line: str, start_column: int = 1) -> List[Card]:
        """Collect every rank+suit pair on one line, skipping anything else."""
        cards: List[Card] = []
        self._line_text = line
        self.index = 0
        self.column = start_column
        n = len(line)
        suits = SUITS
        while self.index < n:
            ch = line[self.index]
            # "10" has to win over the lone "1", which is not a rank.
            if ch == "1" and self._lookahead(1) == "0" and self._lookahead(2) in suits:
                cards.append(Card(10, suits[self._lookahead(2)], self.line, self.column))
                self._advance(3)
                continue
            if ch in RANKS and self._lookahead(1) in suits:
                cards.append(Card(RANKS[ch], suits[self._lookahead(1)], self.line, self.column))
                self._advance(2)
                continue
            self._advance(1)
        return cards

    def _lookahead(self, offset: int) -> str:
        pos = self.index + offset
        if pos < len(self._line_text):
            return self._line_text[pos]
        return ""

    def _advance(self, count: int) -> None:
        self.index += count
        self.column += count
