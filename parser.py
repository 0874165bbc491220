from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from lexer import QUEEN, Card, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    statement: str


@dataclass(frozen=True)
class Program:
    cards: Tuple[Token, ...]
    labels: Dict[int, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cards)


class Parser:
    """Pre-resolve jump labels over the flat card stream.

    A label is a run of same-suit queens. Its key is the suit value times the
    run length, and it points at the card right after the run. Indices count
    line markers too, since the interpreter walks the very same sequence.
    """

    def __init__(
        self,
        tokens: Sequence[Token],
        filename: str,
        source_lines: Optional[List[str]] = None,
    ):
        self.tokens = tuple(tokens)
        self.filename = filename
        self.source_lines = source_lines or []
        self.index = 0

    def parse(self) -> Program:
        labels: Dict[int, int] = {}
        n = len(self.tokens)
        self.index = 0
        while self.index < n:
            token = self._peek()
            self.index += 1
            if not self._is_queen(token):
                continue
            assert isinstance(token, Card)
            key = token.suit
            while self.index < n and self._is_queen(self._peek(), token.suit):
                key += token.suit
                self.index += 1
            labels[key] = self.index
        return Program(cards=self.tokens, labels=labels)

    def location(self, line: int) -> SourceLocation:
        statement = ""
        if 1 <= line <= len(self.source_lines):
            statement = self.source_lines[line - 1].strip()
        return SourceLocation(file=self.filename, line=line, statement=statement)

    def _peek(self) -> Token:
        return self.tokens[self.index]

    @staticmethod
    def _is_queen(token: Token, suit: Optional[int] = None) -> bool:
        if not isinstance(token, Card) or token.rank != QUEEN:
            return False
        return suit is None or token.suit == suit
