from __future__ import annotations
import codecs
import json
import operator
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Type

import numpy as np
from numpy.typing import NDArray

from lexer import (
    ACE,
    CLUBS,
    DIAMONDS,
    HEARTS,
    JACK,
    KING,
    QUEEN,
    SPADES,
    AnteError,
    Card,
    Lexer,
    LineMarker,
    Token,
    suit_glyph,
)
from parser import Parser, Program, SourceLocation


SUIT_ORDER = (DIAMONDS, HEARTS, SPADES, CLUBS)
SUIT_INDEX: Dict[int, int] = {suit: i for i, suit in enumerate(SUIT_ORDER)}

# The suit of every operand after the first picks the arithmetic.
OPERATORS: Dict[int, Callable[[int, int], int]] = {
    DIAMONDS: operator.add,
    HEARTS: operator.mul,
    SPADES: operator.sub,
    CLUBS: operator.floordiv,
}

BOUNDARY_RANKS = frozenset({KING, QUEEN, JACK})

RULE_LINE = "LINE"
RULE_JUMP = "JUMP"
RULE_LABEL = "LABEL"
RULE_DUMP_CHAR = "DUMP_CHAR"
RULE_DUMP_NUM = "DUMP_NUM"
RULE_ASSIGN = "ASSIGN"

# Only the tail of the step log and output log is kept.
DEFAULT_HISTORY = 256


@dataclass
class Registers:
    """Four unbounded integer cells, one per suit.

    The cells live in an object-dtype array so they hold plain Python ints and
    never overflow.
    """

    data: NDArray[Any] = field(default_factory=lambda: np.array([0, 0, 0, 0], dtype=object))

    def __getitem__(self, suit: int) -> int:
        return int(self.data[SUIT_INDEX[suit]])

    def __setitem__(self, suit: int, value: int) -> None:
        self.data[SUIT_INDEX[suit]] = int(value)

    def snapshot(self) -> Dict[str, str]:
        return {suit_glyph(suit): str(self[suit]) for suit in SUIT_ORDER}


class AnteRuntimeError(AnteError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        line: int = 0,
        pc: int = 0,
        rewrite_rule: Optional[str] = None,
    ) -> None:
        super().__init__(f"Ante exception: {message} on line {line} (pc:{pc})")
        self.message = message
        self.line = line
        self.pc = pc
        self.rewrite_rule = rewrite_rule
        self.step_index: Optional[int] = None


class LabelNotFoundError(AnteRuntimeError):
    pass


class DivisionByZeroError(AnteRuntimeError):
    pass


class CharacterRangeError(AnteRuntimeError):
    pass


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    pc: Optional[int]
    line: int
    rule: str
    card: Optional[str]
    registers: Optional[Dict[str, str]]


class StateLogger:
    def __init__(self, verbose: bool, history: int = DEFAULT_HISTORY) -> None:
        if history < 1:
            raise ValueError("history must be >= 1")
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0

    def record(
        self,
        *,
        pc: Optional[int],
        line: int,
        rule: str,
        card: Optional[str] = None,
        registers: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            pc=pc,
            line=line,
            rule=rule,
            card=card,
            registers=registers,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    @property
    def last(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


def _print_sink(text: str) -> None:
    print(text, end="", flush=True)


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        output_sink: Optional[Callable[[str], None]] = None,
        comment: str = "#",
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self.source = source
        self._source_lines = source.split("\n")
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.comment = comment
        self.output_sink = output_sink or _print_sink
        self.registers = Registers()
        self.pc = 0
        self.line = 0
        self.parser: Optional[Parser] = None
        self.program: Optional[Program] = None
        # Collects the bytes of a multi-byte character across JACK dumps.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.logger = StateLogger(verbose=verbose, history=history)
        self.logger.record(pc=None, line=0, rule="SEED")
        self.io_log: Deque[Dict[str, Any]] = deque(maxlen=history)

    def parse(self) -> Program:
        lexer = Lexer(self.source, comment=self.comment)
        tokens = lexer.tokenize()
        self.parser = Parser(tokens, self.filename, self._source_lines)
        return self.parser.parse()

    def source_location(self, line: int) -> SourceLocation:
        if self.parser is not None:
            return self.parser.location(line)
        return SourceLocation(file=self.filename, line=line, statement="")

    def run(self) -> None:
        self.program = self.parse()
        try:
            self._execute(self.program)
        except AnteRuntimeError as error:
            if self.logger.entries:
                error.step_index = self.logger.entries[-1].step_index
            raise
        except Exception as exc:
            # Surface Python-level failures as interpreter errors so the CLI
            # can render them like any other traceback.
            wrapped = AnteRuntimeError(
                f"Internal interpreter error: {exc}",
                line=self.line,
                pc=self.pc,
                rewrite_rule="internal",
            )
            if self.logger.entries:
                wrapped.step_index = self.logger.entries[-1].step_index
            raise wrapped from exc
        finally:
            # An unfinished multi-byte character is dropped at the end of a run.
            self._decoder.reset()

    def _execute(self, program: Program) -> None:
        cards = program.cards
        n = len(cards)
        log_step = self._log_step
        while self.pc < n:
            card = cards[self.pc]
            self.pc += 1
            if isinstance(card, LineMarker):
                self.line = card.line
                log_step(RULE_LINE, card)
                continue
            rank = card.rank
            if rank == KING:
                log_step(RULE_JUMP, card)
                self._jump(card)
            elif rank == QUEEN:
                log_step(RULE_LABEL, card)
            elif rank == JACK:
                log_step(RULE_DUMP_CHAR, card)
                self._dump_char(card)
            elif rank == 10:
                log_step(RULE_DUMP_NUM, card)
                self._dump_number(card)
            else:
                log_step(RULE_ASSIGN, card)
                self._assign(card)

    def _jump(self, card: Card) -> None:
        assert self.program is not None
        cards = self.program.cards
        key = card.suit
        while self.pc < len(cards) and self._is_rank(cards[self.pc], KING, card.suit):
            key += card.suit
            self.pc += 1

        if self.registers[card.suit] == 0:
            return
        target = self.program.labels.get(key)
        if target is None:
            label = f"Q{suit_glyph(card.suit)}" * (key // card.suit)
            raise self._error(LabelNotFoundError, f"can't find {label} to go to", RULE_JUMP)
        self.pc = target

    def _dump_number(self, card: Card) -> None:
        value = self.registers[card.suit]
        self._emit(str(value), RULE_DUMP_NUM, value)

    def _dump_char(self, card: Card) -> None:
        value = self.registers[card.suit]
        if value < 0 or value > 255:
            raise self._error(
                CharacterRangeError,
                f"character code {value} is out of 0..255 range",
                RULE_DUMP_CHAR,
            )
        text = self._decoder.decode(bytes((value,)))
        if text:
            self._emit(text, RULE_DUMP_CHAR, value)

    def _assign(self, card: Card) -> None:
        operands = self._remaining(card)
        self._expression(operands)

    def _remaining(self, card: Card) -> List[Card]:
        """Fetch the rest of the assignment: everything up to the next boundary card."""
        assert self.program is not None
        cards = self.program.cards
        operands = [card]
        while self.pc < len(cards):
            following = cards[self.pc]
            if isinstance(following, LineMarker) or following.rank in BOUNDARY_RANKS:
                break
            operands.append(following)
            self.pc += 1
        return operands

    def _expression(self, operands: List[Card]) -> None:
        registers = self.registers
        first = operands[0]
        target = first.suit
        total = registers[target] if first.rank == ACE else first.rank

        for operand in operands[1:]:
            value = registers[operand.suit] if operand.rank == ACE else operand.rank
            if operand.suit == CLUBS and value == 0:
                raise self._error(DivisionByZeroError, "division by zero", RULE_ASSIGN)
            total = OPERATORS[operand.suit](total, value)
        registers[target] = total

    def _emit(self, text: str, rule: str, value: int) -> None:
        self.output_sink(text)
        self.io_log.append({"event": rule, "value": value, "text": text})

    def _error(self, kind: Type[AnteRuntimeError], message: str, rule: str) -> AnteRuntimeError:
        return kind(message, line=self.line, pc=self.pc, rewrite_rule=rule)

    def _log_step(self, rule: str, card: Token) -> None:
        self.logger.record(
            pc=self.pc - 1,
            line=self.line,
            rule=rule,
            card=str(card),
            registers=self.registers.snapshot() if self.verbose else None,
        )

    @staticmethod
    def _is_rank(token: Token, rank: int, suit: int) -> bool:
        return isinstance(token, Card) and token.rank == rank and token.suit == suit


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        entry = self.interpreter.logger.last
        location = None
        if entry is not None and entry.pc is not None:
            location = self.interpreter.source_location(entry.line)
        return [TracebackFrame(name="<program>", location=location, state_entry=entry)]

    def format_text(self, error: AnteRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames():
            if frame.location:
                lines.append(f"  File \"{frame.location.file}\", line {frame.location.line}, in {frame.name}")
                if frame.location.statement:
                    lines.append(f"    {frame.location.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if frame.state_entry:
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.registers is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.registers.items())
                    lines.append(f"    Registers: {snapshot}")
        rule = error.rewrite_rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error} (rewrite: {rule})")
        return "\n".join(lines)

    def to_json(self, error: AnteRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames()):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "statement": frame.location.statement,
                }
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                entry["rule"] = frame.state_entry.rule
                entry["card"] = frame.state_entry.card
                if frame.state_entry.registers is not None:
                    entry["registers"] = frame.state_entry.registers
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "line": error.line,
                "pc": error.pc,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2, ensure_ascii=False)
