from pathlib import Path
from typing import Callable, List, Tuple

import pytest

from interpreter import Interpreter


PROGRAMS = Path(__file__).resolve().parent.parent / "programs"


@pytest.fixture
def programs_dir() -> Path:
    return PROGRAMS


@pytest.fixture
def run_ante() -> Callable[..., Tuple[Interpreter, str]]:
    """Run source text and hand back the interpreter plus everything it printed."""

    def _run(source: str, **kwargs) -> Tuple[Interpreter, str]:
        output: List[str] = []
        interpreter = Interpreter(source=source, filename="<string>", output_sink=output.append, **kwargs)
        interpreter.run()
        return interpreter, "".join(output)

    return _run
