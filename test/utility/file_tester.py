import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generator, List

from ftl.pipeline import CompilationResult


@dataclass
class TestExpectation:
    checkFails: bool
    expected_errors: List[str] = field(default_factory=list)


def _get_test_expectation(file_name: Path) -> TestExpectation:
    """Parses the leading comment lines of the test file.
    Format:
        # CHECK: OK|FAIL
        # ERROR: <substring of an expected error message>   (any number)
    """
    with open(file_name, "r") as file:
        first_line = file.readline().strip()
        expectation = TestExpectation(checkFails=first_line == "# CHECK: FAIL")
        for line in file:
            line = line.strip()
            if not line.startswith("# ERROR: "):
                break
            expectation.expected_errors.append(line[len("# ERROR: ") :])
        return expectation


def get_all_test_files(base_path: Path, extension: str) -> Generator[Path, None, None]:
    for root, _, files in os.walk(base_path):
        for file in sorted(files):
            if file.endswith("." + extension):
                yield Path(os.path.join(root, file))


def file_test_check(file_name: Path, runFn: Callable[[Path], CompilationResult]) -> None:
    expected = _get_test_expectation(file_name)
    result = runFn(file_name)
    messages = [d.message for d in result.errors]

    if expected.checkFails:
        assert not result.succeeded, f"{file_name}: Expected failure, but check passed"
    else:
        assert result.succeeded, f"{file_name}: Expected check to pass, got {messages}"

    for substring in expected.expected_errors:
        assert any(
            substring in message for message in messages
        ), f"{file_name}: Expected an error containing '{substring}', got {messages}"
