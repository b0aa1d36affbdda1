from pathlib import Path
from typing import Iterator
import pytest

from peaux.formats import ByteSource, PEHeader


def pytest_addoption(parser):
    """Allow the option to run tests against a sample binary."""
    parser.addoption("--pe", action="store", help="Path to any PE32 or PE32+ file")


@pytest.fixture(name="pefile", scope="session")
def fixture_pefile(pytestconfig) -> Iterator[tuple[PEHeader, ByteSource]]:
    filename = pytestconfig.getoption("--pe")

    # Skip this if we have not provided the path to a sample.
    if filename is None:
        pytest.skip(allow_module_level=True, reason="No path to sample PE file")

    filename = Path(filename)
    pe = PEHeader.from_memory(filename.read_bytes())
    with ByteSource.open(filename) as source:
        yield (pe, source)
