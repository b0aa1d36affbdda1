"""Testing items specific to YML parsing/pydantic validation"""

from pathlib import Path
import pytest
from peaux.project.config import DecoderConfig, DirectoryKind
from peaux.project.error import (
    DecoderConfigNotFoundException,
    InvalidDecoderConfigError,
)


def test_defaults():
    config = DecoderConfig.default()
    assert config.ignore_invalid_key is False
    assert config.library_name_max_length == 0x100
    assert config.symbol_name_max_length == 0x200
    assert config.coff_name_check_length == 96
    assert all(config.wants(kind) for kind in DirectoryKind)


def test_empty_file():
    """Every field has a default."""
    config = DecoderConfig.from_str("{}")
    assert config == DecoderConfig.default()


def test_dashed_keys():
    config = DecoderConfig.from_str(
        """\
        ignore-invalid-key: true
        library-name-max-length: 64
        symbol-name-max-length: 128
        directories:
        - rich
        - delay-import
        """
    )

    assert config.ignore_invalid_key is True
    assert config.library_name_max_length == 64
    assert config.symbol_name_max_length == 128
    assert config.wants(DirectoryKind.RICH)
    assert config.wants(DirectoryKind.DELAY_IMPORT)
    assert not config.wants(DirectoryKind.COFF)


def test_underscore_keys():
    config = DecoderConfig.from_str("ignore_invalid_key: true")
    assert config.ignore_invalid_key is True


@pytest.mark.parametrize(
    "yaml",
    (
        "library-name-max-length: 0",
        "directories: [exports]",
        "ignore-invalid-key: [1, 2]",
        "directories: [rich",
    ),
)
def test_invalid(yaml: str):
    with pytest.raises(InvalidDecoderConfigError):
        DecoderConfig.from_str(yaml)


def test_file_not_found(tmp_path: Path):
    with pytest.raises(DecoderConfigNotFoundException):
        DecoderConfig.from_file(tmp_path / "peaux.yml")


def test_write_and_load(tmp_path: Path):
    filename = tmp_path / "peaux.yml"
    config = DecoderConfig(
        ignore_invalid_key=True, directories=[DirectoryKind.SECURITY]
    )
    config.write_file(filename)

    assert "ignore-invalid-key: true" in filename.read_text()
    assert DecoderConfig.from_file(filename) == config
