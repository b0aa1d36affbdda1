"""Settings for the directory decoders, loaded from peaux.yml"""

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, BaseModel, Field, ValidationError
import ruamel.yaml
from ruamel.yaml.error import YAMLError

from peaux.formats.coff import COFF_SYMBOL_NAME_MAX_LENGTH
from peaux.formats.delayimport import (
    IMPORT_LIBRARY_MAX_LENGTH,
    IMPORT_SYMBOL_MAX_LENGTH,
)
from .error import DecoderConfigNotFoundException, InvalidDecoderConfigError

PEAUX_CONFIG = "peaux.yml"

_yaml = ruamel.yaml.YAML()


class YmlFileModel(BaseModel):
    @classmethod
    def from_file(cls, filename: Path):
        try:
            with filename.open("r") as f:
                return cls.model_validate(_yaml.load(f))
        except FileNotFoundError as e:
            raise DecoderConfigNotFoundException(f"{filename} not found") from e
        except (ValidationError, YAMLError) as e:
            raise InvalidDecoderConfigError(f"{filename} : {e}") from e

    @classmethod
    def from_str(cls, yaml: str):
        try:
            return cls.model_validate(_yaml.load(yaml))
        except (ValidationError, YAMLError) as e:
            raise InvalidDecoderConfigError(str(e)) from e

    def write_file(self, filename: Path):
        with filename.open("w") as f:
            _yaml.dump(data=self.model_dump(mode="json", by_alias=True), stream=f)


class DirectoryKind(str, Enum):
    RICH = "rich"
    DELAY_IMPORT = "delay-import"
    COFF = "coff"
    SECURITY = "security"
    RELOCATIONS = "relocations"


class DecoderConfig(YmlFileModel):
    """File schema for peaux.yml"""

    ignore_invalid_key: bool = Field(
        default=False,
        validation_alias=AliasChoices("ignore-invalid-key", "ignore_invalid_key"),
        serialization_alias="ignore-invalid-key",
    )
    library_name_max_length: int = Field(
        default=IMPORT_LIBRARY_MAX_LENGTH,
        gt=0,
        validation_alias=AliasChoices(
            "library-name-max-length", "library_name_max_length"
        ),
        serialization_alias="library-name-max-length",
    )
    symbol_name_max_length: int = Field(
        default=IMPORT_SYMBOL_MAX_LENGTH,
        gt=0,
        validation_alias=AliasChoices(
            "symbol-name-max-length", "symbol_name_max_length"
        ),
        serialization_alias="symbol-name-max-length",
    )
    coff_name_check_length: int = Field(
        default=COFF_SYMBOL_NAME_MAX_LENGTH,
        gt=0,
        validation_alias=AliasChoices(
            "coff-name-check-length", "coff_name_check_length"
        ),
        serialization_alias="coff-name-check-length",
    )
    directories: list[DirectoryKind] = Field(
        default_factory=lambda: list(DirectoryKind)
    )

    @classmethod
    def default(cls) -> "DecoderConfig":
        return cls()

    def wants(self, kind: DirectoryKind) -> bool:
        return kind in self.directories
