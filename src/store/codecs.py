"""Format codecs between raw file bytes and row mappings.

Each codec decodes one textual format into a list of string-keyed
mappings and encodes such a list back to bytes. Codecs know nothing
about policies or delegations; row typing happens in ``store.rows``.
"""

from __future__ import annotations

import configparser
import csv
import io
import json
import tomllib
from typing import Any, Callable, Mapping, Protocol, Sequence

import tomli_w
import yaml

from core.constants import FILE_ENCODING, INI_SECTION_PREFIX, TOML_RECORDS_KEY
from core.errors import PatrolConfigError, PatrolDecodeError, PatrolEncodeError
from core.types import SUPPORTED_STORAGE_DRIVERS

RowMapping = dict[str, Any]


class Codec(Protocol):
    """Codec contract consumed by file repositories.

    Attributes:
        extension: File extension without a leading dot.
        flat: Whether values must be scalar strings (lists joined, maps encoded).
        strict: Whether a single-file decode failure should propagate.
    """

    extension: str
    flat: bool
    strict: bool

    def decode(self, content: bytes) -> list[RowMapping]:
        """Decode file content into row mappings.

        Raises:
            PatrolDecodeError: If the content is not valid for the format.
        """
        ...

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        """Encode row mappings into file content.

        Raises:
            PatrolEncodeError: If a value has no representation in the format.
        """
        ...


class JsonCodec:
    """Pretty-printed JSON arrays; a top-level object is one record."""

    extension = "json"
    flat = False
    strict = True

    def decode(self, content: bytes) -> list[RowMapping]:
        try:
            payload = json.loads(_decode_text(content))
        except json.JSONDecodeError as error:
            raise PatrolDecodeError(f"Invalid JSON: {error.msg} at line {error.lineno}") from error
        return _normalize_rows(payload, "JSON")

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        try:
            encoded = json.dumps([dict(row) for row in rows], indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as error:
            raise PatrolEncodeError(f"Cannot encode JSON: {error}") from error
        return (encoded + "\n").encode(FILE_ENCODING)


class YamlCodec:
    """YAML sequences of mappings via PyYAML safe loading."""

    extension = "yaml"
    flat = False
    strict = False

    def decode(self, content: bytes) -> list[RowMapping]:
        try:
            payload = yaml.safe_load(_decode_text(content))
        except yaml.YAMLError as error:
            raise PatrolDecodeError(f"Invalid YAML: {error}") from error
        if payload is None:
            return []
        return _normalize_rows(payload, "YAML")

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        try:
            encoded = yaml.safe_dump(
                [dict(row) for row in rows],
                sort_keys=False,
                allow_unicode=True,
                default_flow_style=False,
            )
        except yaml.YAMLError as error:
            raise PatrolEncodeError(f"Cannot encode YAML: {error}") from error
        return encoded.encode(FILE_ENCODING)


class TomlCodec:
    """Array of tables under ``records``; None values are omitted at any depth."""

    extension = "toml"
    flat = False
    strict = False

    def decode(self, content: bytes) -> list[RowMapping]:
        try:
            payload = tomllib.loads(_decode_text(content))
        except tomllib.TOMLDecodeError as error:
            raise PatrolDecodeError(f"Invalid TOML: {error}") from error
        if TOML_RECORDS_KEY in payload:
            return _normalize_rows(payload[TOML_RECORDS_KEY], "TOML")
        if not payload:
            return []
        return [dict(payload)]

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        tables = [_drop_none(row) for row in rows]
        try:
            encoded = tomli_w.dumps({TOML_RECORDS_KEY: tables})
        except (TypeError, ValueError) as error:
            raise PatrolEncodeError(f"Cannot encode TOML: {error}") from error
        return encoded.encode(FILE_ENCODING)


class CsvCodec:
    """CSV with a header row; every value is a string."""

    extension = "csv"
    flat = True
    strict = False

    def decode(self, content: bytes) -> list[RowMapping]:
        text = _decode_text(content)
        if not text.strip():
            return []
        try:
            reader = csv.DictReader(io.StringIO(text, newline=""))
            return [
                {key: value for key, value in row.items() if key is not None}
                for row in reader
            ]
        except csv.Error as error:
            raise PatrolDecodeError(f"Invalid CSV: {error}") from error

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        header: list[str] = []
        for row in rows:
            header.extend(key for key in row if key not in header)
        buffer = io.StringIO(newline="")
        writer = csv.DictWriter(buffer, fieldnames=header, restval="", lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({key: "" if value is None else value for key, value in row.items()})
        return buffer.getvalue().encode(FILE_ENCODING)


class IniCodec:
    """One INI section per record, named ``record_N``."""

    extension = "ini"
    flat = True
    strict = False

    def decode(self, content: bytes) -> list[RowMapping]:
        parser = _ini_parser()
        try:
            parser.read_string(_decode_text(content))
        except configparser.Error as error:
            raise PatrolDecodeError(f"Invalid INI: {error}") from error
        return [dict(parser.items(section)) for section in parser.sections()]

    def encode(self, rows: Sequence[Mapping[str, Any]]) -> bytes:
        parser = _ini_parser()
        for index, row in enumerate(rows):
            section = f"{INI_SECTION_PREFIX}{index}"
            parser.add_section(section)
            for key, value in row.items():
                if value is not None:
                    parser.set(section, key, str(value))
        buffer = io.StringIO()
        parser.write(buffer)
        return buffer.getvalue().encode(FILE_ENCODING)


_CODECS: dict[str, Callable[[], Codec]] = {
    "json": JsonCodec,
    "yaml": YamlCodec,
    "toml": TomlCodec,
    "csv": CsvCodec,
    "ini": IniCodec,
}


def get_codec(driver: str) -> Codec:
    """Return a codec instance for a storage driver.

    Args:
        driver: Storage driver name.

    Returns:
        Codec for the driver's file format.

    Raises:
        PatrolConfigError: If the driver has no codec.
    """
    codec_factory = _CODECS.get(driver)
    if codec_factory is None:
        raise PatrolConfigError(
            f"No file codec for storage driver '{driver}'. "
            f"Use one of: {', '.join(SUPPORTED_STORAGE_DRIVERS)}."
        )
    return codec_factory()


def _decode_text(content: bytes) -> str:
    try:
        return content.decode(FILE_ENCODING)
    except UnicodeDecodeError as error:
        raise PatrolDecodeError(f"File is not valid {FILE_ENCODING}: {error.reason}") from error


def _drop_none(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _drop_none(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(item) for item in value if item is not None]
    return value


def _ini_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


def _normalize_rows(payload: object, format_name: str) -> list[RowMapping]:
    """Coerce a decoded document into a list of row mappings.

    Raises:
        PatrolDecodeError: If the document is not a mapping or list of mappings.
    """
    if isinstance(payload, Mapping):
        return [dict(payload)]
    if not isinstance(payload, list):
        raise PatrolDecodeError(
            f"Invalid {format_name} document: expected list of objects, "
            f"got {type(payload).__name__}"
        )
    rows: list[RowMapping] = []
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            raise PatrolDecodeError(
                f"Invalid {format_name} record at index {index}: "
                f"expected object, got {type(item).__name__}"
            )
        rows.append(dict(item))
    return rows
