"""Discovery of migration script files.

Migration files are named ``<version>.<do|undo>.<title>.<ext>``, for example
``0003.do.add.user.index.surql``. Files for the same version are grouped into
a single MigrationUnit.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .base import Direction, DiscoveryError, MigrationUnit

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".surql"


@dataclass(frozen=True)
class ParsedName:
    """A filename that matches the migration pattern."""

    filename: str
    version: int
    direction: Direction
    title: str


@dataclass(frozen=True)
class InvalidName:
    """A filename that does not match the migration pattern.

    Attributes:
        filename: The rejected filename
        reason: Why it was rejected
        is_candidate: True when the name has the migration shape
            (direction token and extension) but a malformed version
    """

    filename: str
    reason: str
    is_candidate: bool = False


def normalize_extension(extension: str) -> str:
    """Ensure the extension starts with a dot."""
    return extension if extension.startswith(".") else f".{extension}"


def parse_migration_filename(
    filename: str,
    extension: str = DEFAULT_EXTENSION,
) -> Union[ParsedName, InvalidName]:
    """Parse a migration filename into version, direction and title.

    Pure function: does not touch the filesystem.

    Args:
        filename: Base filename (no directory part)
        extension: Script file extension

    Returns:
        ParsedName on success, InvalidName otherwise

    Examples:
        >>> parse_migration_filename("2.do.add.users.surql")
        ParsedName(filename='2.do.add.users.surql', version=2, direction=<Direction.APPLY: 'apply'>, title='add.users')
    """
    extension = normalize_extension(extension)

    if not filename.endswith(extension) or len(filename) == len(extension):
        return InvalidName(filename, f"extension is not {extension}")

    stem = filename[: -len(extension)]
    parts = stem.split(".")
    if len(parts) < 2:
        return InvalidName(filename, "missing direction token")

    version_token, direction_token, *title_parts = parts
    direction = Direction.from_file_token(direction_token)
    if direction is None:
        return InvalidName(filename, f"unknown direction {direction_token!r}")

    # isdigit() alone accepts non-ASCII digits such as "²"
    if not (version_token.isascii() and version_token.isdigit()):
        return InvalidName(
            filename,
            f"version {version_token!r} is not an integer",
            is_candidate=True,
        )

    version = int(version_token)
    if version <= 0:
        return InvalidName(
            filename,
            f"version {version_token!r} must be positive",
            is_candidate=True,
        )

    return ParsedName(
        filename=filename,
        version=version,
        direction=direction,
        title=".".join(title_parts),
    )


def scan_migrations(
    directory: Union[str, Path],
    extension: str = DEFAULT_EXTENSION,
) -> dict[int, MigrationUnit]:
    """Discover migration units in a directory.

    Args:
        directory: Directory containing migration files
        extension: Script file extension

    Returns:
        Mapping of version to MigrationUnit

    Raises:
        DiscoveryError: If the directory cannot be read, a migration file has a
            malformed version, or a version has two scripts for one direction
    """
    directory = Path(directory)

    try:
        entries = sorted(p for p in directory.iterdir() if p.is_file())
    except OSError as e:
        raise DiscoveryError(f"Failed to read migration directory {directory}: {e}") from e

    units: dict[int, MigrationUnit] = {}

    for path in entries:
        if path.name.startswith("."):
            continue

        parsed = parse_migration_filename(path.name, extension)

        if isinstance(parsed, InvalidName):
            if parsed.is_candidate:
                raise DiscoveryError(f"Invalid migration file {path.name}: {parsed.reason}")
            logger.debug(f"Ignoring {path.name}: {parsed.reason}")
            continue

        unit = units.get(parsed.version)
        if unit is None:
            unit = units[parsed.version] = MigrationUnit(
                version=parsed.version,
                title=parsed.title,
            )
        elif parsed.title != unit.title:
            logger.warning(
                f"Title mismatch for migration {parsed.version}: "
                f"{parsed.title!r} in {path.name}, keeping {unit.title!r}"
            )

        existing = unit.script_for(parsed.direction)
        if existing is not None:
            raise DiscoveryError(
                f"Duplicate {parsed.direction.file_token} script for migration "
                f"{parsed.version}: {existing.name} and {path.name}"
            )

        if parsed.direction is Direction.APPLY:
            unit.forward_script = path
        else:
            unit.backward_script = path

    logger.debug(f"Discovered {len(units)} migration(s) in {directory}")
    return units
