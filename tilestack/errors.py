"""Exception taxonomy for tile export and pyramid scaling."""

from typing import Optional


class TilestackError(Exception):
    """Base class for all errors raised by tilestack."""


class ConfigurationError(TilestackError, ValueError):
    """Invalid run parameters: tile size, tile pattern, odd downsample input..."""


class TileError(TilestackError, OSError):
    """
    I/O failure for a single tile.

    Carries the full tile address so a failure can be reported per tile and a
    partial re-run can target exactly the tiles that are missing.
    """
    def __init__(self, message: str, address=None, path: Optional[str] = None) -> None:
        self.address = address
        self.path = None if path is None else str(path)
        context = []
        if address is not None:
            context.append(
                f"s={address.s}, z={address.z}, r={address.r}, c={address.c}"
            )
        if self.path is not None:
            context.append(f"path={self.path}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class TileReadError(TileError):
    """A tile or source block exists but could not be read or decoded."""


class TileWriteError(TileError):
    """A tile could not be encoded or written."""
