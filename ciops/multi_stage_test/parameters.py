"""Parameter store resolving values produced by other steps."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from ciops.multi_stage_test.errors import ParameterError


class Parameters(ABC):
    """Abstract base for parameter stores."""

    @abstractmethod
    def lookup(self, name: str) -> str | None:
        """Return the value of a parameter, or None if it is not set."""

    def get(self, name: str) -> str:
        """Return the value of a parameter.

        Raises:
            ParameterError: If the parameter is not set

        """
        value = self.lookup(name)
        if value is None:
            raise ParameterError(f"could not resolve parameter {name}")
        return value


class StaticParameters(Parameters):
    """Parameter store backed by a fixed mapping."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        """Initialize with known values."""
        self.values = dict(values or {})

    def lookup(self, name: str) -> str | None:
        """Return the value of a parameter, or None if it is not set."""
        return self.values.get(name)
