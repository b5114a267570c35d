"""UUIDGenerator port - unique identifier generation."""

from abc import ABC, abstractmethod


class UUIDGenerator(ABC):
    """
    Port for unique identifier generation.

    Allows fake implementations for deterministic tests.
    """

    @abstractmethod
    def generate_uuid(self) -> str:
        """
        Generate a unique UUID v4.

        Returns:
            UUID string in the standard xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx form.
        """
        raise NotImplementedError


class FakeUUIDGenerator(UUIDGenerator):
    """Predictable UUIDs for tests, optionally replaying a fixed sequence first."""

    def __init__(self, preset: list[str] | None = None):
        self._preset = list(preset or [])
        self._counter = 0

    def generate_uuid(self) -> str:
        if self._preset:
            return self._preset.pop(0)
        self._counter += 1
        hex_value = f"{self._counter:032x}"
        return f"{hex_value[:8]}-{hex_value[8:12]}-{hex_value[12:16]}-{hex_value[16:20]}-{hex_value[20:]}"
