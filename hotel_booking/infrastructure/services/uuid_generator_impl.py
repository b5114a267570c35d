"""UUID generator backed by the standard uuid module."""

import uuid

from hotel_booking.application.interfaces.uuid_generator import UUIDGenerator


class UUIDGeneratorImpl(UUIDGenerator):
    """
    Real UUIDGenerator.

    For tests use FakeUUIDGenerator from application.interfaces.uuid_generator.
    """

    def generate_uuid(self) -> str:
        return str(uuid.uuid4())
