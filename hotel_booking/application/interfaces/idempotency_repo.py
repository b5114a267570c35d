from dataclasses import dataclass


@dataclass
class IdempotencyRecord:
    scope: str
    idem_key: str
    request_hash: str
    booking_id: str


class IdempotencyRepo:
    async def get(self, scope: str, idem_key: str) -> IdempotencyRecord | None:
        raise NotImplementedError

    async def claim(self, record: IdempotencyRecord) -> IdempotencyRecord:
        """
        Store `record` unless (scope, idem_key) is already taken.

        Returns the record that owns the key: `record` itself when the claim
        succeeded, otherwise the one stored by an earlier request.
        """
        raise NotImplementedError
