# Overview: Service-layer allocation of unique identifiers with bounded retry.

"""
Identifier Registry

WHY: The generators in zentry.identifiers only produce well-formed candidates.
The registry turns a candidate into an identifier nobody else holds:

1. generate a candidate from the seed
2. ask the repository to claim it
3. if taken, replace the last two characters with a fresh 2-digit suffix
4. give up after max_attempts with DuplicateError

The strength of the claim depends on the backend (see repository.py): the
key-value backend only checks, the document backend reserves atomically.
"""

import logging

from .. import identifiers
from ..errors import DuplicateError
from ..repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10

KIND_LABELS = {
    "business_code": "business code",
    "business_id": "business ID",
    "staff_id": "staff ID",
    "property_code": "property code",
    "connection_code": "connection code",
}


class IdentifierRegistry:
    def __init__(self, repo: Repository, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.repo = repo
        self.max_attempts = max_attempts

    def _allocate(self, kind: str, candidate: str) -> str:
        for attempt in range(1, self.max_attempts + 1):
            if self.repo.claim_identifier(kind, candidate):
                if attempt > 1:
                    logger.debug("Allocated %s %s after %d attempts", kind, candidate, attempt)
                return candidate
            candidate = identifiers.mutate_suffix(candidate)

        logger.warning("Exhausted %d attempts allocating a %s", self.max_attempts, kind)
        raise DuplicateError(f"Unable to generate unique {KIND_LABELS[kind]}")

    def generate_unique_business_code(self, company_name: str) -> str:
        return self._allocate("business_code", identifiers.generate_business_code(company_name))

    def generate_unique_business_id(self, business_code: str) -> str:
        return self._allocate("business_id", identifiers.generate_business_id(business_code))

    def generate_unique_staff_id(self, full_name: str, position: str | None) -> str:
        return self._allocate("staff_id", identifiers.generate_staff_id(full_name, position))

    def generate_unique_property_code(self, property_name: str, business_type: str | None) -> str:
        return self._allocate(
            "property_code",
            identifiers.generate_property_code(property_name, business_type),
        )

    def generate_unique_connection_code(self) -> str:
        return self._allocate("connection_code", identifiers.generate_connection_code())
