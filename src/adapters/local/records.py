"""
Local identity sources - Government registry and document verifier stand-ins.

The registry is seeded with fixed demo records; unknown ids are not found.
The document verifier accepts any non-empty capture and reads a configured
national id from it.
"""

from src.domain.models import GovernmentRecord

DEMO_RECORDS = {
    "NID1234567890": GovernmentRecord(
        name="John",
        surname="Doe",
        date_of_birth="1990-05-15",
        phone_number="+1234567890",
        email="john.doe@example.com",
    ),
    "NID0987654321": GovernmentRecord(
        name="Jane",
        surname="Smith",
        date_of_birth="1985-03-22",
        phone_number="+1987654321",
    ),
    "NID5555555555": GovernmentRecord(
        name="Alice",
        surname="Johnson",
        date_of_birth="1992-11-08",
        phone_number="+1555555555",
        email="alice.j@example.com",
    ),
}


class InMemoryGovernmentRecords:
    """Implements GovernmentRecordSource protocol with a dict."""

    def __init__(self, records: dict[str, GovernmentRecord] | None = None) -> None:
        self._records = dict(DEMO_RECORDS if records is None else records)

    async def lookup_by_national_id(self, national_id: str) -> GovernmentRecord | None:
        return self._records.get(national_id)

    def add(self, national_id: str, record: GovernmentRecord) -> None:
        self._records[national_id] = record


class LocalDocumentVerifier:
    """Implements DocumentVerifier protocol without image analysis."""

    def __init__(self, national_id: str = "NID1234567890") -> None:
        self._national_id = national_id

    async def verify(self, selfie: bytes, document: bytes) -> str | None:
        if not selfie or not document:
            return None
        return self._national_id
