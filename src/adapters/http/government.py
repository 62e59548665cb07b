"""Government records adapter - GovernmentRecordSource via cloud function."""

from urllib.parse import quote

from src.domain.exceptions import ExternalServiceError
from src.domain.models import GovernmentRecord

from .functions import FunctionsClient


class FunctionsGovernmentRecords:
    """Implements GovernmentRecordSource protocol via `government-db/{id}`."""

    def __init__(self, functions: FunctionsClient) -> None:
        self._functions = functions

    async def lookup_by_national_id(self, national_id: str) -> GovernmentRecord | None:
        try:
            body = await self._functions.call(f"government-db/{quote(national_id, safe='')}")
        except ExternalServiceError as e:
            if e.status_code == 404:
                return None
            raise

        data = body.get("record", body) if isinstance(body, dict) else None
        if not data:
            return None
        return GovernmentRecord(
            name=data.get("name", ""),
            surname=data.get("surname", ""),
            date_of_birth=data.get("date_of_birth") or data.get("dob", ""),
            phone_number=data.get("phone_number", ""),
            email=data.get("email"),
        )
