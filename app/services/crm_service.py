from typing import Optional

import httpx

from app.logging_config import get_logger
from app.models.session import Session
from app.services.result import Result

logger = get_logger("crm_service")

# Custom field ids configured in the Kommo account.
PHONE_FIELD_ID = 1
EMAIL_FIELD_ID = 2
INSTAGRAM_FIELD_ID = 3
NEW_LEAD_STATUS_ID = 142


def build_contact_payload(session: Session) -> dict:
    fields = [{"field_id": PHONE_FIELD_ID, "values": [{"value": session.id}]}]
    if session.email:
        fields.append({"field_id": EMAIL_FIELD_ID, "values": [{"value": session.email}]})
    if session.handle:
        fields.append({"field_id": INSTAGRAM_FIELD_ID, "values": [{"value": session.handle}]})
    return {"name": session.name or session.id, "custom_fields_values": fields}


class KommoClient:
    """Pushes completed funnels to Kommo as contact + lead."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        account_id: Optional[str],
        timeout_seconds: float = 15.0,
    ):
        self._http = http_client
        self.api_key = api_key
        self.account_id = account_id
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.account_id)

    @property
    def base_url(self) -> str:
        return f"https://{self.account_id}.kommo.com/api/v4"

    async def _post(self, path: str, body: dict) -> dict:
        response = await self._http.post(
            f"{self.base_url}/{path}",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=body,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    async def add_lead(self, session: Session) -> Result[int]:
        if not self.enabled:
            logger.info("Kommo not configured, skipping lead sync")
            return Result.failure("kommo not configured", "not_configured")

        try:
            contact_data = await self._post("contacts", {"add": [build_contact_payload(session)]})
            contacts = (contact_data.get("_embedded") or {}).get("contacts") or []
            if not contacts:
                logger.error(f"Kommo contact response without contacts: {str(contact_data)[:300]}")
                return Result.failure("invalid contact response", "crm_error")

            lead_body = {
                "name": f"Lead do evento MAPA DO LUCRO - {session.name or session.id}",
                "price": 0,
                "status_id": NEW_LEAD_STATUS_ID,
                "_embedded": {"contacts": [{"id": contacts[0]["id"]}]},
            }
            lead_data = await self._post("leads", {"add": [lead_body]})
            leads = (lead_data.get("_embedded") or {}).get("leads") or []
            if not leads:
                logger.error(f"Kommo lead response without leads: {str(lead_data)[:300]}")
                return Result.failure("invalid lead response", "crm_error")
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error(
                "Kommo lead sync failed",
                extra={"context": {"session_id": session.id, "error": str(exc)}},
            )
            return Result.failure(str(exc), "crm_error")

        lead_id = leads[0].get("id")
        logger.info(f"Kommo lead created: session={session.id}, lead_id={lead_id}")
        return Result.success(lead_id)
