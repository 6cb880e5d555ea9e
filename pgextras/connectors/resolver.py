"""
Attachment resolution.

Turns an application name and an optional attachment name into the
attachment metadata and, when needed, the database connection details.
"""

import logging
from typing import List, Optional
from urllib.parse import unquote, urlsplit

from pydantic import ValidationError

from .base import Attachment, ConnectionDetails
from .platform import AddonAttachmentModel, AddonModel, PlatformClient
from ..core.errors import ConnectionResolutionFailure

logger = logging.getLogger(__name__)

DEFAULT_ATTACHMENT = "DATABASE_URL"
ADDON_SERVICE = "heroku-postgresql"


def normalize_attachment_name(name: Optional[str]) -> str:
    """Strip the config var suffix so DATABASE_URL resolves as DATABASE."""
    name = (name or DEFAULT_ATTACHMENT).strip()
    if name.upper().endswith("_URL"):
        name = name[:-4]
    return name


def parse_database_url(url: str, attachment: Attachment) -> ConnectionDetails:
    """
    Parse a postgres:// URL into connection details.

    Args:
        url: Database URL from the app's config vars
        attachment: Attachment the URL belongs to

    Returns:
        Connection details
    """
    parts = urlsplit(url)
    if parts.scheme not in ("postgres", "postgresql") or not parts.hostname:
        raise ConnectionResolutionFailure(
            f"Config var {attachment.config_var} on {attachment.app} is not a valid database URL"
        )

    return ConnectionDetails(
        host=parts.hostname,
        port=parts.port or 5432,
        database=unquote(parts.path.lstrip("/")),
        user=unquote(parts.username or ""),
        password=unquote(parts.password or ""),
        attachment=attachment
    )


class AttachmentResolver:
    """Resolves Heroku Postgres attachments through the Platform API."""

    def __init__(self, client: PlatformClient):
        self.client = client

    async def _find_attachment(self, app: str, name: str) -> AddonAttachmentModel:
        body = {"app": app, "addon_attachment": name, "addon_service": ADDON_SERVICE}
        payload = await self.client.post("/actions/addon-attachments/resolve", json=body)

        try:
            matches: List[AddonAttachmentModel] = [
                AddonAttachmentModel.model_validate(item) for item in payload or []
            ]
        except ValidationError as e:
            raise ConnectionResolutionFailure(f"Unexpected attachment payload for {name}: {e}") from e

        if not matches:
            raise ConnectionResolutionFailure(f"Couldn't find that database: {name} on {app}")
        if len(matches) > 1:
            found = ", ".join(sorted(m.name for m in matches))
            raise ConnectionResolutionFailure(
                f"Ambiguous identifier; multiple matching add-ons found: {found}"
            )
        return matches[0]

    async def resolve_attachment(self, app: str, database: Optional[str] = None) -> Attachment:
        """
        Resolve an attachment and its add-on plan.

        Args:
            app: Application name
            database: Attachment name, defaults to DATABASE_URL

        Returns:
            Attachment metadata including the plan name
        """
        name = normalize_attachment_name(database)
        found = await self._find_attachment(app, name)

        addon = AddonModel.model_validate(await self.client.get(f"/addons/{found.addon.id}"))
        plan_name = addon.plan.name if addon.plan else None

        logger.debug(f"Resolved {name} on {app} to {addon.name} ({plan_name})")
        return Attachment(
            name=found.name,
            app=found.app.name,
            addon_id=addon.id,
            addon_name=addon.name,
            plan_name=plan_name
        )

    async def resolve_database_connection(self, app: str, database: Optional[str] = None) -> ConnectionDetails:
        """
        Resolve an attachment to connection details.

        Args:
            app: Application name
            database: Attachment name, defaults to DATABASE_URL

        Returns:
            Connection details for the attached database
        """
        attachment = await self.resolve_attachment(app, database)
        config_vars = await self.client.get(f"/apps/{attachment.app}/config-vars") or {}

        url = config_vars.get(attachment.config_var)
        if not url:
            raise ConnectionResolutionFailure(
                f"Config var {attachment.config_var} not found on {attachment.app}"
            )

        return parse_database_url(url, attachment)
