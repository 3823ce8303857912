from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, NoReturn, Optional, Tuple

from .config import RegistrationSettings
from .errors import RegistrationError
from .executor import CommandExecutor
from .readiness import ReadinessPoller
from .session import Session
from .templates import (
    APP_ID,
    APP_NAME,
    APP_OBJECT_ID,
    PORT,
    SP_OBJECT_ID,
    TENANT_ADMIN_ID,
    TENANT_NAME,
    load_template,
    render_template,
)
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)

CREATE_APP_TEMPLATE = "azRestAppCreateCommand.txt"
SET_IDENTIFIER_URI_TEMPLATE = "azRestSetIdentifierUri.txt"
SET_SIGNIN_AUDIENCE_TEMPLATE = "azRestSetSigninAudienceCommand.txt"
GET_TENANT_ROLES_TEMPLATE = "azRestGetTenantRoles.txt"
GET_TENANT_ADMIN_MEMBERSHIPS_TEMPLATE = "azRestGetTenantAdminMemberships.txt"
GET_ORGANIZATION_DETAILS_TEMPLATE = "azRestGetOrganizationDetails.txt"
ADD_TENANT_REPLY_URLS_TEMPLATE = "azRestAddTenantReplyUrls.txt"
ADD_SECRET_TEMPLATE = "azRestAddSecret.txt"

ADMIN_CONSENT_COMMAND = "az ad app permission admin-consent --id <APP-ID>"
LIST_SERVICE_PRINCIPALS_COMMAND = "az ad sp list --all"

ONEDRIVE_REPLY_URL = "https://{tenant}-my.sharepoint.com/_forms/singlesignon.aspx"
SHAREPOINT_REPLY_URL = "https://{tenant}.sharepoint.com/_forms/singlesignon.aspx"

CredentialStore = Callable[[str, str], None]


@dataclass
class ApplicationRecord:
    object_id: str
    app_id: str
    display_name: str
    port: str
    raw: Dict[str, Any] = field(default_factory=dict)
    identifier_uri_set: bool = False
    audience_set: bool = False
    consent_granted: bool = False
    reply_urls_set: bool = False
    secret: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], display_name: str, port: str) -> "ApplicationRecord":
        object_id = payload.get("id")
        app_id = payload.get("appId")
        if not object_id or not app_id:
            raise RegistrationError(
                "Application was created without both an object id and an app id",
                step="create_application",
            )
        return cls(object_id=object_id, app_id=app_id, display_name=display_name, port=port, raw=payload)

    @property
    def params(self) -> Dict[str, str]:
        return {
            APP_NAME: self.display_name,
            PORT: self.port,
            APP_OBJECT_ID: self.object_id,
            APP_ID: self.app_id,
        }


Step = Tuple[str, Callable[[ApplicationRecord, Session], Awaitable[bool]]]


class ApplicationRegistrar:
    """Registers an Azure AD application and configures it for add-in SSO.

    Steps run strictly in order. The first one that fails aborts the run with a
    RegistrationError naming the step; artifacts created by earlier steps are
    left in place.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        usage: JsonUsageLogger,
        credential_store: CredentialStore,
        settings: Optional[RegistrationSettings] = None,
        poller: Optional[ReadinessPoller] = None,
    ):
        self.executor = executor
        self.usage = usage
        self.credential_store = credential_store
        self.settings = settings or RegistrationSettings()
        self.poller = poller or ReadinessPoller(executor, usage)

    async def register(self, app_name: str, port: str, session: Session) -> Optional[ApplicationRecord]:
        logger.info("Registering new application in Azure")
        try:
            payload = await self._command(CREATE_APP_TEMPLATE, {APP_NAME: app_name, PORT: port})
            if not payload:
                message = "Failed to register application"
                self.usage.exception("create_application", message)
                logger.error(message)
                return None
            record = ApplicationRecord.from_payload(payload, display_name=app_name, port=port)
        except Exception as exc:
            self._fail("create_application", exc)

        logger.info("Application was successfully registered with Azure")
        self.usage.success("create_application")

        for name, step in self._steps():
            try:
                completed = await step(record, session)
            except Exception as exc:
                self._fail(name, exc)
            if completed:
                self.usage.success(name)

        return record

    def _steps(self) -> List[Step]:
        return [
            ("set_identifier_uri", self.set_identifier_uri),
            ("set_signin_audience", self.set_signin_audience),
            ("check_tenant_admin", self.check_tenant_admin),
            ("grant_admin_consent", self.grant_admin_consent),
            ("set_tenant_reply_urls", self.set_tenant_reply_urls),
            ("set_application_secret", self.set_application_secret),
        ]

    def _fail(self, step: str, exc: Exception) -> NoReturn:
        message = f"Unable to complete {step.replace('_', ' ')}: {exc}"
        self.usage.exception(step, message)
        if isinstance(exc, RegistrationError):
            raise exc
        raise RegistrationError(message, step=step) from exc

    async def _command(self, template_name: str, params: Dict[str, str], **kwargs: Any) -> Any:
        template = load_template(self.settings.templates_dir, template_name)
        return await self.executor.execute(render_template(template, params), **kwargs)

    async def set_identifier_uri(self, record: ApplicationRecord, session: Session) -> bool:
        logger.info("Setting identifierUri")
        await self._command(SET_IDENTIFIER_URI_TEMPLATE, record.params)
        record.identifier_uri_set = True
        return True

    async def set_signin_audience(self, record: ApplicationRecord, session: Session) -> bool:
        logger.info("Setting signin audience")
        await self._command(SET_SIGNIN_AUDIENCE_TEMPLATE, record.params)
        record.audience_set = True
        return True

    async def check_tenant_admin(self, record: ApplicationRecord, session: Session) -> bool:
        session.is_tenant_admin = await self.is_user_tenant_admin(session)
        return True

    async def is_user_tenant_admin(self, session: Session) -> bool:
        logger.info("Checking if logged-in user is a tenant admin")
        if not session.user_name:
            logger.warning("Logged-in account has no user name, treating it as a non-admin")
            self.usage.custom_event("is_user_tenant_admin", is_user_tenant_admin=False)
            return False

        roles = await self._command(GET_TENANT_ROLES_TEMPLATE, {})
        admin_role_id = next(
            (
                role.get("id")
                for role in _values(roles)
                if role.get("displayName") in self.settings.admin_role_names
            ),
            None,
        )
        if not admin_role_id:
            logger.info("No tenant admin role is active in this directory")
            self.usage.custom_event("is_user_tenant_admin", is_user_tenant_admin=False)
            return False

        members = await self._command(GET_TENANT_ADMIN_MEMBERSHIPS_TEMPLATE, {TENANT_ADMIN_ID: admin_role_id})
        is_admin = any(member.get("userPrincipalName") == session.user_name for member in _values(members))
        self.usage.custom_event("is_user_tenant_admin", is_user_tenant_admin=is_admin)
        return is_admin

    async def grant_admin_consent(self, record: ApplicationRecord, session: Session) -> bool:
        if not session.is_tenant_admin:
            return False

        logger.info("Granting admin consent")
        if not await self.poller.wait_until_ready(record.app_id):
            message = "Application does not appear to be ready to grant admin consent"
            self.usage.exception("grant_admin_consent", message)
            logger.warning(message)
            return False

        await self.executor.execute(render_template(ADMIN_CONSENT_COMMAND, record.params))
        record.consent_granted = True
        return True

    async def set_tenant_reply_urls(self, record: ApplicationRecord, session: Session) -> bool:
        if not session.is_tenant_admin:
            return False

        organization = await self._command(GET_ORGANIZATION_DETAILS_TEMPLATE, {})
        tenant_name = _values(organization)[0]["displayName"]
        expected = {
            ONEDRIVE_REPLY_URL.format(tenant=tenant_name),
            SHAREPOINT_REPLY_URL.format(tenant=tenant_name),
        }

        service_principals = await self.executor.execute(LIST_SERVICE_PRINCIPALS_COMMAND)
        sharepoint = next(
            (
                principal
                for principal in service_principals or []
                if principal.get("appId") == self.settings.sharepoint_service_app_id
            ),
            None,
        )
        if sharepoint is None:
            logger.warning("SharePoint service principal not found in tenant, skipping reply urls")
            self.usage.custom_event("set_tenant_reply_urls", tenant_reply_urls_set=False)
            return False

        configured = set(sharepoint.get("replyUrls") or [])
        if configured & expected:
            logger.info("SharePoint reply urls already set")
        else:
            logger.info("Setting SharePoint reply urls for tenant")
            sp_object_id = sharepoint.get("id") or sharepoint.get("objectId")
            await self._command(
                ADD_TENANT_REPLY_URLS_TEMPLATE,
                {TENANT_NAME: tenant_name, SP_OBJECT_ID: sp_object_id},
            )
            record.reply_urls_set = True

        self.usage.custom_event("set_tenant_reply_urls", tenant_reply_urls_set=record.reply_urls_set)
        return True

    async def set_application_secret(self, record: ApplicationRecord, session: Session) -> bool:
        logger.info("Setting application secret")
        secret_payload = await self._command(ADD_SECRET_TEMPLATE, record.params)
        record.secret = secret_payload["secretText"]
        self.credential_store(record.display_name, record.secret)
        return True


def _values(payload: Any) -> List[Dict[str, Any]]:
    """Unwrap the ``value`` collection of a Microsoft Graph list response."""
    if isinstance(payload, dict):
        return payload.get("value") or []
    return payload or []
