import asyncio

import pytest

from addin_sso.errors import ExecutionError, RegistrationError
from addin_sso.readiness import ReadinessPoller
from addin_sso.registrar import ApplicationRegistrar
from addin_sso.session import Session
from tests.conftest import FakeExecutor

USER = [{"user": {"name": "adele@contoso.com"}}]
APP = {"id": "obj-1", "appId": "app-1", "displayName": "Contoso Add-in"}
ROLES = {"value": [{"id": "role-9", "displayName": "Helpdesk Administrator"}, {"id": "role-1", "displayName": "Global Administrator"}]}
ADMINS = {"value": [{"userPrincipalName": "adele@contoso.com"}]}
ORG = {"value": [{"displayName": "contoso"}]}
SHAREPOINT_ID = "57fb890c-0dab-4253-a5e0-7188c88b2bb4"
ONEDRIVE_URL = "https://contoso-my.sharepoint.com/_forms/singlesignon.aspx"
SHAREPOINT_URL = "https://contoso.sharepoint.com/_forms/singlesignon.aspx"


def principals(reply_urls):
    return [
        {"appId": "other", "id": "sp-0", "replyUrls": [SHAREPOINT_URL]},
        {"appId": SHAREPOINT_ID, "id": "sp-1", "replyUrls": reply_urls},
    ]


def responses(admins=ADMINS, reply_urls=(), app=APP, ready=True):
    return [
        ("displayName: 'Contoso Add-in'", app),
        ("directoryRoles/", admins),
        ("directoryRoles", ROLES),
        ("/organization", ORG),
        ("az ad sp list --all", principals(list(reply_urls))),
        ("az ad app show", app if ready else ""),
        ("addPassword", {"secretText": "s3cret"}),
    ]


class Store:
    def __init__(self):
        self.saved = {}

    def __call__(self, app_name, secret):
        self.saved[app_name] = secret


def registrar_for(executor, usage, store=None, max_attempts=51):
    return ApplicationRegistrar(
        executor,
        usage,
        store if store is not None else Store(),
        poller=ReadinessPoller(executor, usage, max_attempts=max_attempts, initial_delay=0, max_delay=0),
    )


def register(registrar, session=None):
    return asyncio.run(registrar.register("Contoso Add-in", "3000", session or Session(user_info=USER)))


def test_non_admin_registration_runs_core_steps_only(usage):
    executor = FakeExecutor(responses(admins={"value": [{"userPrincipalName": "someone@contoso.com"}]}))
    store = Store()
    record = register(registrar_for(executor, usage, store))

    assert (record.object_id, record.app_id) == ("obj-1", "app-1")
    assert record.identifier_uri_set and record.audience_set
    assert not record.consent_granted and not record.reply_urls_set
    assert record.secret == "s3cret"
    assert store.saved == {"Contoso Add-in": "s3cret"}
    assert executor.matching("admin-consent") == []
    assert executor.matching("replyUrls:") == []
    assert executor.matching("api://localhost:3000/app-1")
    assert executor.matching("applications/obj-1/addPassword")


def test_create_command_is_templated(usage):
    executor = FakeExecutor(responses())
    register(registrar_for(executor, usage))
    create = executor.calls[0]
    assert "https://localhost:3000/fallbackauthdialog.html" in create
    assert "<APP-NAME>" not in create and "<PORT>" not in create


def test_admin_grants_consent_and_sets_reply_urls(usage):
    executor = FakeExecutor(responses())
    session = Session(user_info=USER)
    record = register(registrar_for(executor, usage), session)

    assert session.is_tenant_admin
    assert record.consent_granted and record.reply_urls_set
    assert executor.matching("az ad app permission admin-consent --id app-1")
    updates = executor.matching("replyUrls:")
    assert len(updates) == 1
    assert ONEDRIVE_URL in updates[0] and SHAREPOINT_URL in updates[0]
    assert "servicePrincipals/sp-1" in updates[0]


@pytest.mark.parametrize("existing", [[ONEDRIVE_URL], [SHAREPOINT_URL], ["https://x", SHAREPOINT_URL]])
def test_reply_urls_already_present_are_not_rewritten(existing, usage):
    executor = FakeExecutor(responses(reply_urls=existing))
    record = register(registrar_for(executor, usage))
    assert executor.matching("replyUrls:") == []
    assert not record.reply_urls_set


def test_missing_sharepoint_principal_skips_reply_urls(usage):
    executor = FakeExecutor([("az ad sp list --all", [])] + responses())
    record = register(registrar_for(executor, usage))
    assert executor.matching("replyUrls:") == []
    assert record.secret == "s3cret"


def test_consent_skipped_when_application_never_ready(usage, usage_store):
    executor = FakeExecutor(responses(ready=False))
    record = register(registrar_for(executor, usage))

    assert len(executor.matching("az ad app show")) == 51
    assert executor.matching("admin-consent") == []
    assert not record.consent_granted
    assert record.secret == "s3cret"
    assert "grant_admin_consent" in usage_store.methods("exception")
    assert "grant_admin_consent" not in usage_store.methods("success")


def test_no_admin_role_means_not_admin(usage):
    executor = FakeExecutor([("directoryRoles", {"value": []})] + responses())
    session = Session(user_info=USER)
    register(registrar_for(executor, usage), session)
    assert session.is_tenant_admin is False
    assert executor.matching("directoryRoles/") == []


def test_empty_creation_result_returns_none(usage, usage_store):
    executor = FakeExecutor(responses(app=""))
    assert register(registrar_for(executor, usage)) is None
    assert len(executor.calls) == 1
    assert usage_store.methods("exception") == ["create_application"]


def test_creation_error_is_registration_error(usage):
    executor = FakeExecutor([("displayName: 'Contoso Add-in'", ExecutionError("forbidden"))])
    with pytest.raises(RegistrationError) as excinfo:
        register(registrar_for(executor, usage))
    assert excinfo.value.step == "create_application"


def test_creation_without_identifiers_is_rejected(usage):
    executor = FakeExecutor(responses(app={"id": "obj-1"}))
    with pytest.raises(RegistrationError):
        register(registrar_for(executor, usage))
    assert len(executor.calls) == 1


def test_failing_step_aborts_remaining_steps(usage):
    executor = FakeExecutor([("signInAudience", ExecutionError("throttled"))] + responses())
    store = Store()
    with pytest.raises(RegistrationError) as excinfo:
        register(registrar_for(executor, usage, store))
    assert excinfo.value.step == "set_signin_audience"
    assert isinstance(excinfo.value.__cause__, ExecutionError)
    assert executor.matching("addPassword") == []
    assert store.saved == {}


def test_missing_template_is_registration_error(usage, tmp_path):
    executor = FakeExecutor(responses())
    registrar = registrar_for(executor, usage)
    registrar.settings = registrar.settings.model_copy(update={"templates_dir": tmp_path})
    with pytest.raises(RegistrationError) as excinfo:
        register(registrar)
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)
    assert executor.calls == []


def test_skipped_steps_are_not_reported_as_succeeded(usage, usage_store):
    executor = FakeExecutor(responses(admins={"value": []}))
    register(registrar_for(executor, usage))
    succeeded = usage_store.methods("success")
    assert "grant_admin_consent" not in succeeded
    assert "set_tenant_reply_urls" not in succeeded
    assert succeeded[-1] == "set_application_secret"


def test_account_without_user_name_is_not_admin(usage):
    executor = FakeExecutor([("directoryRoles/", {"value": [{"id": "group-1", "displayName": "Admins"}]})] + responses())
    session = Session(user_info=[{"tenantId": "t-1"}])
    register(registrar_for(executor, usage), session)
    assert session.is_tenant_admin is False
    assert executor.matching("admin-consent") == []
