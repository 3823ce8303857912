"""Azure AD application registration for Office Add-in single sign-on.

This package drives the Azure CLI to register an application, configure it
for SSO, and write the resulting identifiers back into an add-in project.
"""
