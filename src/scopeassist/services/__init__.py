"""Application services: settings and credentials."""

from .settings import CredentialStore, SecretVault, Settings, SettingsStore, redact_secret

__all__ = ["CredentialStore", "SecretVault", "Settings", "SettingsStore", "redact_secret"]
