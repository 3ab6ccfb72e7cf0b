"""
Azure credential chain shared by the blob-backed providers.

Tries the developer's Azure CLI login first, then falls back to
DefaultAzureCredential (managed identity, environment, ...).
"""

from azure.identity.aio import (
    DefaultAzureCredential as AsyncDefaultAzureCredential,
    AzureCliCredential as AsyncAzureCliCredential,
    ChainedTokenCredential as AsyncChainedTokenCredential
)


class AzureCredentials:
    """Centralized credential management for Azure services."""

    @staticmethod
    def get_async_credentials():
        """
        Credential for the aio blob clients.

        Returns:
            AsyncChainedTokenCredential with CLI and DefaultAzureCredential
        """
        return AsyncChainedTokenCredential(
            AsyncAzureCliCredential(),
            AsyncDefaultAzureCredential()
        )
