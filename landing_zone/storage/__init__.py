"""Client factories for external services."""

from .aws import AwsClientFactory

__all__ = ["AwsClientFactory"]
