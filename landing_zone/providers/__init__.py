"""Cloud resource provider interface and implementations."""

from .aws import AwsCloudProvider
from .base import CloudProvider

__all__ = ["AwsCloudProvider", "CloudProvider"]
