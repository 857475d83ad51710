"""Infrastructure layer for AWS, broker and database wrappers and DI container."""

from .dependency_injection import DependenciesContainer
from .lambda_client import LambdaClient, LambdaInvocation

__all__ = ["DependenciesContainer", "LambdaClient", "LambdaInvocation"]
