import logging
from abc import ABC, abstractmethod
from typing import Dict, Generic, TypeVar

from kubernetes.client import CoreV1Api

from models import LinkableSecretSpec, ObjectKey

K = TypeVar('K')


class SecretDeploymentTarget(ABC):
    """A place where the secret of a remote secret is deployed to."""

    @abstractmethod
    def get_client(self) -> CoreV1Api:
        pass

    @abstractmethod
    def get_spec(self) -> LinkableSecretSpec:
        pass

    @abstractmethod
    def get_target_namespace(self) -> str:
        pass

    @abstractmethod
    def get_target_object_key(self) -> ObjectKey:
        """The key of the object owning the target, recorded on the deployed secrets."""
        pass

    @abstractmethod
    def get_actual_secret_name(self) -> str:
        """Name of the secret deployed by a previous sync, empty if there was none."""
        pass

    @abstractmethod
    def get_type(self) -> str:
        pass


class SecretDataGetter(ABC, Generic[K]):
    @abstractmethod
    def get_data(self, logger: logging.Logger, key: K) -> Dict[str, str]:
        """Returns the base64 encoded data of the secret to deploy.

        Raises SecretDataError if the data cannot be obtained.
        """
        pass


def name_corresponds(secret_name: str, desired_name: str, desired_generate_name: str) -> bool:
    """Whether an existing secret name matches the desired name, or the generate name when no name is desired."""
    if desired_name:
        return secret_name == desired_name

    return secret_name.startswith(desired_generate_name)
