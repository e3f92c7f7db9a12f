from kubernetes.client import CoreV1Api

from bindings import SecretDeploymentTarget
from models import LinkableSecretSpec, ObjectKey, RemoteSecret, RemoteSecretTarget


class NamespaceTarget(SecretDeploymentTarget):
    """A namespace of the cluster the operator runs in, as a target of a remote secret."""

    def __init__(self, v1: CoreV1Api, remote_secret: RemoteSecret, target: RemoteSecretTarget) -> None:
        self.v1 = v1
        self.remote_secret = remote_secret
        self.target = target

    def get_client(self) -> CoreV1Api:
        return self.v1

    def get_spec(self) -> LinkableSecretSpec:
        return self.remote_secret.spec.secret

    def get_target_namespace(self) -> str:
        return self.target.namespace

    def get_target_object_key(self) -> ObjectKey:
        return self.remote_secret.key

    def get_actual_secret_name(self) -> str:
        return self.remote_secret.actual_secret_name(self.target.namespace, self.target.api_url)

    def get_type(self) -> str:
        return 'namespace'
