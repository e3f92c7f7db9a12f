import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from kubernetes import client, config
from kubernetes.client import CoreV1Api, CustomObjectsApi, V1Secret
from kubernetes.client.rest import ApiException

GROUP = 'appstudio.redhat.com'
VERSION = 'v1beta1'
PLURAL = 'remotesecrets'

LINKED_BY_REMOTE_SECRET_LABEL = 'appstudio.redhat.com/linked-by-remote-secret'
MANAGING_REMOTE_SECRET_NAME_ANNOTATION = 'appstudio.redhat.com/managing-remote-secret'
LINKED_REMOTE_SECRETS_ANNOTATION = 'appstudio.redhat.com/linked-remote-secrets'


def is_subset(_set: Mapping[str, str], _subset: Mapping[str, str]) -> bool:
    for key, item in _subset.items():
        if _set.get(key, None) != item:
            return False
    return True


def wait_for_pod_ready_with_events(pod_selector: dict, namespace: str, timeout_seconds: int = 300):
    """
    Wait for a pod to be ready in the specified namespace and print all events.

    Args:
        pod_selector (dict): A dictionary representing the pod selector (e.g., {"app": "my-app"}).
        namespace (str): The namespace where the pod is located.
        timeout_seconds (int): Maximum time to wait for the pod to become ready (default: 300 seconds).

    Raises:
        TimeoutError: If the specified pod does not become ready within the timeout.
    """
    config.load_kube_config()
    v1 = client.CoreV1Api()

    end_time = time.time() + timeout_seconds

    while time.time() < end_time:
        pod_list = v1.list_namespaced_pod(
            namespace,
            label_selector=','.join([f"{k}={v}" for k, v in pod_selector.items()])
        )

        for pod in pod_list.items:
            pod_name = pod.metadata.name
            print(f"Checking pod {pod_name}...")

            events = v1.list_namespaced_event(namespace, field_selector=f"involvedObject.name={pod_name}")
            for event in events.items:
                print(f"Event: {event.message}")

            if all(status.ready for status in pod.status.container_statuses or []):
                print(f"Pod {pod_name} is ready!")
                return

        time.sleep(5)

    raise TimeoutError(f"Timed out waiting for pod to become ready in namespace {namespace}")


class RemoteSecretManager:
    def __init__(self, custom_objects_api: CustomObjectsApi, api_instance: CoreV1Api):
        self.custom_objects_api: CustomObjectsApi = custom_objects_api
        self.api_instance: CoreV1Api = api_instance
        # immutable after
        self.retry_attempts = 3
        self.retry_delay = 5

    def create_remote_secret(
            self,
            name: str,
            namespace: str,
            targets: List[str],
            data: Dict[str, str],
            secret_name: Optional[str] = None,
            generate_name: Optional[str] = None,
            labels: Optional[Dict[str, str]] = None,
    ):
        secret: Dict[str, Any] = {'labels': labels or {}}
        if secret_name is not None:
            secret['name'] = secret_name
        if generate_name is not None:
            secret['generateName'] = generate_name

        return self.custom_objects_api.create_namespaced_custom_object(
            group=GROUP,
            version=VERSION,
            namespace=namespace,
            plural=PLURAL,
            body={
                "apiVersion": f"{GROUP}/{VERSION}",
                "kind": "RemoteSecret",
                "metadata": {"name": name},
                "spec": {
                    "secret": secret,
                    "targets": [{"namespace": target} for target in targets],
                },
                "data": data,
            },
        )

    def update_remote_secret(
            self,
            name: str,
            namespace: str,
            data: Optional[Dict[str, str]] = None,
            targets: Optional[List[str]] = None,
    ):
        body: Dict[str, Any] = {}
        if data is not None:
            body['data'] = data
        if targets is not None:
            body['spec'] = {'targets': [{"namespace": target} for target in targets]}

        self.custom_objects_api.patch_namespaced_custom_object(
            name=name,
            group=GROUP,
            version=VERSION,
            namespace=namespace,
            plural=PLURAL,
            body=body,
        )

    def delete_remote_secret(
            self,
            name: str,
            namespace: str
    ):
        self.custom_objects_api.delete_namespaced_custom_object(
            name=name,
            group=GROUP,
            version=VERSION,
            namespace=namespace,
            plural=PLURAL,
        )

    def get_kubernetes_secret(self, name: str, namespace: str) -> Optional[V1Secret]:
        try:
            return self.api_instance.read_namespaced_secret(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            else:
                raise e

    def validate_namespace_secrets(
            self,
            name: str,
            data: Dict[str, str],
            namespaces: List[str],
            owner: str,
            absent_namespaces: Optional[List[str]] = None,
    ) -> bool:
        """

        Parameters
        ----------
        name: str
        data: Dict[str, str]
            Subset of the data the secrets must have
        namespaces: List[str]
            Namespaces the secret must be present in, managed by the owner
        owner: str
            The remote secret as namespace/name
        absent_namespaces: Optional[List[str]]
            Namespaces the secret must not be present in

        Returns
        -------

        """
        def validate():
            for namespace in namespaces:
                secret = self.get_kubernetes_secret(name=name, namespace=namespace)
                if secret is None or not is_subset(secret.data or {}, data):
                    return False

                if (secret.metadata.labels or {}).get(LINKED_BY_REMOTE_SECRET_LABEL) != 'true':
                    return False

                annotations = secret.metadata.annotations or {}
                if annotations.get(MANAGING_REMOTE_SECRET_NAME_ANNOTATION) != owner:
                    return False

                if owner not in annotations.get(LINKED_REMOTE_SECRETS_ANNOTATION, '').split(','):
                    return False

            for namespace in absent_namespaces or []:
                if self.get_kubernetes_secret(name=name, namespace=namespace) is not None:
                    return False

            return True

        return self.retry(validate)

    def retry(self, f: Callable[[], bool]) -> bool:
        retry = self.retry_attempts
        while retry > 0:
            if f():
                return True
            time.sleep(self.retry_delay)
            retry -= 1
        return False
