import unittest

from kubernetes import client, config

# Load Kubernetes configuration from the default location or provide your own kubeconfig file path
from k8s_utils import wait_for_pod_ready_with_events, RemoteSecretManager

config.load_kube_config()

# Create a Kubernetes API client
api_instance = client.CoreV1Api()
custom_objects_api = client.CustomObjectsApi()

REMOTE_SECRET_NAMESPACE = "remote-secret"
USER_NAMESPACES = ["example-1", "example-2", "example-3"]


class RemoteSecretCases(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        # Wait for the operator pod to be ready before running tests
        wait_for_pod_ready_with_events(
            {'app': 'remote-secret-operator'},
            namespace=REMOTE_SECRET_NAMESPACE,
            timeout_seconds=60,
        )

        # Create namespaces for tests
        for namespace_name in USER_NAMESPACES:
            namespace = client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace_name))
            try:
                api_instance.create_namespace(namespace)
                print(f"Namespace '{namespace_name}' created successfully.")
            except client.rest.ApiException as e:
                if e.status == 409:
                    print(f"Namespace '{namespace_name}' already exists.")
                else:
                    print(f"Error creating namespace '{namespace_name}': {e}")
        super().setUpClass()

    def setUp(self) -> None:
        self.manager = RemoteSecretManager(
            custom_objects_api=custom_objects_api,
            api_instance=api_instance,
        )

    def test_running(self):
        pods = api_instance.list_namespaced_pod(namespace=REMOTE_SECRET_NAMESPACE)
        self.assertEqual(len(pods.items), 1)

    def test_simple_remote_secret(self):
        name = "simple-remote-secret"
        username_data = "MTIzNDU2Cg=="

        self.manager.create_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            targets=USER_NAMESPACES[1:],
            secret_name=name,
            data={"username": username_data},
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": username_data},
                namespaces=USER_NAMESPACES[1:],
                owner=f'{USER_NAMESPACES[0]}/{name}',
                absent_namespaces=USER_NAMESPACES[:1],
            )
        )

    def test_patch_remote_secret_data(self):
        name = "dynamic-remote-secret"
        username_data = "MTIzNDU2Cg=="
        updated_data = "Nzg5MTAxMTIxMgo="

        self.manager.create_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            targets=USER_NAMESPACES,
            secret_name=name,
            data={"username": username_data},
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": username_data},
                namespaces=USER_NAMESPACES,
                owner=f'{USER_NAMESPACES[0]}/{name}',
            )
        )

        self.manager.update_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            data={"username": updated_data},
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": updated_data},
                namespaces=USER_NAMESPACES,
                owner=f'{USER_NAMESPACES[0]}/{name}',
            ),
            f'secret {name} should be updated in all user namespaces',
        )

    def test_patch_remote_secret_targets(self):
        name = "dynamic-remote-secret-targets"
        username_data = "MTIzNDU2Cg=="

        self.manager.create_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            targets=USER_NAMESPACES,
            secret_name=name,
            data={"username": username_data},
        )

        self.manager.update_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            targets=USER_NAMESPACES[:1],
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": username_data},
                namespaces=USER_NAMESPACES[:1],
                owner=f'{USER_NAMESPACES[0]}/{name}',
                absent_namespaces=USER_NAMESPACES[1:],
            ),
            f'secret {name} should be only in namespace {USER_NAMESPACES[0]}',
        )

    def test_remote_secret_deleted(self):
        name = "remote-secret-deleted"
        username_data = "MTIzNDU2Cg=="

        self.manager.create_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
            targets=USER_NAMESPACES,
            secret_name=name,
            data={"username": username_data},
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": username_data},
                namespaces=USER_NAMESPACES,
                owner=f'{USER_NAMESPACES[0]}/{name}',
            )
        )

        self.manager.delete_remote_secret(
            name=name,
            namespace=USER_NAMESPACES[0],
        )

        self.assertTrue(
            self.manager.validate_namespace_secrets(
                name=name,
                data={"username": username_data},
                namespaces=[],
                owner=f'{USER_NAMESPACES[0]}/{name}',
                absent_namespaces=USER_NAMESPACES,
            ),
            f'secret {name} should be deleted from all namespaces.'
        )


if __name__ == '__main__':
    unittest.main()
