import logging
import unittest
from typing import Dict, Optional
from unittest.mock import Mock, patch

from kubernetes.client import ApiException, V1ObjectMeta, V1Secret, V1SecretList

from bindings import name_corresponds
from consts import MANAGING_REMOTE_SECRET_NAME_ANNOTATION
from errors import SecretDataError, SecretListError, SecretSyncError, StaleDetectionError
from fake_secrets import FakeSecrets
from models import ErrorReason, LinkableSecretSpec, ObjectKey, RemoteSecret, RemoteSecretSpec, \
    RemoteSecretStatus, RemoteSecretTarget, TargetStatus
from namespace_target import NamespaceTarget
from object_marker import NamespaceObjectMarker
from secret_data import UploadDataGetter
from secret_handler import SecretHandler

TARGET_NAMESPACE = 'target'


def remote_secret(
        name: str = 'rs',
        secret: Optional[LinkableSecretSpec] = None,
        actual_secret_name: str = '',
        data: Optional[Dict[str, str]] = None,
) -> RemoteSecret:
    return RemoteSecret(
        name=name,
        namespace='rs-ns',
        spec=RemoteSecretSpec(
            secret=secret if secret is not None else LinkableSecretSpec(name='mysecret'),
            targets=[RemoteSecretTarget(namespace=TARGET_NAMESPACE)],
        ),
        upload_data=data if data is not None else {'key': 'dmFsdWU='},
        status=RemoteSecretStatus(
            targets=[TargetStatus(namespace=TARGET_NAMESPACE, secret_name=actual_secret_name)]
            if actual_secret_name else [],
        ),
    )


def secret_handler(client, rs: RemoteSecret) -> SecretHandler[RemoteSecret]:
    return SecretHandler(
        NamespaceTarget(client, rs, rs.spec.targets[0]),
        NamespaceObjectMarker(),
        UploadDataGetter(),
    )


class TestNameCorresponds(unittest.TestCase):

    def test_name_corresponds(self):
        cases = [
            ('mysecret', 'mysecret', '', True),
            ('mysecret', 'other', '', False),
            ('mysecret', 'mysecret', 'prefix-', True),
            ('prefix-abcde', 'mysecret', 'prefix-', False),
            ('prefix-abcde', '', 'prefix-', True),
            ('other-abcde', '', 'prefix-', False),
            ('anything', '', '', True),
        ]

        for secret_name, desired_name, desired_generate_name, expected in cases:
            self.assertEqual(
                name_corresponds(secret_name, desired_name, desired_generate_name),
                expected,
                msg=f'{secret_name} vs name={desired_name!r} generateName={desired_generate_name!r}',
            )


class TestGetStale(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger(__name__)

    def test_no_actual_secret(self):
        client = Mock()

        self.assertIsNone(secret_handler(client, remote_secret()).get_stale(self.logger))
        client.read_namespaced_secret.assert_not_called()

    def test_actual_secret_corresponds(self):
        client = Mock()

        rs = remote_secret(actual_secret_name='mysecret')

        self.assertIsNone(secret_handler(client, rs).get_stale(self.logger))
        client.read_namespaced_secret.assert_not_called()

    def test_stale_secret_gone(self):
        client = Mock()
        client.read_namespaced_secret.side_effect = ApiException(status=404, reason='Not Found')

        rs = remote_secret(secret=LinkableSecretSpec(name='new'), actual_secret_name='old')

        self.assertIsNone(secret_handler(client, rs).get_stale(self.logger))
        client.read_namespaced_secret.assert_called_once_with('old', TARGET_NAMESPACE)

    def test_stale_secret_found(self):
        old = V1Secret(metadata=V1ObjectMeta(name='old', namespace=TARGET_NAMESPACE))
        client = Mock()
        client.read_namespaced_secret.return_value = old

        rs = remote_secret(secret=LinkableSecretSpec(name='new'), actual_secret_name='old')

        self.assertIs(secret_handler(client, rs).get_stale(self.logger), old)

    def test_stale_detection_failure(self):
        client = Mock()
        client.read_namespaced_secret.side_effect = ApiException(status=500, reason='Internal Server Error')

        rs = remote_secret(secret=LinkableSecretSpec(generate_name='new-'), actual_secret_name='old-abcde')

        with self.assertRaises(StaleDetectionError) as cm:
            secret_handler(client, rs).get_stale(self.logger)

        self.assertEqual(cm.exception.reason, ErrorReason.STALE_DETECTION)
        self.assertIn('rs-ns/rs (namespace)', str(cm.exception))


class TestSync(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger(__name__)
        self.marker = NamespaceObjectMarker()

    def test_create_then_update(self):
        client = FakeSecrets()
        spec = LinkableSecretSpec(
            name='mysecret',
            type='kubernetes.io/basic-auth',
            labels={'app': 'x'},
            annotations={'note': 'y'},
        )

        rs = remote_secret(secret=spec, data={'username': 'dXNlcg==', 'password': 'cGFzcw=='})
        created = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(created.metadata.name, 'mysecret')
        self.assertEqual(created.metadata.namespace, TARGET_NAMESPACE)
        self.assertEqual(created.type, 'kubernetes.io/basic-auth')
        self.assertEqual(created.data, {'username': 'dXNlcg==', 'password': 'cGFzcw=='})
        self.assertEqual(created.metadata.labels['app'], 'x')
        self.assertEqual(created.metadata.annotations['note'], 'y')
        self.assertTrue(self.marker.is_managed_by(rs.key, client.get('mysecret', TARGET_NAMESPACE)))

        # something else adds a key to the secret meanwhile
        client.secrets[(TARGET_NAMESPACE, 'mysecret')].data['extra'] = 'ZXh0cmE='

        rs = remote_secret(secret=spec, actual_secret_name='mysecret', data={'password': 'bmV3'})
        updated = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(updated.metadata.name, 'mysecret')
        self.assertEqual(updated.data, {'username': 'dXNlcg==', 'password': 'bmV3', 'extra': 'ZXh0cmE='})
        self.assertEqual(len(client.secrets), 1)
        self.assertTrue(self.marker.is_managed_by(rs.key, client.get('mysecret', TARGET_NAMESPACE)))

    def test_spec_is_not_modified(self):
        client = FakeSecrets()
        spec = LinkableSecretSpec(name='mysecret', labels={'app': 'x'})

        rs = remote_secret(secret=spec)
        secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(rs.spec.secret.labels, {'app': 'x'})
        self.assertEqual(rs.spec.secret.annotations, {})

    def test_create_with_generated_name(self):
        client = FakeSecrets()

        rs = remote_secret(name='rs', secret=LinkableSecretSpec())
        created = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(created.metadata.name, 'rs-secret-00001')
        self.assertTrue(self.marker.is_managed_by(rs.key, created))

    def test_create_with_desired_generate_name(self):
        client = FakeSecrets()

        rs = remote_secret(secret=LinkableSecretSpec(generate_name='custom-'))
        created = secret_handler(client, rs).sync(self.logger, rs)

        self.assertTrue(created.metadata.name.startswith('custom-'))

    def test_update_keeps_generated_name(self):
        client = FakeSecrets()

        rs = remote_secret(secret=LinkableSecretSpec())
        created = secret_handler(client, rs).sync(self.logger, rs)

        rs = remote_secret(secret=LinkableSecretSpec(), actual_secret_name=created.metadata.name)
        updated = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(updated.metadata.name, created.metadata.name)
        self.assertEqual(len(client.secrets), 1)

    def test_recreate(self):
        client = FakeSecrets()

        rs = remote_secret(secret=LinkableSecretSpec(name='new'), actual_secret_name='old')
        secret = secret_handler(client, rs).sync(self.logger, rs, recreate=True)

        self.assertEqual(secret.metadata.name, 'new')
        self.assertIsNone(client.get('old', TARGET_NAMESPACE))

    def test_update_takes_over_management(self):
        client = FakeSecrets()

        other = remote_secret(name='other')
        secret_handler(client, other).sync(self.logger, other)

        rs = remote_secret(name='rs')
        secret_handler(client, rs).sync(self.logger, rs)

        secret = client.get('mysecret', TARGET_NAMESPACE)
        self.assertTrue(self.marker.is_managed_by(rs.key, secret))
        self.assertFalse(self.marker.is_managed_by(other.key, secret))
        self.assertTrue(self.marker.is_referenced_by(other.key, secret))

    def test_create_race_falls_back_to_update(self):
        """The secret is created by someone else between our read and create."""
        existing = V1Secret(
            metadata=V1ObjectMeta(name='mysecret', namespace=TARGET_NAMESPACE),
            data={'other': 'b3RoZXI='},
        )
        client = FakeSecrets(existing)

        rs = remote_secret(secret=LinkableSecretSpec(name='mysecret'))
        handler = secret_handler(client, rs)

        # go straight to the create path as if the secret was unknown
        secret = handler._create(
            self.logger, 'mysecret', 'rs-secret-', rs.spec.secret, {'key': 'dmFsdWU='}, fallback=True,
        )

        self.assertEqual(secret.data, {'other': 'b3RoZXI=', 'key': 'dmFsdWU='})
        self.assertTrue(self.marker.is_managed_by(rs.key, client.get('mysecret', TARGET_NAMESPACE)))

    def test_update_race_falls_back_to_create(self):
        """The secret is deleted by someone else between our read and update."""
        client = FakeSecrets()

        rs = remote_secret()
        secret_handler(client, rs).sync(self.logger, rs)

        rs = remote_secret(actual_secret_name='mysecret', data={'key': 'bmV3'})

        def delete_then_fail(name, namespace, body):
            del client.secrets[(namespace, name)]
            raise ApiException(status=404, reason='Not Found')

        with patch.object(client, 'replace_namespaced_secret', side_effect=delete_then_fail):
            secret = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(secret.metadata.name, 'mysecret')
        self.assertEqual(client.get('mysecret', TARGET_NAMESPACE).data, {'key': 'bmV3'})
        self.assertTrue(self.marker.is_managed_by(rs.key, client.get('mysecret', TARGET_NAMESPACE)))

    def test_deleted_secret_is_recreated(self):
        client = FakeSecrets()

        rs = remote_secret(actual_secret_name='mysecret')
        secret = secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(secret.metadata.name, 'mysecret')
        self.assertIsNotNone(client.get('mysecret', TARGET_NAMESPACE))

    def test_fallback_happens_only_once(self):
        client = Mock()
        client.read_namespaced_secret.side_effect = ApiException(status=404, reason='Not Found')
        client.create_namespaced_secret.side_effect = ApiException(status=409, reason='Conflict')

        rs = remote_secret(actual_secret_name='mysecret')

        with self.assertRaises(SecretSyncError) as cm:
            secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(cm.exception.reason, ErrorReason.SECRET_UPDATE)
        self.assertIn('ns/rs', str(cm.exception))
        self.assertIn('namespace', str(cm.exception))
        client.read_namespaced_secret.assert_called_once()
        client.create_namespaced_secret.assert_called_once()

    def test_update_failure(self):
        client = FakeSecrets()

        rs = remote_secret()
        secret_handler(client, rs).sync(self.logger, rs)

        with patch.object(client, 'replace_namespaced_secret', side_effect=ApiException(status=409)):
            with self.assertRaises(SecretSyncError) as cm:
                secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(cm.exception.reason, ErrorReason.SECRET_UPDATE)

    def test_data_fetch_failure(self):
        client = Mock()

        rs = remote_secret(data={})

        with self.assertRaises(SecretSyncError) as cm:
            secret_handler(client, rs).sync(self.logger, rs)

        self.assertEqual(cm.exception.reason, ErrorReason.DATA_FETCH)
        self.assertIn('rs-ns/rs (namespace)', str(cm.exception))
        self.assertIsInstance(cm.exception.__cause__, SecretDataError)
        client.create_namespaced_secret.assert_not_called()
        client.read_namespaced_secret.assert_not_called()


class TestList(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger(__name__)
        self.marker = NamespaceObjectMarker()

    def test_list_managed_only(self):
        key_a = ObjectKey(namespace='rs-ns', name='a')
        key_b = ObjectKey(namespace='rs-ns', name='b')

        managed = V1Secret(metadata=V1ObjectMeta(name='managed', namespace=TARGET_NAMESPACE))
        self.marker.mark_managed(key_a, managed)

        referenced = V1Secret(metadata=V1ObjectMeta(name='referenced', namespace=TARGET_NAMESPACE))
        self.marker.mark_referenced(key_a, referenced)
        self.marker.mark_managed(key_b, referenced)

        unrelated = V1Secret(metadata=V1ObjectMeta(name='unrelated', namespace=TARGET_NAMESPACE))

        elsewhere = V1Secret(metadata=V1ObjectMeta(name='elsewhere', namespace='other'))
        self.marker.mark_managed(key_a, elsewhere)

        client = FakeSecrets(managed, referenced, unrelated, elsewhere)

        secrets = secret_handler(client, remote_secret(name='a')).list(self.logger)

        self.assertEqual([secret.metadata.name for secret in secrets], ['managed'])

    def test_list_uses_label_selector(self):
        client = Mock()
        client.list_namespaced_secret.return_value = V1SecretList(items=[])

        rs = remote_secret()

        self.assertEqual(secret_handler(client, rs).list(self.logger), [])
        client.list_namespaced_secret.assert_called_once_with(
            TARGET_NAMESPACE,
            **NamespaceObjectMarker().list_managed_options(rs.key),
        )

    def test_list_failure(self):
        client = Mock()
        client.list_namespaced_secret.side_effect = ApiException(status=403, reason='Forbidden')

        with self.assertRaises(SecretListError) as cm:
            secret_handler(client, remote_secret()).list(self.logger)

        self.assertEqual(cm.exception.reason, ErrorReason.LIST_FAILURE)

    def test_managing_annotation_without_reference(self):
        """A secret claiming to be managed by us without referencing us is not ours."""
        rs = remote_secret()
        secret = V1Secret(metadata=V1ObjectMeta(
            name='mysecret',
            namespace=TARGET_NAMESPACE,
            annotations={MANAGING_REMOTE_SECRET_NAME_ANNOTATION: str(rs.key)},
        ))
        self.marker.mark_referenced(ObjectKey(namespace='rs-ns', name='other'), secret)

        client = FakeSecrets(secret)

        self.assertEqual(secret_handler(client, rs).list(self.logger), [])
