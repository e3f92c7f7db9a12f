import logging
from typing import Dict, Generic, List, Optional

from kubernetes.client import V1ObjectMeta, V1Secret, exceptions

from bindings import K, SecretDataGetter, SecretDeploymentTarget, name_corresponds
from consts import DEFAULT_GENERATE_NAME_SUFFIX
from errors import MarkingError, SecretDataError, SecretListError, SecretSyncError, StaleDetectionError
from models import ErrorReason, LinkableSecretSpec
from object_marker import ObjectMarker


class SecretHandler(Generic[K]):
    """Creates, updates and lists the secrets of a single deployment target.

    The handler never deletes anything. Races with other writers are resolved by falling back from create to
    update (the secret appeared meanwhile) or from update to create (the secret disappeared meanwhile), at most
    once per sync. Anything beyond that is left to the next reconciliation.
    """

    def __init__(
            self,
            target: SecretDeploymentTarget,
            object_marker: ObjectMarker,
            secret_data_getter: SecretDataGetter[K],
    ) -> None:
        self.target = target
        self.object_marker = object_marker
        self.secret_data_getter = secret_data_getter

    def get_stale(self, logger: logging.Logger) -> Optional[V1Secret]:
        """Returns the previously deployed secret if it no longer corresponds to the desired secret of the target.

        None is returned if there is no such secret.
        """
        existing_secret_name = self.target.get_actual_secret_name()
        spec = self.target.get_spec()
        if not existing_secret_name or name_corresponds(existing_secret_name, spec.name, spec.generate_name):
            return None

        namespace = self.target.get_target_namespace()
        try:
            secret = self.target.get_client().read_namespaced_secret(existing_secret_name, namespace)
        except exceptions.ApiException as e:
            if e.status == 404:
                logger.debug(f'Stale secret {existing_secret_name} already gone from namespace {namespace}.')
                return None
            raise StaleDetectionError(
                f'Failed to detect whether the secret {existing_secret_name} in namespace {namespace} of the '
                f'deployment target {self.target.get_target_object_key()} ({self.target.get_type()}) is stale: {e}',
            ) from e

        logger.info(f'Secret {existing_secret_name} in namespace {namespace} is stale.')
        return secret

    def sync(self, logger: logging.Logger, key: K, recreate: bool = False) -> V1Secret:
        """Creates or updates the secret with the data obtained for the key.

        The recreate flag forces a new secret even if the target reports an existing one, which is how stale
        secrets (see get_stale) get replaced.
        """
        try:
            data = self.secret_data_getter.get_data(logger, key)
        except SecretDataError as e:
            raise SecretSyncError(
                f'Failed to obtain the secret data for the deployment target '
                f'{self.target.get_target_object_key()} ({self.target.get_type()}): {e}',
                reason=e.reason,
            ) from e

        spec = self.target.get_spec()

        secret_name = self.target.get_actual_secret_name()
        if recreate or not secret_name:
            secret_name = spec.name

        generate_name = spec.generate_name
        if not generate_name:
            generate_name = self.target.get_target_object_key().name + DEFAULT_GENERATE_NAME_SUFFIX

        try:
            if not secret_name:
                return self._create(logger, secret_name, generate_name, spec, data, fallback=True)
            return self._update(logger, secret_name, generate_name, spec, data, fallback=True)
        except (exceptions.ApiException, MarkingError) as e:
            action = 'create' if not secret_name else 'update'
            raise SecretSyncError(
                f'Failed to {action} the target secret of the deployment target '
                f'{self.target.get_target_object_key()} ({self.target.get_type()}): {e}',
                reason=ErrorReason.SECRET_UPDATE,
            ) from e

    def list(self, logger: logging.Logger) -> List[V1Secret]:
        """Lists the secrets in the target namespace managed by the owner of the target."""
        key = self.target.get_target_object_key()
        namespace = self.target.get_target_namespace()
        options = self.object_marker.list_managed_options(key)

        try:
            secrets = self.target.get_client().list_namespaced_secret(namespace, **options).items
        except exceptions.ApiException as e:
            raise SecretListError(
                f'Failed to list the secrets associated with the deployment target ({self.target.get_type()}) '
                f'{key}: {e}',
            ) from e

        logger.debug(
            f'Listing secrets managed by target {key} ({self.target.get_type()}) in namespace {namespace} '
            f'with {options}: {len(secrets)} candidates.'
        )

        managed = []
        for secret in secrets:
            try:
                if self.object_marker.is_managed_by(key, secret):
                    managed.append(secret)
            except MarkingError as e:
                raise SecretListError(
                    f'Failed to determine if the secret {secret.metadata.namespace}/{secret.metadata.name} is '
                    f'managed while processing the deployment target ({self.target.get_type()}) {key}: {e}',
                ) from e
        return managed

    def _create(
            self,
            logger: logging.Logger,
            secret_name: str,
            generate_name: str,
            spec: LinkableSecretSpec,
            data: Dict[str, str],
            fallback: bool,
    ) -> V1Secret:
        namespace = self.target.get_target_namespace()
        secret = V1Secret(
            metadata=V1ObjectMeta(
                name=secret_name or None,
                generate_name=generate_name,
                namespace=namespace,
                labels=dict(spec.labels),
                annotations=dict(spec.annotations),
            ),
            type=spec.type,
            data=dict(data),
        )

        # marked before the creation so that the secret never exists without the marks
        self.object_marker.mark_managed(self.target.get_target_object_key(), secret)

        logger.info(f'Creating secret {secret_name or generate_name + "*"} in namespace {namespace}.')
        try:
            return self.target.get_client().create_namespaced_secret(namespace, secret)
        except exceptions.ApiException as e:
            if e.status == 409 and secret_name and fallback:
                logger.info(f'Secret {secret_name} appeared in namespace {namespace} meanwhile, updating it.')
                return self._update(logger, secret_name, generate_name, spec, data, fallback=False)
            raise

    def _update(
            self,
            logger: logging.Logger,
            secret_name: str,
            generate_name: str,
            spec: LinkableSecretSpec,
            data: Dict[str, str],
            fallback: bool,
    ) -> V1Secret:
        namespace = self.target.get_target_namespace()
        client = self.target.get_client()

        try:
            secret = client.read_namespaced_secret(secret_name, namespace)
        except exceptions.ApiException as e:
            if e.status == 404 and fallback:
                logger.info(f'Secret {secret_name} not found in namespace {namespace}, creating it.')
                return self._create(logger, secret_name, generate_name, spec, data, fallback=False)
            raise

        self.object_marker.mark_managed(self.target.get_target_object_key(), secret)

        # set the labels, annotations and data we require, leave everything else in place
        if secret.metadata.labels is None:
            secret.metadata.labels = {}
        if secret.metadata.annotations is None:
            secret.metadata.annotations = {}
        if secret.data is None:
            secret.data = {}

        secret.metadata.labels.update(spec.labels)
        secret.metadata.annotations.update(spec.annotations)
        secret.data.update(data)

        logger.info(f'Replacing secret {secret_name} in namespace {namespace}.')
        try:
            return client.replace_namespaced_secret(name=secret_name, namespace=namespace, body=secret)
        except exceptions.ApiException as e:
            if e.status == 404 and fallback:
                logger.info(f'Secret {secret_name} deleted from namespace {namespace} meanwhile, creating it.')
                return self._create(logger, secret_name, generate_name, spec, data, fallback=False)
            raise
