import logging
import sys
from typing import Any, Dict, List, Optional

import kopf
from kubernetes import client, config
from kubernetes.client import exceptions

from consts import DATA_OBTAINED_CONDITION, GROUP, PLURAL, VERSION
from errors import InvalidRemoteSecretError, SecretListError, SecretSyncError
from kubernetes_utils import unlink_secret
from models import Condition, ErrorReason, RemoteSecret, RemoteSecretTarget, TargetStatus
from namespace_target import NamespaceTarget
from object_marker import NamespaceObjectMarker, ObjectMarker
from os_utils import get_version, get_webhook_port, in_cluster
from secret_data import data_getter_for
from secret_handler import SecretHandler
from validation import validate_remote_secret

if "unittest" not in sys.modules:
    if in_cluster():
        # Loading kubeconfig
        config.load_incluster_config()
    else:
        # Loading using the local kubevonfig.
        config.load_kube_config()

v1 = client.CoreV1Api()
object_marker: ObjectMarker = NamespaceObjectMarker()


def sync_target(
        logger: logging.Logger,
        remote_secret: RemoteSecret,
        target: RemoteSecretTarget,
) -> str:
    """Deploys the secret of the remote secret to a single namespace, replacing the stale secret if any.

    Returns the name of the deployed secret.
    """
    deployment_target = NamespaceTarget(v1, remote_secret, target)
    handler = SecretHandler(deployment_target, object_marker, data_getter_for(remote_secret, v1))

    stale = handler.get_stale(logger)
    if stale is not None:
        unlink_secret(logger, remote_secret.key, stale, object_marker, v1)

    secret = handler.sync(logger, remote_secret, recreate=stale is not None)
    secret_name = secret.metadata.name

    for leftover in handler.list(logger):
        if leftover.metadata.name != secret_name:
            unlink_secret(logger, remote_secret.key, leftover, object_marker, v1)

    logger.info(f'Remote secret {remote_secret.key} synced to secret {secret_name} in {target.namespace}.')
    return secret_name


def unlink_target(
        logger: logging.Logger,
        remote_secret: RemoteSecret,
        target: RemoteSecretTarget,
):
    """Removes the references of the remote secret from all the secrets in the target namespace.
    """
    key = remote_secret.key
    options = object_marker.list_referenced_options(key)
    try:
        secrets = v1.list_namespaced_secret(target.namespace, **options).items
    except exceptions.ApiException as e:
        raise SecretListError(f'Failed to list the secrets of {key} in namespace {target.namespace}: {e}') from e

    for secret in secrets:
        if object_marker.is_referenced_by(key, secret):
            unlink_secret(logger, key, secret, object_marker, v1)


def data_obtained_condition(statuses: List[TargetStatus], errors: Dict[str, SecretSyncError]) -> Condition:
    data_errors = [error for error in errors.values() if error.reason == ErrorReason.DATA_FETCH]
    if data_errors:
        return Condition(
            type=DATA_OBTAINED_CONDITION,
            status='False',
            reason=ErrorReason.DATA_FETCH.value,
            message=str(data_errors[0]),
        )
    if not any(status.secret_name for status in statuses):
        return Condition(type=DATA_OBTAINED_CONDITION, status='Unknown')
    return Condition(type=DATA_OBTAINED_CONDITION, status='True', reason='DataFound')


@kopf.on.validate(GROUP, VERSION, PLURAL)
def validate_fn(
        body: Dict[str, Any],
        operation: Optional[str],
        **_,
):
    try:
        validate_remote_secret(RemoteSecret.from_body(body), update=operation == 'UPDATE')
    except InvalidRemoteSecretError as e:
        raise kopf.AdmissionError(str(e))


@kopf.on.resume(GROUP, VERSION, PLURAL)
@kopf.on.create(GROUP, VERSION, PLURAL)
@kopf.on.update(GROUP, VERSION, PLURAL)
def sync_fn(
        body: Dict[str, Any],
        logger: logging.Logger,
        patch: kopf.Patch,
        **_,
):
    remote_secret = RemoteSecret.from_body(body)
    logger.debug(f'Syncing remote secret {remote_secret.key} to {len(remote_secret.spec.targets)} targets')

    statuses = []
    errors: Dict[str, SecretSyncError] = {}
    for target in remote_secret.spec.targets:
        status = TargetStatus(namespace=target.namespace, api_url=target.api_url)
        statuses.append(status)

        if target.api_url:
            logger.warning(f'Target namespace {target.namespace} of cluster {target.api_url} is not supported.')
            status.error = 'deployment to remote clusters is not supported'
            continue

        try:
            status.secret_name = sync_target(logger, remote_secret, target)
        except SecretSyncError as e:
            logger.error(f'Failed to sync remote secret {remote_secret.key} to namespace {target.namespace}: {e}')
            errors[target.namespace] = e
            status.secret_name = remote_secret.actual_secret_name(target.namespace)
            status.error = str(e)

    # namespaces removed from the targets since the last sync
    wanted = {(target.namespace, target.api_url) for target in remote_secret.spec.targets}
    for previous in remote_secret.status.targets:
        if previous.api_url or (previous.namespace, previous.api_url) in wanted:
            continue
        logger.info(f'Namespace {previous.namespace} is no longer a target of {remote_secret.key}.')
        try:
            unlink_target(logger, remote_secret, RemoteSecretTarget(namespace=previous.namespace))
        except SecretSyncError as e:
            logger.error(f'Failed to clean up namespace {previous.namespace} of {remote_secret.key}: {e}')
            errors[previous.namespace] = e

    patch.status['targets'] = [status.model_dump(by_alias=True, exclude_none=True) for status in statuses]
    patch.status['conditions'] = [data_obtained_condition(statuses, errors).model_dump()]

    if errors:
        raise kopf.TemporaryError(f'Failed to sync to the namespaces {", ".join(sorted(errors))}.', delay=60)


@kopf.on.delete(GROUP, VERSION, PLURAL)
def delete_fn(
        body: Dict[str, Any],
        logger: logging.Logger,
        **_,
):
    remote_secret = RemoteSecret.from_body(body)

    namespaces = {target.namespace for target in remote_secret.spec.targets if not target.api_url}
    namespaces.update(target.namespace for target in remote_secret.status.targets if not target.api_url)

    for namespace in sorted(namespaces):
        logger.debug(f'Unlinking secrets of {remote_secret.key} in namespace {namespace}')
        unlink_target(logger, remote_secret, RemoteSecretTarget(namespace=namespace))


@kopf.on.startup()
async def startup_fn(
    logger: logging.Logger,
    settings: kopf.OperatorSettings,
    **_
):
    logger.info(f'Starting the remote secret operator version {get_version()}.')

    webhook_port = get_webhook_port()
    if webhook_port is not None:
        logger.info(f'Serving the remote secret validation webhook on port {webhook_port}.')
        settings.admission.server = kopf.WebhookServer(port=webhook_port)
