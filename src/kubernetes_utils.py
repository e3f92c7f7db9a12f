import logging
from typing import Dict, List, Optional

from kubernetes.client import CoreV1Api, V1Secret, exceptions

from errors import SecretDataError, SecretSyncError
from models import ObjectKey
from object_marker import ObjectMarker


def read_data_secret(
        logger: logging.Logger,
        name: str,
        namespace: str,
        v1: CoreV1Api,
        keys: Optional[List[str]] = None,
) -> Dict[str, str]:
    """Gets the data from the 'name' secret in namespace, optionally only the given keys
    """
    logger.debug(f'Reading {name} from ns {namespace}')
    try:
        secret = v1.read_namespaced_secret(name, namespace)
    except exceptions.ApiException as e:
        logger.error('Error reading secret')
        logger.debug(f'error: {e}')
        if e.status == 404:
            raise SecretDataError(f'Secret {name} in ns {namespace} not found.') from e
        raise SecretDataError(f'Error reading secret {name} in ns {namespace}: {e}') from e

    data = secret.data or {}
    if keys is not None:
        missing = [key for key in keys if key not in data]
        if missing:
            logger.warning(f'Secret {name} in ns {namespace} does not have the keys {", ".join(missing)}.')
        data = {key: value for key, value in data.items() if key in keys}
    return data


def delete_secret(
        logger: logging.Logger,
        namespace: str,
        name: str,
        v1: CoreV1Api,
):
    """Deletes a given secret from a given namespace
    """
    logger.info(f'deleting secret {name} from namespace {namespace}')
    try:
        v1.delete_namespaced_secret(name, namespace)
    except exceptions.ApiException as e:
        if e.status == 404:
            logger.warning(f'The secret {name} in namespace {namespace} may not exist anymore: Not found')
        else:
            logger.warning('Something weird deleting the secret')
            logger.debug(f'details: {e}')


def unlink_secret(
        logger: logging.Logger,
        key: ObjectKey,
        secret: V1Secret,
        object_marker: ObjectMarker,
        v1: CoreV1Api,
):
    """Removes the reference of the remote secret from the given secret

    A secret managed by the remote secret and no longer referenced by anything is deleted, otherwise only its
    marks are updated.
    """
    name = secret.metadata.name
    namespace = secret.metadata.namespace

    was_managed = object_marker.is_managed_by(key, secret)
    if not object_marker.unmark_referenced(key, secret):
        logger.debug(f'Secret {name} in namespace {namespace} is not linked to {key}.')
        return

    if was_managed and not object_marker.get_referencing_targets(secret):
        delete_secret(logger, namespace, name, v1)
        return

    logger.info(f'Unlinking secret {name} in namespace {namespace} from {key}.')
    try:
        v1.replace_namespaced_secret(name=name, namespace=namespace, body=secret)
    except exceptions.ApiException as e:
        if e.status == 404:
            logger.warning(f'The secret {name} in namespace {namespace} may not exist anymore: Not found')
            return
        raise SecretSyncError(f'Failed to unlink the secret {name} in namespace {namespace} from {key}: {e}') from e
