import logging
from typing import Dict

from kubernetes.client import CoreV1Api

from bindings import SecretDataGetter
from errors import SecretDataError
from kubernetes_utils import read_data_secret
from models import RemoteSecret


class UploadDataGetter(SecretDataGetter[RemoteSecret]):
    """Data given directly in the remote secret."""

    def get_data(self, logger: logging.Logger, key: RemoteSecret) -> Dict[str, str]:
        if not key.upload_data:
            raise SecretDataError(f'Remote secret {key.key} has no data.')

        return dict(key.upload_data)


class SecretRefDataGetter(SecretDataGetter[RemoteSecret]):
    """Data copied from another secret, see the dataFrom of the remote secret."""

    def __init__(self, v1: CoreV1Api) -> None:
        self.v1 = v1

    def get_data(self, logger: logging.Logger, key: RemoteSecret) -> Dict[str, str]:
        data_from = key.data_from
        if data_from is None or not data_from.name:
            raise SecretDataError(f'Remote secret {key.key} does not reference any secret to take the data from.')

        namespace = data_from.namespace or key.namespace
        logger.debug(f'Taking data of {key.key} from secret {data_from.name} in namespace {namespace}')
        return read_data_secret(logger, data_from.name, namespace, self.v1, keys=data_from.keys)


def data_getter_for(remote_secret: RemoteSecret, v1: CoreV1Api) -> SecretDataGetter[RemoteSecret]:
    if remote_secret.data_from is not None and remote_secret.data_from.name:
        return SecretRefDataGetter(v1)
    return UploadDataGetter()
