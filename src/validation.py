from typing import Set, Tuple

from errors import InvalidRemoteSecretError
from models import RemoteSecret


def validate_remote_secret(remote_secret: RemoteSecret, update: bool = False):
    """Checks the rules a remote secret must satisfy before it is admitted to the cluster

    Raises InvalidRemoteSecretError describing the first broken rule.
    """
    data_from_name = remote_secret.data_from.name if remote_secret.data_from is not None else ''
    if data_from_name:
        if remote_secret.upload_data:
            raise InvalidRemoteSecretError('dataFrom and data cannot be specified at the same time')

        if update and remote_secret.is_data_obtained():
            raise InvalidRemoteSecretError('dataFrom cannot be set on a remote secret that already has data')

    seen: Set[Tuple[str, str]] = set()
    for target in remote_secret.spec.targets:
        target_id = (target.namespace, target.api_url)
        if target_id in seen:
            location = f'namespace {target.namespace}'
            if target.api_url:
                location += f' of cluster {target.api_url}'
            raise InvalidRemoteSecretError(f'multiple targets point to the {location}')
        seen.add(target_id)
