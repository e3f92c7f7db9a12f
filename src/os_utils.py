import os
from functools import cache
from typing import Optional


@cache
def get_version() -> str:
    """
    Wrapper for REMOTE_SECRET_VERSION variable environment
    """
    return os.getenv('REMOTE_SECRET_VERSION', '0')


@cache
def get_webhook_port() -> Optional[int]:
    """
    Port of the validating webhook server, the webhook is disabled when unset.
    """
    port = os.getenv('REMOTE_SECRET_WEBHOOK_PORT')

    if not port:
        return None

    return int(port)


@cache
def in_cluster() -> bool:
    """
    Whether we are running in cluster (on the pod)  or outside (debug mode.)
    """
    return os.getenv('KUBERNETES_SERVICE_HOST', None) is not None
