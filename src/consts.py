"""
Constants used by the project
"""

GROUP = 'appstudio.redhat.com'
VERSION = 'v1beta1'
PLURAL = 'remotesecrets'

# Tags written on the target secrets. External tooling queries these directly, do not rename.
LINKED_BY_REMOTE_SECRET_LABEL = 'appstudio.redhat.com/linked-by-remote-secret'
MANAGING_REMOTE_SECRET_NAME_ANNOTATION = 'appstudio.redhat.com/managing-remote-secret'
LINKED_REMOTE_SECRETS_ANNOTATION = 'appstudio.redhat.com/linked-remote-secrets'

OBJECT_KEY_SEPARATOR = '/'
VALUES_SEPARATOR = ','

DEFAULT_GENERATE_NAME_SUFFIX = '-secret-'
DEFAULT_SECRET_TYPE = 'Opaque'

DATA_OBTAINED_CONDITION = 'DataObtained'
