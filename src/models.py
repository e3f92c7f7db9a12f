from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from consts import DATA_OBTAINED_CONDITION, DEFAULT_SECRET_TYPE, OBJECT_KEY_SEPARATOR


class ErrorReason(str, Enum):
    DATA_FETCH = 'DataFetch'
    SECRET_UPDATE = 'SecretUpdate'
    STALE_DETECTION = 'StaleDetection'
    LIST_FAILURE = 'ListFailure'
    MARKING_FAILURE = 'MarkingFailure'


class ObjectKey(BaseModel):
    """Namespace and name of a kubernetes object, rendered as `namespace/name`."""
    model_config = ConfigDict(frozen=True)

    namespace: str = ''
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}{OBJECT_KEY_SEPARATOR}{self.name}'


class LinkableSecretSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ''
    generate_name: str = Field(default='', alias='generateName')
    type: str = DEFAULT_SECRET_TYPE
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}


class RemoteSecretTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    namespace: str
    api_url: str = Field(default='', alias='apiUrl')


class RemoteSecretSpec(BaseModel):
    secret: LinkableSecretSpec = LinkableSecretSpec()
    targets: List[RemoteSecretTarget] = []


class RemoteSecretDataFrom(BaseModel):
    name: str = ''
    namespace: str = ''
    keys: Optional[List[str]] = None


class TargetStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    namespace: str
    api_url: str = Field(default='', alias='apiUrl')
    secret_name: str = Field(default='', alias='secretName')
    error: Optional[str] = None


class Condition(BaseModel):
    type: str
    status: str
    reason: str = ''
    message: str = ''


class RemoteSecretStatus(BaseModel):
    targets: List[TargetStatus] = []
    conditions: List[Condition] = []


class RemoteSecret(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    namespace: str = ''
    uid: str = ''
    spec: RemoteSecretSpec = RemoteSecretSpec()
    upload_data: Dict[str, str] = Field(default={}, alias='data')
    data_from: Optional[RemoteSecretDataFrom] = Field(default=None, alias='dataFrom')
    status: RemoteSecretStatus = RemoteSecretStatus()

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> 'RemoteSecret':
        metadata = body.get('metadata') or {}
        return cls(
            name=metadata.get('name'),
            namespace=metadata.get('namespace') or '',
            uid=metadata.get('uid') or '',
            spec=dict(body.get('spec') or {}),
            data=dict(body.get('data') or {}),
            dataFrom=body.get('dataFrom'),
            status=dict(body.get('status') or {}),
        )

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    def is_data_obtained(self) -> bool:
        return any(
            condition.type == DATA_OBTAINED_CONDITION and condition.status == 'True'
            for condition in self.status.conditions
        )

    def actual_secret_name(self, namespace: str, api_url: str = '') -> str:
        for target in self.status.targets:
            if target.namespace == namespace and target.api_url == api_url:
                return target.secret_name
        return ''
