import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from kubernetes.client import V1ObjectMeta

from commaseparated import CommaSeparated
from consts import LINKED_BY_REMOTE_SECRET_LABEL, LINKED_REMOTE_SECRETS_ANNOTATION, \
    MANAGING_REMOTE_SECRET_NAME_ANNOTATION, OBJECT_KEY_SEPARATOR, VALUES_SEPARATOR
from errors import MarkingError
from models import ObjectKey

logger = logging.getLogger(__name__)


class ObjectMarker(ABC):
    """Records on the objects themselves which remote secrets reference them and which one manages them.

    Many remote secrets can reference a single object, but at most one of them manages it. Managing implies
    referencing. The mark_* and unmark_* methods mutate the object in memory only and return whether anything
    changed, persisting the object is up to the caller.
    """

    @abstractmethod
    def is_referenced_by(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def is_managed_by(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def mark_referenced(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def mark_managed(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def unmark_managed(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def unmark_referenced(self, key: ObjectKey, obj: Any) -> bool:
        pass

    @abstractmethod
    def list_managed_options(self, key: ObjectKey) -> Dict[str, str]:
        """Keyword arguments narrowing a list call to the objects possibly managed by the key."""
        pass

    @abstractmethod
    def list_referenced_options(self, key: ObjectKey) -> Dict[str, str]:
        """Keyword arguments narrowing a list call to the objects possibly referenced by the key."""
        pass

    @abstractmethod
    def get_referencing_targets(self, obj: Any) -> List[ObjectKey]:
        pass


def _labels(obj: Any) -> Dict[str, str]:
    if obj.metadata is None:
        obj.metadata = V1ObjectMeta()
    if obj.metadata.labels is None:
        obj.metadata.labels = {}
    return obj.metadata.labels


def _annotations(obj: Any) -> Dict[str, str]:
    if obj.metadata is None:
        obj.metadata = V1ObjectMeta()
    if obj.metadata.annotations is None:
        obj.metadata.annotations = {}
    return obj.metadata.annotations


class NamespaceObjectMarker(ObjectMarker):
    """Marks objects living in the same cluster as the remote secrets.

    The referencing remote secrets are kept in the LINKED_REMOTE_SECRETS_ANNOTATION, the managing one in the
    MANAGING_REMOTE_SECRET_NAME_ANNOTATION. The LINKED_BY_REMOTE_SECRET_LABEL is set whenever there is at least one
    reference so that the candidates can be listed using a label selector.
    """

    def is_referenced_by(self, key: ObjectKey, obj: Any) -> bool:
        metadata = obj.metadata
        if metadata is None or (metadata.labels or {}).get(LINKED_BY_REMOTE_SECRET_LABEL) != 'true':
            return False

        links = CommaSeparated((metadata.annotations or {}).get(LINKED_REMOTE_SECRETS_ANNOTATION))
        return links.contains(str(key))

    def is_managed_by(self, key: ObjectKey, obj: Any) -> bool:
        if not self.is_referenced_by(key, obj):
            return False

        return (obj.metadata.annotations or {}).get(MANAGING_REMOTE_SECRET_NAME_ANNOTATION) == str(key)

    def mark_referenced(self, key: ObjectKey, obj: Any) -> bool:
        link = str(key)
        if VALUES_SEPARATOR in link:
            raise MarkingError(f'Object key {link} cannot be recorded, it contains "{VALUES_SEPARATOR}".')

        changed = False

        labels = _labels(obj)
        if labels.get(LINKED_BY_REMOTE_SECRET_LABEL) != 'true':
            labels[LINKED_BY_REMOTE_SECRET_LABEL] = 'true'
            changed = True

        annotations = _annotations(obj)
        links = CommaSeparated(annotations.get(LINKED_REMOTE_SECRETS_ANNOTATION))
        if not links.contains(link):
            links.add(link)
            annotations[LINKED_REMOTE_SECRETS_ANNOTATION] = str(links)
            changed = True

        return changed

    def mark_managed(self, key: ObjectKey, obj: Any) -> bool:
        changed = self.mark_referenced(key, obj)

        annotations = _annotations(obj)
        if annotations.get(MANAGING_REMOTE_SECRET_NAME_ANNOTATION) != str(key):
            annotations[MANAGING_REMOTE_SECRET_NAME_ANNOTATION] = str(key)
            changed = True

        return changed

    def unmark_managed(self, key: ObjectKey, obj: Any) -> bool:
        if obj.metadata is None or obj.metadata.annotations is None:
            return False

        annotations = obj.metadata.annotations
        if annotations.get(MANAGING_REMOTE_SECRET_NAME_ANNOTATION) != str(key):
            return False

        del annotations[MANAGING_REMOTE_SECRET_NAME_ANNOTATION]
        return True

    def unmark_referenced(self, key: ObjectKey, obj: Any) -> bool:
        # a remote secret that no longer references the object cannot manage it either
        was_managed = self.unmark_managed(key, obj)

        if obj.metadata is None or obj.metadata.annotations is None:
            return was_managed

        annotations = obj.metadata.annotations
        links = CommaSeparated(annotations.get(LINKED_REMOTE_SECRETS_ANNOTATION))

        link = str(key)
        contained_link = links.contains(link)
        if contained_link:
            links.remove(link)

        unlabeled = False
        if len(links) == 0:
            labels = obj.metadata.labels
            if labels is not None and labels.get(LINKED_BY_REMOTE_SECRET_LABEL) == 'true':
                del labels[LINKED_BY_REMOTE_SECRET_LABEL]
                unlabeled = True
            annotations.pop(LINKED_REMOTE_SECRETS_ANNOTATION, None)
        else:
            annotations[LINKED_REMOTE_SECRETS_ANNOTATION] = str(links)

        return was_managed or contained_link or unlabeled

    def list_managed_options(self, key: ObjectKey) -> Dict[str, str]:
        # the exact key cannot be expressed as a label selector, callers need to check is_managed_by
        return self.list_referenced_options(key)

    def list_referenced_options(self, key: ObjectKey) -> Dict[str, str]:
        return {'label_selector': f'{LINKED_BY_REMOTE_SECRET_LABEL}=true'}

    def get_referencing_targets(self, obj: Any) -> List[ObjectKey]:
        annotations = (obj.metadata.annotations if obj.metadata is not None else None) or {}
        links = CommaSeparated(annotations.get(LINKED_REMOTE_SECRETS_ANNOTATION))

        keys = []
        for link in links.values():
            parts = link.split(OBJECT_KEY_SEPARATOR)
            if len(parts) != 2:
                logger.debug(f'Skipping malformed remote secret reference {link}')
                continue
            keys.append(ObjectKey(namespace=parts[0], name=parts[1]))
        return keys
