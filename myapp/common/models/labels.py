import mmh3
from typing import Dict


class ResourceLabels:
    MYAPP_DOMAIN: str = "my.api.group/"

    MYAPP_KIND_LABEL = MYAPP_DOMAIN + "kind"

    MYAPP_OWNER_LABEL = MYAPP_DOMAIN + "owner"

    MYAPP_COMPONENT_TYPE_LABEL = MYAPP_DOMAIN + "component-type"

    APP_LABEL = "app"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_NAME_LABEL = KUBERNETES_DOMAIN + "name"

    KUBERNETES_INSTANCE_LABEL = KUBERNETES_DOMAIN + "instance"

    KUBERNETES_PART_OF_LABEL = KUBERNETES_DOMAIN + "part-of"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    MAX_LABEL_VALUE_LENGTH = 63

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = dict(labels) if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels as dictionary."""
        return self._labels.copy()

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_app(self, name: str) -> "Labels":
        return self.include(self.APP_LABEL, self.valid_label_value(name))

    def include_myapp_kind(self, kind: str) -> "Labels":
        return self.include(self.MYAPP_KIND_LABEL, kind)

    def include_myapp_owner(self, owner: str) -> "Labels":
        return self.include(self.MYAPP_OWNER_LABEL, self.valid_label_value(owner))

    def include_myapp_component_type(self, type: str) -> "Labels":
        return self.include(self.MYAPP_COMPONENT_TYPE_LABEL, type)

    def include_kubernetes_name(self, name: str) -> "Labels":
        return self.include(self.KUBERNETES_NAME_LABEL, name)

    def include_kubernetes_instance(self, instance_name: str) -> "Labels":
        return self.include(
            self.KUBERNETES_INSTANCE_LABEL, self.valid_label_value(instance_name)
        )

    def include_kubernetes_part_of(self, owner: str) -> "Labels":
        return self.include(
            self.KUBERNETES_PART_OF_LABEL, self.valid_label_value(owner)
        )

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    @classmethod
    def valid_label_value(cls, value: str) -> str:
        """Trim a value to a valid label value:
        * (([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?
        * 63 characters max

        Longer values keep a hash of the full value as suffix so that distinct
        names stay distinct once trimmed.
        """
        if not value:
            return ""
        if len(value) <= cls.MAX_LABEL_VALUE_LENGTH:
            return value.rstrip("-_.")
        suffix = format(mmh3.hash(value, signed=False), "08x")
        keep = cls.MAX_LABEL_VALUE_LENGTH - len(suffix) - 1
        prefix = value[:keep].rstrip("-_.")
        return f"{prefix}-{suffix}"

    def selector(self) -> "Labels":
        """Labels used to match the pods of a workload."""
        return Labels({self.APP_LABEL: self._labels[self.APP_LABEL]})

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def generate_default_labels(
        cls,
        component_name: str,
        owner_name: str,
        owner_kind: str,
        component_type: str,
        managed_by: str,
    ) -> "Labels":
        labels = Labels()
        return (
            labels.include_app(component_name)
            .include_myapp_kind(owner_kind)
            .include_myapp_owner(owner_name)
            .include_myapp_component_type(component_type)
            .include_kubernetes_name(component_type)
            .include_kubernetes_instance(component_name)
            .include_kubernetes_part_of(owner_name)
            .include_kubernetes_managed_by(managed_by)
        )
