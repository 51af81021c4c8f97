from .resource_requirements import ResourceRequirements
from .myappresource_spec import (
    ImageSpec,
    UISpec,
    CacheSpec,
    MyAppResourceSpec,
    MyAppResourceStatus,
)
from .myappresource_resources import MyAppResourceResources
from .reconcile import ConvergeOutcome, ChildChange, ReconcileResult

__all__ = [
    "ResourceRequirements",
    "ImageSpec",
    "UISpec",
    "CacheSpec",
    "MyAppResourceSpec",
    "MyAppResourceStatus",
    "MyAppResourceResources",
    "ConvergeOutcome",
    "ChildChange",
    "ReconcileResult",
]
