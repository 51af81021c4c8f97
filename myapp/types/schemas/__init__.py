from .resource_requirements import ResourceRequirementsSchema
from .myappresource_spec import (
    ImageSpecSchema,
    UISpecSchema,
    CacheSpecSchema,
    MyAppResourceSpecSchema,
    MyAppResourceStatusSchema,
)

__all__ = [
    "ResourceRequirementsSchema",
    "ImageSpecSchema",
    "UISpecSchema",
    "CacheSpecSchema",
    "MyAppResourceSpecSchema",
    "MyAppResourceStatusSchema",
]
