from .store import KubeStore
from .myappresource import MyAppResource, RenderedResources, owner_name

__all__ = ["KubeStore", "MyAppResource", "RenderedResources", "owner_name"]
