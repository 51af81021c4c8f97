from typing import Optional, Mapping, List
from myapp.types.base import BaseModel


class ResourceRequirements(BaseModel):
    """Compute resources of a container, passed through to the pod spec."""

    claims: Optional[List[Mapping[str, str]]]
    requests: Optional[Mapping[str, str]]
    limits: Optional[Mapping[str, str]]
