from marshmallow import fields
from myapp.types.base import BaseSchema
from myapp.types.models.resource_requirements import ResourceRequirements


class ResourceRequirementsSchema(BaseSchema):
    __model__ = ResourceRequirements

    claims = fields.List(
        fields.Dict(keys=fields.Str()), data_key="claims", load_default=None
    )
    requests = fields.Dict(keys=fields.Str(), data_key="requests", load_default=None)
    limits = fields.Dict(keys=fields.Str(), data_key="limits", load_default=None)
