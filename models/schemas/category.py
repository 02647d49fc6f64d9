from marshmallow import Schema, fields, post_load

from models.schemas.common import slugify


def _name_ok(s: str) -> bool:
    return len(s.strip()) > 0 and len(s) <= 64


class CategoryCreateSchema(Schema):
    name = fields.String(required=True, validate=_name_ok)
    slug = fields.String(validate=_name_ok)
    description = fields.String(allow_none=True)
    is_featured = fields.Boolean(load_default=False)
    properties = fields.Dict(allow_none=True)

    @post_load
    def _default_slug(self, data, **kwargs):
        data["slug"] = slugify(data.get("slug") or data["name"])
        return data


class CategoryUpdateSchema(Schema):
    name = fields.String(validate=_name_ok)
    slug = fields.String(validate=_name_ok)
    description = fields.String(allow_none=True)
    is_featured = fields.Boolean()
    properties = fields.Dict(allow_none=True)

    @post_load
    def _normalize_slug(self, data, **kwargs):
        if "slug" in data:
            data["slug"] = slugify(data["slug"])
        return data


class CategoryOutSchema(Schema):
    id = fields.Integer()
    name = fields.String()
    slug = fields.String()
    description = fields.String(allow_none=True)
    is_featured = fields.Boolean()
    properties = fields.Dict(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
