from marshmallow import Schema, fields, pre_load, validate, validates, validates_schema, ValidationError

from models.schemas.common import (
    normalize_email,
    validate_gender,
    validate_locale,
    validate_username,
)

EMAIL_MAX_LENGTH = 128
NAME_MAX_LENGTH = 64


class UserCreateSchema(Schema):
    first_name = fields.String(allow_none=True, validate=validate.Length(max=NAME_MAX_LENGTH))
    last_name = fields.String(allow_none=True, validate=validate.Length(max=NAME_MAX_LENGTH))
    username = fields.String(required=True)
    email = fields.Email(required=True, validate=validate.Length(max=EMAIL_MAX_LENGTH))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))
    confirm_password = fields.String(required=True, load_only=True)
    gender = fields.String(allow_none=True)
    locale = fields.String(load_default="en")

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = normalize_email(data["email"])
        return data

    @validates("username")
    def _validate_username(self, value, **kwargs):
        validate_username(value)

    @validates("locale")
    def _validate_locale(self, value, **kwargs):
        validate_locale(value)

    @validates("gender")
    def _validate_gender(self, value, **kwargs):
        validate_gender(value)

    @validates_schema
    def _passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("confirm_password"):
            raise ValidationError("invalid confirm password", field_name="confirm_password")


class UserLoginSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=EMAIL_MAX_LENGTH))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = normalize_email(data["email"])
        return data


class PasswordChangeSchema(Schema):
    old_password = fields.String(required=True, load_only=True)
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))
    confirm_password = fields.String(required=True, load_only=True)

    @validates_schema
    def _passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("confirm_password"):
            raise ValidationError("invalid confirm password", field_name="confirm_password")


class RoleUpdateSchema(Schema):
    role = fields.String(required=True, validate=validate.OneOf(["user", "admin"]))


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(load_default=None)


class UserOutSchema(Schema):
    id = fields.Integer()
    first_name = fields.String(allow_none=True)
    last_name = fields.String(allow_none=True)
    username = fields.String()
    email = fields.String()
    gender = fields.String(allow_none=True)
    role = fields.String()
    locale = fields.String()
    active = fields.Boolean()
    email_verified = fields.Boolean()
    last_login_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()


class UserPatchSchema(Schema):
    first_name = fields.String(validate=validate.Length(max=NAME_MAX_LENGTH))
    last_name = fields.String(validate=validate.Length(max=NAME_MAX_LENGTH))
    username = fields.String()
    email = fields.Email(validate=validate.Length(max=EMAIL_MAX_LENGTH))
    gender = fields.String(allow_none=True)
    locale = fields.String()

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = normalize_email(data["email"])
        return data

    @validates("username")
    def _validate_username(self, value, **kwargs):
        validate_username(value)

    @validates("locale")
    def _validate_locale(self, value, **kwargs):
        validate_locale(value)

    @validates("gender")
    def _validate_gender(self, value, **kwargs):
        validate_gender(value)


class EmailRequestSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=EMAIL_MAX_LENGTH))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = normalize_email(data["email"])
        return data


class AccountTokenSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1))


class PasswordResetSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))
    confirm_password = fields.String(required=True, load_only=True)

    @validates_schema
    def _passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("confirm_password"):
            raise ValidationError("invalid confirm password", field_name="confirm_password")
