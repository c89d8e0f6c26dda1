import re
from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate, validates


class BackendSchema(Schema):
    """Records coming back from the backend; extra keys are ignored."""

    class Meta:
        unknown = EXCLUDE

    @pre_load
    def alias_object_id(self, data: Dict[str, Any], **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "id" not in data and "_id" in data:
            data["id"] = data.pop("_id")
        # ids are compared as strings whatever the backend sends
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return data


class ShowtimeSchema(BackendSchema):
    id = fields.Str(required=True)
    date = fields.Str(required=True)
    time = fields.Str(required=True)


class MovieSchema(BackendSchema):
    id = fields.Str(required=True)
    title = fields.Str(required=True)
    description = fields.Str(load_default="")
    poster = fields.Str(load_default="")
    release_date = fields.Str(load_default="")
    director = fields.Str(load_default=None, allow_none=True)
    cast = fields.List(fields.Str(), load_default=list)
    duration = fields.Int(load_default=None, allow_none=True)
    genre = fields.List(fields.Str(), load_default=list)
    rating = fields.Float(load_default=None, allow_none=True)
    trailer_url = fields.Str(load_default=None, allow_none=True)
    showtimes = fields.List(fields.Nested(ShowtimeSchema), load_default=list)


class SeatSchema(BackendSchema):
    id = fields.Str(required=True)
    name = fields.Str(load_default="")
    price = fields.Float(required=True)
    type = fields.Str(load_default="standard", validate=validate.OneOf(["standard", "vip", "couple"]))
    status = fields.Str(load_default="available", validate=validate.OneOf(["available", "booked", "selected"]))

    @pre_load
    def default_name(self, data: Dict[str, Any], **kwargs):
        if isinstance(data, dict) and not data.get("name") and data.get("id") is not None:
            data = dict(data, name=str(data["id"]))
        return data


class TheaterSchema(BackendSchema):
    id = fields.Str(required=True)
    name = fields.Str(required=True)
    location = fields.Str(load_default="")
    capacity = fields.Int(load_default=0)


class PromotionSchema(BackendSchema):
    id = fields.Str(required=True)
    code = fields.Str(required=True)
    discount = fields.Float(load_default=0)
    start_date = fields.Str(load_default="")
    end_date = fields.Str(load_default="")
    type = fields.Str(load_default="")
    condition = fields.Str(load_default="")


class AdminUserSchema(BackendSchema):
    id = fields.Str(required=True)
    full_name = fields.Str(load_default="")
    email = fields.Str(load_default="")
    role = fields.Str(load_default="user")


class AdminMovieSchema(BackendSchema):
    id = fields.Str(required=True)
    title = fields.Str(required=True)
    genre = fields.List(fields.Str(), load_default=list)
    rating = fields.Float(load_default=None, allow_none=True)


class SessionUserSchema(BackendSchema):
    id = fields.Str(required=True)
    email = fields.Str(load_default="")


# -----------------------
# Form input
# -----------------------
class StripStringsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    @pre_load
    def strip_strings(self, data: Dict[str, Any], **kwargs):
        return {
            key: value.strip() if isinstance(value, str) and key != "password" else value
            for key, value in data.items()
        }


class SignInSchema(StripStringsSchema):
    email = fields.Email(required=True)
    password = fields.Str(required=True, validate=validate.Length(min=1))


class SignUpSchema(StripStringsSchema):
    full_name = fields.Str(required=True, validate=validate.Length(min=1))
    email = fields.Email(required=True)
    phone = fields.Str(required=True)
    password = fields.Str(required=True)

    @validates("phone")
    def validate_phone(self, value: str, **kwargs):
        if not re.fullmatch(r"\d{9,11}", value):
            raise ValidationError("Phone number must have 9 to 11 digits")

    @validates("password")
    def validate_password(self, value: str, **kwargs):
        if len(value) < 6:
            raise ValidationError("Password must be at least 6 characters")


class CommentSchema(StripStringsSchema):
    content = fields.Str(required=True, validate=validate.Length(min=1, error="Comment cannot be empty"))
    rating = fields.Int(load_default=5, validate=validate.Range(min=1, max=5))


def load_many(schema: Schema, records):
    """Load backend records, skipping any that do not fit the schema."""
    loaded = []
    for record in records:
        try:
            loaded.append(schema.load(record))
        except ValidationError:
            continue
    return loaded


def form_errors(exc: ValidationError):
    errors = []
    for field, messages in (exc.messages or {}).items():
        for message in messages:
            errors.append({"field": field, "msg": message})
    return errors


showtime_schema = ShowtimeSchema()
movie_schema = MovieSchema()
seat_schema = SeatSchema()
theater_schema = TheaterSchema()
promotion_schema = PromotionSchema()
admin_user_schema = AdminUserSchema()
admin_movie_schema = AdminMovieSchema()
session_user_schema = SessionUserSchema()
sign_in_schema = SignInSchema()
sign_up_schema = SignUpSchema()
comment_schema = CommentSchema()
