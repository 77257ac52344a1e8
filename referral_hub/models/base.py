# referral_hub/models/base.py
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..utils.errors import ValidationError


class MongoModel(BaseModel):
    """
    Base for documents as they are stored: snake_case in Python, camelCase in
    Mongo, ObjectId references kept as ObjectId.
    """

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "alias_generator": to_camel,
        "extra": "ignore",
    }

    @classmethod
    def build(cls, **data):
        """
        Construct from trusted server-side values; schema violations surface
        as the app's ValidationError rather than a 500.
        """
        try:
            return cls(**data)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            raise ValidationError(str(first.get("msg") or e)) from e

    def to_mongo(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
