import orjson
from fastapi.responses import ORJSONResponse
from bson import ObjectId
from bson.decimal128 import Decimal128
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any


def bson_default(obj: Any) -> Any:
    """Recursively convert BSON and model values into JSON-safe types."""
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal128):
        return float(obj.to_decimal())
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple, set)):
        return [bson_default(i) for i in obj]
    if isinstance(obj, dict):
        return {str(k): bson_default(v) for k, v in obj.items()}
    if hasattr(obj, "model_dump"):
        return bson_default(obj.model_dump(by_alias=True))
    return obj


class MongoORJSONResponse(ORJSONResponse):
    """
    Default response class. Serializes ObjectId, datetime and pydantic
    models found anywhere in the payload.
    """
    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return orjson.dumps(bson_default(content))
