import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.datetime_utils import utc_now


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ApiResponse(BaseModel):
    """Envelope of every non-trigger endpoint."""

    success: bool
    status: ResponseStatus
    message: str
    data: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = Field(
        default=None, description="error_code, error_type and other details"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Field-level validation errors"
    )
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    request_id: Optional[str] = Field(default=None, validate_default=True)
    path: Optional[str] = None

    @field_validator("request_id", mode="before")
    @classmethod
    def default_request_id(cls, value):
        # Responses built outside RequestIDMiddleware still carry an ID
        return value or str(uuid.uuid4())
