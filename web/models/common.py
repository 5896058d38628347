"""Common shared models for the SessionBridge web application."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(ApiModel):
    """Bare success envelope."""

    success: bool = True
    message: str = ""


class ErrorResponse(ApiModel):
    """Error envelope returned by every exception handler."""

    success: bool = False
    error: str
    type: str
