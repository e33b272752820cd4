"""
Response envelopes exchanged between the two services.

The location service wraps every body as either a success variant
carrying a typed payload or a failure variant carrying an error code and
message. Clients decode into one of the two immediately after reading
the response.
"""

from typing import Any, Dict, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, TypeAdapter

from driver_matching.app.schemas.driver import DriverSearchData

DataT = TypeVar("DataT")


class SuccessEnvelope(BaseModel, Generic[DataT]):
    success: Literal[True]
    data: DataT
    message: Optional[str] = None


class FailureEnvelope(BaseModel):
    success: Literal[False]
    error: str = ""
    message: str = ""
    details: Optional[Dict[str, Any]] = None


class SearchSuccessEnvelope(SuccessEnvelope[DriverSearchData]):
    pass


SearchEnvelope = Union[SearchSuccessEnvelope, FailureEnvelope]

search_envelope_adapter = TypeAdapter(SearchEnvelope)


def success_body(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    """Build a success envelope body from a payload (pydantic model or plain data)."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
