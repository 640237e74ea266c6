from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class WalletBindingInnerRequest(WireModel):
    individual_id: str = Field(min_length=1)
    challenge_list: List[Dict[str, Any]]
    public_key: str
    auth_factor_type: str
    format: str


class WalletBindingRequest(WireModel):
    request_time: str
    request: WalletBindingInnerRequest


class WalletBindingInternalInnerRequest(WireModel):
    individual_id: str
    challenge_list: List[Dict[str, Any]]
    public_key: Dict[str, Any]
    auth_factor_type: str
    format: str


class WalletBindingInternalRequest(WireModel):
    request_time: str
    request: WalletBindingInternalInnerRequest


class BindingOtpInnerRequest(WireModel):
    model_config = ConfigDict(extra="allow")

    individual_id: str = Field(min_length=1)
    otp_channels: List[str] = Field(min_length=1)


class BindingOtpRequest(WireModel):
    model_config = ConfigDict(extra="allow")

    request_time: str
    request: BindingOtpInnerRequest


class ErrorEntry(WireModel):
    error_code: str
    error_message: str


class ResponseEnvelope(WireModel):
    id: str
    version: str
    response_time: str = Field(alias="responsetime")
    response: Optional[Dict[str, Any]] = None
    errors: List[ErrorEntry] = Field(default_factory=list)
