from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Manager(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    id: str
    store_id: str = Field(validation_alias=AliasChoices("storeId", "store_id"))
    name: str = ""
    username: str = ""
    store_name: str = ""
    role: str = ""


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token: str = Field(validation_alias=AliasChoices("token", "accessToken"))
    refresh_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("refreshToken", "refresh_token"))
    manager: Manager


class RefreshResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    access_token: str = Field(validation_alias=AliasChoices("accessToken", "token"))
    refresh_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("refreshToken", "refresh_token"))
