from pydantic import BaseModel, Field


class WebhookEndpointCreate(BaseModel):
    # omitted -> a fresh random key is issued
    key: str | None = Field(default=None, pattern=r"^[a-f0-9]{32}$")
    endpoint_url: str
    enabled: bool = True


class WebhookEndpointUpdate(BaseModel):
    enabled: bool | None = None
    endpoint_url: str | None = None


class WebhookEndpointOut(BaseModel):
    key: str
    endpoint_url: str
    enabled: bool


class HealthOut(BaseModel):
    status: str
    store_connected: bool
