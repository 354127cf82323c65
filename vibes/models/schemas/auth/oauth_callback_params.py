from pydantic import BaseModel, field_validator

class OAuthCallbackParams(BaseModel):
    code: str | None = None
    state: str | None = None
    error: str | None = None

    @field_validator('code', 'state', 'error')
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v
