from pydantic import BaseModel, ConfigDict, Field, StrictBool

class SharingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_sharing: StrictBool = Field(alias="isSharing")
