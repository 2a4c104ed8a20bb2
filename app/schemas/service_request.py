from pydantic import BaseModel, Field


class ServiceRequestCreate(BaseModel):
    table_no: str = Field(min_length=1, max_length=50)
