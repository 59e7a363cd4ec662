from pydantic import BaseModel


class AutoReplyConfigResponse(BaseModel):
    enabled: bool
    confidence_threshold: float
    source: str
