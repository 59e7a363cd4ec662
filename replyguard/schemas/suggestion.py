from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class SuggestionSchema(BaseModel):
    text: str
    confidence: float
    product_match: bool = False
    product_recommendations: List[str] = []
    reasoning: str = ""


class ConversationMetadataSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    intent: Optional[str] = None
    intent_score: Optional[float] = None
    sentiment: Optional[str] = None
    sentiment_score: Optional[float] = None
    emotions: List[str] = []
    objections: List[str] = []

    @field_validator("emotions", "objections", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class SuggestionsResponse(BaseModel):
    suggestions: List[SuggestionSchema]
    context_used: bool
    metadata: Optional[ConversationMetadataSchema] = None
