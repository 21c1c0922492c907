"""
Review request models

Pydantic models for the JSON bodies accepted by the progress endpoints.
Both snake_case and the camelCase names used by the web client are accepted.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, StrictInt


class ReviewSubmission(BaseModel):
    """
    One review of one vocabulary item.

    Example:
    {
        "vocab_id": 42,
        "quality": 4,
        "response_ms": 2300
    }
    """
    vocab_id: StrictInt = Field(
        gt=0,
        validation_alias=AliasChoices('vocab_id', 'vocabId'),
        description="ID of the reviewed vocabulary item"
    )
    quality: StrictInt = Field(
        ge=0,
        le=5,
        description="Recall quality: 0-2 lapse, 3-5 correct"
    )
    response_ms: Optional[StrictInt] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices('response_ms', 'responseMs'),
        description="Time to answer in milliseconds"
    )
