"""
Input schemas for user-submitted records.
"""
from typing import Optional

import pydantic
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from estudeaqui.exceptions import ValidationError


class StudyLogInput(BaseModel):
    """A study session as submitted from the log form or the Pomodoro prompt."""
    subject_id: str = Field(..., min_length=1, description="Subject studied")
    topic_id: str = Field(..., min_length=1, description="Topic studied")
    duration: int = Field(..., ge=1, description="Minutes studied")
    start_page: int = Field(0, ge=0)
    end_page: int = Field(0, ge=0)
    questions_total: int = Field(0, ge=0)
    questions_correct: int = Field(0, ge=0)
    source: str = Field("manual", description="e.g. 'manual', 'pomodoro', 'site-questoes'")
    sequence_item_index: Optional[int] = Field(None, ge=0)
    notes: str = ""

    @field_validator("end_page")
    @classmethod
    def end_page_not_before_start(cls, value: int, info: ValidationInfo) -> int:
        start = info.data.get("start_page")
        if start is not None and value < start:
            raise ValueError("end page must be greater than or equal to the start page")
        return value

    @field_validator("questions_correct")
    @classmethod
    def correct_not_above_total(cls, value: int, info: ValidationInfo) -> int:
        total = info.data.get("questions_total")
        if total is not None and value > total:
            raise ValueError("correct answers cannot exceed the total number of questions")
        return value


def parse_study_log(data: dict) -> StudyLogInput:
    """Validate raw log data, raising ValidationError for the first failing field."""
    try:
        return StudyLogInput.model_validate(data)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        if error["type"] == "value_error":
            message = str(error["ctx"]["error"])
        else:
            message = error["msg"]
        raise ValidationError(message, field=field) from exc
