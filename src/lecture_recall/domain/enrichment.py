"""Models for content enrichment results."""

from typing import Literal

from pydantic import BaseModel, Field


class QuestionDetection(BaseModel):
    """Outcome of scanning a transcript fragment for an audience question."""

    has_question: bool
    question: str | None = None


class GeneratedQuiz(BaseModel):
    """Four short options with exactly one marked correct."""

    option_a: str = Field(min_length=1)
    option_b: str = Field(min_length=1)
    option_c: str = Field(min_length=1)
    option_d: str = Field(min_length=1)
    correct_answer: Literal["A", "B", "C", "D"]

    def options(self) -> dict[str, str]:
        return {
            "A": self.option_a,
            "B": self.option_b,
            "C": self.option_c,
            "D": self.option_d,
        }
