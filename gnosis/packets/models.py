from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PacketDifficulty(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class PacketQuestionType(str, Enum):
    MULTIPLE_CHOICE = "Multiple Choice"
    TRUE_FALSE = "True/False"
    FILL_IN_THE_BLANK = "Fill in the Blank"


class PacketStatus(str, Enum):
    ACTIVE = "Active"
    DRAFT = "Draft"


OPTIONS_PER_QUESTION = 4

# frontend subject names → stored subjectCategory
SUBJECT_ALIASES = {"Math": "Maths"}


class PacketQuestion(BaseModel):
    questionText: Optional[str] = None
    options: Optional[List[str]] = None
    correctAnswer: Optional[str] = None
    reasonForCorrectAnswer: Optional[str] = None


class PacketCreate(BaseModel):
    packetTitle: Optional[str] = None
    packetDescription: Optional[str] = None
    subjectCategory: Optional[str] = None
    category: Optional[str] = None
    difficultyLevel: Optional[PacketDifficulty] = None
    questionType: PacketQuestionType = PacketQuestionType.MULTIPLE_CHOICE
    status: PacketStatus = PacketStatus.ACTIVE
    questions: List[PacketQuestion] = []


class PacketUpdate(BaseModel):
    packetTitle: Optional[str] = None
    packetDescription: Optional[str] = None
    subjectCategory: Optional[str] = None
    category: Optional[str] = None
    difficultyLevel: Optional[PacketDifficulty] = None
    questionType: Optional[PacketQuestionType] = None
    status: Optional[PacketStatus] = None
    questions: Optional[List[PacketQuestion]] = None


class SubmitAnswersRequest(BaseModel):
    answers: Optional[List[str]] = None


class AnswerQuestionRequest(BaseModel):
    questionIndex: int
    userAnswer: str = Field(..., min_length=1)
