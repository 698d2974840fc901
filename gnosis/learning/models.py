from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ==================== ENUMS ====================


class BranchCategory(str, Enum):
    MATH = "math"
    READING_WRITING = "reading_writing"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AchievementType(str, Enum):
    LEVEL_COMPLETION = "level_completion"
    DAILY = "daily"


CATEGORIES = [c.value for c in BranchCategory]
INVALID_CATEGORY_MSG = 'Invalid category. Must be either "math" or "reading_writing"'


# ==================== BRANCH MODELS ====================


class BranchCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None


class BranchUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    isActive: Optional[bool] = None


class GuideSection(BaseModel):
    heading: str = Field(..., min_length=1)
    content: List[str] = []


class GuideDescription(BaseModel):
    sections: List[GuideSection] = Field(..., min_length=1)


class GuideBookCreate(BaseModel):
    branchId: str
    title: str = Field(..., min_length=1, max_length=200)
    description: GuideDescription


# ==================== QUESTION MODELS ====================


class QuestionCreate(BaseModel):
    branchId: Optional[str] = None
    level: Optional[int] = None
    questionText: Optional[str] = None
    options: Optional[List[Any]] = None
    correctAnswerIndex: Optional[int] = None
    explanation: Optional[str] = None
    equation: Optional[str] = None
    difficulty: Optional[Difficulty] = Difficulty.MEDIUM
    points: int = 10
    image: Optional[str] = None


class QuestionUpdate(BaseModel):
    questionText: Optional[str] = None
    options: Optional[List[Any]] = None
    correctAnswerIndex: Optional[int] = None
    explanation: Optional[str] = None
    equation: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    points: Optional[int] = None
    image: Optional[str] = None
    isActive: Optional[bool] = None


class BulkQuestionsRequest(BaseModel):
    questions: List[Dict[str, Any]] = Field(..., min_length=1)


class AnswerSubmit(BaseModel):
    selectedOptionIndex: int = Field(..., ge=0)
    timeSpent: int = Field(0, ge=0)


# ==================== ACHIEVEMENT MODELS ====================


class AchievementRequirements(BaseModel):
    levelsCompleted: Optional[int] = Field(None, ge=1, le=10)
    questionsAnswered: Optional[int] = Field(None, ge=1)


class AchievementCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=2, max_length=500)
    icon: str = "🏆"
    branchId: Optional[str] = None
    category: Optional[BranchCategory] = None
    type: AchievementType = AchievementType.LEVEL_COMPLETION
    requirements: AchievementRequirements
    pointsReward: int = Field(100, ge=0)


class AchievementUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = None
    requirements: Optional[AchievementRequirements] = None
    pointsReward: Optional[int] = Field(None, ge=0)
    isActive: Optional[bool] = None
