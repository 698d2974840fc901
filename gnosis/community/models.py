from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from gnosis.auth.models import check_email, check_name, check_strong_password


# ==================== ENUMS ====================

class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


REVIEW_STATUSES = [s.value for s in ReviewStatus]


class InvitationFilter(str, Enum):
    ALL = "all"
    USED = "used"
    UNUSED = "unused"
    EXPIRED = "expired"


class AboutUsSection(str, Enum):
    WHAT_STUDENTS_SAY = "what_students_say"
    WHAT_WE_DO = "what_we_do"
    OUR_CORE_VALUES = "our_core_values"
    OUR_MISSION = "our_mission"
    OUR_VISION = "our_vision"
    MEET_OUR_TEAM = "meet_our_team"


# page-data key for each section
PAGE_DATA_KEYS = {
    AboutUsSection.WHAT_STUDENTS_SAY.value: "whatStudentsSay",
    AboutUsSection.WHAT_WE_DO.value: "whatWeDo",
    AboutUsSection.OUR_CORE_VALUES.value: "ourCoreValues",
    AboutUsSection.OUR_MISSION.value: "ourMission",
    AboutUsSection.OUR_VISION.value: "ourVision",
    AboutUsSection.MEET_OUR_TEAM.value: "meetOurTeam",
}


# ==================== REVIEWS ====================

class ReviewCreate(BaseModel):
    adminId: str
    rating: float
    title: str
    comment: Optional[str] = None

    @field_validator("rating")
    @classmethod
    def valid_rating(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("Rating must be between 1 and 5")
        return v

    @field_validator("title")
    @classmethod
    def valid_title(cls, v):
        v = v.strip()
        if not 2 <= len(v) <= 100:
            raise ValueError("Title must be between 2 and 100 characters")
        return v

    @field_validator("comment")
    @classmethod
    def valid_comment(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not 10 <= len(v) <= 1000:
            raise ValueError("Comment must be between 10 and 1000 characters")
        return v


# ==================== INVITATIONS ====================

class InvitationCreate(BaseModel):
    email: Optional[str] = None
    expiresInDays: int = 7
    metadata: dict = Field(default_factory=dict)

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v) if v else None

    @field_validator("expiresInDays")
    @classmethod
    def valid_days(cls, v):
        if not 1 <= v <= 365:
            raise ValueError("Expiration days must be between 1 and 365")
        return v


class InvitationSignup(BaseModel):
    token: Optional[str] = None
    firstName: str
    lastName: str
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return check_strong_password(v)

    @field_validator("firstName")
    @classmethod
    def valid_first_name(cls, v):
        return check_name(v, "First name")

    @field_validator("lastName")
    @classmethod
    def valid_last_name(cls, v):
        return check_name(v, "Last name")


# ==================== ABOUT US ====================

class Feature(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class TeamMember(BaseModel):
    name: str
    role: str
    image: Optional[str] = None
    bio: Optional[str] = None


class TeamMemberUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    image: Optional[str] = None
    bio: Optional[str] = None


class SectionImage(BaseModel):
    url: str
    alt: Optional[str] = None
    caption: Optional[str] = None


class SectionUpsert(BaseModel):
    section: Optional[AboutUsSection] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    content: Optional[str] = None
    features: list[Feature] = Field(default_factory=list)
    teamMembers: list[TeamMember] = Field(default_factory=list)
    images: list[SectionImage] = Field(default_factory=list)
    order: Optional[int] = None


class SectionUpdate(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    content: Optional[str] = None
    features: Optional[list[Feature]] = None
    teamMembers: Optional[list[TeamMember]] = None
    images: Optional[list[SectionImage]] = None
    order: Optional[int] = None
    isActive: Optional[bool] = None
