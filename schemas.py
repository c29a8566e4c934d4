"""
Database Schemas for Campus Crush

Each Pydantic model maps to a MongoDB collection with the lowercase class name.
- User -> "user"
- Swipe -> "swipe"
- Match -> "match"
- Message -> "message"
- Notification -> "notification"
- Confession -> "confession"

Photo, Reaction, Comment and Reply are embedded documents owned by their parent.
The API validates new documents against these models before inserting them.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, get_args

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field

from database import now_utc

Year = Literal["1st", "2nd", "3rd", "Final"]
Gender = Literal["Male", "Female", "Non-binary", "Other"]
LookingFor = Literal["Relationship", "Friendship", "Casual", "Not sure"]
Preference = Literal["Male", "Female", "Both"]
SwipeAction = Literal["like", "pass", "superlike"]
MatchStatus = Literal["active", "unmatched", "blocked"]
MessageType = Literal["text", "image", "video", "audio", "file"]
NotificationType = Literal["match", "like", "message", "confession", "comment"]
ConfessionCategory = Literal["crush", "academic", "funny", "support", "general"]
ReactionType = Literal["heart", "laugh", "fire", "sad"]

YEARS = list(get_args(Year))
GENDERS = list(get_args(Gender))
LOOKING_FOR = list(get_args(LookingFor))
PREFERENCES = list(get_args(Preference))
SWIPE_ACTIONS = list(get_args(SwipeAction))
CATEGORIES = list(get_args(ConfessionCategory))
REACTION_TYPES = list(get_args(ReactionType))


class StoredImage(BaseModel):
    url: str
    public_id: str
    uploaded_at: datetime = Field(default_factory=now_utc)


class VerificationPhotos(BaseModel):
    selfie: Optional[StoredImage] = None
    college_id: Optional[StoredImage] = None


class Photo(BaseModel):
    """
    Profile photo embedded in a user.
    The like count is len(likes); it is never stored.
    """
    url: str
    public_id: str
    is_main: bool = False
    likes: List[str] = Field(default_factory=list, description="User ids who liked this photo")


class Instagram(BaseModel):
    username: Optional[str] = Field(None, max_length=30, pattern=r"^[a-zA-Z0-9._]*$")
    is_public: bool = False


class User(BaseModel):
    """
    User accounts and profiles
    Collection name: "user"
    """
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr = Field(..., description="Lowercased, unique")
    password_hash: str = Field(..., description="BCrypt password hash")
    college: str = Field(..., description="Upper-cased first label of the email domain")
    is_verified: bool = False
    verification_token: Optional[str] = None
    verification_token_expires: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    photos: List[Photo] = Field(default_factory=list)
    bio: str = Field("", max_length=500)
    age: Optional[int] = Field(None, ge=18, le=30)
    year: Optional[Year] = None
    branch: Optional[str] = Field(None, max_length=100)
    gender: Optional[Gender] = None
    interests: List[str] = Field(default_factory=list, max_length=10)
    looking_for: Optional[LookingFor] = "Not sure"
    preference: Optional[Preference] = None
    instagram: Instagram = Field(default_factory=Instagram)
    verification_photos: VerificationPhotos = Field(default_factory=VerificationPhotos)


class Swipe(BaseModel):
    """
    One directional action per (swiper, swiped) pair
    Collection name: "swipe"
    """
    swiper_id: str = Field(..., description="Who performed the swipe")
    swiped_id: str = Field(..., description="Whom they swiped on")
    action: SwipeAction
    swiped_at: datetime = Field(default_factory=now_utc)


class LastMessage(BaseModel):
    content: str
    sender_id: str
    timestamp: datetime = Field(default_factory=now_utc)


class Match(BaseModel):
    """
    Mutual likes
    Collection name: "match"
    """
    user1_id: str = Field(..., description="User whose like completed the match")
    user2_id: str = Field(..., description="User who liked first")
    status: MatchStatus = "active"
    matched_at: datetime = Field(default_factory=now_utc)
    last_activity: datetime = Field(default_factory=now_utc)
    last_message: Optional[LastMessage] = None


class Message(BaseModel):
    """
    Chat messages scoped to a match
    Collection name: "message"
    """
    match_id: str
    sender_id: str
    content: str = Field(..., min_length=1, max_length=1000)
    type: MessageType = "text"
    media_url: Optional[str] = None
    reply_to: Optional[str] = None
    read_by: List[str] = Field(default_factory=list)


class Notification(BaseModel):
    """
    Per-recipient event feed
    Collection name: "notification"
    """
    recipient_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None


class Reaction(BaseModel):
    user_id: str
    type: ReactionType
    created_at: datetime = Field(default_factory=now_utc)


class Reply(BaseModel):
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: str
    content: str = Field(..., min_length=1, max_length=500)
    is_anonymous: bool = True
    upvotes: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=now_utc)

    model_config = {"arbitrary_types_allowed": True, "populate_by_name": True}


class Comment(Reply):
    replies: List[Reply] = Field(default_factory=list)


class Confession(BaseModel):
    """
    Anonymous college-scoped posts
    Collection name: "confession"
    """
    user_id: str
    content: str = Field(..., min_length=3, max_length=1000)
    category: ConfessionCategory = "general"
    college: str
    is_anonymous: bool = True
    upvotes: List[str] = Field(default_factory=list)
    reactions: List[Reaction] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    is_reported: bool = False
    report_count: int = 0
