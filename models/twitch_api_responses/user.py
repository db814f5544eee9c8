from typing import List, Optional

from pydantic import BaseModel


class User(BaseModel):
    id: str
    login: str
    display_name: str
    broadcaster_type: Optional[str] = None
    description: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[str] = None


class UserResponse(BaseModel):
    data: List[User]
