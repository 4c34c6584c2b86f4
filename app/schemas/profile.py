from typing import List, Optional

from pydantic import BaseModel, Field


class ProfileData(BaseModel):
    """Public profile facts used to personalise the letter. Empty means "nothing known"."""

    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None
    followers_count: Optional[int] = None
    following_count: Optional[int] = None
    posts_count: Optional[int] = None
    profile_image_url: Optional[str] = None
    website_url: Optional[str] = None
    location: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(
            [
                self.full_name,
                self.bio,
                self.followers_count,
                self.posts_count,
                self.website_url,
                self.location,
                self.hashtags,
            ]
        )
