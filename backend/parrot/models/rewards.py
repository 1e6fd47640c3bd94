from typing import Optional
from pydantic import BaseModel, Field, model_validator


class RewardEvent(BaseModel):
    """Transient reward payload shown after a reward-earning action."""
    xp: int = Field(..., ge=0, description="Experience points earned")
    tickets: int = Field(..., ge=0, description="Gacha tickets earned")
    levelUp: bool = Field(False, description="Whether the action caused a level up")
    newLevel: Optional[int] = Field(None, ge=1, description="Level reached, only set on level up")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _level_consistency(self) -> "RewardEvent":
        if self.levelUp and self.newLevel is None:
            raise ValueError("newLevel is required when levelUp is true")
        if not self.levelUp and self.newLevel is not None:
            raise ValueError("newLevel must be empty when levelUp is false")
        return self


class DiaryRewardRequest(BaseModel):
    """Request model for a completed diary save."""
    totalChars: int = Field(..., ge=0, description="Total characters written in the entry")
    totalXp: int = Field(0, ge=0, description="User's XP before this entry")
    currentLevel: int = Field(1, ge=1, description="User's level before this entry")
    isNewEntry: bool = Field(True, description="Edits of existing entries earn nothing")


class RewardNotificationResponse(BaseModel):
    """Response model for the currently displayed reward."""
    reward: Optional[RewardEvent] = Field(None, description="The displayed reward, or null when none")
