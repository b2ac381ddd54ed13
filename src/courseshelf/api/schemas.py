from typing import List

from pydantic import BaseModel, Field, conint

from courseshelf.models.media import MAX_RECORD_ID

RecordId = conint(gt=0, le=MAX_RECORD_ID)


class ImportedVideo(BaseModel):
    path: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)


class ImportVideosRequest(BaseModel):
    videos: List[ImportedVideo]


class SetCompletionRequest(BaseModel):
    completed: bool


class CreateCourseRequest(BaseModel):
    name: str = Field(default="", max_length=255)
    video_ids: List[RecordId] = Field(default_factory=list)
