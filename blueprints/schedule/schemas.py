from __future__ import annotations
from datetime import date, time
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class BreakIn(BaseModel):
    start: time
    end: time

    @model_validator(mode="after")
    def _check(self):
        if self.end <= self.start:
            raise ValueError("break end must be greater than start")
        return self


class ScheduleIn(BaseModel):
    shoot_date: date
    start_time: time
    end_time: time
    shooting_type: str = Field(min_length=1, max_length=100)
    professor_name: str = Field(min_length=1, max_length=120)
    course_name: Optional[str] = Field(None, max_length=255)
    course_code: Optional[str] = Field(None, max_length=50)
    studio_id: Optional[int] = None
    notes: Optional[str] = None
    break_time: Optional[BreakIn] = None
    # перерыв делит заявку на две записи одной группы
    split_on_break: bool = False

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be greater than start_time")
        if self.break_time and not (self.start_time <= self.break_time.start
                                    and self.break_time.end <= self.end_time):
            raise ValueError("break must lie inside the shoot")
        return self


class ScheduleUpdate(BaseModel):
    shoot_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    shooting_type: Optional[str] = Field(None, min_length=1, max_length=100)
    course_name: Optional[str] = Field(None, max_length=255)
    course_code: Optional[str] = Field(None, max_length=50)
    studio_id: Optional[int] = None
    notes: Optional[str] = None


class ConflictCheckIn(BaseModel):
    shoot_date: date
    start_time: time
    end_time: time
    shooting_type: str = Field(min_length=1, max_length=100)
    exclude_schedule_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be greater than start_time")
        return self


class TransitionIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SplitIn(BaseModel):
    split_points: List[str] = Field(min_length=1)
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("split_points")
    @classmethod
    def _strip(cls, v: List[str]) -> List[str]:
        return [p.strip() for p in v if p and p.strip()]
