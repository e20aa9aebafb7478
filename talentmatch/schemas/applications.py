from typing import Literal

from pydantic import BaseModel, Field

ApplyOutcome = Literal["applied", "already_applied"]
WithdrawOutcome = Literal["withdrawn", "not_found"]


class ApplicationRequest(BaseModel):
    candidate_id: str = Field(min_length=1)
    job_id: str = Field(min_length=1)


class ApplyResult(BaseModel):
    candidate_id: str
    job_id: str
    outcome: ApplyOutcome
    applied_job_ids: list[str] = Field(default_factory=list)


class WithdrawResult(BaseModel):
    candidate_id: str
    job_id: str
    outcome: WithdrawOutcome
    applied_job_ids: list[str] = Field(default_factory=list)


class AppliedJobsOut(BaseModel):
    candidate_id: str
    applied_job_ids: list[str] = Field(default_factory=list)
