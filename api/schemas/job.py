"""
Job Schemas
Pydantic models for cron triggers and administrative batch jobs
"""

from typing import List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


class JobResult(BaseModel):
    """Common shape of every batch job: partial progress plus per-item errors"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    errors: List[str] = []


class TickResult(JobResult):
    """Due-window tick"""
    sessions_created: int = Field(0, alias="sessionsCreated")
    notified: int = 0
    skipped: int = 0


class SweepResult(JobResult):
    """Expiry sweep and missed-log backfill"""
    processed_count: int = Field(0, alias="processedCount")
    missed_logs_created: int = Field(0, alias="missedLogsCreated")


class FollowUpResult(JobResult):
    """Follow-up reminders"""
    processed_count: int = Field(0, alias="processedCount")
    sent: int = 0


class ReconcileResult(JobResult):
    """Pack-scan reconciliation"""
    processed_groups: int = Field(0, alias="processedGroups")
    logs_updated: int = Field(0, alias="logsUpdated")


class PopulateResult(JobResult):
    """Schedule population"""
    schedules_created: int = Field(0, alias="schedulesCreated")


class MixedGroup(BaseModel):
    """Bucket holding both TAKEN and MISSED events"""
    group_key: str
    patient_id: int
    bucket_start: datetime
    taken_event_ids: List[int]
    missed_event_ids: List[int]


class MixedGroupList(BaseModel):
    """Dry-run reconciliation report"""
    groups: List[MixedGroup]
    total: int
