"""API request/response models (Pydantic v2)."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, model_validator

# holiday / day-view fields are named date; annotate them through an alias so the type is not shadowed
DateType = date


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise ValueError("end_date must be on or after start_date")


# ---------- organizations ----------
class OrganizationRead(BaseModel):
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = None
    phone: Optional[str] = None


class RegisterOrganization(BaseModel):
    """Self-service signup: a new organization, its Unassigned site and the first admin."""
    organization_name: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = Field(None, max_length=100, description="Derived from the name when omitted")
    admin_name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    phone: Optional[str] = None


# ---------- users / auth ----------
class UserRead(BaseModel):
    id: int
    organization_id: int
    email: str
    name: str
    base_role: str
    phone: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = None
    base_role: Optional[str] = None
    is_active: Optional[bool] = None


class InviteSiteRole(BaseModel):
    job_site_id: int
    role: str = Field("worker", description="superintendent / engineer / engineer_as_superintendent / foreman / worker")


class UserInvite(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=200)
    base_role: str = Field("worker", description="admin / superintendent / engineer / foreman / worker")
    phone: Optional[str] = None
    site_roles: List[InviteSiteRole] = []


class InviteResponse(BaseModel):
    user: UserRead
    invite_url: str
    expires_at: datetime


class SetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserRead


class RegisterResponse(LoginResponse):
    organization: OrganizationRead


# ---------- job sites ----------
class JobSiteBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    description: Optional[str] = None
    status: str = Field("active", description="active / on_hold / completed")
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class JobSiteCreate(JobSiteBase):
    @model_validator(mode="after")
    def check_dates(self):
        _check_range(self.start_date, self.end_date)
        return self


class JobSiteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class JobSiteRead(JobSiteBase):
    id: int
    organization_id: int
    is_system_site: bool = False
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    my_role: Optional[str] = Field(None, description="Caller's active role at this site")
    model_config = ConfigDict(from_attributes=True)


class JobSiteAssignmentCreate(BaseModel):
    user_id: int
    role: str = Field(..., description="superintendent / engineer / engineer_as_superintendent / foreman / worker")
    start_date: Optional[date] = Field(None, description="Defaults to today")
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        _check_range(self.start_date, self.end_date)
        return self


class JobSiteAssignmentUpdate(BaseModel):
    role: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None


class JobSiteAssignmentRead(BaseModel):
    id: int
    user_id: int
    job_site_id: int
    role: str
    start_date: date
    end_date: Optional[date] = None
    is_active: bool
    assigned_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MeResponse(BaseModel):
    user: UserRead
    site_assignments: List[JobSiteAssignmentRead] = []


class AccessibleSite(BaseModel):
    id: int
    name: str
    status: str
    is_system_site: bool = False
    role: Optional[str] = None


class JobSiteContext(BaseModel):
    """What a UI needs to render the site switcher and gate actions for the selected site."""
    base_role: str
    is_admin: bool
    sites: List[AccessibleSite]
    selected_job_site_id: Optional[int] = None
    site_role: Optional[str] = None
    permissions: Dict[str, bool]
    show_job_site_selector: bool


# ---------- workers ----------
class WorkerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    role: str = Field(..., description="operator / laborer / carpenter / mason")
    job_site_id: Optional[int] = None
    user_id: Optional[int] = None
    skills: List[str] = []
    phone: Optional[str] = None
    status: str = Field("active", description="active / inactive")
    notes: Optional[str] = None


class WorkerCreate(WorkerBase):
    pass


class WorkerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[str] = None
    job_site_id: Optional[int] = None
    user_id: Optional[int] = None
    skills: Optional[List[str]] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class WorkerRead(WorkerBase):
    id: int
    organization_id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class WorkerMove(BaseModel):
    from_job_site_id: int
    to_job_site_id: int
    effective_date: Optional[date] = Field(None, description="Defaults to today")


class WorkerMoveResponse(BaseModel):
    worker: WorkerRead
    message: str


# ---------- tasks ----------
class StaffingRead(BaseModel):
    status: str = Field(..., description="full / partial / empty")
    color: str
    required: Dict[str, int]
    assigned: Dict[str, int]
    required_total: int
    assigned_total: int


class TaskBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    location: Optional[str] = None
    job_site_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    required_operators: int = Field(0, ge=0)
    required_laborers: int = Field(0, ge=0)
    required_carpenters: int = Field(0, ge=0)
    required_masons: int = Field(0, ge=0)
    status: str = Field("planned", description="planned / active / completed / draft")
    notes: Optional[str] = None
    include_saturday: bool = False
    include_sunday: bool = False
    include_holidays: bool = False


class TaskCreate(TaskBase):
    @model_validator(mode="after")
    def check_dates(self):
        _check_range(self.start_date, self.end_date)
        return self


class TaskUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    location: Optional[str] = None
    job_site_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    required_operators: Optional[int] = Field(None, ge=0)
    required_laborers: Optional[int] = Field(None, ge=0)
    required_carpenters: Optional[int] = Field(None, ge=0)
    required_masons: Optional[int] = Field(None, ge=0)
    status: Optional[str] = None
    notes: Optional[str] = None
    include_saturday: Optional[bool] = None
    include_sunday: Optional[bool] = None
    include_holidays: Optional[bool] = None


class TaskStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class TaskAttachmentRead(BaseModel):
    name: str
    path: str
    size: int
    uploaded_at: Optional[str] = None
    uploaded_by: Optional[int] = None


class TaskRead(TaskBase):
    id: int
    organization_id: int
    attachments: List[TaskAttachmentRead] = []
    created_by: Optional[int] = None
    created_at: datetime
    modified_by: Optional[int] = None
    modified_at: Optional[datetime] = None
    staffing: Optional[StaffingRead] = None
    model_config = ConfigDict(from_attributes=True)


class TaskHistoryRead(BaseModel):
    id: int
    task_id: int
    job_site_id: Optional[int] = None
    action: str
    performed_by: Optional[int] = None
    performed_at: datetime
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class TaskDraftUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    duration_days: Optional[int] = Field(None, ge=0)
    required_operators: Optional[int] = Field(None, ge=0)
    required_laborers: Optional[int] = Field(None, ge=0)
    required_carpenters: Optional[int] = Field(None, ge=0)
    required_masons: Optional[int] = Field(None, ge=0)
    include_saturday: Optional[bool] = None
    include_sunday: Optional[bool] = None
    include_holidays: Optional[bool] = None
    notes: Optional[str] = None


class TaskDraftRead(BaseModel):
    id: int
    organization_id: int
    job_site_id: Optional[int] = None
    name: str
    activity_id: Optional[str] = None
    activity_name: Optional[str] = None
    duration_days: Optional[int] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    required_operators: int = 0
    required_laborers: int = 0
    required_carpenters: int = 0
    required_masons: int = 0
    include_saturday: bool = False
    include_sunday: bool = False
    include_holidays: bool = False
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TaskImportResponse(BaseModel):
    created: int
    drafts: List[TaskDraftRead]


# ---------- assignments ----------
class AssignWorkersRequest(BaseModel):
    task_id: int
    worker_ids: List[int] = Field(..., min_length=1)


class AssignWorkersResponse(BaseModel):
    task_id: int
    worker_ids: List[int]
    dates: List[date]
    created: int
    skipped: int


class AssignmentRead(BaseModel):
    id: int
    organization_id: int
    job_site_id: Optional[int] = None
    task_id: int
    worker_id: int
    assigned_date: date
    status: str
    acknowledged: bool
    acknowledged_at: Optional[datetime] = None
    assigned_by: Optional[int] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AssignmentRequestCreate(BaseModel):
    worker_id: int
    from_task_id: Optional[int] = None
    to_task_id: int
    reason: Optional[str] = None


class AssignmentRequestReview(BaseModel):
    approve: bool


class AssignmentRequestRead(BaseModel):
    id: int
    organization_id: int
    job_site_id: Optional[int] = None
    worker_id: int
    from_task_id: Optional[int] = None
    to_task_id: int
    requested_by: Optional[int] = None
    reason: Optional[str] = None
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- daily hours ----------
class DailyHoursLog(BaseModel):
    worker_id: int
    log_date: date
    status: str = Field("worked", description="worked / off / transferred")
    hours_worked: Optional[Decimal] = Field(None, ge=0, le=24, description="worked only; defaults to 8")
    task_id: Optional[int] = None
    transferred_to_task_id: Optional[int] = None
    notes: Optional[str] = None


class DailyHoursRead(BaseModel):
    id: int
    organization_id: int
    job_site_id: Optional[int] = None
    worker_id: int
    log_date: date
    status: str
    hours_worked: Decimal
    task_id: Optional[int] = None
    transferred_to_task_id: Optional[int] = None
    notes: Optional[str] = None
    logged_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class WeeklyHoursRow(BaseModel):
    worker_id: int
    name: str
    role: str
    hours: List[float]
    total: float


class WeeklyHoursSummary(BaseModel):
    week_start: date
    week_end: date
    days: List[date]
    rows: List[WeeklyHoursRow]
    day_totals: List[float]
    grand_total: float


# ---------- calendar ----------
class GanttDay(BaseModel):
    date: DateType
    is_weekend: bool
    is_today: bool
    holiday: Optional[str] = None


class GanttBar(BaseModel):
    offset: int
    span: int


class GanttTask(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    job_site_id: Optional[int] = None
    status: str
    start_date: date
    end_date: date
    duration: int
    working_days: List[date]
    staffing_status: str
    color: str
    assigned_count: int
    required_count: int
    bar: Optional[GanttBar] = None


class GanttResponse(BaseModel):
    window_start: date
    window_end: date
    days: List[GanttDay]
    tasks: List[GanttTask]


class TimelineRange(BaseModel):
    start: date
    end: date


class DayViewWorker(BaseModel):
    worker_id: int
    name: str
    role: str
    assignment_id: int
    status: str
    acknowledged: bool


class DayViewTask(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    job_site_id: Optional[int] = None
    status: str
    staffing: StaffingRead
    workers: List[DayViewWorker]


class DayViewResponse(BaseModel):
    date: DateType
    holiday: Optional[str] = None
    tasks: List[DayViewTask]


# ---------- holidays ----------
class HolidayBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date: DateType
    state_county: bool = False
    federal: bool = False
    gcla: bool = False
    four_basic_trades: bool = False
    pay_rates: Dict[str, str] = {}
    notes: Optional[str] = None


class HolidayCreate(HolidayBase):
    pass


class HolidayUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[DateType] = None
    state_county: Optional[bool] = None
    federal: Optional[bool] = None
    gcla: Optional[bool] = None
    four_basic_trades: Optional[bool] = None
    pay_rates: Optional[Dict[str, str]] = None
    notes: Optional[str] = None


class HolidayRead(HolidayBase):
    id: int
    year: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- dashboard ----------
class DashboardSummary(BaseModel):
    as_of: date
    job_site_id: Optional[int] = None
    active_workers: int
    active_tasks: int
    today_assignments: int
    understaffed_tasks_today: int
    pending_requests: int
    hours_this_week: float
