from .booking import Interval, find_conflicts, has_conflict, has_time_overlap
from .errors import (
	ConflictError,
	DateRangeError,
	LabBookingError,
	LabBookingStorageError,
	NotFoundError,
	UnknownLabError,
	ValidationError,
)
from .models import (
	BookingFilter,
	BookingRecord,
	ExamPeriodFilter,
	ExamPeriodRecord,
	LabRecord,
	OpeningHours,
)
from .yaml_store import LabBookingYamlRepository, generate_sample_labs
from .admission import BookingAdmissionWorkflow
from .exam_periods import ExamPeriodController

__all__ = [
	"Interval",
	"find_conflicts",
	"has_conflict",
	"has_time_overlap",
	"ConflictError",
	"DateRangeError",
	"LabBookingError",
	"LabBookingStorageError",
	"NotFoundError",
	"UnknownLabError",
	"ValidationError",
	"BookingFilter",
	"BookingRecord",
	"ExamPeriodFilter",
	"ExamPeriodRecord",
	"LabRecord",
	"OpeningHours",
	"LabBookingYamlRepository",
	"generate_sample_labs",
	"BookingAdmissionWorkflow",
	"ExamPeriodController",
]
