"""Domain enumerations and state-transition rules."""

import enum


class JobStatus(str, enum.Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    ENROUTE_PICKUP = "enroute_pickup"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


# State machine: maps current status -> set of valid next statuses
JOB_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.NEW: {JobStatus.ASSIGNED, JobStatus.CANCELED},
    JobStatus.ASSIGNED: {
        JobStatus.ENROUTE_PICKUP,
        JobStatus.IN_PROGRESS,
        JobStatus.CANCELED,
    },
    JobStatus.ENROUTE_PICKUP: {JobStatus.IN_PROGRESS, JobStatus.CANCELED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELED: set(),
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELED})


class UserRole(str, enum.Enum):
    DISPATCHER = "dispatcher"
    DRIVER = "driver"


class ChangeEvent(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
