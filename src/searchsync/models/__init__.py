"""Data models shared by providers, adapters, and the sync engine."""

from searchsync.models.field import FieldDescriptor, FieldType, validate_field_set
from searchsync.models.job import JobInfo, JobKind, JobStatus, SyncReport
from searchsync.models.record import Record, from_epoch_millis, to_epoch_millis
from searchsync.models.synonym import OneWaySynonym, Synonym, SynonymRule

__all__ = [
    "FieldDescriptor",
    "FieldType",
    "JobInfo",
    "JobKind",
    "JobStatus",
    "OneWaySynonym",
    "Record",
    "Synonym",
    "SynonymRule",
    "SyncReport",
    "from_epoch_millis",
    "to_epoch_millis",
    "validate_field_set",
]
