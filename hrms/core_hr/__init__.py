"""Core HR module — Employee and Department models, schemas, services and the org hierarchy."""

from hrms.core_hr.models import Department, Employee

__all__ = ["Employee", "Department"]
