"""Attendance module — daily punch records, shifts and shift assignments."""
