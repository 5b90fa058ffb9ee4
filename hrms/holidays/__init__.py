"""Holidays module — company-wide holiday calendar."""
