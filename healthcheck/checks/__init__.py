"""Probes, retry policy and IP validation middleware."""

from .models import CheckContext, Entry, Outcome, Probe, Ran, Result, Skipped
