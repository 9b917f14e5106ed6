"""Image-hardening jobs — start now, poll later."""

from .tracker import RemediationTask, RemediationTracker
