"""OS scheduler integration (macOS launchd)."""

from .launchd import LaunchdJob, build_launchd_job, install_launchd_job, write_launchd_job

__all__ = ["LaunchdJob", "build_launchd_job", "install_launchd_job", "write_launchd_job"]
