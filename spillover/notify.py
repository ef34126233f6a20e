import logging
import os
import shutil
import socket
import subprocess
from datetime import datetime
from typing import Tuple

from .models import ErrorReport, RunSummary

log = logging.getLogger(__name__)


def format_summary(summary: RunSummary) -> Tuple[str, str]:
    """Return (subject, body) for a finished run."""
    prefix = "DRY RUN - " if summary.dry_run else ""
    if summary.moved_count == 0:
        return (
            f"{prefix}No Action Required",
            "spillover ran but no directories were moved "
            f"({summary.stop_reason}). Current free space: {summary.final_free_pct}%",
        )
    verb = "Would move" if summary.dry_run else "Moved"
    lines = [
        "Cleanup completed successfully:",
        f"- {verb} {summary.moved_count} directories",
        f"- Freed approximately {summary.total_freed_kb // 1024}MB ({summary.total_freed_kb}KB)",
        f"- Free space: {summary.final_free_pct}%",
        f"- Stopped because: {summary.stop_reason}",
        "- Moved directories:",
    ]
    lines += [f"  {p}" for p in summary.moved_paths]
    return f"{prefix}Cleanup Completed Successfully", "\n".join(lines)


def format_error(report: ErrorReport) -> Tuple[str, str]:
    body = [
        "spillover encountered an error and had to exit:",
        "",
        f"ERROR: {report.message}",
        "",
        "System Information:",
        f"- Hostname: {socket.gethostname()}",
        f"- Time: {datetime.now().isoformat(timespec='seconds')}",
        f"- PID: {os.getpid()}",
        f"- Working Directory: {os.getcwd()}",
        "",
        "Recent Log Entries:",
    ]
    body += report.recent_log_lines or ["Log file not available"]
    return "ERROR - Run Failed", "\n".join(body)


class Notifier:
    """Mails run reports through msmtp or mailx. Never raises."""

    def __init__(self, enabled: bool, recipient: str, runner=subprocess.run, which=shutil.which):
        self.enabled = enabled
        self.recipient = recipient
        self.runner = runner
        self.which = which

    def notify_summary(self, summary: RunSummary) -> bool:
        return self.send(*format_summary(summary))

    def notify_error(self, report: ErrorReport) -> bool:
        return self.send(*format_error(report))

    def send(self, subject: str, body: str) -> bool:
        if not self.enabled or not self.recipient:
            log.debug("Email notifications disabled or no recipient configured")
            return False

        host = socket.gethostname()
        full_subject = f"[{host}] spillover: {subject}"
        full_body = (
            "spillover report\n"
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"Host: {host}\n\n{body}\n"
        )

        if self.which("msmtp"):
            cmd = ["msmtp", self.recipient]
            payload = f"Subject: {full_subject}\n\n{full_body}"
        elif self.which("mailx"):
            cmd = ["mailx", "-s", full_subject, self.recipient]
            payload = full_body
        else:
            log.warning("No email command available (msmtp, mailx)")
            return False

        try:
            proc = self.runner(
                cmd, input=payload, text=True, errors="replace", capture_output=True, check=False,
            )
        except (OSError, ValueError) as e:
            log.warning("Sending email failed: %s", e)
            return False
        if proc.returncode != 0:
            log.warning("%s exited with status %d: %s", cmd[0], proc.returncode, (proc.stderr or "").strip())
            return False
        log.info("Email sent to: %s", self.recipient)
        return True
