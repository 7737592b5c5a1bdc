"""Email delivery for confirmation and recovery links.

Handlers never talk to SMTP directly: they submit jobs to a MailQueue, whose
worker thread delivers them through a Mailer with bounded retries.
"""

import logging
import queue
import smtplib
import threading
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

from dreik.config import Settings

logger = logging.getLogger("dreik.mailer")

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

CONFIRMATION_SUBJECT = "dreik: Account confirmation"
RECOVERY_SUBJECT = "dreik: Password reset"


class Mailer(Protocol):
    def send_confirmation_email(self, recipient: str, token: str) -> None: ...

    def send_recovery_email(self, recipient: str, token: str) -> None: ...


class TemplateMailer:
    """Renders link emails from templates and hands them to send()."""

    def __init__(self, base_path: str) -> None:
        self.base_path = base_path
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def render(self, template: str, token: str) -> str:
        return self._env.get_template(template).render(base_path=self.base_path, token=token)

    def send_confirmation_email(self, recipient: str, token: str) -> None:
        self.send(recipient, CONFIRMATION_SUBJECT, self.render("confirmation_email.html", token))

    def send_recovery_email(self, recipient: str, token: str) -> None:
        self.send(recipient, RECOVERY_SUBJECT, self.render("recovery_email.html", token))

    def send(self, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpMailer(TemplateMailer):
    """Sends HTML email through an authenticated SMTP server."""

    def __init__(self, settings: Settings, timeout: float = 10.0) -> None:
        super().__init__(settings.BASE_PATH)
        self.sender = settings.MAIL_ADDRESS
        self.password = settings.MAIL_PASSWORD
        self.host = settings.MAIL_SMTP_ADDRESS
        self.port = settings.MAIL_SMTP_PORT
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            if self.sender and self.password:
                smtp.login(self.sender, self.password)
            smtp.send_message(message)


class LogMailer(TemplateMailer):
    """Writes emails to the log. Used when no SMTP server is configured."""

    def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("EMAIL to %s: %s\n%s", recipient, subject, body)


def build_mailer(settings: Settings) -> Mailer:
    if settings.MAIL_SMTP_ADDRESS:
        return SmtpMailer(settings)
    return LogMailer(settings.BASE_PATH)


@dataclass(frozen=True)
class MailJob:
    """A pending email: which Mailer method to call and with what."""

    method: str
    recipient: str
    token: str


_STOP = object()


class MailQueue:
    """Bounded queue of mail jobs drained by a single background worker."""

    def __init__(self, mailer: Mailer, maxsize: int = 100, retries: int = 3, backoff: float = 1.0) -> None:
        self.mailer = mailer
        self.retries = max(retries, 0)
        self.backoff = backoff
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="mail-queue", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker after the jobs already queued. Pending retries are abandoned."""
        if self._thread is None:
            return
        self._stopping.set()
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

    def join(self) -> None:
        """Block until every submitted job has been processed."""
        self._queue.join()

    def send_confirmation(self, recipient: str, token: str) -> bool:
        return self.submit(MailJob("send_confirmation_email", recipient, token))

    def send_recovery(self, recipient: str, token: str) -> bool:
        return self.submit(MailJob("send_recovery_email", recipient, token))

    def submit(self, job: MailJob) -> bool:
        """Enqueue without blocking. Returns False when the queue is full and the job is dropped."""
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            logger.warning("mail queue is full, dropping %s to %s", job.method, job.recipient)
            return False
        return True

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._deliver(job)
            finally:
                self._queue.task_done()

    def _deliver(self, job: MailJob) -> None:
        send = getattr(self.mailer, job.method)
        for attempt in range(self.retries + 1):
            try:
                send(job.recipient, job.token)
                logger.debug("sent %s to %s", job.method, job.recipient)
                return
            except Exception:
                if attempt >= self.retries:
                    logger.exception("can't send %s to %s after %d attempts", job.method, job.recipient, attempt + 1)
                    return
                delay = self.backoff * (2**attempt)
                logger.warning("can't send %s to %s, retrying in %.1fs", job.method, job.recipient, delay)
                if self._stopping.wait(delay):
                    return
