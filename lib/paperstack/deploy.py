from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from . import paperless
from .cleanup import RunState
from .compose import ComposeProject, container_health, container_running
from .credentials import render_credentials, write_credentials
from .manifest import GPT, PAPERLESS, POSTGRES, REDIS, Manifest, build_manifest, write_manifest
from .plan import InstallationPlan, ProvisioningCredentials
from .polling import PollPolicy, poll_until
from .report import LogReporter, Reporter
from .targets import ExecutionTarget

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeployTimings:
    db_interval: float = 2.0
    db_ceiling: int = 30
    web_interval: float = 3.0
    web_ceiling: int = 60
    token_settle: float = 5.0
    token_attempts: int = 3
    token_backoff: float = 5.0
    final_settle: float = 10.0


@dataclass(frozen=True)
class ServiceStatus:
    container: str
    running: bool


@dataclass(frozen=True)
class DeployOutcome:
    api_token: str | None
    statuses: tuple[ServiceStatus, ...]
    credentials_path: str
    database_verified: bool

    @property
    def degraded(self) -> list[str]:
        return [s.container for s in self.statuses if not s.running]

    @property
    def all_running(self) -> bool:
        return not self.degraded


class DeploymentSequencer:
    """Brings the stack up in dependency order on one target.

    ``state.failed`` is armed before the first mutating step and only cleared
    once the credentials file is written.
    """

    def __init__(
            self,
            target: ExecutionTarget,
            plan: InstallationPlan,
            compose: ComposeProject,
            state: RunState,
            *,
            reporter: Reporter | None = None,
            timings: DeployTimings = DeployTimings(),
            sleep: Callable[[float], None] = time.sleep,
            show: Callable[[str], None] | None = None,
    ):
        self.target = target
        self.plan = plan
        self.compose = compose
        self.state = state
        self.reporter = reporter or LogReporter()
        self.timings = timings
        self.sleep = sleep
        self.show = show or (lambda text: log.info("%s", text))
        self.manifest: Manifest = build_manifest(plan)

    def run(self) -> DeployOutcome:
        self.prepare()
        self.validate()
        self.pull()
        database_verified = self.start_core()
        self.start_paperless()
        token = self.extract_token()
        if token:
            self.inject_token(token)
        self.start_all()
        statuses = self.final_check()
        path = self.save_credentials(token)
        self.state.clear()
        return DeployOutcome(
            api_token=token,
            statuses=statuses,
            credentials_path=path,
            database_verified=database_verified,
        )

    def prepare(self) -> None:
        self.state.compose_command = self.compose.command_str
        self.state.install_dir = self.plan.install_dir
        self.state.arm()
        self.reporter.info("Creating directory structure...")
        self.target.make_dirs([self.plan.install_dir, *self.plan.data_paths])
        self.reporter.ok(f"Created {self.plan.install_dir}")
        write_manifest(self.target, self.plan, self.manifest)
        self.reporter.ok(f"Generated {self.plan.manifest_path}")

    def validate(self) -> None:
        self.reporter.info("Validating docker-compose.yaml...")
        self.compose.validate()
        self.reporter.ok("Docker Compose file is valid")

    def pull(self) -> None:
        self.reporter.info("Pulling images. This may take a few minutes on first run...")
        self.compose.pull()
        self.reporter.ok("All images pulled")

    def start_core(self) -> bool:
        self.reporter.info("Starting database and broker...")
        self.compose.up(POSTGRES, REDIS)
        container = self.manifest.service(POSTGRES).container_name
        self.reporter.info("Waiting for PostgreSQL to be ready...")
        result = poll_until(
            lambda: container_health(self.target, container) == "healthy",
            label="PostgreSQL",
            interval=self.timings.db_interval,
            ceiling=self.timings.db_ceiling,
            policy=PollPolicy.SOFT,
            sleep=self.sleep,
        )
        # Soft on purpose: the Paperless-ngx liveness poll below is the real gate.
        if result.ok:
            self.reporter.ok("PostgreSQL is ready")
        else:
            self.reporter.ok("PostgreSQL is ready (health not confirmed, continuing)")
        return result.ok

    def start_paperless(self) -> None:
        self.reporter.info("Starting Paperless-ngx...")
        self.compose.up(PAPERLESS)
        self.reporter.info("Waiting for Paperless-ngx to initialize (about 30-60s on first run)...")

        def _progress(attempt: int, ceiling: int) -> None:
            if attempt > 1 and attempt % 10 == 0:
                self.reporter.info(f"Still waiting... ({attempt}/{ceiling})")

        poll_until(
            lambda: paperless.is_live(self.target),
            label="Paperless-ngx",
            interval=self.timings.web_interval,
            ceiling=self.timings.web_ceiling,
            policy=PollPolicy.FATAL,
            hint=f"Check logs: {self.compose.logs_command(PAPERLESS)}",
            sleep=self.sleep,
            on_attempt=_progress,
        )
        self.reporter.ok("Paperless-ngx is running")

    def extract_token(self) -> str | None:
        self.reporter.info("Generating Paperless-ngx API token...")
        self.sleep(self.timings.token_settle)
        attempts = self.timings.token_attempts
        for attempt in range(1, attempts + 1):
            token = paperless.fetch_api_token(self.target, self.plan.admin_username)
            if token:
                self.reporter.ok("API token generated")
                return token
            if attempt < attempts:
                self.reporter.info(f"Retrying token generation (attempt {attempt}/{attempts})...")
                self.sleep(self.timings.token_backoff)
        self.reporter.err("Failed to generate API token")
        self.reporter.warn("Paperless-GPT keeps a placeholder token until you set it manually:")
        for step in paperless.manual_token_steps(self.plan.admin_username):
            self.reporter.warn(step)
        return None

    def inject_token(self, token: str) -> None:
        self.manifest = build_manifest(self.plan, api_token=token)
        write_manifest(self.target, self.plan, self.manifest)
        self.reporter.ok("Updated docker-compose.yaml with API token")

    def start_all(self) -> None:
        self.reporter.info(f"Starting {GPT} and the remaining services...")
        self.compose.up()
        self.reporter.ok("All services started")

    def final_check(self) -> tuple[ServiceStatus, ...]:
        self.reporter.info("Waiting for all services to stabilize...")
        self.sleep(self.timings.final_settle)
        table = self.compose.ps_table()
        if table:
            self.show(table)
        statuses = []
        for name in self.manifest.container_names:
            running = container_running(self.target, name)
            statuses.append(ServiceStatus(container=name, running=running))
            if running:
                self.reporter.ok(f"{name} is running")
            else:
                self.reporter.err(f"{name} is NOT running. Check: docker logs {name}")
        return tuple(statuses)

    def save_credentials(self, token: str | None) -> str:
        creds = ProvisioningCredentials(
            admin_username=self.plan.admin_username,
            admin_password=self.plan.admin_password,
            secret_key=self.plan.secret_key,
            api_token=token,
        )
        path = write_credentials(self.target, self.plan.credentials_path, render_credentials(self.plan, creds))
        self.reporter.ok(f"Credentials saved to {path}")
        return path
