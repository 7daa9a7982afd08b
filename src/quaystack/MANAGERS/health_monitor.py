# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Readiness probing for services: runs a service's readiness check inside its
container until it passes or the attempt budget runs out.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from ..MODELS.errors import ReadinessTimeout
from ..MODELS.results import ProbeResult
from ..MODELS.service_definition import ReadinessCheck, ServiceDescriptor
from ..RUNNERS.container_runtime import PodmanRuntime

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Readiness of a service."""

    STARTING = "starting"
    HEALTHY = "healthy"


@dataclass
class ProbeAttempt:
    """One evaluation of a readiness check."""

    status: HealthStatus
    output: str = ""

    @property
    def ready(self) -> bool:
        return self.status == HealthStatus.HEALTHY


class ReadinessProber:
    """
    Blocks until a service passes its readiness check.

    Attempts are spaced by a fixed interval and bounded by ``max_attempts``,
    so a dead dependency can never stall the workflow indefinitely.
    """

    def __init__(
        self,
        runtime: PodmanRuntime,
        max_attempts: int = 30,
        interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the prober.

        :param runtime: Runtime used to exec the probe inside the container.
        :param max_attempts: Default number of probe evaluations.
        :param interval: Default seconds between evaluations.
        :param sleep: Blocking sleep function.
        """
        self.runtime = runtime
        self.max_attempts = max_attempts
        self.interval = interval
        self.sleep = sleep

    def check_once(self, svc: ServiceDescriptor, check: ReadinessCheck) -> ProbeAttempt:
        """
        Evaluates the check a single time. Never changes the service's state.
        """
        result = self.runtime.exec(svc.container_name, check.command)
        output = result.output.strip()
        if check.is_satisfied(result.returncode, output):
            return ProbeAttempt(HealthStatus.HEALTHY, output)
        return ProbeAttempt(HealthStatus.STARTING, output[:500])

    def wait_ready(
        self,
        svc: ServiceDescriptor,
        check: Optional[ReadinessCheck] = None,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> ProbeResult:
        """
        Evaluates the check until it passes.

        Args:
            svc: Service to probe.
            check: Readiness check; defaults to the descriptor's own.
            max_attempts: Evaluations before giving up.
            interval: Seconds slept between evaluations.

        Returns:
            ProbeResult with the number of attempts it took.

        Raises:
            ReadinessTimeout: After ``max_attempts`` failed evaluations.
        """
        check = check or svc.readiness
        if check is None:
            raise ValueError(f"Service {svc.name} has no readiness check")
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        delay = interval if interval is not None else self.interval

        logger.info("[readiness] Waiting for %s to be ready...", svc.name)

        def before_sleep(state: RetryCallState) -> None:
            logger.info("[readiness]   ...waiting for %s (attempt %d/%d)", svc.name, state.attempt_number, attempts)

        calls = []

        def probe() -> ProbeAttempt:
            calls.append(1)
            return self.check_once(svc, check)

        retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(delay),
            retry=retry_if_result(lambda attempt: not attempt.ready),
            before_sleep=before_sleep,
            sleep=self.sleep,
        )
        try:
            attempt = retryer(probe)
        except RetryError as e:
            last = e.last_attempt.result()
            raise ReadinessTimeout(svc.name, attempts, last.output) from None

        logger.info("[readiness] %s is ready.", svc.name)
        return ProbeResult(service=svc.name, attempts=len(calls), output=attempt.output)
