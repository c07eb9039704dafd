"""
Actuator client for the Gate Access service.

Commands are fire-and-forget: callers schedule them and never wait for the
device. Dispatch failures are logged and counted as operational faults.
"""

import asyncio
from typing import Dict, Any, Optional, Set

import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from shared.circuit_breaker import CircuitBreakerOpenException, get_circuit_breaker
from shared.observability import ObservabilityManager, get_observability_manager
from ..models import Gate


class ActuatorClient:
    """Sends open and pulse commands to the actuator network."""

    def __init__(self, actuator_url: str, timeout: float = 5.0,
                 observability: Optional[ObservabilityManager] = None):
        self.actuator_url = actuator_url.rstrip("/")
        self.timeout = timeout
        self.observability = observability or get_observability_manager("gate_access")
        self.logger = get_logger("gate_access.actuator_client")
        self.circuit_breaker = get_circuit_breaker(
            "actuator",
            failure_threshold=5,
            recovery_timeout=30.0
        )
        self._pending: Set[asyncio.Task] = set()

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.actuator_url}{endpoint}", json=payload)

        if response.status_code >= 400:
            raise ExternalServiceError(
                "actuator",
                f"status {response.status_code}",
                details={"endpoint": endpoint, "status_code": response.status_code}
            )

    async def open_gate(self, gate: Gate) -> None:
        """Send the open command for a gate's credential."""
        await self.circuit_breaker.call(self._post, "/open", {"key": gate.key})

    async def pulse(self, label: str, color: str) -> None:
        """Diagnostic indicator pulse."""
        await self.circuit_breaker.call(self._post, "/pulse", {"label": label, "color": color})

    def dispatch_open(self, gate: Gate) -> asyncio.Task:
        return self._dispatch("open", self.open_gate(gate), gate_id=gate.gate_id)

    def dispatch_pulse(self, label: str, color: str) -> asyncio.Task:
        return self._dispatch("pulse", self.pulse(label, color), label=label)

    def _dispatch(self, command: str, coro, **context) -> asyncio.Task:
        task = asyncio.create_task(self._run(command, coro, **context))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, command: str, coro, **context) -> bool:
        try:
            await coro
        except (httpx.HTTPError, ExternalServiceError, CircuitBreakerOpenException) as e:
            self.observability.metrics.increment_counter("actuator_dispatch_total", command=command, status="failed")
            self.observability.log_error(
                "actuator_dispatch_failed",
                str(e),
                command=command,
                **context
            )
            return False

        self.observability.metrics.increment_counter("actuator_dispatch_total", command=command, status="sent")
        self.logger.info("Actuator command sent", command=command, **context)
        return True

    async def drain(self) -> None:
        """Wait for in-flight commands, e.g. on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def health_check(self) -> bool:
        return not self.circuit_breaker.is_open()
