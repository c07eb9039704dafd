"""
Gate Access service.
"""

from typing import Awaitable, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import (
    AuthenticationError, AuthorizationError, CommitFailureError,
    NoServiceAreaError, RateLimitError, RecordNotFoundError, ServiceError
)
from shared.observability import get_observability_manager

from .adapters import ActuatorClient, IdentityProviderClient
from .auth import IdentityResolver
from .authorization import GateAuthorizer
from .models import (
    AccessResponse, Address, AddressRequest, AuthorizationDecision, CallerIdentity,
    PermissionListResponse, PulseRequest, ResultStatus, VerifyAddressRequest
)
from .store import TransactionalStore, create_store
from .store.paths import user_path
from .submission import AddressSubmissionWorkflow
from .verification import (
    RedisAttemptLimiter, VerificationCodeGenerator, VerificationOutcome, VerificationWorkflow
)

SERVICE_NAME = "gate_access"
SERVICE_PORT = 8020

INTERNAL_ERROR_MESSAGE = "Internal error"


def _respond(result: AccessResponse) -> JSONResponse:
    return JSONResponse(status_code=result.code, content=result.model_dump(mode="json", exclude_none=True))


def _error(code: int, message: str) -> AccessResponse:
    return AccessResponse(status=ResultStatus.ERROR, code=code, message=message)


class GateAccessService(BaseService):
    """Address submission, verification and gate opening."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[TransactionalStore] = None,
        identity_client: Optional[IdentityProviderClient] = None,
        actuator: Optional[ActuatorClient] = None,
        limiter: Optional[RedisAttemptLimiter] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)

        self.observability = get_observability_manager(SERVICE_NAME, metrics=self.metrics)

        self.store = store or create_store(self.config.store_backend, self.config.postgres_dsn)
        self.limiter = limiter or RedisAttemptLimiter(
            self.config.redis_url,
            max_attempts=self.config.verification_max_attempts,
            window_seconds=self.config.verification_attempt_window_seconds
        )
        self.actuator = actuator or ActuatorClient(
            self.config.actuator_url,
            timeout=self.config.actuator_timeout_seconds,
            observability=self.observability
        )
        self.identity = IdentityResolver(
            identity_client or IdentityProviderClient(self.config.auth_service_url),
            operator_api_key=self.config.operator_api_key
        )

        self.verification = VerificationWorkflow(
            self.store,
            code_generator=VerificationCodeGenerator(self.config.verification_code_length),
            limiter=self.limiter,
            observability=self.observability
        )
        self.submission = AddressSubmissionWorkflow(
            self.store,
            self.verification,
            observability=self.observability
        )
        self.authorizer = GateAuthorizer(self.store, observability=self.observability)

        self._setup_gate_access_routes()

    # Entry points

    async def add_address(self, caller: Optional[CallerIdentity], address: Address) -> AccessResponse:
        """AddAddress: 200, 401, 406 or 500."""
        try:
            result = await self.submission.submit(caller, address)
        except AuthenticationError as e:
            return _error(401, e.message)
        except NoServiceAreaError as e:
            return _error(406, e.message)
        except (CommitFailureError, ServiceError):
            return _error(500, INTERNAL_ERROR_MESSAGE)

        return AccessResponse(
            status=ResultStatus.SUCCESS,
            code=200,
            message="Address added; a verification code will be mailed",
            address_ref=result.address_ref,
            address_id=result.address_id
        )

    async def verify_address(self, caller: Optional[CallerIdentity], address_id: str,
                             verification_code: str) -> AccessResponse:
        """VerifyAddress: 200, 401, 406, 429 or 500."""
        try:
            outcome = await self.verification.verify(caller, address_id, verification_code)
        except AuthenticationError as e:
            return _error(401, e.message)
        except RateLimitError as e:
            return _error(429, e.message)
        except RecordNotFoundError as e:
            self.observability.log_error(
                "record_not_found",
                e.message,
                user_id=caller.user_id if caller else None,
                path=e.path,
                operation="verify_address"
            )
            return _error(500, INTERNAL_ERROR_MESSAGE)
        except CommitFailureError:
            return _error(500, INTERNAL_ERROR_MESSAGE)

        if outcome == VerificationOutcome.INVALID_CODE:
            return AccessResponse(status=ResultStatus.INVALID, code=406, message="Invalid verification code")

        return AccessResponse(status=ResultStatus.SUCCESS, code=200, message="Address verified")

    async def open_gate(self, caller: Optional[CallerIdentity], gate_id: str) -> AccessResponse:
        """OpenGate: 200, 401 or 500. Dispatches the actuator on success."""
        try:
            result = await self.authorizer.authorize(caller, gate_id)
        except AuthenticationError as e:
            return _error(401, e.message)
        except ServiceError:
            return _error(500, INTERNAL_ERROR_MESSAGE)

        if result.decision == AuthorizationDecision.UNAUTHORIZED:
            self.observability.log_business_event(
                "gate_open_denied",
                user_id=caller.user_id,
                gate_id=gate_id,
                reason=result.reason
            )
            return _error(401, "Not authorized to open this gate")

        if result.decision == AuthorizationDecision.NOT_FOUND:
            return _error(500, INTERNAL_ERROR_MESSAGE)

        self.actuator.dispatch_open(result.gate)
        self.observability.log_business_event(
            "gate_opened",
            user_id=caller.user_id,
            gate_id=gate_id
        )
        return AccessResponse(status=ResultStatus.SUCCESS, code=200, message="Gate opening")

    async def pulse_actuator(self, label: str, color: str) -> AccessResponse:
        """PulseActuator: operator diagnostic, bypasses authorization."""
        self.actuator.dispatch_pulse(label, color)
        self.observability.log_business_event("actuator_pulsed", label=label, color=color)
        return AccessResponse(status=ResultStatus.SUCCESS, code=200, message="Pulse dispatched")

    async def list_permissions(self, caller: Optional[CallerIdentity]) -> PermissionListResponse:
        if caller is None:
            raise AuthenticationError("User must be authenticated to list permissions")
        user_doc = await self.store.get(user_path(caller.user_id))
        return PermissionListResponse(
            user_id=caller.user_id,
            permissible_gates=user_doc.data.get("permissible_gates", {}) if user_doc else {}
        )

    # HTTP wiring

    async def _caller(self, request: Request) -> Optional[CallerIdentity]:
        caller = await self.identity.resolve(request)
        if caller:
            self.observability.trace_request(user_id=caller.user_id)
        return caller

    async def _as_caller(self, request: Request,
                         entry_point: Callable[..., Awaitable[AccessResponse]], *args) -> JSONResponse:
        """Resolve the caller and run an entry point; identity failures become a 401 envelope."""
        try:
            caller = await self._caller(request)
        except AuthenticationError as e:
            return _respond(_error(401, e.message))
        return _respond(await entry_point(caller, *args))

    def _operator_denied(self, request: Request) -> Optional[JSONResponse]:
        try:
            self.identity.require_operator(request)
        except AuthorizationError as e:
            return _respond(_error(401, e.message))
        return None

    def _setup_gate_access_routes(self):
        """Set up gate access routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Gate Access - address verification and gate control",
                "version": "1.0.0",
                "capabilities": ["address_matching", "verification", "gate_authorization"]
            }

        @self.app.post("/addresses")
        async def add_address(request: Request, body: AddressRequest):
            """Submit a mailing address for provisional gate access."""
            return await self._as_caller(request, self.add_address, body.to_address())

        @self.app.post("/addresses/{address_id}/verify")
        async def verify_address(request: Request, address_id: str, body: VerifyAddressRequest):
            """Submit the mailed verification code for an address."""
            return await self._as_caller(request, self.verify_address, address_id, body.verification_code)

        @self.app.post("/gates/{gate_id}/open")
        async def open_gate(request: Request, gate_id: str):
            """Open a gate the caller holds a verified permission for."""
            return await self._as_caller(request, self.open_gate, gate_id)

        @self.app.get("/permissions", response_model=PermissionListResponse)
        async def list_permissions(request: Request):
            """The caller's permission map."""
            try:
                caller = await self._caller(request)
                return await self.list_permissions(caller)
            except AuthenticationError as e:
                return _respond(_error(401, e.message))

        @self.app.post("/operator/actuator/pulse")
        async def pulse_actuator(request: Request, body: PulseRequest):
            """Operator-only actuator diagnostic."""
            denied = self._operator_denied(request)
            if denied:
                return denied
            return _respond(await self.pulse_actuator(body.label, body.color))

        @self.app.post("/operator/users/{user_id}/addresses/{address_id}/mailed")
        async def mark_mailed(request: Request, user_id: str, address_id: str):
            """Record that an address's verification code was mailed."""
            denied = self._operator_denied(request)
            if denied:
                return denied
            try:
                stamped = await self.verification.mark_mailed(user_id, address_id)
            except RecordNotFoundError as e:
                self.observability.log_error(
                    "record_not_found",
                    e.message,
                    user_id=user_id,
                    path=e.path,
                    operation="mark_mailed"
                )
                return _respond(_error(404, "Verification record not found"))
            except CommitFailureError:
                return _respond(_error(500, INTERNAL_ERROR_MESSAGE))

            message = "Mailing recorded" if stamped else "Mailing already recorded"
            return _respond(AccessResponse(status=ResultStatus.SUCCESS, code=200, message=message))

    async def _check_dependencies(self):
        """Check gate access service dependencies."""
        dependencies = {}

        dependencies["store"] = "ok" if await self.store.health_check() else "error"
        dependencies["redis"] = "ok" if await self.limiter.health_check() else "error"
        dependencies["auth_service"] = "ok" if await self.identity.client.health_check() else "error"
        dependencies["actuator"] = "ok" if await self.actuator.health_check() else "error"

        return dependencies

    async def start(self):
        """Start gate access service components."""
        await self.store.start()
        await self.limiter.start()
        self.logger.info("Gate access service started", store_backend=self.config.store_backend)

    async def stop(self):
        """Stop gate access service components."""
        await self.actuator.drain()
        await self.limiter.stop()
        await self.store.stop()
        self.logger.info("Gate access service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create gate access service application."""
    service = GateAccessService(config=config)
    return service.app


if __name__ == "__main__":
    service = GateAccessService(config=get_config(SERVICE_NAME, SERVICE_PORT))
    service.run()
