"""
Gate Access Service package.

This package grants and verifies physical gate access for residents of
gated properties. It provides:

- app.main: API surface for address submission, verification and gate opening.
- app.matching: Address-to-gate-group matching over service-area rules.
- app.permissions: Per-gate permission fan-out and merge.
- app.submission: The atomic address submission commit.
- app.verification: Verification codes, attempt limiting and the verify commit.
- app.authorization: The verified-permission check gating actuation.
- app.store: Transactional document store (PostgreSQL or in-memory).
- app.adapters: Identity provider and actuator clients.

Guidelines:
- The service is stateless; all shared state lives in the document store.
- Every workflow ends in exactly one atomic store transaction.
- Lifecycle points emit business events (logs + metrics + span events).
"""
