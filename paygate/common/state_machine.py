"""Payment status machine enforced by the orchestrator."""

PENDING = "pending"
INITIALIZED = "initialized"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, INITIALIZED, COMPLETED, FAILED)

# `failed -> completed` is allowed: a completion report dominates a failure
# report whatever order the verify and webhook channels deliver them in.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {INITIALIZED, FAILED, COMPLETED},
    INITIALIZED: {COMPLETED, FAILED},
    FAILED: {COMPLETED},
    COMPLETED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())
