"""
Typed exception hierarchy for the portfolio engine.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
carrying the context of the failure.

    PortfolioEngineError (base)
    |
    +-- EntityError
    |   +-- EntityNotFoundError
    |
    +-- PropagationError
    |   +-- PropagationNotConfirmedError
    |   +-- StalePreviewError
    |
    +-- RiskError
    |   +-- InvalidRiskRatingError
    |
    +-- ConfigurationError
    |   +-- InvalidThresholdError
    |
    +-- AuditError
        +-- AuditChainBrokenError

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Entity          | ENTITY_NOT_FOUND            | Referenced record doesn't exist
----------------|-----------------------------|-----------------------------------------
Propagation     | PROPAGATION_NOT_CONFIRMED   | apply requested without confirmation
                | STALE_PREVIEW               | Source delay changed since preview
----------------|-----------------------------|-----------------------------------------
Risk            | INVALID_RISK_RATING         | probability/impact outside 1..5
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_THRESHOLD           | Bands out of order / negative values
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

Handling pattern:

    try:
        result = propagation.apply_delay(preview, actor_id=actor, confirmed=True)
    except EntityNotFoundError as e:
        notify_user(f"{e.entity_type} {e.entity_id} was deleted")
"""


class PortfolioEngineError(Exception):
    """
    Base exception for all portfolio engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "PORTFOLIO_ENGINE_ERROR"


# Entity-related exceptions


class EntityError(PortfolioEngineError):
    """Base exception for entity lookup errors."""

    code: str = "ENTITY_ERROR"


class EntityNotFoundError(EntityError):
    """Entity with given type and ID was not found in the store."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# Propagation exceptions


class PropagationError(PortfolioEngineError):
    """Base exception for delay propagation errors."""

    code: str = "PROPAGATION_ERROR"


class PropagationNotConfirmedError(PropagationError):
    """
    apply_delay was called without explicit confirmation.

    Applying a propagation rewrites planned dates of other actions and
    cannot be undone by the engine.
    """

    code: str = "PROPAGATION_NOT_CONFIRMED"

    def __init__(self, source_id: str):
        self.source_id = str(source_id)
        super().__init__(
            f"Delay propagation from action {source_id} requires confirmation"
        )


class StalePreviewError(PropagationError):
    """The source action's delay no longer matches the preview being applied."""

    code: str = "STALE_PREVIEW"

    def __init__(self, source_id: str, preview_days: int, current_days: int):
        self.source_id = str(source_id)
        self.preview_days = preview_days
        self.current_days = current_days
        super().__init__(
            f"Preview for action {source_id} is stale: previewed "
            f"{preview_days} day(s), source is now {current_days} day(s) late"
        )


# Risk exceptions


class RiskError(PortfolioEngineError):
    """Base exception for risk register errors."""

    code: str = "RISK_ERROR"


class InvalidRiskRatingError(RiskError):
    """Probability or impact rating is outside the 1..5 scale."""

    code: str = "INVALID_RISK_RATING"

    def __init__(self, field: str, value: int):
        self.field = field
        self.value = value
        super().__init__(f"Risk {field} must be between 1 and 5, got {value}")


# Configuration exceptions


class ConfigurationError(PortfolioEngineError):
    """Base exception for engine configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidThresholdError(ConfigurationError):
    """A configured threshold or band is invalid."""

    code: str = "INVALID_THRESHOLD"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid threshold '{name}': {reason}")


# Audit exceptions


class AuditError(PortfolioEngineError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """
    Audit hash chain validation failed.

    Indicates that an audit row was modified or removed after the fact.
    """

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = str(audit_event_id)
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
