"""Error taxonomy for the detection, gating and remediation pipeline."""


class FinOpsError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(FinOpsError):
    """Resource Store unreachable or credentials missing. Fails the whole tick."""


class PartialFetchError(FinOpsError):
    """One resource category could not be read."""

    def __init__(self, category: str, reason: str):
        self.category = category
        self.reason = reason
        super().__init__(f"Failed to fetch {category}: {reason}")


class PolicyViolation(FinOpsError):
    """Attempt to auto-remediate a policy-locked resource."""

    def __init__(self, resource_id: str, reason: str | None):
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"Resource {resource_id} is policy-locked: {reason or 'locked'}")


class RemediationError(FinOpsError):
    """The Resource Store rejected a mutation."""


class UnknownScenarioError(FinOpsError):
    """Scenario id not present in the catalog."""

    def __init__(self, scenario_id: str):
        self.scenario_id = scenario_id
        super().__init__(f"Unknown scenario: {scenario_id}")


class UnknownActionError(FinOpsError):
    """Remediation action has no registered handler."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Unknown action: {action}")


class CatalogError(FinOpsError):
    """Scenario catalog failed load-time validation."""


class InvalidTransitionError(FinOpsError):
    """Recommendation state change not allowed from its current status."""
