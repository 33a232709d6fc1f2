"""
Reconcile errors and the collector that aggregates them.

Every error raised out of a reconcile pass is retryable: the host decides
when to try again. A pass that touches many children (conditions, channel
links) keeps going after a single failure and reports all of them at the end
through an ErrorCollector.
"""

from typing import Iterator, List, Optional


class ReconcileError(Exception):
    """Base class for every error a reconcile pass can raise."""
    pass


class ConfigurationError(ReconcileError):
    """The declared object cannot be acted on as written."""
    pass


class CredentialError(ConfigurationError):
    """No usable API key could be resolved."""
    pass


class ErrorCollector:
    """Accumulates independent failures within one pass."""

    def __init__(self):
        self._errors: List[BaseException] = []

    def collect(self, error: Optional[BaseException]) -> None:
        if error is not None:
            self._errors.append(error)

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self._errors)

    @property
    def errors(self) -> List[BaseException]:
        return list(self._errors)

    def message(self) -> str:
        return "\n".join(str(e) for e in self._errors)


class CollectedErrors(ReconcileError):
    """Several failures from one pass, reported as a single error."""

    def __init__(self, errors: ErrorCollector):
        self.errors = errors.errors
        super().__init__(errors.message())


class ConditionSyncError(CollectedErrors):
    """
    One or more child conditions failed to converge.

    `conditions` holds the desired list with every identity that was
    resolved or created during the pass, so the caller can keep them.
    """

    def __init__(self, errors: ErrorCollector, conditions: list):
        super().__init__(errors)
        self.conditions = conditions


class ChannelSyncError(CollectedErrors):
    """One or more channel attach/detach calls failed."""
    pass


class TeardownError(CollectedErrors):
    """Child conditions could not be removed while deleting a policy."""
    pass
