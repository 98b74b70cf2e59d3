"""Exception types raised by the reconciliation core.

Only backend failures abort a reconciliation. Missing ConfigId mappings and
zero-valued observations are absorbed into the report as pending entries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .utils.page_results import FailureInfo


class ReconcileError(RuntimeError):
    """Base class for reconciliation failures."""


class BackendError(ReconcileError):
    """A page query failed or timed out.

    Attributes
    ----------
    page: Optional[str]
        Identifier of the failed page (e.g., "page-3"), if known.
    failure: Optional[FailureInfo]
        Classified failure details for the page.
    """

    def __init__(
        self,
        message: str,
        *,
        page: Optional[str] = None,
        failure: Optional["FailureInfo"] = None,
    ) -> None:
        super().__init__(message)
        self.page = page
        self.failure = failure

    @property
    def retryable(self) -> bool:
        """Whether re-running the reconciliation might succeed."""
        return bool(self.failure and self.failure.retryable)
