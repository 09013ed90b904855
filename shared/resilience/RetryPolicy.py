from typing import Callable

from pydantic import BaseModel, Field

from shared.helper.HelperConfig import HelperConfig
from shared.resilience.errors import RAGError


class RetryPolicy(BaseModel):
    """Retry budget for one outbound operation.

    Attributes:
        max_retries:     Retries after the first attempt. 0 disables retrying.
        base_delay:      Seconds; the wait before retry n is base_delay * n.
        retry_predicate: Optional veto on retrying a retryable error. It can
                         never make a ClientError or ProtocolError retryable.
        attempt_timeout: Seconds one attempt may take, None for no extra bound.
        deadline:        Seconds the whole operation, retries and waits
                         included, may take. None for no overall bound.
    """

    max_retries: int = Field(default=2, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    retry_predicate: Callable[[RAGError], bool] | None = None
    attempt_timeout: float | None = None
    deadline: float | None = None

    @classmethod
    def from_config(cls, helper_config: HelperConfig, prefix: str, min_retries: int = 0) -> "RetryPolicy":
        """Build a policy from "{PREFIX}_MAX_RETRIES", "{PREFIX}_RETRY_BASE_DELAY",
        "{PREFIX}_TIMEOUT" and "{PREFIX}_DEADLINE".

        Args:
            helper_config (HelperConfig): Configuration source.
            prefix (str): Key prefix, e.g. "EMBED".
            min_retries (int): Lower bound applied to the configured retry count.

        Returns:
            RetryPolicy: The resolved policy.
        """
        prefix = prefix.upper()
        max_retries = int(helper_config.get_number_val(f"{prefix}_MAX_RETRIES", default=2))
        return cls(
            max_retries=max(max_retries, min_retries),
            base_delay=float(helper_config.get_number_val(f"{prefix}_RETRY_BASE_DELAY", default=1.0)),
            attempt_timeout=float(helper_config.get_number_val(f"{prefix}_TIMEOUT", default=30.0)),
            deadline=float(helper_config.get_number_val(f"{prefix}_DEADLINE", default=120.0)),
        )
