"""Batch dispatcher: fans a message out to many endpoints within provider limits."""

import json
import logging
import time
from collections.abc import Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, NamedTuple, TypeVar

from pushengine.models.endpoint import DeviceEndpoint
from pushengine.services.push_provider import ProviderResult, PushProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

VALIDATION_BATCH_SIZE = 100


class EndpointRef(NamedTuple):
    """Detached (user, token) pair, safe to hold across session commits."""

    user_id: str
    token: str


def snapshot(endpoints: Sequence[DeviceEndpoint]) -> list[EndpointRef]:
    return [EndpointRef(endpoint.user_id, endpoint.token) for endpoint in endpoints]


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most size items."""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def coerce_data(data: dict[str, Any] | None) -> dict[str, str]:
    """Coerce a payload to the string-keyed, string-valued map providers accept."""
    coerced = {}
    for key, value in (data or {}).items():
        if isinstance(value, bool):
            coerced[str(key)] = "true" if value else "false"
        elif value is None:
            coerced[str(key)] = ""
        elif isinstance(value, dict | list):
            coerced[str(key)] = json.dumps(value)
        else:
            coerced[str(key)] = str(value)
    return coerced


@dataclass
class DispatchOutcome:
    """Aggregated result of sending one message to many endpoints."""

    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: list[str] = field(default_factory=list)
    per_batch_errors: list[str] = field(default_factory=list)
    delivered_tokens: list[str] = field(default_factory=list)
    batches: list[dict[str, Any]] = field(default_factory=list)
    # token -> error of the failed batch that carried it
    batch_error_for: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_batches_failed(self) -> bool:
        """True when no batch got a response from the provider."""
        return bool(self.batches) and len(self.per_batch_errors) == len(self.batches)

    def merge(self, other: "DispatchOutcome") -> None:
        self.success_count += other.success_count
        self.failure_count += other.failure_count
        self.invalid_tokens.extend(other.invalid_tokens)
        self.per_batch_errors.extend(other.per_batch_errors)
        self.delivered_tokens.extend(other.delivered_tokens)
        self.batches.extend(other.batches)
        self.batch_error_for.update(other.batch_error_for)

    def for_tokens(self, tokens: Sequence[str]) -> "DispatchOutcome":
        """The part of this outcome that concerns the given tokens."""
        delivered = set(self.delivered_tokens)
        invalid = set(self.invalid_tokens)
        subset = DispatchOutcome()
        for token in tokens:
            if token in delivered:
                subset.success_count += 1
                subset.delivered_tokens.append(token)
            else:
                subset.failure_count += 1
                if token in invalid:
                    subset.invalid_tokens.append(token)
                error = self.batch_error_for.get(token)
                if error is not None:
                    subset.batch_error_for[token] = error
                    if error not in subset.per_batch_errors:
                        subset.per_batch_errors.append(error)
        return subset

    def provider_response(self) -> dict[str, Any]:
        """Summary of the provider's answers, stored with the delivery record."""
        return {
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "batches": self.batches,
        }


@dataclass
class TokenValidation:
    valid: list[str] = field(default_factory=list)
    invalid: list[dict[str, str]] = field(default_factory=list)


class BatchDispatcher:
    """Partitions endpoints into provider-sized batches and sends each one.

    Batches run concurrently on a thread pool. Each has its own timeout, and
    a batch that raises or times out counts all its tokens as failed without
    stopping the others.
    """

    def __init__(
        self,
        provider: PushProvider,
        batch_size: int = 500,
        timeout: float = 10.0,
        concurrency: int = 4,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.batch_size = batch_size
        self.timeout = timeout
        self.concurrency = concurrency

    def send(
        self,
        endpoints: Sequence[DeviceEndpoint | EndpointRef],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> DispatchOutcome:
        """Send one message to every endpoint.

        The caller is responsible for pruning outcome.invalid_tokens.
        """
        outcome = DispatchOutcome()
        tokens = [endpoint.token for endpoint in endpoints]
        if not tokens:
            return outcome

        payload = coerce_data(data)
        batches = list(chunked(tokens, self.batch_size))

        workers = min(self.concurrency, len(batches))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push-batch")
        started = time.monotonic()
        try:
            futures = [
                (executor.submit(self.provider.send_multicast, title, body, payload, batch), batch)
                for batch in batches
            ]
            for number, (future, batch) in enumerate(futures, start=1):
                # Batches run in waves of `workers`; each wave gets one timeout from submission
                deadline = started + self.timeout * ((number - 1) // workers + 1)
                outcome.merge(self._collect(number, future, batch, deadline))
        finally:
            # Do not block on batches that outlived their timeout
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"Dispatched {len(tokens)} endpoints in {len(batches)} batches: "
            f"{outcome.success_count} sent, {outcome.failure_count} failed, "
            f"{len(outcome.invalid_tokens)} invalid"
        )
        return outcome

    def _collect(
        self,
        number: int,
        future: "Future[list[ProviderResult]]",
        batch: list[str],
        deadline: float,
    ) -> DispatchOutcome:
        try:
            results = future.result(timeout=max(0.0, deadline - time.monotonic()))
        except TimeoutError:
            future.cancel()
            return self._failed_batch(
                number, batch, f"batch {number} timed out after {self.timeout}s"
            )
        except Exception as e:
            return self._failed_batch(number, batch, f"batch {number} failed: {e}")

        if len(results) != len(batch):
            return self._failed_batch(
                number,
                batch,
                f"batch {number} returned {len(results)} results for {len(batch)} tokens",
            )

        outcome = DispatchOutcome()
        error_codes: dict[str, int] = {}
        for token, result in zip(batch, results, strict=True):
            if result.success:
                outcome.success_count += 1
                outcome.delivered_tokens.append(token)
                continue
            outcome.failure_count += 1
            code = result.error_code or "unknown-error"
            error_codes[code] = error_codes.get(code, 0) + 1
            if result.token_invalid:
                outcome.invalid_tokens.append(token)

        outcome.batches.append(
            {
                "batch": number,
                "totalTokens": len(batch),
                "successCount": outcome.success_count,
                "failureCount": outcome.failure_count,
                "errorCodes": error_codes,
            }
        )
        return outcome

    def _failed_batch(self, number: int, batch: list[str], error: str) -> DispatchOutcome:
        logger.warning(f"Push {error}; counting {len(batch)} tokens as failed")
        return DispatchOutcome(
            failure_count=len(batch),
            per_batch_errors=[error],
            batch_error_for=dict.fromkeys(batch, error),
            batches=[
                {
                    "batch": number,
                    "totalTokens": len(batch),
                    "successCount": 0,
                    "failureCount": len(batch),
                    "error": error,
                }
            ],
        )

    def validate_tokens(self, tokens: Sequence[str]) -> TokenValidation:
        """Check tokens with a dry-run multicast, in batches of 100.

        A batch that fails outright marks all of its tokens invalid.
        """
        validation = TokenValidation()
        for batch in chunked(list(tokens), VALIDATION_BATCH_SIZE):
            try:
                results = self.provider.send_multicast(
                    "", "", {"test": "validation"}, batch, dry_run=True
                )
            except Exception as e:
                logger.warning(f"Token validation batch failed: {e}")
                validation.invalid.extend(
                    {"token": token, "error": "batch_validation_failed"} for token in batch
                )
                continue

            for token, result in zip(batch, results, strict=False):
                if result.success:
                    validation.valid.append(token)
                else:
                    validation.invalid.append(
                        {"token": token, "error": result.error_code or "unknown-error"}
                    )
        return validation
