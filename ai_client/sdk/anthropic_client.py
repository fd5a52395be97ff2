"""
Tracked Anthropic client.

Sends conversation context to the Messages API with retries and records
the cost of every successful request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from ..config.loader import ClientConfig
from ..core.accounting import UsageAccountant, UsageRecord, compute_usage
from ..core.conversation import Message, Role
from ..core.errors import (
    CONNECTION_REFUSED,
    TIMED_OUT,
    FailureDescriptor,
    classify_error,
)
from ..core.retry import RetryObserver, execute_with_retry
from ..core.token_counter import TokenUsage
from ..storage.repository import StateRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayResponse:
    """Text reply and raw token counts from one API call."""
    content: str
    usage: TokenUsage


@dataclass(frozen=True)
class ChatResult:
    """Reply plus the priced usage of the request that produced it."""
    content: str
    usage: UsageRecord


class StatsNotSavedError(OSError):
    """Request succeeded and was recorded, but stats could not be written.

    The reply is kept on ``result`` so callers can still show it.
    """

    def __init__(self, result: "ChatResult", cause: OSError):
        super().__init__(f"Failed to save usage statistics: {cause}")
        self.result = result


def describe_failure(exc: Exception) -> FailureDescriptor:
    """Translate an anthropic SDK exception into a failure descriptor."""
    if isinstance(exc, anthropic.APIStatusError):
        return FailureDescriptor(status_code=exc.status_code, message=exc.message)
    if isinstance(exc, anthropic.APITimeoutError):
        return FailureDescriptor(transport_code=TIMED_OUT, message=str(exc))
    if isinstance(exc, anthropic.APIConnectionError):
        return FailureDescriptor(transport_code=CONNECTION_REFUSED, message=str(exc))
    return FailureDescriptor(message=str(exc))


class AnthropicGateway:
    """Thin wrapper around the async Anthropic Messages API.

    Failures are raised as classified AIClientError instances so the
    retry layer can decide what to do with them.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        max_tokens: int,
        temperature: float,
        client: Optional[anthropic.AsyncAnthropic] = None
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        # The SDK has its own retry loop; ours replaces it
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "AnthropicGateway":
        return cls(
            api_key=config.api_key,
            model=config.default_model,
            max_tokens=config.max_tokens,
            temperature=config.temperature
        )

    @staticmethod
    def to_api_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
        """Convert messages to API format, dropping system turns."""
        return [
            {"role": message.role.value, "content": message.content}
            for message in messages
            if message.role is not Role.SYSTEM
        ]

    async def send(self, messages: Sequence[Message]) -> GatewayResponse:
        """Send one request.

        Args:
            messages: Context window to send

        Returns:
            GatewayResponse with the first text block and token counts

        Raises:
            AIClientError: Classified API or transport failure
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=self.to_api_messages(messages)
            )
        except anthropic.AnthropicError as e:
            raise classify_error(describe_failure(e)) from e

        return GatewayResponse(
            content=_first_text(response.content),
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens
            )
        )


def _first_text(blocks: Any) -> str:
    if not blocks:
        return ""
    first = blocks[0]
    if getattr(first, "type", None) != "text":
        return ""
    return first.text or ""


class TrackedAnthropic:
    """Anthropic client that retries transient failures and tracks cost.

    Usage is only recorded after a fully successful call; stats are
    flushed to the repository after every request.
    """

    def __init__(
        self,
        config: ClientConfig,
        repository: Optional[StateRepository] = None,
        accountant: Optional[UsageAccountant] = None,
        gateway: Optional[AnthropicGateway] = None
    ):
        """Initialize tracked client.

        Args:
            config: Client configuration (model, pricing, retry policy)
            repository: Where stats are persisted (None disables persistence)
            accountant: Accountant to record into; when omitted one is
                seeded from the repository's saved stats
            gateway: Transport (defaults to an AnthropicGateway for config)
        """
        self.config = config
        self.repository = repository
        if accountant is None:
            saved = repository.load_stats() if repository is not None else None
            accountant = UsageAccountant(saved)
        self.accountant = accountant
        self.gateway = gateway or AnthropicGateway.from_config(config)

    async def chat(
        self,
        messages: Sequence[Message],
        on_retry: Optional[RetryObserver] = None
    ) -> ChatResult:
        """Send messages and record usage.

        Args:
            messages: Context window to send (required)
            on_retry: Optional observer called before each retry delay

        Returns:
            ChatResult with the reply text and priced usage

        Raises:
            ValueError: If messages is empty
            ConfigurationError: If the active model has no pricing
            AIClientError: Classified failure after retries
            StatsNotSavedError: If the usage was recorded but not persisted
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        pricing = self.config.active_pricing

        logger.debug("Sending %d messages to %s", len(messages), self.config.default_model)
        response = await execute_with_retry(
            lambda: self.gateway.send(messages),
            self.config.retry,
            on_retry
        )

        record = compute_usage(
            response.usage.input_tokens,
            response.usage.output_tokens,
            pricing
        )
        self.accountant.add_usage(record)
        result = ChatResult(content=response.content, usage=record)
        if self.repository is not None:
            try:
                self.repository.save_stats(self.accountant.stats)
            except OSError as e:
                raise StatsNotSavedError(result, e) from e

        return result
