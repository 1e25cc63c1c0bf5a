"""
Relayer Execution Strategy

Submits calls to an OpenZeppelin Relayer service, which pays gas, signs
and broadcasts. The strategy polls the service until the transaction is
mined or reported as failed.

REST endpoints (bearer auth):
    POST /api/v1/relayers/{relayer_id}/transactions
    GET  /api/v1/relayers/{relayer_id}/transactions/{transaction_id}
    GET  /api/v1/relayers?page=&per_page=
    GET  /api/v1/relayers/{relayer_id}[/balance|/status]

Every response is wrapped as {"success": bool, "data": ..., "error": ...}.
"""

import asyncio
from decimal import Decimal
from typing import Any

import httpx
import structlog

from ..config import CallForgeConfig, NetworkConfig, get_config
from ..errors import (
    ConfirmationTimeout,
    ExecutionConfigInvalid,
    RelayerRejected,
    RelayerUnavailable,
)
from ..models.execution import (
    EncodedCall,
    RelayerDetails,
    RelayerDetailsRich,
    RelayerExecutionConfig,
    TransactionStatusUpdate,
    TxStatus,
)
from .base import ExecutionStrategy, StatusTracker, WalletCapability

logger = structlog.get_logger(__name__)

MINED_STATUSES = ("mined", "confirmed")
FAILED_STATUSES = ("failed", "canceled", "expired")
PAGE_SIZE = 100


class RelayerClient:
    """Thin httpx wrapper around the relay service REST API."""

    def __init__(
        self,
        service_url: str,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = service_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._http_client = http_client
        self._timeout = timeout

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        if self._http_client is not None:
            return await self._http_client.request(method, url, headers=self._headers, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, headers=self._headers, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        last_status: TxStatus = TxStatus.IDLE,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and unwrap the response envelope.

        Returns:
            The whole envelope; callers read data and pagination from it

        Raises:
            RelayerUnavailable: Transport failure or 5xx
            RelayerRejected: 4xx or success=false
        """
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RelayerUnavailable(f"Relay service unreachable: {e}", last_status, e) from e

        if response.status_code >= 500:
            raise RelayerUnavailable(
                f"Relay service error: HTTP {response.status_code}", last_status
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RelayerUnavailable("Relay service returned invalid JSON", last_status, e) from e

        if response.status_code >= 400 or not body.get("success", False):
            error = body.get("error") or body.get("message") or f"HTTP {response.status_code}"
            raise RelayerRejected(f"Relay service rejected the request: {error}", last_status)
        return body


class RelayerExecutionStrategy(ExecutionStrategy):
    """
    Execution through a relay service.

    The runtime secret passed to execute() is the relay service API key;
    it is never stored or logged.
    """

    method = "relayer"

    def __init__(
        self,
        network: NetworkConfig | None = None,
        config: CallForgeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._network = network
        self._config = config
        self._http_client = http_client

    @property
    def config(self) -> CallForgeConfig:
        return self._config or get_config()

    def _client(self, service_url: str, token: str) -> RelayerClient:
        return RelayerClient(service_url, token, http_client=self._http_client)

    def _transaction_request(self, call: EncodedCall, config: RelayerExecutionConfig) -> dict[str, Any]:
        options = config.transaction_options
        request: dict[str, Any] = {
            "to": call.address,
            "data": call.data,
            "value": call.value,
            "gas_limit": (options.gas_limit if options else None) or self.config.default_relayer_gas_limit,
        }
        if options is not None:
            # The service needs exactly one pricing strategy; only explicit values are sent
            if options.speed is not None:
                request["speed"] = options.speed.value
            if options.gas_price is not None:
                request["gas_price"] = options.gas_price
            if options.max_fee_per_gas is not None:
                request["max_fee_per_gas"] = options.max_fee_per_gas
            if options.max_priority_fee_per_gas is not None:
                request["max_priority_fee_per_gas"] = options.max_priority_fee_per_gas
            if options.valid_until is not None:
                request["valid_until"] = options.valid_until
        return request

    async def execute(
        self,
        call: EncodedCall,
        config: Any,
        wallet: WalletCapability | None,
        tracker: StatusTracker,
        runtime_secret: str | None = None,
        confirmation_timeout: float | None = None,
    ) -> str:
        if not isinstance(config, RelayerExecutionConfig):
            raise ExecutionConfigInvalid("Relayer strategy needs a relayer execution config", tracker.status)
        if not runtime_secret:
            raise ExecutionConfigInvalid("An API key is required for relayer execution", tracker.status)
        if config.relayer.paused:
            raise ExecutionConfigInvalid(f"Relayer {config.relayer.relayer_id} is paused", tracker.status)

        client = self._client(config.service_url, runtime_secret)
        relayer_id = config.relayer.relayer_id

        tracker.transition(
            TxStatus.PENDING_SIGNATURE,
            TransactionStatusUpdate(title="Submitting to relayer", message=config.relayer.name),
        )
        body = await client.request(
            "POST",
            f"/api/v1/relayers/{relayer_id}/transactions",
            last_status=TxStatus.PENDING_SIGNATURE,
            json=self._transaction_request(call, config),
        )
        transaction_id = (body.get("data") or {}).get("id")
        if not transaction_id:
            raise RelayerRejected(
                f"Relay service did not return a transaction id: {body.get('error')}",
                TxStatus.PENDING_SIGNATURE,
            )

        tracker.transition(
            TxStatus.PENDING_RELAYER,
            TransactionStatusUpdate(transaction_id=transaction_id, title="Relayer processing"),
        )
        logger.info(
            "relayer_transaction_submitted",
            relayer_id=relayer_id,
            transaction_id=transaction_id,
            function=call.function_name,
        )

        return await self._poll_for_hash(
            client,
            relayer_id,
            transaction_id,
            confirmation_timeout or self.config.relayer_timeout_seconds,
        )

    async def _poll_for_hash(
        self,
        client: RelayerClient,
        relayer_id: str,
        transaction_id: str,
        timeout: float,
    ) -> str:
        """Poll until mined/confirmed (returns the hash) or a failure status."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        interval = self.config.relayer_poll_interval_seconds

        while True:
            body = await client.request(
                "GET",
                f"/api/v1/relayers/{relayer_id}/transactions/{transaction_id}",
                last_status=TxStatus.PENDING_RELAYER,
            )
            tx = body.get("data") or {}
            status = tx.get("status")

            if status in MINED_STATUSES:
                tx_hash = tx.get("hash")
                if not tx_hash:
                    raise RelayerRejected(
                        f"Transaction {transaction_id} is {status} but has no hash",
                        TxStatus.PENDING_RELAYER,
                        tx_id=transaction_id,
                    )
                logger.info("relayer_transaction_mined", transaction_id=transaction_id, tx_hash=tx_hash)
                return str(tx_hash)

            if status in FAILED_STATUSES:
                reason = tx.get("status_reason") or "No reason provided."
                raise RelayerRejected(
                    f"Transaction {status}: {reason}", TxStatus.PENDING_RELAYER, tx_id=transaction_id
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimeout(
                    f"Relayer transaction {transaction_id} not settled within {timeout}s",
                    TxStatus.PENDING_RELAYER,
                    tx_id=transaction_id,
                )
            await asyncio.sleep(min(interval, remaining))

    async def get_status(
        self,
        tx_id: str,
        config: Any,
        runtime_secret: str | None = None,
    ) -> TxStatus:
        if not isinstance(config, RelayerExecutionConfig) or not runtime_secret:
            raise ExecutionConfigInvalid("Relayer config and API key are required")
        client = self._client(config.service_url, runtime_secret)
        body = await client.request(
            "GET", f"/api/v1/relayers/{config.relayer.relayer_id}/transactions/{tx_id}"
        )
        status = (body.get("data") or {}).get("status")
        if status in MINED_STATUSES:
            return TxStatus.SUCCESS
        if status in FAILED_STATUSES:
            return TxStatus.ERROR
        return TxStatus.PENDING_RELAYER

    # ==================== Relayer Directory ====================

    async def list_relayers(
        self,
        service_url: str,
        access_token: str,
        network: NetworkConfig,
    ) -> list[RelayerDetails]:
        """
        All EVM relayers of the service that serve the given network.

        Pages through the directory until pagination.total_items is reached.
        """
        client = self._client(service_url, access_token)
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            body = await client.request(
                "GET", "/api/v1/relayers", params={"page": page, "per_page": PAGE_SIZE}
            )
            data = body.get("data") or []
            records.extend(data)
            total = (body.get("pagination") or {}).get("total_items", 0)
            if len(records) >= total or not data:
                break
            page += 1

        relayers = [
            RelayerDetails(
                relayer_id=r["id"],
                name=r.get("name", ""),
                address=r.get("address", ""),
                network=r.get("network", ""),
                paused=bool(r.get("paused", False)),
            )
            for r in records
            if r.get("network_type") == "evm" and r.get("network") and r["network"] in network.id
        ]
        logger.info("relayers_listed", network=network.id, total=len(records), matching=len(relayers))
        return relayers

    async def get_relayer(
        self,
        service_url: str,
        access_token: str,
        relayer_id: str,
        network: NetworkConfig,
    ) -> RelayerDetailsRich:
        """
        Relayer details with balance and status.

        Balance and status lookups are optional: their failures are logged
        and the corresponding fields stay unset.
        """
        client = self._client(service_url, access_token)
        base = f"/api/v1/relayers/{relayer_id}"

        relayer_body, balance_body, status_body = await asyncio.gather(
            client.request("GET", base),
            client.request("GET", f"{base}/balance"),
            client.request("GET", f"{base}/status"),
            return_exceptions=True,
        )
        if isinstance(relayer_body, BaseException):
            raise relayer_body
        record = relayer_body.get("data") or {}

        details: dict[str, Any] = {
            "relayer_id": record.get("id", relayer_id),
            "name": record.get("name", ""),
            "address": record.get("address", ""),
            "network": record.get("network", ""),
            "paused": bool(record.get("paused", False)),
            "system_disabled": record.get("system_disabled"),
        }

        if isinstance(balance_body, BaseException):
            logger.warning("relayer_balance_unavailable", relayer_id=relayer_id, error=str(balance_body))
        else:
            raw_balance = (balance_body.get("data") or {}).get("balance")
            if raw_balance is not None:
                details["balance"] = format_native_balance(raw_balance, network)

        if isinstance(status_body, BaseException):
            logger.warning("relayer_status_unavailable", relayer_id=relayer_id, error=str(status_body))
        else:
            status = status_body.get("data") or {}
            if status.get("network_type", "evm") == "evm":
                if status.get("nonce") is not None:
                    details["nonce"] = str(status["nonce"])
                if status.get("pending_transactions_count") is not None:
                    details["pending_transactions_count"] = int(status["pending_transactions_count"])
                if status.get("last_confirmed_transaction_timestamp"):
                    details["last_confirmed_transaction_timestamp"] = str(
                        status["last_confirmed_transaction_timestamp"]
                    )

        return RelayerDetailsRich(**details)


def format_native_balance(raw_balance: Any, network: NetworkConfig) -> str:
    """'1500000000000000000' wei -> '1.5 ETH'; unparseable values are returned raw."""
    try:
        amount = Decimal(int(raw_balance)) / (Decimal(10) ** network.native_currency_decimals)
    except (TypeError, ValueError):
        return str(raw_balance)
    text = format(amount.normalize(), "f")
    return f"{text} {network.native_currency_symbol}"
