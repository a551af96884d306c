# crossarb/ethereum.py
"""
Ethereum collaborators (web3.py)
Wallet balances, Uniswap V2 pair reserves, router swaps and receipt-based
finality for the ASSDAQ/WETH pair.
"""

import logging
import time
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, List, Optional

import requests
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from crossarb.amm import constant_product_amount_out
from crossarb.config import (
    ETH_CHAIN_ID,
    ETH_DECIMALS,
    ETH_FINALIZED_CONFIRMATIONS,
    ETH_SECONDS_PER_BLOCK,
    ETH_SLIPPAGE_BPS,
    GAS_LIMIT_APPROVAL,
    GAS_LIMIT_SWAP,
    MAX_GAS_PRICE_GWEI,
    SWAP_DEADLINE_SECONDS,
    TOKEN_ETH_ADDRESS,
    TOKEN_ETH_DECIMALS,
    UNISWAP_PAIR_ADDRESS,
    UNISWAP_V2_ROUTER,
    WETH_ETH_ADDRESS,
)
from crossarb.errors import ConnectivityError, NoRouteError, TxFailedError
from crossarb.models import (
    Asset,
    Chain,
    ChainBalances,
    CommitmentLevel,
    PoolReserves,
    QuoteHandle,
    TxStatus,
    TxSubmission,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ABI DEFINITIONS
# =============================================================================

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

PAIR_ABI = [
    {
        "name": "getReserves",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "reserve0", "type": "uint112"},
            {"name": "reserve1", "type": "uint112"},
            {"name": "blockTimestampLast", "type": "uint32"},
        ],
    },
    {
        "name": "token0",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
]

ROUTER_ABI = [
    {
        "name": "swapExactETHForTokens",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
    {
        "name": "swapExactTokensForETH",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
]

# Transport and node errors surfaced by web3's HTTP provider
_RPC_ERRORS = (Web3Exception, requests.RequestException, ValueError)


def _rpc(service: str, fn: Callable, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except _RPC_ERRORS as e:
        raise ConnectivityError(f"{service} call failed: {e}", service=service)


def _to_wei(amount: Decimal, decimals: int) -> int:
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR))


def _from_wei(amount: int, decimals: int) -> Decimal:
    return Decimal(int(amount)) / (Decimal(10) ** decimals)


# =============================================================================
# READS
# =============================================================================

class EthereumBalances:
    """BalanceSource for the Ethereum wallet: ASSDAQ (ERC20) and native ETH"""

    def __init__(self, w3: Web3, address: str, token_address: str = TOKEN_ETH_ADDRESS):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.token = w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def get_balances(self) -> ChainBalances:
        eth_wei = _rpc("ethereum-rpc", self.w3.eth.get_balance, self.address)
        token_wei = _rpc("ethereum-rpc", self.token.functions.balanceOf(self.address).call)
        return ChainBalances(
            token=_from_wei(token_wei, TOKEN_ETH_DECIMALS),
            counter=_from_wei(eth_wei, ETH_DECIMALS),
        )


class UniswapV2Reserves:
    """ReserveSource for the ASSDAQ/WETH pair, ordered by token0"""

    def __init__(
        self,
        w3: Web3,
        pair_address: str = UNISWAP_PAIR_ADDRESS,
        token_address: str = TOKEN_ETH_ADDRESS,
    ):
        self.pair = w3.eth.contract(address=Web3.to_checksum_address(pair_address), abi=PAIR_ABI)
        self.token_address = token_address
        self._token0: Optional[str] = None

    def _get_token0(self) -> str:
        if self._token0 is None:
            self._token0 = _rpc("ethereum-rpc", self.pair.functions.token0().call)
        return self._token0

    def get_reserves(self) -> PoolReserves:
        r0, r1, _ = _rpc("ethereum-rpc", self.pair.functions.getReserves().call)
        if self.token_address.lower() == self._get_token0().lower():
            return PoolReserves(token_reserve=r0, quote_reserve=r1)
        return PoolReserves(token_reserve=r1, quote_reserve=r0)


# =============================================================================
# SWAPS
# =============================================================================

class UniswapV2SwapService:
    """
    SwapService for Ethereum.

    Only the two pair directions exist: ETH -> token via swapExactETHForTokens
    and token -> ETH via swapExactTokensForETH. Min-out is the constant-product
    quote less ETH_SLIPPAGE_BPS.
    """

    chain = Chain.ETHEREUM

    def __init__(
        self,
        w3: Web3,
        private_key: str,
        reserves: UniswapV2Reserves,
        router_address: str = UNISWAP_V2_ROUTER,
        token_address: str = TOKEN_ETH_ADDRESS,
        weth_address: str = WETH_ETH_ADDRESS,
        slippage_bps: int = ETH_SLIPPAGE_BPS,
        chain_id: int = ETH_CHAIN_ID,
    ):
        self.w3 = w3
        self.account = w3.eth.account.from_key(private_key)
        self.address = self.account.address
        self.reserves = reserves
        self.router = w3.eth.contract(address=Web3.to_checksum_address(router_address), abi=ROUTER_ABI)
        self.token = w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        self.token_address = Web3.to_checksum_address(token_address)
        self.weth_address = Web3.to_checksum_address(weth_address)
        self.slippage_bps = slippage_bps
        self.chain_id = chain_id

    def _path(self, input_asset: Asset) -> List[str]:
        if input_asset is Asset.COUNTER:
            return [self.weth_address, self.token_address]
        return [self.token_address, self.weth_address]

    def quote(self, input_asset: Asset, output_asset: Asset, amount: Decimal) -> QuoteHandle:
        if {input_asset, output_asset} != {Asset.TOKEN, Asset.COUNTER}:
            raise NoRouteError(
                "Uniswap pair only trades token <-> ETH",
                input_asset=input_asset.value,
                output_asset=output_asset.value,
            )

        pool = self.reserves.get_reserves()
        if input_asset is Asset.COUNTER:
            in_decimals, out_decimals = ETH_DECIMALS, TOKEN_ETH_DECIMALS
            reserve_in, reserve_out = pool.quote_reserve, pool.token_reserve
        else:
            in_decimals, out_decimals = TOKEN_ETH_DECIMALS, ETH_DECIMALS
            reserve_in, reserve_out = pool.token_reserve, pool.quote_reserve

        amount_in = _to_wei(amount, in_decimals)
        expected = constant_product_amount_out(amount_in, reserve_in, reserve_out)
        if expected <= 0:
            raise NoRouteError(
                f"Pair returns nothing for {amount} {input_asset.value}",
                input_asset=input_asset.value,
                output_asset=output_asset.value,
            )
        min_out = expected * (10000 - self.slippage_bps) // 10000

        return QuoteHandle(
            chain=self.chain,
            input_asset=input_asset,
            output_asset=output_asset,
            amount_in=_from_wei(amount_in, in_decimals),
            expected_out=_from_wei(expected, out_decimals),
            min_out=_from_wei(min_out, out_decimals),
            raw={"amount_in": amount_in, "expected_out": expected, "min_out": min_out},
        )

    def _get_nonce(self) -> int:
        return _rpc("ethereum-rpc", self.w3.eth.get_transaction_count, self.address, "pending")

    def _get_gas_price(self) -> int:
        """Current price plus 10%, capped at MAX_GAS_PRICE_GWEI"""
        current = _rpc("ethereum-rpc", lambda: self.w3.eth.gas_price)
        cap = MAX_GAS_PRICE_GWEI * 10**9
        if current > cap:
            logger.warning(f"Gas price {current / 10**9:.1f} gwei exceeds max {MAX_GAS_PRICE_GWEI}")
            return cap
        return int(current * 1.1)

    def _send(self, tx: dict) -> str:
        signed = self.account.sign_transaction(tx)
        tx_hash = _rpc("ethereum-rpc", self.w3.eth.send_raw_transaction, signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def ensure_allowance(self, amount_in: int) -> Optional[str]:
        """Approve the router for amount_in if needed. Returns the approval hash or None."""
        allowance = _rpc(
            "ethereum-rpc",
            self.token.functions.allowance(self.address, self.router.address).call,
        )
        if allowance >= amount_in:
            return None

        logger.info("Approving token for the router...")
        tx = self.token.functions.approve(self.router.address, amount_in).build_transaction({
            "from": self.address,
            "nonce": self._get_nonce(),
            "gas": GAS_LIMIT_APPROVAL,
            "gasPrice": self._get_gas_price(),
            "chainId": self.chain_id,
        })
        tx_hash = self._send(tx)
        receipt = _rpc(
            "ethereum-rpc", self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=120
        )
        if receipt["status"] != 1:
            raise TxFailedError(tx_hash, "approval reverted")
        logger.info(f"Approval confirmed: {tx_hash}")
        return tx_hash

    def execute(self, quote: QuoteHandle) -> TxSubmission:
        amount_in = quote.raw["amount_in"]
        min_out = quote.raw["min_out"]
        path = self._path(quote.input_asset)
        deadline = int(time.time()) + SWAP_DEADLINE_SECONDS

        logger.info(
            f"ETH: swapping {quote.amount_in} {quote.input_asset.value} "
            f"for >= {quote.min_out} {quote.output_asset.value}"
        )

        params = {
            "from": self.address,
            "gas": GAS_LIMIT_SWAP,
            "gasPrice": self._get_gas_price(),
            "chainId": self.chain_id,
        }
        if quote.input_asset is Asset.COUNTER:
            params["value"] = amount_in
            fn = self.router.functions.swapExactETHForTokens(min_out, path, self.address, deadline)
        else:
            self.ensure_allowance(amount_in)
            fn = self.router.functions.swapExactTokensForETH(
                amount_in, min_out, path, self.address, deadline
            )

        # nonce after a possible approval
        params["nonce"] = self._get_nonce()
        tx = fn.build_transaction(params)
        current_block = _rpc("ethereum-rpc", lambda: self.w3.eth.block_number)
        tx_hash = self._send(tx)
        logger.info(f"Swap tx sent: {tx_hash}")

        return TxSubmission(
            chain=self.chain,
            tx_ref=tx_hash,
            expiry_height=current_block + SWAP_DEADLINE_SECONDS // ETH_SECONDS_PER_BLOCK,
        )


# =============================================================================
# FINALITY
# =============================================================================

class EthereumFinality:
    """
    FinalityQuery over transaction receipts.

    A mined receipt counts as CONFIRMED; ETH_FINALIZED_CONFIRMATIONS blocks
    on top of it count as FINALIZED. Height is the latest block number.
    """

    def __init__(self, w3: Web3, finalized_confirmations: int = ETH_FINALIZED_CONFIRMATIONS):
        self.w3 = w3
        self.finalized_confirmations = finalized_confirmations

    def get_status(self, tx_ref: str) -> TxStatus:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_ref)
        except TransactionNotFound:
            return TxStatus.pending()
        except _RPC_ERRORS as e:
            raise ConnectivityError(f"receipt lookup failed: {e}", service="ethereum-rpc")

        if receipt["status"] != 1:
            return TxStatus.failed("reverted")

        confirmations = self.get_current_height() - receipt["blockNumber"] + 1
        if confirmations >= self.finalized_confirmations:
            return TxStatus.confirmed(CommitmentLevel.FINALIZED)
        return TxStatus.confirmed(CommitmentLevel.CONFIRMED)

    def get_current_height(self) -> int:
        return _rpc("ethereum-rpc", lambda: self.w3.eth.block_number)
