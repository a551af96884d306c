"""Tests for the Solana JSON-RPC collaborators."""

from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from crossarb.config import PUMPSWAP_POOL_ADDRESS, TOKEN_SOL_MINT, WETH_SOL_MINT, WSOL_MINT
from crossarb.errors import ConnectivityError
from crossarb.models import CommitmentLevel, TxStatus
from crossarb.solana import PumpSwapReserves, SolanaBalances, SolanaFinality, SolanaRpcClient


def _token_account(amount: str, ui_amount: str) -> dict:
    return {
        "pubkey": "Acct111",
        "account": {
            "data": {
                "parsed": {
                    "info": {"tokenAmount": {"amount": amount, "uiAmountString": ui_amount}}
                }
            }
        },
    }


class TestSolanaRpcClient:

    def _client(self, body=None, side_effect=None):
        session = Mock()
        resp = Mock()
        resp.json.return_value = body
        session.post.return_value = resp
        if side_effect is not None:
            session.post.side_effect = side_effect
        return SolanaRpcClient("https://rpc.example", session=session), session

    def test_returns_result(self):
        client, session = self._client({"jsonrpc": "2.0", "id": 1, "result": 42})

        assert client.call("getBlockHeight") == 42
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "getBlockHeight"
        assert payload["params"] == []

    def test_ids_increase(self):
        client, session = self._client({"result": 1})
        client.call("getSlot")
        client.call("getSlot")
        ids = [c.kwargs["json"]["id"] for c in session.post.call_args_list]
        assert ids == [1, 2]

    def test_rpc_error(self):
        client, _ = self._client({"error": {"code": -32005, "message": "Node is behind"}})
        with pytest.raises(ConnectivityError, match="Node is behind"):
            client.call("getBalance", ["x"])

    def test_transport_error(self):
        client, _ = self._client(side_effect=requests.ConnectionError("refused"))
        with pytest.raises(ConnectivityError):
            client.call("getBalance", ["x"])


class TestSolanaBalances:

    def test_balances(self):
        rpc = Mock()
        rpc.call.return_value = {"value": 2_500_000_000}
        rpc.token_accounts.side_effect = lambda owner, mint: {
            TOKEN_SOL_MINT: [_token_account("1500000000", "1500")],
            WETH_SOL_MINT: [_token_account("5000000", "0.05"), _token_account("1000000", "0.01")],
        }[mint]

        balances = SolanaBalances(rpc, "Wallet111").get_balances()

        assert balances.token == Decimal(1500)
        assert balances.counter == Decimal("0.06")
        assert balances.settlement == Decimal("2.5")

    def test_no_token_account_is_zero(self):
        rpc = Mock()
        rpc.token_accounts.return_value = []
        assert SolanaBalances(rpc, "Wallet111").get_spl_balance(TOKEN_SOL_MINT) == 0


class TestPumpSwapReserves:

    def test_reads_vaults(self):
        rpc = Mock()
        rpc.token_accounts.side_effect = lambda owner, mint: {
            TOKEN_SOL_MINT: [_token_account("1000000000000", "1000000")],
            WSOL_MINT: [_token_account("20000000000000", "20000")],
        }[mint]

        reserves = PumpSwapReserves(rpc).get_reserves()

        assert reserves.token_reserve == 10**12
        assert reserves.quote_reserve == 2 * 10**13
        owners = {c.args[0] for c in rpc.token_accounts.call_args_list}
        assert owners == {PUMPSWAP_POOL_ADDRESS}

    def test_missing_vault(self):
        rpc = Mock()
        rpc.token_accounts.return_value = []
        with pytest.raises(ConnectivityError):
            PumpSwapReserves(rpc).get_reserves()


class TestSolanaFinality:

    def _finality(self, status):
        rpc = Mock()
        rpc.call.return_value = {"context": {"slot": 1}, "value": [status]}
        return SolanaFinality(rpc), rpc

    def test_unknown_signature_is_pending(self):
        finality, rpc = self._finality(None)
        assert finality.get_status("sig") == TxStatus.pending()
        rpc.call.assert_called_once_with(
            "getSignatureStatuses", [["sig"], {"searchTransactionHistory": True}]
        )

    def test_error_is_failed(self):
        finality, _ = self._finality(
            {"err": {"InstructionError": [2, {"Custom": 6001}]}, "confirmationStatus": "confirmed"}
        )
        status = finality.get_status("sig")
        assert status.state == TxStatus.FAILED
        assert "InstructionError" in status.error

    @pytest.mark.parametrize(
        "name,level",
        [
            ("processed", CommitmentLevel.PROCESSED),
            ("confirmed", CommitmentLevel.CONFIRMED),
            ("finalized", CommitmentLevel.FINALIZED),
        ],
    )
    def test_commitment_levels(self, name, level):
        finality, _ = self._finality({"err": None, "confirmationStatus": name})
        assert finality.get_status("sig") == TxStatus.confirmed(level)

    def test_block_height(self):
        rpc = Mock()
        rpc.call.return_value = 987654
        assert SolanaFinality(rpc).get_current_height() == 987654
        rpc.call.assert_called_once_with("getBlockHeight", [{"commitment": "confirmed"}])
