import unittest

from eth_account import Account
from web3 import Web3

from evidence_mint.errors import BuildError, ContractRevertedError, SubmissionError
from evidence_mint.gateway import ContractHandle
from evidence_mint.minting import MINT_METHODS, MintTransactionBuilder, TransactionSubmitter
from evidence_mint.models import MintTransaction

from tests.unit.fakes import (
    ACCOUNT,
    AMOY,
    CONTRACT_ADDRESS,
    RESOURCE_URI,
    SELECTORS,
    TARGET,
    TX_HASH_BYTES,
    FakeContract,
    FakeContractLogicError,
    FakeWeb3,
)


def _handle(contract=None, web3=None):
    return ContractHandle(target=TARGET, web3=web3 or FakeWeb3(), contract=contract or FakeContract())


class MintTransactionBuilderTests(unittest.TestCase):
    def test_method_order_is_mint_then_safe_mint(self):
        self.assertEqual([method.name for method in MINT_METHODS], ["mint", "safeMint"])

    def test_primary_signature_is_used_when_it_builds(self):
        contract = FakeContract()
        handle = _handle(contract=contract)

        transaction = MintTransactionBuilder().build(handle, RESOURCE_URI, ACCOUNT)

        self.assertEqual(transaction.method, "mint")
        self.assertEqual(transaction.signature, "mint(string tokenURI)")
        self.assertEqual(transaction.params, (RESOURCE_URI,))
        self.assertEqual(transaction.target, TARGET)
        self.assertEqual(transaction.sender, ACCOUNT)
        self.assertEqual(transaction.gas, 100_000)
        self.assertEqual(contract.calls, [("mint", [RESOURCE_URI])])

    def test_preflight_estimates_gas_against_the_contract(self):
        handle = _handle()
        MintTransactionBuilder().build(handle, RESOURCE_URI, ACCOUNT)

        estimate = handle.web3.eth.estimate_calls[0]
        self.assertEqual(estimate["from"], ACCOUNT)
        self.assertEqual(estimate["to"], CONTRACT_ADDRESS)
        self.assertTrue(estimate["data"].startswith("0x" + SELECTORS["mint"]))

    def test_preflight_can_be_disabled(self):
        handle = _handle()
        transaction = MintTransactionBuilder(preflight=False).build(handle, RESOURCE_URI, ACCOUNT)
        self.assertIsNone(transaction.gas)
        self.assertEqual(handle.web3.eth.estimate_calls, [])

    def test_encoding_failure_falls_back_to_safe_mint(self):
        contract = FakeContract(failures={"mint": ValueError("Could not identify the intended function")})

        transaction = MintTransactionBuilder().build(_handle(contract=contract), RESOURCE_URI, ACCOUNT)

        self.assertEqual(transaction.method, "safeMint")
        self.assertEqual(transaction.signature, "safeMint(address to, string uri)")
        self.assertEqual(transaction.params, (ACCOUNT, RESOURCE_URI))
        self.assertEqual(contract.calls, [("mint", [RESOURCE_URI]), ("safeMint", [ACCOUNT, RESOURCE_URI])])

    def test_preflight_failure_falls_back_to_safe_mint(self):
        web3 = FakeWeb3()
        web3.eth.estimate_failures[SELECTORS["mint"]] = ValueError("execution reverted")
        contract = FakeContract()

        transaction = MintTransactionBuilder().build(_handle(contract=contract, web3=web3), RESOURCE_URI, ACCOUNT)

        self.assertEqual(transaction.method, "safeMint")
        self.assertEqual([name for name, _ in contract.calls], ["mint", "safeMint"])

    def test_both_failures_raise_build_error_with_last_cause(self):
        first = ValueError("mint missing")
        last = ValueError("safeMint missing")
        contract = FakeContract(failures={"mint": first, "safeMint": last})

        with self.assertRaises(BuildError) as ctx:
            MintTransactionBuilder().build(_handle(contract=contract), RESOURCE_URI, ACCOUNT)

        self.assertIs(ctx.exception.cause, last)
        self.assertIs(ctx.exception.__cause__, last)
        self.assertIn("safeMint missing", str(ctx.exception))
        self.assertEqual([name for name, _ in contract.calls], ["mint", "safeMint"])

    def test_reverted_preflight_on_every_method_raises_contract_reverted(self):
        web3 = FakeWeb3()
        for selector in SELECTORS.values():
            web3.eth.estimate_failures[selector] = FakeContractLogicError("execution reverted: minting paused")
        contract = FakeContract()

        with self.assertRaises(ContractRevertedError) as ctx:
            MintTransactionBuilder().build(_handle(contract=contract, web3=web3), RESOURCE_URI, ACCOUNT)

        self.assertEqual(str(ctx.exception), "execution reverted: minting paused")
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual([name for name, _ in contract.calls], ["mint", "safeMint"])

    def test_build_error_uses_logic_error_message(self):
        contract = FakeContract(
            failures={
                "mint": FakeContractLogicError("function selector was not recognized"),
                "safeMint": FakeContractLogicError("function selector was not recognized", data="0x"),
            }
        )

        with self.assertRaises(BuildError) as ctx:
            MintTransactionBuilder().build(_handle(contract=contract), RESOURCE_URI, ACCOUNT)

        self.assertTrue(str(ctx.exception).endswith(": function selector was not recognized"))
        self.assertNotIn("'0x'", str(ctx.exception))

    def test_primary_is_never_attempted_twice(self):
        contract = FakeContract(failures={"mint": ValueError("no"), "safeMint": ValueError("no")})
        with self.assertRaises(BuildError):
            MintTransactionBuilder().build(_handle(contract=contract), RESOURCE_URI, ACCOUNT)
        self.assertEqual([name for name, _ in contract.calls].count("mint"), 1)
        self.assertEqual(len(contract.calls), 2)

    def test_lowercase_account_is_checksummed(self):
        account = Account.create("evidence-builder-tests").address
        transaction = MintTransactionBuilder().build(
            _handle(contract=FakeContract(failures={"mint": ValueError("no")})),
            RESOURCE_URI,
            account.lower(),
        )
        self.assertEqual(transaction.params, (account, RESOURCE_URI))
        self.assertEqual(transaction.sender, account)

    def test_invalid_account_raises_without_attempts(self):
        contract = FakeContract()
        with self.assertRaises(BuildError):
            MintTransactionBuilder().build(_handle(contract=contract), RESOURCE_URI, "not-an-address")
        self.assertEqual(contract.calls, [])

    def test_empty_uri_raises(self):
        with self.assertRaises(BuildError):
            MintTransactionBuilder().build(_handle(), "", ACCOUNT)


class TransactionSubmitterTests(unittest.TestCase):
    def setUp(self):
        self.signer = Account.create("evidence-submitter-tests")
        self.web3 = FakeWeb3()

    def _transaction(self, gas=100_000, sender=None):
        return MintTransaction(
            method="mint",
            signature="mint(string tokenURI)",
            params=(RESOURCE_URI,),
            target=TARGET,
            data="0x" + SELECTORS["mint"] + "00" * 32,
            sender=sender or self.signer.address,
            gas=gas,
        )

    def test_submit_signs_broadcasts_and_waits_for_receipt(self):
        receipt = TransactionSubmitter(self.web3, receipt_timeout=60).submit(self._transaction(), self.signer)

        self.assertEqual(receipt.tx_hash, "0x" + "dead" * 16)
        self.assertEqual(receipt.block_number, 42)
        self.assertEqual(receipt.status, 1)
        self.assertEqual(receipt.explorer_link, "https://amoy.polygonscan.com/tx/0x" + "dead" * 16)
        self.assertEqual(len(self.web3.eth.sent), 1)
        self.assertEqual(self.web3.eth.receipt_calls, [(TX_HASH_BYTES, 60)])

    def test_signed_transaction_targets_contract_on_configured_chain(self):
        TransactionSubmitter(self.web3, wait_for_receipt=False).submit(self._transaction(), self.signer)

        raw = self.web3.eth.sent[0]
        recovered = Account.recover_transaction(raw)
        self.assertEqual(recovered, self.signer.address)

    def test_gas_headroom_is_applied(self):
        submitter = TransactionSubmitter(self.web3)
        fields = submitter._transaction_fields(self._transaction(gas=100_000), self.signer.address)
        self.assertEqual(fields["gas"], 120_000)
        self.assertEqual(fields["chainId"], 80002)
        self.assertEqual(fields["nonce"], 7)
        self.assertEqual(fields["to"], CONTRACT_ADDRESS)

    def test_gas_is_estimated_when_not_preflighted(self):
        submitter = TransactionSubmitter(self.web3)
        fields = submitter._transaction_fields(self._transaction(gas=None), self.signer.address)
        self.assertEqual(fields["gas"], 120_000)
        self.assertEqual(len(self.web3.eth.estimate_calls), 1)

    def test_without_waiting_only_hash_is_returned(self):
        receipt = TransactionSubmitter(self.web3, wait_for_receipt=False).submit(self._transaction(), self.signer)
        self.assertEqual(receipt.tx_hash, "0x" + "dead" * 16)
        self.assertIsNone(receipt.block_number)
        self.assertEqual(self.web3.eth.receipt_calls, [])

    def test_execution_reverted_is_contract_reverted_error(self):
        self.web3.eth.send_error = ValueError("execution reverted: Ownable: caller is not the owner")

        with self.assertRaises(ContractRevertedError) as ctx:
            TransactionSubmitter(self.web3).submit(self._transaction(), self.signer)

        self.assertEqual(str(ctx.exception), "execution reverted: Ownable: caller is not the owner")

    def test_logic_error_message_is_preserved(self):
        self.web3.eth.send_error = FakeContractLogicError("execution reverted: paused", "0x08c379a0")

        with self.assertRaises(ContractRevertedError) as ctx:
            TransactionSubmitter(self.web3).submit(self._transaction(), self.signer)

        self.assertEqual(str(ctx.exception), "execution reverted: paused")

    def test_transport_failure_is_generic_submission_error(self):
        self.web3.eth.send_error = ConnectionError("connection refused")

        with self.assertRaises(SubmissionError) as ctx:
            TransactionSubmitter(self.web3).submit(self._transaction(), self.signer)

        self.assertNotIsInstance(ctx.exception, ContractRevertedError)
        self.assertEqual(str(ctx.exception), "connection refused")

    def test_failed_receipt_status_is_revert(self):
        self.web3.eth.receipt = {"status": 0, "blockNumber": 43}
        with self.assertRaises(ContractRevertedError):
            TransactionSubmitter(self.web3).submit(self._transaction(), self.signer)

    def test_receipt_timeout_is_submission_error(self):
        self.web3.eth.receipt_error = TimeoutError("not mined within 180 seconds")
        with self.assertRaises(SubmissionError) as ctx:
            TransactionSubmitter(self.web3).submit(self._transaction(), self.signer)
        self.assertNotIsInstance(ctx.exception, ContractRevertedError)

    def test_signer_must_match_sender(self):
        other = Account.create("evidence-submitter-other").address
        with self.assertRaisesRegex(SubmissionError, "does not match"):
            TransactionSubmitter(self.web3).submit(self._transaction(sender=other), self.signer)
        self.assertEqual(self.web3.eth.sent, [])

    def test_signer_is_required(self):
        with self.assertRaises(SubmissionError):
            TransactionSubmitter(self.web3).submit(self._transaction(), None)


class RealContractEncodingTests(unittest.TestCase):
    """Builds against a web3 contract object; no RPC request is made with preflight off."""

    def _handle(self, abi):
        web3 = Web3(Web3.HTTPProvider(AMOY.rpc))
        contract = web3.eth.contract(address=CONTRACT_ADDRESS, abi=abi)
        return ContractHandle(target=TARGET, web3=web3, contract=contract)

    def test_mint_calldata_uses_mint_selector(self):
        from evidence_mint.gateway import DEFAULT_EVIDENCE_NFT_ABI

        transaction = MintTransactionBuilder(preflight=False).build(
            self._handle(DEFAULT_EVIDENCE_NFT_ABI), RESOURCE_URI, ACCOUNT
        )

        selector = Web3.to_hex(Web3.keccak(text="mint(string)")[:4])
        self.assertEqual(transaction.method, "mint")
        self.assertTrue(transaction.data.startswith(selector))

    def test_contract_without_mint_falls_back_to_safe_mint(self):
        from evidence_mint.gateway import DEFAULT_EVIDENCE_NFT_ABI

        safe_mint_only = [entry for entry in DEFAULT_EVIDENCE_NFT_ABI if entry["name"] == "safeMint"]
        transaction = MintTransactionBuilder(preflight=False).build(
            self._handle(safe_mint_only), RESOURCE_URI, ACCOUNT
        )

        selector = Web3.to_hex(Web3.keccak(text="safeMint(address,string)")[:4])
        self.assertEqual(transaction.method, "safeMint")
        self.assertTrue(transaction.data.startswith(selector))


if __name__ == "__main__":
    unittest.main()
