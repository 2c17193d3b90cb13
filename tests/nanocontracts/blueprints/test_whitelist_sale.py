from typing import Any, Optional

from hathorlib.nanocontracts import NCFail
from hathorlib.nanocontracts.simulator import NcCallResult
from hathorlib.nanocontracts.types import Address, ContractId, NCDepositAction

from wlsale.crypto.merkle import MerkleTree
from wlsale.nanocontracts.blueprints.whitelist_sale import (
    AboveMaximum,
    AlreadyClaimed,
    BatchTooLarge,
    BelowMinimum,
    ClaimingDisabled,
    ClaimingNotStarted,
    EmptyBatch,
    IndividualLimitExceeded,
    InsufficientPayment,
    InvalidAddress,
    InvalidAmount,
    InvalidPricing,
    InvalidWindow,
    NothingToClaim,
    NothingToWithdraw,
    NotWhitelisted,
    PurchaseInfo,
    SaleConfig,
    SaleNotActive,
    SupplyBelowSold,
    SupplyExceeded,
    Unauthorized,
    WhitelistSale,
    WithdrawalExceedsAvailable,
)
from wlsale.nanocontracts.blueprints.whitelist_token import WhitelistToken
from tests.nanocontracts.blueprints.unittest import GENESIS_TIMESTAMP, ZERO_ADDRESS, BlueprintTestCase

E = 10**18  # one whole token (or native coin) in base units
TOKEN_PRICE = 10**15  # 0.001 native per token
MIN_PURCHASE = 10 * E
MAX_PURCHASE = 10_000 * E
MAX_SUPPLY = 100_000 * E
START_TIME = GENESIS_TIMESTAMP + 60
END_TIME = START_TIME + 30 * 86400


class WhitelistSaleTestCase(BlueprintTestCase):
    """Test suite for the WhitelistSale blueprint."""

    def setUp(self):
        super().setUp()

        self.token_blueprint_id = self._register_blueprint_class(WhitelistToken)
        self.sale_blueprint_id = self._register_blueprint_class(WhitelistSale)

        self.owner = self._get_any_address()
        self.treasury = self._get_any_address()

        self.token_id = self._create_token("WhitelistToken", "WLT")
        self.sale_id = self._create_sale()
        self._mint(self.token_id, self.sale_id, MAX_SUPPLY)

        # Sale starts now
        self.set_time(START_TIME)

    def _create_token(self, name: str, symbol: str) -> ContractId:
        return self.create_contract(self.token_blueprint_id, self.owner, name, symbol, self.owner)

    def _mint(self, token_id: ContractId, to: bytes, amount: int) -> None:
        self.call_public_method(token_id, "mint", self.owner, to, amount)

    def _create_sale(self, **overrides: Any) -> ContractId:
        params = dict(
            token=self.token_id,
            treasury=self.treasury,
            token_price=TOKEN_PRICE,
            min_purchase=MIN_PURCHASE,
            max_purchase=MAX_PURCHASE,
            max_supply=MAX_SUPPLY,
            start_time=START_TIME,
            end_time=END_TIME,
            initial_owner=self.owner,
        )
        params.update(overrides)
        return self.create_contract(self.sale_blueprint_id, self.owner, *params.values())

    def _owner_call(self, method_name: str, *args: Any, actions=None) -> NcCallResult:
        return self.call_public_method(self.sale_id, method_name, self.owner, *args, actions=actions)

    def _new_buyer(self, whitelisted: bool = True) -> Address:
        buyer = self._get_any_address()
        if whitelisted:
            self._owner_call("update_whitelist", buyer, True)
        return buyer

    def _cost(self, amount: int) -> int:
        return amount * TOKEN_PRICE // E

    def _buy(
        self,
        buyer: Address,
        amount: int,
        payment: Optional[int] = None,
        proof: Optional[list[bytes]] = None,
        timestamp: Optional[int] = None,
    ) -> NcCallResult:
        if payment is None:
            payment = self._cost(amount)
        actions = self.native_deposit(payment) if payment > 0 else []
        return self.call_public_method(
            self.sale_id, "buy", buyer, amount, proof or [], actions=actions, timestamp=timestamp
        )

    def _claim(self, buyer: Address, timestamp: Optional[int] = None) -> NcCallResult:
        return self.call_public_method(self.sale_id, "claim_tokens", buyer, timestamp=timestamp)

    def _token_balance(self, account: bytes, token_id: Optional[ContractId] = None) -> int:
        token_id = token_id if token_id is not None else self.token_id
        return self.call_view_method(token_id, "balance_of", account)

    def _view(self, method_name: str, *args: Any) -> Any:
        return self.call_view_method(self.sale_id, method_name, *args)

    def _info(self):
        return self._view("get_sale_info")

    def test_initialize(self):
        """Test sale initialization with the deployment parameters."""
        info = self._info()
        self.assertEqual(info.token, self.token_id.hex())
        self.assertEqual(info.treasury, str(self.treasury))
        self.assertEqual(info.owner, str(self.owner))
        self.assertEqual(info.token_price, TOKEN_PRICE)
        self.assertEqual(info.min_purchase, MIN_PURCHASE)
        self.assertEqual(info.max_purchase, MAX_PURCHASE)
        self.assertEqual(info.max_supply, MAX_SUPPLY)
        self.assertEqual(info.start_time, START_TIME)
        self.assertEqual(info.end_time, END_TIME)
        self.assertTrue(info.whitelist_required)
        self.assertEqual(info.total_sold, 0)
        self.assertEqual(info.total_raised, 0)
        self.assertEqual(info.total_claimed, 0)
        self.assertFalse(info.claim_enabled)
        self.assertEqual(info.claim_start_time, 0)
        self.assertEqual(info.merkle_root, "")
        self.assertTrue(self._view("is_sale_active", START_TIME))
        self.assertEqual(self._token_balance(self.sale_id), MAX_SUPPLY)
        self.assertEqual(self.get_native_balance(self.sale_id), 0)

    def test_initialize_invalid_params(self):
        """Test that invalid parameters fail and leave no contract behind."""
        cases = [
            ({"min_purchase": 0}, InvalidPricing),
            ({"max_purchase": MIN_PURCHASE - 1}, InvalidPricing),
            ({"token_price": 0}, InvalidPricing),
            ({"end_time": START_TIME}, InvalidWindow),
            ({"treasury": ZERO_ADDRESS}, InvalidAddress),
            ({"initial_owner": ZERO_ADDRESS}, InvalidAddress),
            ({"token": ContractId(b"\x00" * 32)}, InvalidAddress),
        ]
        for overrides, error in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(error):
                    self._create_sale(**overrides)

    def test_buy_records_purchase(self):
        """Test that a purchase updates the record, the counters and the balances."""
        buyer = self._new_buyer()
        amount = 100 * E
        cost = self._cost(amount)

        result = self._buy(buyer, amount)

        self.assertEqual(
            self._view("get_purchase", buyer),
            PurchaseInfo(amount=amount, paid_amount=cost, timestamp=START_TIME, claimed=False),
        )
        info = self._info()
        self.assertEqual(info.total_sold, amount)
        self.assertEqual(info.total_raised, cost)
        self.assertEqual(info.participants, 1)
        self.assertEqual(info.withdrawable_raised, cost)
        self.assertEqual(self._view("get_refund", buyer), 0)

        # Payment stays in the sale until the treasury withdraws it
        self.assertEqual(self.get_native_balance(self.sale_id), cost)

        # Tokens stay in the sale until claimed
        self.assertEqual(self._token_balance(buyer), 0)

        self.assertEqual(
            self.get_events(result, self.sale_id),
            [{"event": "TokensPurchased", "buyer": buyer.hex(), "amount": amount, "cost": cost,
              "timestamp": START_TIME}],
        )

    def test_buy_accumulates(self):
        """Test that later purchases add to the same record."""
        buyer = self._new_buyer()
        self._buy(buyer, 100 * E)
        self._buy(buyer, 50 * E, timestamp=START_TIME + 10)

        purchase = self._view("get_purchase", buyer)
        self.assertEqual(purchase.amount, 150 * E)
        self.assertEqual(purchase.paid_amount, self._cost(150 * E))
        self.assertEqual(purchase.timestamp, START_TIME + 10)
        self.assertEqual(self._info().participants, 1)
        self.assertEqual(self._info().total_sold, 150 * E)

    def test_buy_credits_excess_payment(self):
        """Test that overpaying keeps exactly the cost and credits the excess as a refund."""
        buyer = self._new_buyer()
        amount = 100 * E
        cost = self._cost(amount)
        excess = 3 * E

        self._buy(buyer, amount, payment=cost + excess)

        self.assertEqual(self._view("get_refund", buyer), excess)
        self.assertEqual(self._view("get_purchase", buyer).paid_amount, cost)
        info = self._info()
        self.assertEqual(info.total_raised, cost)
        self.assertEqual(info.pending_refunds, excess)
        self.assertEqual(self.get_native_balance(self.sale_id), cost + excess)

    def test_withdraw_refund(self):
        buyer = self._new_buyer()
        cost = self._cost(100 * E)
        self._buy(buyer, 100 * E, payment=cost + 3 * E)
        self._buy(buyer, 100 * E, payment=cost + 2 * E)
        self.assertEqual(self._view("get_refund", buyer), 5 * E)

        # The withdrawal must take exactly the refund
        with self.assertRaises(InvalidAmount):
            self.call_public_method(
                self.sale_id, "withdraw_refund", buyer, actions=self.native_withdrawal(4 * E)
            )

        result = self.call_public_method(
            self.sale_id, "withdraw_refund", buyer, actions=self.native_withdrawal(5 * E)
        )
        self.assertEqual(self._view("get_refund", buyer), 0)
        self.assertEqual(self._info().pending_refunds, 0)
        self.assertEqual(self.get_native_balance(self.sale_id), 2 * cost)
        self.assertEqual(
            self.get_events(result, self.sale_id),
            [{"event": "RefundWithdrawn", "buyer": buyer.hex(), "amount": 5 * E}],
        )

        with self.assertRaises(NothingToWithdraw):
            self.call_public_method(
                self.sale_id, "withdraw_refund", buyer, actions=self.native_withdrawal(1)
            )

    def test_buy_insufficient_payment(self):
        """Test that underpaying fails and changes nothing."""
        buyer = self._new_buyer()
        amount = 100 * E

        with self.assertRaises(InsufficientPayment):
            self._buy(buyer, amount, payment=self._cost(amount) - 1)

        info = self._info()
        self.assertEqual(info.total_sold, 0)
        self.assertEqual(info.total_raised, 0)
        self.assertEqual(info.participants, 0)
        self.assertEqual(self._view("get_purchased_amount", buyer), 0)
        self.assertEqual(self.get_native_balance(self.sale_id), 0)

    def test_buy_without_payment(self):
        buyer = self._new_buyer()
        with self.assertRaises(InsufficientPayment):
            self._buy(buyer, MIN_PURCHASE, payment=0)

    def test_buy_minimum(self):
        """Test purchases just below and exactly at the minimum."""
        buyer = self._new_buyer()
        with self.assertRaises(BelowMinimum):
            self._buy(buyer, MIN_PURCHASE - 1)
        with self.assertRaises(BelowMinimum):
            self._buy(buyer, 5 * E)

        self._buy(buyer, MIN_PURCHASE)
        self.assertEqual(self._view("get_purchased_amount", buyer), MIN_PURCHASE)

    def test_buy_maximum(self):
        """Test purchases exactly at and just above the per-call maximum."""
        buyer = self._new_buyer()
        with self.assertRaises(AboveMaximum):
            self._buy(buyer, MAX_PURCHASE + 1)

        self._buy(buyer, MAX_PURCHASE)
        self.assertEqual(self._view("get_purchased_amount", buyer), MAX_PURCHASE)

    def test_buy_outside_window(self):
        """Test that the sale window is inclusive on both ends."""
        buyer = self._new_buyer()
        with self.assertRaises(SaleNotActive):
            self._buy(buyer, MIN_PURCHASE, timestamp=START_TIME - 1)
        with self.assertRaises(SaleNotActive):
            self._buy(buyer, MIN_PURCHASE, timestamp=END_TIME + 1)

        self._buy(buyer, MIN_PURCHASE, timestamp=START_TIME)
        self._buy(buyer, MIN_PURCHASE, timestamp=END_TIME)
        self.assertEqual(self._view("get_purchased_amount", buyer), 2 * MIN_PURCHASE)

    def test_is_sale_active(self):
        self.assertFalse(self._view("is_sale_active", START_TIME - 1))
        self.assertTrue(self._view("is_sale_active", START_TIME))
        self.assertTrue(self._view("is_sale_active", END_TIME))
        self.assertFalse(self._view("is_sale_active", END_TIME + 1))

    def test_buy_with_other_token(self):
        """Test that deposits of anything but the native token are refused."""
        buyer = self._new_buyer()
        with self.assertRaises(NCFail):
            self.call_public_method(
                self.sale_id,
                "buy",
                buyer,
                MIN_PURCHASE,
                [],
                actions=[NCDepositAction(token_uid=self.simulator.create_token("Other", "OTH"), amount=E)],
            )
        self.assertEqual(self._info().total_sold, 0)

    def test_supply_exhaustion(self):
        """Test the supply limit and that a sold out sale is no longer active."""
        self.sale_id = self._create_sale(min_purchase=1 * E, max_purchase=50 * E, max_supply=100 * E)
        self._mint(self.token_id, self.sale_id, 100 * E)

        self._buy(self._new_buyer(), 50 * E)
        self._buy(self._new_buyer(), 45 * E)
        self.assertEqual(self._info().total_sold, 95 * E)

        buyer = self._new_buyer()
        with self.assertRaises(SupplyExceeded):
            self._buy(buyer, 10 * E)
        self.assertEqual(self._info().total_sold, 95 * E)

        self._buy(buyer, 5 * E)
        self.assertEqual(self._info().total_sold, 100 * E)
        self.assertEqual(self._view("remaining_supply"), 0)

        # Still inside the window, but nothing left to sell
        self.assertFalse(self._view("is_sale_active", self.now()))
        with self.assertRaises(SaleNotActive):
            self._buy(self._new_buyer(), 1 * E)

    def test_not_whitelisted(self):
        """Test that a buyer becomes eligible after being whitelisted."""
        buyer = self._new_buyer(whitelisted=False)
        with self.assertRaises(NotWhitelisted):
            self._buy(buyer, MIN_PURCHASE)

        self._owner_call("update_whitelist", buyer, True)
        self._buy(buyer, MIN_PURCHASE)
        self.assertEqual(self._view("get_purchased_amount", buyer), MIN_PURCHASE)

        self._owner_call("update_whitelist", buyer, False)
        self.assertFalse(self._view("is_whitelisted", buyer))
        with self.assertRaises(NotWhitelisted):
            self._buy(buyer, MIN_PURCHASE)

    def test_whitelist_not_required(self):
        buyer = self._new_buyer(whitelisted=False)
        config = self._view("get_sale_config")._replace(whitelist_required=False)
        self._owner_call("update_sale_config", config)

        self.assertTrue(self._view("is_eligible", buyer, []))
        self._buy(buyer, MIN_PURCHASE)
        self.assertEqual(self._view("get_purchased_amount", buyer), MIN_PURCHASE)

    def test_individual_limit_across_buys(self):
        """Test that the per-call maximum also caps the total bought by an address."""
        self.sale_id = self._create_sale(max_purchase=50 * E)
        self._mint(self.token_id, self.sale_id, MAX_SUPPLY)

        buyer = self._new_buyer()
        self._buy(buyer, 30 * E)
        self.assertEqual(self._view("remaining_allocation", buyer), 20 * E)

        with self.assertRaises(IndividualLimitExceeded):
            self._buy(buyer, 30 * E)

        self._buy(buyer, 20 * E)
        self.assertEqual(self._view("get_purchased_amount", buyer), 50 * E)
        self.assertEqual(self._view("remaining_allocation", buyer), 0)
        with self.assertRaises(IndividualLimitExceeded):
            self._buy(buyer, MIN_PURCHASE)

    def test_buy_check_order(self):
        """Test that the first failing check decides the error."""
        listed = self._new_buyer()
        unlisted = self._new_buyer(whitelisted=False)

        # Not active before amount checks
        with self.assertRaises(SaleNotActive):
            self._buy(listed, 1, timestamp=START_TIME - 1)
        # Minimum before whitelist
        with self.assertRaises(BelowMinimum):
            self._buy(unlisted, 1, timestamp=START_TIME)
        # Maximum before whitelist
        with self.assertRaises(AboveMaximum):
            self._buy(unlisted, MAX_PURCHASE + 1)
        # Whitelist before payment
        with self.assertRaises(NotWhitelisted):
            self._buy(unlisted, MIN_PURCHASE, payment=0)

        # Supply before whitelist
        self.sale_id = self._create_sale(max_supply=MIN_PURCHASE)
        with self.assertRaises(SupplyExceeded):
            self._buy(unlisted, MIN_PURCHASE + 1)

    def test_merkle_proof(self):
        """Test eligibility through a proof against the merkle root."""
        buyers = [self._new_buyer(whitelisted=False) for _ in range(5)]
        outsider = self._new_buyer(whitelisted=False)
        tree = MerkleTree.from_addresses(buyers)
        self._owner_call("set_merkle_root", tree.root)

        proof = tree.get_address_proof(buyers[2])
        self.assertTrue(self._view("is_eligible", buyers[2], proof))
        self.assertFalse(self._view("is_whitelisted", buyers[2]))
        self._buy(buyers[2], MIN_PURCHASE, proof=proof)
        self.assertEqual(self._view("get_purchased_amount", buyers[2]), MIN_PURCHASE)

        # The proof of another address does not help
        with self.assertRaises(NotWhitelisted):
            self._buy(outsider, MIN_PURCHASE, proof=proof)
        # No proof at all
        with self.assertRaises(NotWhitelisted):
            self._buy(buyers[3], MIN_PURCHASE)

    def test_merkle_root_change_invalidates_proofs(self):
        buyer = self._new_buyer(whitelisted=False)
        old_tree = MerkleTree.from_addresses([buyer, self._get_any_address()])
        self._owner_call("set_merkle_root", old_tree.root)
        old_proof = old_tree.get_address_proof(buyer)
        self.assertTrue(self._view("is_eligible", buyer, old_proof))

        new_tree = MerkleTree.from_addresses([self._get_any_address(), self._get_any_address()])
        self._owner_call("set_merkle_root", new_tree.root)
        self.assertFalse(self._view("is_eligible", buyer, old_proof))
        with self.assertRaises(NotWhitelisted):
            self._buy(buyer, MIN_PURCHASE, proof=old_proof)

        # Clearing the root disables proofs entirely
        self._owner_call("set_merkle_root", b"")
        self.assertFalse(self._view("is_eligible", buyer, old_proof))

    def test_whitelist_takes_precedence_over_proof(self):
        buyer = self._new_buyer()
        self._buy(buyer, MIN_PURCHASE, proof=[b"\x01" * 32])
        self.assertTrue(self._view("is_eligible", buyer, []))

    def test_claim(self):
        """Test the claim state machine from disabled to claimed."""
        buyer = self._new_buyer()
        amount = 250 * E
        self._buy(buyer, amount)

        with self.assertRaises(ClaimingDisabled):
            self._claim(buyer)

        claim_start = START_TIME + 3600
        self._owner_call("set_claim_enabled", True, claim_start)
        with self.assertRaises(ClaimingNotStarted):
            self._claim(buyer, timestamp=claim_start - 1)

        result = self._claim(buyer, timestamp=claim_start)
        self.assertEqual(self._token_balance(buyer), amount)
        self.assertEqual(self._token_balance(self.sale_id), MAX_SUPPLY - amount)
        self.assertTrue(self._view("get_purchase", buyer).claimed)
        self.assertEqual(self._info().total_claimed, amount)
        self.assertEqual(
            self.get_events(result, self.sale_id),
            [{"event": "TokensClaimed", "buyer": buyer.hex(), "amount": amount}],
        )

        # A second claim fails and transfers nothing
        with self.assertRaises(AlreadyClaimed):
            self._claim(buyer, timestamp=claim_start + 1)
        self.assertEqual(self._token_balance(buyer), amount)
        self.assertEqual(self._token_balance(self.sale_id), MAX_SUPPLY - amount)

    def test_claim_nothing_to_claim(self):
        self._owner_call("set_claim_enabled", True, START_TIME)
        with self.assertRaises(NothingToClaim):
            self._claim(self._new_buyer())

    def test_claim_from_contract_caller(self):
        """Test that only addresses can claim, contracts never have purchases."""
        self._owner_call("set_claim_enabled", True, START_TIME)
        with self.assertRaises(InvalidAddress):
            self.call_public_method(self.sale_id, "claim_tokens", self.token_id)

    def test_buy_after_claim_is_not_claimable(self):
        """Test that the claimed latch never resets, even after buying again."""
        buyer = self._new_buyer()
        self._buy(buyer, MIN_PURCHASE)
        self._owner_call("set_claim_enabled", True, START_TIME)
        self._claim(buyer)

        self._buy(buyer, MIN_PURCHASE)
        self.assertTrue(self._view("get_purchase", buyer).claimed)
        with self.assertRaises(AlreadyClaimed):
            self._claim(buyer)

    def test_set_claim_enabled(self):
        """Test that the claim start time only changes when enabling."""
        self._owner_call("set_claim_enabled", True, START_TIME + 100)
        info = self._info()
        self.assertTrue(info.claim_enabled)
        self.assertEqual(info.claim_start_time, START_TIME + 100)

        self._owner_call("set_claim_enabled", False, START_TIME + 500)
        info = self._info()
        self.assertFalse(info.claim_enabled)
        self.assertEqual(info.claim_start_time, START_TIME + 100)

        self._owner_call("set_claim_enabled", True, 0)
        info = self._info()
        self.assertTrue(info.claim_enabled)
        self.assertEqual(info.claim_start_time, START_TIME + 100)

    def test_claim_disabled_after_enabling(self):
        buyer = self._new_buyer()
        self._buy(buyer, MIN_PURCHASE)
        self._owner_call("set_claim_enabled", True, START_TIME)
        self._owner_call("set_claim_enabled", False, 0)
        with self.assertRaises(ClaimingDisabled):
            self._claim(buyer)

    def test_update_sale_config(self):
        """Test that the configuration is replaced as a whole."""
        new_config = SaleConfig(
            token_price=2 * TOKEN_PRICE,
            min_purchase=1 * E,
            max_purchase=20 * E,
            max_supply=50_000 * E,
            start_time=START_TIME + 10,
            end_time=START_TIME + 20,
            whitelist_required=False,
        )
        result = self._owner_call("update_sale_config", new_config)
        self.assertEqual(self._view("get_sale_config"), new_config)
        self.assertEqual(self._view("calculate_cost", 10 * E), 2 * self._cost(10 * E))
        self.assertEqual([event["event"] for event in self.get_events(result)], ["SaleConfigUpdated"])

    def test_update_sale_config_requires_every_field(self):
        """Test that a configuration without the whitelist flag is refused."""
        old_config = self._view("get_sale_config")
        partial = tuple(old_config._replace(whitelist_required=False))[:-1]
        with self.assertRaises(NCFail):
            self._owner_call("update_sale_config", partial)
        self.assertEqual(self._view("get_sale_config"), old_config)

    def test_update_sale_config_invalid(self):
        old_config = self._view("get_sale_config")
        cases = [
            (old_config._replace(min_purchase=0), InvalidPricing),
            (old_config._replace(max_purchase=old_config.min_purchase - 1), InvalidPricing),
            (old_config._replace(token_price=0), InvalidPricing),
            (old_config._replace(end_time=old_config.start_time), InvalidWindow),
        ]
        for config, error in cases:
            with self.subTest(config=config):
                with self.assertRaises(error):
                    self._owner_call("update_sale_config", config)
                self.assertEqual(self._view("get_sale_config"), old_config)

    def test_update_sale_config_supply_below_sold(self):
        """Test that the supply cannot go below what was sold and purchases are kept."""
        buyer = self._new_buyer()
        self._buy(buyer, 100 * E)
        old_config = self._view("get_sale_config")

        with self.assertRaises(SupplyBelowSold):
            self._owner_call("update_sale_config", old_config._replace(max_supply=99 * E))
        self.assertEqual(self._view("get_sale_config"), old_config)

        # Lowering the cap below an existing purchase keeps the purchase
        self._owner_call(
            "update_sale_config",
            old_config._replace(max_supply=100 * E + MIN_PURCHASE, max_purchase=50 * E),
        )
        self.assertEqual(self._view("get_purchased_amount", buyer), 100 * E)
        self.assertEqual(self._view("remaining_allocation", buyer), 0)
        with self.assertRaises(IndividualLimitExceeded):
            self._buy(buyer, MIN_PURCHASE)

    def test_owner_only(self):
        """Test that admin methods check the caller before anything else."""
        stranger = self._get_any_address()
        config = self._view("get_sale_config")
        calls = [
            ("update_sale_config", (config._replace(max_supply=0),)),
            ("set_claim_enabled", (True, START_TIME)),
            ("update_whitelist", (ZERO_ADDRESS, True)),
            ("update_whitelist_batch", ([], True)),
            ("set_merkle_root", (b"\x01" * 32,)),
            ("update_treasury", (ZERO_ADDRESS,)),
            ("transfer_ownership", (stranger,)),
            ("emergency_withdraw", (self.token_id, MAX_SUPPLY + 1)),
            ("emergency_withdraw_native", ()),
        ]
        for method_name, args in calls:
            with self.subTest(method=method_name):
                with self.assertRaises(Unauthorized):
                    self.call_public_method(self.sale_id, method_name, stranger, *args)

    def test_update_whitelist_batch(self):
        accounts = [self._get_any_address() for _ in range(3)]
        result = self._owner_call("update_whitelist_batch", accounts, True)
        for account in accounts:
            self.assertTrue(self._view("is_whitelisted", account))
        self.assertEqual(len(self.get_events(result)), 3)

        self._owner_call("update_whitelist_batch", accounts[:2], False)
        self.assertFalse(self._view("is_whitelisted", accounts[0]))
        self.assertFalse(self._view("is_whitelisted", accounts[1]))
        self.assertTrue(self._view("is_whitelisted", accounts[2]))

    def test_update_whitelist_batch_invalid(self):
        with self.assertRaises(EmptyBatch):
            self._owner_call("update_whitelist_batch", [], True)

        too_many = [self._get_any_address() for _ in range(101)]
        with self.assertRaises(BatchTooLarge):
            self._owner_call("update_whitelist_batch", too_many, True)
        self._owner_call("update_whitelist_batch", too_many[:100], True)

        # A zero address rejects the whole batch
        account = self._get_any_address()
        with self.assertRaises(InvalidAddress):
            self._owner_call("update_whitelist_batch", [account, ZERO_ADDRESS], True)
        self.assertFalse(self._view("is_whitelisted", account))

    def test_update_whitelist_zero_address(self):
        with self.assertRaises(InvalidAddress):
            self._owner_call("update_whitelist", ZERO_ADDRESS, True)

    def test_withdraw_raised(self):
        """Test that the treasury withdraws raised funds, partially or in full."""
        buyer = self._new_buyer()
        cost = self._cost(1000 * E)
        self._buy(buyer, 1000 * E, payment=cost + E)

        with self.assertRaises(Unauthorized):
            self.call_public_method(
                self.sale_id, "withdraw_raised", buyer, actions=self.native_withdrawal(cost)
            )
        with self.assertRaises(WithdrawalExceedsAvailable):
            self.call_public_method(
                self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(cost + 1)
            )

        self.call_public_method(
            self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(cost // 4)
        )
        self.assertEqual(self._view("get_withdrawable_raised"), cost - cost // 4)
        self.call_public_method(
            self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(cost - cost // 4)
        )
        self.assertEqual(self._view("get_withdrawable_raised"), 0)

        # Only the refund is left in the sale
        self.assertEqual(self.get_native_balance(self.sale_id), E)
        with self.assertRaises(NothingToWithdraw):
            self.call_public_method(
                self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(1)
            )

    def test_update_treasury(self):
        new_treasury = self._get_any_address()
        self._owner_call("update_treasury", new_treasury)
        self.assertEqual(self._info().treasury, str(new_treasury))

        buyer = self._new_buyer()
        cost = self._cost(MIN_PURCHASE)
        self._buy(buyer, MIN_PURCHASE)
        with self.assertRaises(Unauthorized):
            self.call_public_method(
                self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(cost)
            )
        self.call_public_method(
            self.sale_id, "withdraw_raised", new_treasury, actions=self.native_withdrawal(cost)
        )

        with self.assertRaises(InvalidAddress):
            self._owner_call("update_treasury", ZERO_ADDRESS)

    def test_transfer_ownership(self):
        new_owner = self._get_any_address()
        self._owner_call("transfer_ownership", new_owner)
        self.assertEqual(self._info().owner, str(new_owner))

        with self.assertRaises(Unauthorized):
            self._owner_call("set_claim_enabled", True, START_TIME)

        self.call_public_method(self.sale_id, "set_claim_enabled", new_owner, True, START_TIME)
        self.assertTrue(self._info().claim_enabled)

    def test_emergency_withdraw_sale_token(self):
        """Test that sold tokens can never be withdrawn."""
        buyer = self._new_buyer()
        self._buy(buyer, 100 * E)
        available = MAX_SUPPLY - 100 * E

        with self.assertRaises(WithdrawalExceedsAvailable):
            self._owner_call("emergency_withdraw", self.token_id, available + 1)

        self._owner_call("emergency_withdraw", self.token_id, available)
        self.assertEqual(self._token_balance(self.owner), available)
        self.assertEqual(self._token_balance(self.sale_id), 100 * E)

        # Buyers can still claim what they bought
        self._owner_call("set_claim_enabled", True, START_TIME)
        self._claim(buyer)
        self.assertEqual(self._token_balance(buyer), 100 * E)

    def test_emergency_withdraw_repeated_keeps_unclaimed_tokens(self):
        """Test that consecutive withdrawals never dig into tokens owed to buyers."""
        buyer = self._new_buyer()
        self._buy(buyer, 100 * E)
        unsold = MAX_SUPPLY - 100 * E

        self._owner_call("emergency_withdraw", self.token_id, unsold)
        with self.assertRaises(WithdrawalExceedsAvailable):
            self._owner_call("emergency_withdraw", self.token_id, unsold)
        with self.assertRaises(WithdrawalExceedsAvailable):
            self._owner_call("emergency_withdraw", self.token_id, 1)
        self.assertEqual(self._token_balance(self.sale_id), 100 * E)

        self._owner_call("set_claim_enabled", True, START_TIME)
        self._claim(buyer)
        self.assertEqual(self._token_balance(buyer), 100 * E)
        self.assertEqual(self._token_balance(self.sale_id), 0)

    def test_emergency_withdraw_underfunded_sale(self):
        """Test that the balance held in the token bounds the withdrawal, not only the unsold supply."""
        self.sale_id = self._create_sale(max_supply=1000 * E)
        self._mint(self.token_id, self.sale_id, 300 * E)
        first = self._new_buyer()
        second = self._new_buyer()
        self._buy(first, 100 * E)
        self._buy(second, 50 * E)

        # 300 held, 150 owed
        with self.assertRaises(WithdrawalExceedsAvailable):
            self._owner_call("emergency_withdraw", self.token_id, 150 * E + 1)

        self._owner_call("set_claim_enabled", True, START_TIME)
        self._claim(first)
        # 200 held, 50 owed
        with self.assertRaises(WithdrawalExceedsAvailable):
            self._owner_call("emergency_withdraw", self.token_id, 150 * E + 1)
        self._owner_call("emergency_withdraw", self.token_id, 150 * E)

        self._claim(second)
        self.assertEqual(self._token_balance(second), 50 * E)
        self.assertEqual(self._token_balance(self.sale_id), 0)
        self.assertEqual(self._info().total_claimed, 150 * E)

    def test_emergency_withdraw_other_token(self):
        other_token = self._create_token("Other", "OTH")
        self._mint(other_token, self.sale_id, 500 * E)

        self._owner_call("emergency_withdraw", other_token, 500 * E)
        self.assertEqual(self._token_balance(self.owner, other_token), 500 * E)
        self.assertEqual(self._token_balance(self.sale_id, other_token), 0)

        with self.assertRaises(InvalidAmount):
            self._owner_call("emergency_withdraw", other_token, 0)

    def test_emergency_withdraw_native(self):
        """Test that the owner sweeps raised funds but never the refunds owed to buyers."""
        with self.assertRaises(NothingToWithdraw):
            self._owner_call("emergency_withdraw_native")

        buyer = self._new_buyer()
        cost = self._cost(500 * E)
        self._buy(buyer, 500 * E, payment=cost + 2 * E)

        with self.assertRaises(InvalidAmount):
            self._owner_call("emergency_withdraw_native", actions=self.native_withdrawal(cost + 2 * E))

        self._owner_call("emergency_withdraw_native", actions=self.native_withdrawal(cost))
        self.assertEqual(self._view("get_withdrawable_raised"), 0)
        self.assertEqual(self.get_native_balance(self.sale_id), 2 * E)

        self.call_public_method(
            self.sale_id, "withdraw_refund", buyer, actions=self.native_withdrawal(2 * E)
        )
        self.assertEqual(self.get_native_balance(self.sale_id), 0)

    def test_calculate_cost_rounds_down(self):
        self.assertEqual(self._view("calculate_cost", 1), 0)
        self.assertEqual(self._view("calculate_cost", 999), 0)
        self.assertEqual(self._view("calculate_cost", 1000), 1)
        self.assertEqual(self._view("calculate_cost", 10 * E), 10**16)

    def test_get_sale_info(self):
        buyer = self._new_buyer()
        self._buy(buyer, 100 * E, payment=self._cost(100 * E) + 7)
        info = self._info()
        self.assertEqual(info.total_sold, 100 * E)
        self.assertEqual(info.total_raised, self._cost(100 * E))
        self.assertEqual(info.withdrawable_raised, self._cost(100 * E))
        self.assertEqual(info.pending_refunds, 7)
        self.assertEqual(info.participants, 1)
        self.assertFalse(info.claim_enabled)
        self.assertEqual(info.merkle_root, "")

    def test_native_balance_matches_ledger(self):
        """Test that the native balance always equals refunds plus raised funds not withdrawn."""
        buyers = [self._new_buyer() for _ in range(4)]
        amounts = [10 * E, 333 * E, 10_000 * E, 1234 * E + 1]
        for i, (buyer, amount) in enumerate(zip(buyers, amounts)):
            self._buy(buyer, amount, payment=self._cost(amount) + i)

        info = self._info()
        self.assertEqual(info.total_sold, sum(amounts))
        self.assertEqual(info.total_raised, sum(self._cost(amount) for amount in amounts))
        self.assertEqual(info.participants, len(buyers))
        self.assertEqual(
            self.get_native_balance(self.sale_id),
            info.pending_refunds + info.total_raised,
        )

        self.call_public_method(
            self.sale_id, "withdraw_raised", self.treasury, actions=self.native_withdrawal(E)
        )
        info = self._info()
        self.assertEqual(
            self.get_native_balance(self.sale_id),
            info.pending_refunds + info.withdrawable_raised,
        )
