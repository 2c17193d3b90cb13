# Copyright 2025 Hathor Labs
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from typing import NamedTuple

from hathorlib.conf.settings import HATHOR_TOKEN_UID
from hathorlib.nanocontracts import Blueprint, Context, NCFail
from hathorlib.nanocontracts.types import (
    Address,
    Amount,
    ContractId,
    NCDepositAction,
    NCWithdrawalAction,
    Timestamp,
    TokenUid,
    export,
    public,
    view,
)
from hathorlib.nanocontracts.utils import json_dumps

from wlsale.crypto import merkle

HTR_UID = HATHOR_TOKEN_UID
MAX_WHITELIST_BATCH = 100


class SaleConfig(NamedTuple):
    """Sale parameters, always replaced as a whole."""

    token_price: int  # Payment per whole token, scaled by 10**decimals
    min_purchase: int  # Minimum tokens per purchase
    max_purchase: int  # Maximum tokens per purchase and per address
    max_supply: int  # Tokens offered
    start_time: int
    end_time: int
    whitelist_required: bool


class PurchaseInfo(NamedTuple):
    """Participant purchase record."""

    amount: int
    paid_amount: int
    timestamp: int
    claimed: bool


class PurchaseReceipt(NamedTuple):
    buyer: str
    amount: int
    cost: int
    refund: int
    timestamp: int


class SaleInfo(NamedTuple):
    """General sale information."""

    token: str
    treasury: str
    owner: str
    token_price: int
    min_purchase: int
    max_purchase: int
    max_supply: int
    start_time: int
    end_time: int
    whitelist_required: bool
    total_sold: int
    total_raised: int
    total_claimed: int
    participants: int
    withdrawable_raised: int
    pending_refunds: int
    claim_enabled: bool
    claim_start_time: int
    merkle_root: str


class WhitelistSaleError(NCFail):
    """Base error for WhitelistSale operations."""
    pass


class Unauthorized(WhitelistSaleError):
    pass


class InvalidAddress(WhitelistSaleError):
    pass


class InvalidPayment(WhitelistSaleError):
    pass


class SaleNotActive(WhitelistSaleError):
    pass


class BelowMinimum(WhitelistSaleError):
    pass


class AboveMaximum(WhitelistSaleError):
    pass


class SupplyExceeded(WhitelistSaleError):
    pass


class NotWhitelisted(WhitelistSaleError):
    pass


class IndividualLimitExceeded(WhitelistSaleError):
    pass


class InsufficientPayment(WhitelistSaleError):
    pass


class ClaimingDisabled(WhitelistSaleError):
    pass


class ClaimingNotStarted(WhitelistSaleError):
    pass


class NothingToClaim(WhitelistSaleError):
    pass


class AlreadyClaimed(WhitelistSaleError):
    pass


class InvalidPricing(WhitelistSaleError):
    pass


class InvalidWindow(WhitelistSaleError):
    pass


class SupplyBelowSold(WhitelistSaleError):
    pass


class EmptyBatch(WhitelistSaleError):
    pass


class BatchTooLarge(WhitelistSaleError):
    pass


class InvalidAmount(WhitelistSaleError):
    pass


class WithdrawalExceedsAvailable(WhitelistSaleError):
    pass


class NothingToWithdraw(WhitelistSaleError):
    pass


def _is_zero(value: bytes) -> bool:
    return not any(value)


@export
class WhitelistSale(Blueprint):
    """Fixed-window token sale where buying and claiming are separate steps.

    Buyers pay with a native deposit during the sale window and get a
    purchase record. The tokens themselves are transferred from this
    contract's balance in the token contract only when the owner enables
    claiming and the claim start time has passed. Purchases can be restricted
    to an explicit whitelist or to addresses holding a proof against a Merkle
    root.

    Native currency only leaves the contract through withdrawal actions:
    the treasury withdraws what was raised and each buyer withdraws the
    excess of their payments.

    State Variables:
        token: Contract of the token being sold
        treasury: Address allowed to withdraw the raised funds
        price_scale: 10**decimals of the token, divides amount * token_price

        Purchase records (per buyer):
        purchased: Tokens bought, never decreases
        paid: Native currency paid, never decreases
        purchase_timestamps: Time of the last purchase
        claimed: Set once the tokens were transferred, never reset
        refunds: Overpayment waiting to be withdrawn

    The native balance is always pending_refunds + total_raised - raised_withdrawn.
    """

    # Contracts and accounts
    token: ContractId
    treasury: Address
    owner: Address
    price_scale: int

    # Sale configuration
    token_price: Amount
    min_purchase: Amount
    max_purchase: Amount
    max_supply: Amount
    start_time: Timestamp
    end_time: Timestamp
    whitelist_required: bool

    # Totals
    total_sold: Amount
    total_raised: Amount
    total_claimed: Amount
    participants_count: int
    raised_withdrawn: Amount
    pending_refunds: Amount

    # Purchase records
    purchased: dict[Address, Amount]
    paid: dict[Address, Amount]
    purchase_timestamps: dict[Address, Timestamp]
    claimed: dict[Address, bool]
    refunds: dict[Address, Amount]

    # Allow-lists
    whitelist: dict[Address, bool]
    merkle_root: bytes

    # Claiming
    claim_enabled: bool
    claim_start_time: Timestamp

    @public
    def initialize(
        self,
        ctx: Context,
        token: ContractId,
        treasury: Address,
        token_price: Amount,
        min_purchase: Amount,
        max_purchase: Amount,
        max_supply: Amount,
        start_time: Timestamp,
        end_time: Timestamp,
        initial_owner: Address,
    ) -> None:
        """Initialize the sale with its token, treasury, owner and configuration."""
        if _is_zero(token):
            raise InvalidAddress('token cannot be the zero address')
        if _is_zero(treasury):
            raise InvalidAddress('treasury cannot be the zero address')
        if _is_zero(initial_owner):
            raise InvalidAddress('owner cannot be the zero address')

        self.total_sold = Amount(0)
        self.total_raised = Amount(0)
        self.total_claimed = Amount(0)
        self.participants_count = 0
        self.raised_withdrawn = Amount(0)
        self.pending_refunds = Amount(0)

        config = SaleConfig(
            token_price=token_price,
            min_purchase=min_purchase,
            max_purchase=max_purchase,
            max_supply=max_supply,
            start_time=start_time,
            end_time=end_time,
            whitelist_required=True,
        )
        self._validate_config(config)
        self._set_config(config)

        decimals = self.syscall.get_contract(token, blueprint_id=None).view().decimals()
        self.token = token
        self.price_scale = 10**decimals
        self.treasury = treasury
        self.owner = initial_owner

        self.purchased = {}
        self.paid = {}
        self.purchase_timestamps = {}
        self.claimed = {}
        self.refunds = {}
        self.whitelist = {}
        self.merkle_root = b''
        self.claim_enabled = False
        self.claim_start_time = Timestamp(0)

    def _get_caller_address(self, ctx: Context) -> Address:
        address = ctx.get_caller_address()
        if address is None:
            raise InvalidAddress('caller must be an address')
        return address

    def _get_payment(self, ctx: Context) -> Amount:
        """Sum of the native deposits of the call. Other tokens are refused."""
        payment = 0
        for token_uid, actions in ctx.actions.items():
            if token_uid != HTR_UID:
                raise InvalidPayment('only the native token is accepted')
            for action in actions:
                if not isinstance(action, NCDepositAction):
                    raise InvalidPayment('expected a deposit action')
                payment += action.amount
        return Amount(payment)

    def _get_withdrawal(self, ctx: Context) -> Amount:
        action = ctx.get_single_action(TokenUid(HTR_UID))
        if not isinstance(action, NCWithdrawalAction):
            raise InvalidAmount('expected a native withdrawal action')
        return Amount(action.amount)

    def _emit(self, event: str, **data: object) -> None:
        self.syscall.emit_event(json_dumps(dict(event=event, **data)).encode('utf-8'))

    @public(allow_deposit=True)
    def buy(self, ctx: Context, amount: Amount, proof: list[bytes]) -> PurchaseReceipt:
        """Buy `amount` tokens, paying with the native deposit of the call.

        The tokens are only recorded here and become transferable with
        `claim_tokens`. The cost is kept for the treasury and any excess is
        credited to the buyer, who gets it back with `withdraw_refund`.
        Pass an empty `proof` when not relying on the Merkle allow-list.
        """
        buyer = self._get_caller_address(ctx)
        payment = self._get_payment(ctx)
        now = Timestamp(ctx.block.timestamp)

        if not self._is_active(now):
            raise SaleNotActive('sale is not active')
        if amount < self.min_purchase:
            raise BelowMinimum(f'amount below minimum of {self.min_purchase}')
        if amount > self.max_purchase:
            raise AboveMaximum(f'amount above maximum of {self.max_purchase}')
        if self.total_sold + amount > self.max_supply:
            raise SupplyExceeded(f'only {self.max_supply - self.total_sold} tokens left')
        if self.whitelist_required and not self._is_eligible(buyer, proof):
            raise NotWhitelisted('address is not whitelisted')

        already_purchased = self.purchased.get(buyer, Amount(0))
        if already_purchased + amount > self.max_purchase:
            raise IndividualLimitExceeded(f'address can buy at most {self.max_purchase - already_purchased} more')

        cost = self._calculate_cost(amount)
        if payment < cost:
            raise InsufficientPayment(f'payment of {payment} is below the required {cost}')

        if buyer not in self.purchased:
            self.participants_count += 1
            self.claimed[buyer] = False
        self.purchased[buyer] = Amount(already_purchased + amount)
        self.paid[buyer] = Amount(self.paid.get(buyer, 0) + cost)
        self.purchase_timestamps[buyer] = now
        self.total_sold = Amount(self.total_sold + amount)
        self.total_raised = Amount(self.total_raised + cost)

        refund = Amount(payment - cost)
        if refund > 0:
            self.refunds[buyer] = Amount(self.refunds.get(buyer, 0) + refund)
            self.pending_refunds = Amount(self.pending_refunds + refund)

        self._emit('TokensPurchased', buyer=buyer, amount=amount, cost=cost, timestamp=now)
        return PurchaseReceipt(
            buyer=str(buyer),
            amount=amount,
            cost=cost,
            refund=refund,
            timestamp=now,
        )

    @public
    def claim_tokens(self, ctx: Context) -> Amount:
        """Transfer every token bought by the caller. Each buyer can claim once."""
        if not self.claim_enabled:
            raise ClaimingDisabled('claiming is not enabled')
        if ctx.block.timestamp < self.claim_start_time:
            raise ClaimingNotStarted('claiming has not started')

        buyer = self._get_caller_address(ctx)
        amount = self.purchased.get(buyer, Amount(0))
        if amount == 0:
            raise NothingToClaim('no tokens to claim')
        if self.claimed.get(buyer, False):
            raise AlreadyClaimed('already claimed')

        self.claimed[buyer] = True
        self.total_claimed = Amount(self.total_claimed + amount)
        self.syscall.get_contract(self.token, blueprint_id=None).public().transfer(buyer, amount)

        self._emit('TokensClaimed', buyer=buyer, amount=amount)
        return amount

    @public(allow_withdrawal=True)
    def withdraw_refund(self, ctx: Context) -> Amount:
        """Withdraw the whole overpayment credited to the caller."""
        buyer = self._get_caller_address(ctx)
        refund = self.refunds.get(buyer, Amount(0))
        if refund == 0:
            raise NothingToWithdraw('no refund to withdraw')
        amount = self._get_withdrawal(ctx)
        if amount != refund:
            raise InvalidAmount(f'withdrawal must be exactly {refund}')

        del self.refunds[buyer]
        self.pending_refunds = Amount(self.pending_refunds - refund)
        self._emit('RefundWithdrawn', buyer=buyer, amount=refund)
        return refund

    @public(allow_withdrawal=True)
    def withdraw_raised(self, ctx: Context) -> Amount:
        """Withdraw raised funds to the treasury (treasury only). Partial withdrawals are allowed."""
        if ctx.caller_id != self.treasury:
            raise Unauthorized('Only treasury can withdraw raised funds')
        available = self._withdrawable_raised()
        if available == 0:
            raise NothingToWithdraw('no raised funds to withdraw')
        amount = self._get_withdrawal(ctx)
        if amount > available:
            raise WithdrawalExceedsAvailable(f'only {available} can be withdrawn')

        self.raised_withdrawn = Amount(self.raised_withdrawn + amount)
        self._emit('FundsWithdrawn', treasury=self.treasury, amount=amount)
        return amount

    def _only_owner(self, ctx: Context) -> None:
        if ctx.caller_id != self.owner:
            raise Unauthorized('Only owner can call this method')

    @public
    def update_sale_config(self, ctx: Context, config: SaleConfig) -> None:
        """Replace the whole sale configuration (owner only).

        Purchases made under the previous configuration are kept as they are.
        """
        self._only_owner(ctx)
        self._validate_config(config)
        self._set_config(config)
        self._emit('SaleConfigUpdated', config=config)

    @public
    def set_claim_enabled(self, ctx: Context, enabled: bool, claim_start: Timestamp) -> None:
        """Enable or disable claiming (owner only).

        The claim start time only changes when enabling with a positive
        `claim_start`; disabling keeps the previous one.
        """
        self._only_owner(ctx)
        self.claim_enabled = enabled
        if enabled and claim_start > 0:
            self.claim_start_time = claim_start
        self._emit('ClaimStatusUpdated', enabled=enabled, claim_start_time=self.claim_start_time)

    @public
    def update_whitelist(self, ctx: Context, account: Address, status: bool) -> None:
        self._only_owner(ctx)
        if _is_zero(account):
            raise InvalidAddress('cannot whitelist zero address')
        self._set_whitelisted(account, status)

    @public
    def update_whitelist_batch(self, ctx: Context, accounts: list[Address], status: bool) -> None:
        self._only_owner(ctx)
        if not accounts:
            raise EmptyBatch('empty accounts array')
        if len(accounts) > MAX_WHITELIST_BATCH:
            raise BatchTooLarge(f'at most {MAX_WHITELIST_BATCH} accounts per batch')
        if any(_is_zero(account) for account in accounts):
            raise InvalidAddress('cannot whitelist zero address')
        for account in accounts:
            self._set_whitelisted(account, status)

    def _set_whitelisted(self, account: Address, status: bool) -> None:
        if status:
            self.whitelist[account] = True
        elif account in self.whitelist:
            del self.whitelist[account]
        self._emit('WhitelistUpdated', account=account, status=status)

    @public
    def set_merkle_root(self, ctx: Context, root: bytes) -> None:
        """Replace the Merkle root. Proofs for the previous root stop working at once."""
        self._only_owner(ctx)
        self.merkle_root = root
        self._emit('MerkleRootUpdated', root=root)

    @public
    def update_treasury(self, ctx: Context, treasury: Address) -> None:
        self._only_owner(ctx)
        if _is_zero(treasury):
            raise InvalidAddress('treasury cannot be the zero address')
        self.treasury = treasury
        self._emit('TreasuryUpdated', treasury=treasury)

    @public
    def transfer_ownership(self, ctx: Context, new_owner: Address) -> None:
        self._only_owner(ctx)
        if _is_zero(new_owner):
            raise InvalidAddress('new owner cannot be the zero address')
        previous = self.owner
        self.owner = new_owner
        self._emit('OwnershipTransferred', previous_owner=previous, new_owner=new_owner)

    @public
    def emergency_withdraw(self, ctx: Context, token: ContractId, amount: Amount) -> None:
        """Send tokens held by the sale to the owner (owner only).

        For the sale token only unsold tokens can be taken, and the balance
        left behind always covers every purchase that was not claimed yet.
        """
        self._only_owner(ctx)
        if amount <= 0:
            raise InvalidAmount('amount must be positive')

        token_contract = self.syscall.get_contract(token, blueprint_id=None)
        if token == self.token:
            held = token_contract.view().balance_of(self.syscall.get_contract_id())
            owed = self.total_sold - self.total_claimed
            available = max(min(self.max_supply - self.total_sold, held - owed), 0)
            if amount > available:
                raise WithdrawalExceedsAvailable(f'only {available} unsold tokens can be withdrawn')

        token_contract.public().transfer(self.owner, amount)
        self._emit('EmergencyWithdraw', token=token, amount=amount)

    @public(allow_withdrawal=True)
    def emergency_withdraw_native(self, ctx: Context) -> Amount:
        """Withdraw every raised native unit not yet taken by the treasury (owner only).

        The withdrawal action must ask for exactly that amount. Refunds owed
        to buyers stay in the contract.
        """
        self._only_owner(ctx)
        available = self._withdrawable_raised()
        if available == 0:
            raise NothingToWithdraw('no native balance to withdraw')
        amount = self._get_withdrawal(ctx)
        if amount != available:
            raise InvalidAmount(f'withdrawal must be exactly {available}')

        self.raised_withdrawn = Amount(self.raised_withdrawn + amount)
        self._emit('EmergencyWithdraw', token=HTR_UID, amount=amount)
        return amount

    def _validate_config(self, config: SaleConfig) -> None:
        if config.token_price <= 0:
            raise InvalidPricing('token price must be positive')
        if config.min_purchase <= 0 or config.max_purchase < config.min_purchase:
            raise InvalidPricing('invalid purchase limits')
        if config.end_time <= config.start_time:
            raise InvalidWindow('end time must be after start time')
        if config.max_supply < self.total_sold:
            raise SupplyBelowSold(f'max supply cannot be below the {self.total_sold} tokens sold')

    def _set_config(self, config: SaleConfig) -> None:
        self.token_price = Amount(config.token_price)
        self.min_purchase = Amount(config.min_purchase)
        self.max_purchase = Amount(config.max_purchase)
        self.max_supply = Amount(config.max_supply)
        self.start_time = Timestamp(config.start_time)
        self.end_time = Timestamp(config.end_time)
        self.whitelist_required = config.whitelist_required

    def _is_active(self, timestamp: int) -> bool:
        return self.start_time <= timestamp <= self.end_time and self.total_sold < self.max_supply

    def _is_eligible(self, account: Address, proof: list[bytes]) -> bool:
        if self.whitelist.get(account, False):
            return True
        if not self.merkle_root or not proof:
            return False
        return merkle.verify(proof, self.merkle_root, merkle.hash_leaf(account))

    def _calculate_cost(self, amount: int) -> Amount:
        return Amount(amount * self.token_price // self.price_scale)

    def _withdrawable_raised(self) -> Amount:
        return Amount(self.total_raised - self.raised_withdrawn)

    @view
    def is_sale_active(self, timestamp: Timestamp) -> bool:
        """Whether a purchase made at `timestamp` would find the sale open."""
        return self._is_active(timestamp)

    @view
    def is_whitelisted(self, account: Address) -> bool:
        return self.whitelist.get(account, False)

    @view
    def is_eligible(self, account: Address, proof: list[bytes]) -> bool:
        """Whether `account` may buy, considering `whitelist_required`."""
        if not self.whitelist_required:
            return True
        return self._is_eligible(account, proof)

    @view
    def calculate_cost(self, amount: Amount) -> Amount:
        return self._calculate_cost(amount)

    @view
    def get_purchase(self, account: Address) -> PurchaseInfo:
        return PurchaseInfo(
            amount=self.purchased.get(account, 0),
            paid_amount=self.paid.get(account, 0),
            timestamp=self.purchase_timestamps.get(account, 0),
            claimed=self.claimed.get(account, False),
        )

    @view
    def get_purchased_amount(self, account: Address) -> Amount:
        return self.purchased.get(account, Amount(0))

    @view
    def get_refund(self, account: Address) -> Amount:
        return self.refunds.get(account, Amount(0))

    @view
    def get_withdrawable_raised(self) -> Amount:
        return self._withdrawable_raised()

    @view
    def remaining_supply(self) -> Amount:
        return Amount(self.max_supply - self.total_sold)

    @view
    def remaining_allocation(self, account: Address) -> Amount:
        return Amount(max(self.max_purchase - self.purchased.get(account, 0), 0))

    @view
    def get_sale_config(self) -> SaleConfig:
        return SaleConfig(
            token_price=self.token_price,
            min_purchase=self.min_purchase,
            max_purchase=self.max_purchase,
            max_supply=self.max_supply,
            start_time=self.start_time,
            end_time=self.end_time,
            whitelist_required=self.whitelist_required,
        )

    @view
    def get_sale_info(self) -> SaleInfo:
        return SaleInfo(
            token=self.token.hex(),
            treasury=str(self.treasury),
            owner=str(self.owner),
            token_price=self.token_price,
            min_purchase=self.min_purchase,
            max_purchase=self.max_purchase,
            max_supply=self.max_supply,
            start_time=self.start_time,
            end_time=self.end_time,
            whitelist_required=self.whitelist_required,
            total_sold=self.total_sold,
            total_raised=self.total_raised,
            total_claimed=self.total_claimed,
            participants=self.participants_count,
            withdrawable_raised=self._withdrawable_raised(),
            pending_refunds=self.pending_refunds,
            claim_enabled=self.claim_enabled,
            claim_start_time=self.claim_start_time,
            merkle_root=self.merkle_root.hex(),
        )
