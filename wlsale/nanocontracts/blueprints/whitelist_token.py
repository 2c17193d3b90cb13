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

from hathorlib.nanocontracts import Blueprint, Context, NCFail
from hathorlib.nanocontracts.types import Address, Amount, CallerId, ContractId, export, public, view
from hathorlib.nanocontracts.utils import json_dumps

DECIMALS = 18
MAX_SUPPLY = 1_000_000_000 * 10**DECIMALS


class TokenInfo(NamedTuple):
    """General token information."""

    name: str
    symbol: str
    decimals: int
    total_supply: int
    max_supply: int
    owner: str
    paused: bool


class WhitelistTokenError(NCFail):
    """Base error for WhitelistToken operations."""
    pass


class Unauthorized(WhitelistTokenError):
    """Raised when a non-owner calls an owner-only method."""
    pass


class EnforcedPause(WhitelistTokenError):
    """Raised when the token is paused."""
    pass


class ExpectedPause(WhitelistTokenError):
    """Raised when unpausing a token that is not paused."""
    pass


class InvalidAddress(WhitelistTokenError):
    pass


class InvalidAmount(WhitelistTokenError):
    pass


class ExceedsMaxSupply(WhitelistTokenError):
    pass


class InsufficientBalance(WhitelistTokenError):
    pass


class CannotRecoverOwnToken(WhitelistTokenError):
    pass


def _is_zero(value: bytes) -> bool:
    return not any(value)


@export
class WhitelistToken(Blueprint):
    """Fungible token with a fixed supply ceiling, a pause switch and an owner.

    Tokens only come into existence through `mint`, and the total supply can
    never go above MAX_SUPPLY. Holders are addresses or contracts, so a sale
    contract can hold the supply it pays out. No method accepts deposits, so
    native currency sent along with a call is rejected.
    """

    token_name: str
    token_symbol: str
    token_decimals: int
    owner: Address
    paused: bool
    supply: Amount
    balances: dict[CallerId, Amount]

    @public
    def initialize(self, ctx: Context, name: str, symbol: str, initial_owner: Address) -> None:
        if _is_zero(initial_owner):
            raise InvalidAddress('owner cannot be the zero address')
        if not name or not symbol:
            raise WhitelistTokenError('name and symbol are required')

        self.token_name = name
        self.token_symbol = symbol
        self.token_decimals = DECIMALS
        self.owner = initial_owner
        self.paused = False
        self.supply = Amount(0)
        self.balances = {}

    def _only_owner(self, ctx: Context) -> None:
        if ctx.caller_id != self.owner:
            raise Unauthorized('Only owner can call this method')

    def _when_not_paused(self) -> None:
        if self.paused:
            raise EnforcedPause('token is paused')

    def _emit(self, event: str, **data: object) -> None:
        self.syscall.emit_event(json_dumps(dict(event=event, **data)).encode('utf-8'))

    @public
    def mint(self, ctx: Context, to: CallerId, amount: Amount) -> None:
        """Create `amount` tokens for `to` (owner only)."""
        self._only_owner(ctx)
        self._when_not_paused()
        if _is_zero(to):
            raise InvalidAddress('cannot mint to zero address')
        if amount <= 0:
            raise InvalidAmount('amount must be positive')
        if self.supply + amount > MAX_SUPPLY:
            raise ExceedsMaxSupply('exceeds maximum supply')

        self.supply = Amount(self.supply + amount)
        self.balances[to] = Amount(self.balances.get(to, 0) + amount)
        self._emit('Mint', to=to, amount=amount)

    @public
    def transfer(self, ctx: Context, to: CallerId, amount: Amount) -> None:
        """Move `amount` tokens from the caller to `to`."""
        self._when_not_paused()
        if _is_zero(to):
            raise InvalidAddress('cannot transfer to zero address')
        if amount < 0:
            raise InvalidAmount('amount must not be negative')

        sender = ctx.caller_id
        balance = self.balances.get(sender, Amount(0))
        if balance < amount:
            raise InsufficientBalance(f'balance is {balance}, needed {amount}')

        self.balances[sender] = Amount(balance - amount)
        self.balances[to] = Amount(self.balances.get(to, 0) + amount)
        self._emit('Transfer', sender=sender, to=to, amount=amount)

    @public
    def burn(self, ctx: Context, amount: Amount) -> None:
        """Destroy `amount` tokens of the caller."""
        self._when_not_paused()
        if amount <= 0:
            raise InvalidAmount('amount must be positive')

        sender = ctx.caller_id
        balance = self.balances.get(sender, Amount(0))
        if balance < amount:
            raise InsufficientBalance(f'balance is {balance}, needed {amount}')

        self.balances[sender] = Amount(balance - amount)
        self.supply = Amount(self.supply - amount)
        self._emit('Burn', sender=sender, amount=amount)

    @public
    def pause(self, ctx: Context) -> None:
        self._only_owner(ctx)
        self._when_not_paused()
        self.paused = True
        self._emit('Paused', account=ctx.caller_id)

    @public
    def unpause(self, ctx: Context) -> None:
        self._only_owner(ctx)
        if not self.paused:
            raise ExpectedPause('token is not paused')
        self.paused = False
        self._emit('Unpaused', account=ctx.caller_id)

    @public
    def transfer_ownership(self, ctx: Context, new_owner: Address) -> None:
        self._only_owner(ctx)
        if _is_zero(new_owner):
            raise InvalidAddress('new owner cannot be the zero address')
        previous = self.owner
        self.owner = new_owner
        self._emit('OwnershipTransferred', previous_owner=previous, new_owner=new_owner)

    @public
    def recover_tokens(self, ctx: Context, token: ContractId, to: CallerId, amount: Amount) -> None:
        """Send tokens of another token contract that this contract holds by mistake (owner only)."""
        self._only_owner(ctx)
        if token == self.syscall.get_contract_id():
            raise CannotRecoverOwnToken('cannot recover own tokens')
        self.syscall.get_contract(token, blueprint_id=None).public().transfer(to, amount)

    @view
    def name(self) -> str:
        return self.token_name

    @view
    def symbol(self) -> str:
        return self.token_symbol

    @view
    def decimals(self) -> int:
        return self.token_decimals

    @view
    def total_supply(self) -> Amount:
        return self.supply

    @view
    def max_supply(self) -> Amount:
        return Amount(MAX_SUPPLY)

    @view
    def remaining_mintable_supply(self) -> Amount:
        return Amount(MAX_SUPPLY - self.supply)

    @view
    def balance_of(self, account: CallerId) -> Amount:
        return self.balances.get(account, Amount(0))

    @view
    def get_owner(self) -> Address:
        return self.owner

    @view
    def is_paused(self) -> bool:
        return self.paused

    @view
    def get_token_info(self) -> TokenInfo:
        return TokenInfo(
            name=self.token_name,
            symbol=self.token_symbol,
            decimals=self.token_decimals,
            total_supply=self.supply,
            max_supply=MAX_SUPPLY,
            owner=str(self.owner),
            paused=self.paused,
        )
