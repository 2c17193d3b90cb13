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

import argparse
from typing import Optional

from hathorlib.nanocontracts.types import ContractId

from wlsale.cli.chain import NATIVE_TOKEN_SYMBOL, find_contract, isoformat, open_state
from wlsale.cli.deploy_config import DEFAULT_ACCOUNTS
from wlsale.cli.merkle import read_address_file
from wlsale.crypto.merkle import MerkleTree, hash_leaf
from wlsale.crypto.util import decode_address, decode_contract_id, encode_address
from wlsale.nanocontracts.storage import JournaledSimulator
from wlsale.utils.units import format_units

SEPARATOR = '=' * 50


def _optional_contract_id(value: Optional[str]) -> Optional[ContractId]:
    return decode_contract_id(value) if value else None


def _print_token_info(state: JournaledSimulator, token_id: ContractId) -> None:
    info = state.call_view(token_id, 'get_token_info')
    decimals = info.decimals
    print('TOKEN INFORMATION')
    print(SEPARATOR)
    print(f'Contract: {token_id.hex()}')
    print(f'Name: {info.name}')
    print(f'Symbol: {info.symbol}')
    print(f'Decimals: {decimals}')
    print(f'Total Supply: {format_units(info.total_supply, decimals)} {info.symbol}')
    print(f'Max Supply: {format_units(info.max_supply, decimals)} {info.symbol}')
    print(f'Owner: {info.owner}')
    print(f'Paused: {info.paused}')


def check_token(args: argparse.Namespace) -> int:
    state = open_state(args.state, read_only=True)
    token_id = find_contract(state, 'WhitelistToken', _optional_contract_id(args.token))
    _print_token_info(state, token_id)

    info = state.call_view(token_id, 'get_token_info')
    print()
    print('BALANCES')
    print(SEPARATOR)
    for account in args.accounts or DEFAULT_ACCOUNTS:
        address = decode_address(account)
        balance = state.call_view(token_id, 'balance_of', address)
        print(f'{encode_address(address)}: {format_units(balance, info.decimals)} {info.symbol}')
    return 0


def check_sale(args: argparse.Namespace) -> int:
    state = open_state(args.state, read_only=True)
    sale_id = find_contract(state, 'WhitelistSale', _optional_contract_id(args.sale))
    sale = state.call_view(sale_id, 'get_sale_info')
    token_id = decode_contract_id(sale.token)
    token = state.call_view(token_id, 'get_token_info')
    decimals = token.decimals
    symbol = token.symbol
    native = NATIVE_TOKEN_SYMBOL

    _print_token_info(state, token_id)
    print()
    print('SALE INFORMATION')
    print(SEPARATOR)
    print(f'Contract: {sale_id.hex()}')
    print(f'Treasury: {sale.treasury}')
    print(f'Owner: {sale.owner}')
    print(f'Token Price: {format_units(sale.token_price, decimals)} {native}')
    print(f'Min Purchase: {format_units(sale.min_purchase, decimals)} {symbol}')
    print(f'Max Purchase: {format_units(sale.max_purchase, decimals)} {symbol}')
    print(f'Max Supply: {format_units(sale.max_supply, decimals)} {symbol}')
    print(f'Total Sold: {format_units(sale.total_sold, decimals)} {symbol}')
    print(f'Total Claimed: {format_units(sale.total_claimed, decimals)} {symbol}')
    print(f'Total Raised: {format_units(sale.total_raised, decimals)} {native}')
    print(f'Withdrawable Raised: {format_units(sale.withdrawable_raised, decimals)} {native}')
    print(f'Pending Refunds: {format_units(sale.pending_refunds, decimals)} {native}')
    print(f'Participants: {sale.participants}')
    print(f'Whitelist Required: {sale.whitelist_required}')
    print(f'Is Active: {state.call_view(sale_id, "is_sale_active", args.now)}')
    print(f'Claim Enabled: {sale.claim_enabled}')
    if sale.claim_start_time:
        print(f'Claim Start Time: {isoformat(sale.claim_start_time)}')
    print(f'Start Time: {isoformat(sale.start_time)}')
    print(f'End Time: {isoformat(sale.end_time)}')
    if sale.merkle_root:
        print(f'Merkle Root: 0x{sale.merkle_root}')

    account = decode_address(args.account)
    purchase = state.call_view(sale_id, 'get_purchase', account)
    print()
    print('YOUR ACCOUNT')
    print(SEPARATOR)
    print(f'Address: {encode_address(account)}')
    token_balance = state.call_view(token_id, 'balance_of', account)
    print(f'Token Balance: {format_units(token_balance, decimals)} {symbol}')
    print(f'Is Whitelisted: {state.call_view(sale_id, "is_whitelisted", account)}')
    print(f'Purchased Amount: {format_units(purchase.amount, decimals)} {symbol}')
    print(f'Paid Amount: {format_units(purchase.paid_amount, decimals)} {native}')
    refund = state.call_view(sale_id, 'get_refund', account)
    print(f'Refund Available: {format_units(refund, decimals)} {native}')
    print(f'Claimed: {purchase.claimed}')
    return 0


def check_whitelist(args: argparse.Namespace) -> int:
    state = open_state(args.state, read_only=True)
    sale_id = find_contract(state, 'WhitelistSale', _optional_contract_id(args.sale))
    sale = state.call_view(sale_id, 'get_sale_info')
    token_id = decode_contract_id(sale.token)
    token = state.call_view(token_id, 'get_token_info')

    tree = None
    if args.merkle_file:
        tree = MerkleTree.from_addresses(read_address_file(args.merkle_file))
        if tree.root.hex() != sale.merkle_root:
            print(f'Warning: the root of {args.merkle_file} does not match the sale merkle root')

    print('WHITELIST STATUS')
    print(SEPARATOR)
    print(f'Sale: {sale_id.hex()}')
    print(f'Whitelist Required: {sale.whitelist_required}')
    print()
    for i, account in enumerate(args.addresses or DEFAULT_ACCOUNTS, start=1):
        address = decode_address(account)
        proof: list[bytes] = []
        if tree is not None and hash_leaf(address) in tree.leaves:
            proof = tree.get_address_proof(address)
        whitelisted = state.call_view(sale_id, 'is_whitelisted', address)
        eligible = state.call_view(sale_id, 'is_eligible', address, proof)
        balance = state.call_view(token_id, 'balance_of', address)
        print(f'{i}. {encode_address(address)}')
        print(f'   Whitelisted: {"YES" if whitelisted else "NO"}')
        print(f'   Eligible: {"YES" if eligible else "NO"}')
        print(f'   Token Balance: {format_units(balance, token.decimals)} {token.symbol}')
        print()
    return 0
