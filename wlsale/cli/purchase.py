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
import logging

from wlsale.cli.chain import NATIVE_TOKEN_SYMBOL, find_contract, native_deposit, native_withdrawal, open_state
from wlsale.cli.merkle import read_address_file
from wlsale.crypto.merkle import MerkleTree, hash_leaf
from wlsale.crypto.util import decode_address, decode_contract_id, encode_address
from wlsale.nanocontracts.blueprints.whitelist_token import DECIMALS
from wlsale.nanocontracts.storage import save_state_file
from wlsale.utils.units import format_units, parse_units

logger = logging.getLogger(__name__)


def buy(args: argparse.Namespace) -> int:
    state = open_state(args.state)
    sale_id = find_contract(state, 'WhitelistSale', decode_contract_id(args.sale) if args.sale else None)
    buyer = decode_address(args.buyer)
    amount = parse_units(args.amount, DECIMALS)

    proof: list[bytes] = []
    if args.merkle_file:
        tree = MerkleTree.from_addresses(read_address_file(args.merkle_file))
        if hash_leaf(buyer) in tree.leaves:
            proof = tree.get_address_proof(buyer)

    cost = state.call_view(sale_id, 'calculate_cost', amount)
    payment = parse_units(args.pay, DECIMALS) if args.pay is not None else cost

    state.call_public(sale_id, 'buy', buyer, amount, proof, actions=native_deposit(payment), timestamp=args.now)
    save_state_file(state, args.state)

    logger.info('purchase recorded for %s', encode_address(buyer))
    print(f'Bought: {format_units(amount, DECIMALS)}')
    print(f'Cost: {format_units(cost, DECIMALS)} {NATIVE_TOKEN_SYMBOL}')
    print(f'Refund: {format_units(payment - cost, DECIMALS)} {NATIVE_TOKEN_SYMBOL}')
    return 0


def claim(args: argparse.Namespace) -> int:
    state = open_state(args.state)
    sale_id = find_contract(state, 'WhitelistSale', decode_contract_id(args.sale) if args.sale else None)
    buyer = decode_address(args.buyer)

    amount = state.call_view(sale_id, 'get_purchased_amount', buyer)
    state.call_public(sale_id, 'claim_tokens', buyer, timestamp=args.now)
    save_state_file(state, args.state)

    print(f'Claimed: {format_units(amount, DECIMALS)}')
    return 0


def withdraw_refund(args: argparse.Namespace) -> int:
    state = open_state(args.state)
    sale_id = find_contract(state, 'WhitelistSale', decode_contract_id(args.sale) if args.sale else None)
    buyer = decode_address(args.buyer)

    refund = state.call_view(sale_id, 'get_refund', buyer)
    state.call_public(sale_id, 'withdraw_refund', buyer, actions=native_withdrawal(refund), timestamp=args.now)
    save_state_file(state, args.state)

    print(f'Refunded: {format_units(refund, DECIMALS)} {NATIVE_TOKEN_SYMBOL}')
    return 0


def withdraw_raised(args: argparse.Namespace) -> int:
    state = open_state(args.state)
    sale_id = find_contract(state, 'WhitelistSale', decode_contract_id(args.sale) if args.sale else None)
    treasury = decode_address(args.treasury)

    if args.amount is not None:
        amount = parse_units(args.amount, DECIMALS)
    else:
        amount = state.call_view(sale_id, 'get_withdrawable_raised')
    state.call_public(sale_id, 'withdraw_raised', treasury, actions=native_withdrawal(amount), timestamp=args.now)
    save_state_file(state, args.state)

    print(f'Withdrawn: {format_units(amount, DECIMALS)} {NATIVE_TOKEN_SYMBOL}')
    return 0
