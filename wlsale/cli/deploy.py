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
from typing import NamedTuple, Optional

from hathorlib.nanocontracts.types import Address, ContractId

from wlsale.cli.chain import NATIVE_TOKEN_SYMBOL, isoformat, open_state
from wlsale.cli.deploy_config import DeployConfig
from wlsale.crypto.merkle import MerkleTree
from wlsale.crypto.util import decode_address, encode_address
from wlsale.nanocontracts.blueprints.whitelist_sale import MAX_WHITELIST_BATCH, SaleConfig
from wlsale.nanocontracts.blueprints.whitelist_token import DECIMALS
from wlsale.nanocontracts.storage import JournaledSimulator, save_state_file
from wlsale.utils.units import format_units, parse_units

logger = logging.getLogger(__name__)


class DeployResult(NamedTuple):
    token_id: ContractId
    sale_id: ContractId
    merkle_root: Optional[bytes]


def deploy_token(
    state: JournaledSimulator,
    deployer: Address,
    name: str,
    symbol: str,
    mint_amount: int = 0,
    timestamp: Optional[int] = None,
) -> ContractId:
    token_id = state.create_contract('WhitelistToken', deployer, name, symbol, deployer, timestamp=timestamp)
    logger.info('WhitelistToken deployed to: %s', token_id.hex())
    if mint_amount > 0:
        state.call_public(token_id, 'mint', deployer, deployer, mint_amount, timestamp=timestamp)
        logger.info('minted %s %s to %s', format_units(mint_amount, DECIMALS), symbol, encode_address(deployer))
    return token_id


def deploy_contracts(state: JournaledSimulator, config: DeployConfig, now: int) -> DeployResult:
    """Deploy the token and the sale, fund the sale and apply the allow-lists."""
    deployer = config.deployer_address
    logger.info('deployer: %s', encode_address(deployer))

    token_id = deploy_token(
        state, deployer, config.token.name, config.token.symbol, config.token.mint_units, timestamp=now,
    )

    sale_params = config.sale
    max_supply = sale_params.units('max_supply')
    start_time = now + sale_params.start_delay
    end_time = now + sale_params.duration
    sale_id = state.create_contract(
        'WhitelistSale',
        deployer,
        token_id,
        config.treasury_address,
        sale_params.units('token_price'),
        sale_params.units('min_purchase'),
        sale_params.units('max_purchase'),
        max_supply,
        start_time,
        end_time,
        deployer,
        timestamp=now,
    )
    logger.info('WhitelistSale deployed to: %s', sale_id.hex())

    if not sale_params.whitelist_required:
        config_tuple = state.call_view(sale_id, 'get_sale_config')
        state.call_public(
            sale_id,
            'update_sale_config',
            deployer,
            SaleConfig(*config_tuple[:-1], False),
            timestamp=now,
        )
        logger.info('whitelist not required, the sale is open to every address')

    state.call_public(token_id, 'mint', deployer, sale_id, max_supply, timestamp=now)
    logger.info('minted %s tokens to sale contract', format_units(max_supply, DECIMALS))

    if sale_params.enable_claim:
        state.call_public(sale_id, 'set_claim_enabled', deployer, True, start_time, timestamp=now)
        logger.info('enabled token claiming from %s', isoformat(start_time))

    whitelist = [decode_address(address) for address in config.whitelist]
    for i in range(0, len(whitelist), MAX_WHITELIST_BATCH):
        batch = whitelist[i:i + MAX_WHITELIST_BATCH]
        state.call_public(sale_id, 'update_whitelist_batch', deployer, batch, True, timestamp=now)
    if whitelist:
        logger.info('whitelisted %d addresses', len(whitelist))

    merkle_root = None
    if config.merkle_whitelist:
        tree = MerkleTree.from_addresses(decode_address(address) for address in config.merkle_whitelist)
        merkle_root = tree.root
        state.call_public(sale_id, 'set_merkle_root', deployer, merkle_root, timestamp=now)
        logger.info('merkle root set to 0x%s for %d addresses', merkle_root.hex(), len(tree.leaves))

    return DeployResult(token_id=token_id, sale_id=sale_id, merkle_root=merkle_root)


def deploy(args: argparse.Namespace) -> int:
    config = DeployConfig.from_yaml(filepath=args.config) if args.config else DeployConfig()
    state = open_state(args.state, create=True)

    result = deploy_contracts(state, config, args.now)
    save_state_file(state, args.state)

    sale_info = state.call_view(result.sale_id, 'get_sale_info')
    symbol = config.token.symbol
    print('Sale Deployment Summary:')
    print(f'Sale Contract: {result.sale_id.hex()}')
    print(f'Token Contract: {result.token_id.hex()}')
    print(f'Treasury: {encode_address(config.treasury_address)}')
    print(f'Token Price: {format_units(sale_info.token_price, DECIMALS)} {NATIVE_TOKEN_SYMBOL}')
    print(f'Min Purchase: {format_units(sale_info.min_purchase, DECIMALS)} {symbol}')
    print(f'Max Purchase: {format_units(sale_info.max_purchase, DECIMALS)} {symbol}')
    print(f'Max Supply: {format_units(sale_info.max_supply, DECIMALS)} {symbol}')
    print(f'Start Time: {isoformat(sale_info.start_time)}')
    print(f'End Time: {isoformat(sale_info.end_time)}')
    if result.merkle_root is not None:
        print(f'Merkle Root: 0x{result.merkle_root.hex()}')
    return 0


def create_token(args: argparse.Namespace) -> int:
    state = open_state(args.state, create=True)
    deployer = decode_address(args.deployer)
    mint_amount = parse_units(args.mint, DECIMALS)
    token_id = deploy_token(state, deployer, args.name, args.symbol, mint_amount, timestamp=args.now)
    save_state_file(state, args.state)

    info = state.call_view(token_id, 'get_token_info')
    balance = state.call_view(token_id, 'balance_of', deployer)
    print('Token Created:')
    print(f'Name: {info.name}')
    print(f'Symbol: {info.symbol}')
    print(f'Contract: {token_id.hex()}')
    print(f'Total Supply: {format_units(info.total_supply, DECIMALS)} {info.symbol}')
    print(f'Your Balance: {format_units(balance, DECIMALS)} {info.symbol}')
    return 0
