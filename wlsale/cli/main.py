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
import sys
import time
from typing import Optional, Sequence

from hathorlib.exceptions import InvalidAddress
from hathorlib.nanocontracts import NCFail
from pydantic import ValidationError

import wlsale
from wlsale.cli.chain import DEFAULT_STATE_FILE, StateNotFound
from wlsale.cli.check import check_sale, check_token, check_whitelist
from wlsale.cli.deploy import create_token, deploy
from wlsale.cli.deploy_config import DEFAULT_ACCOUNTS
from wlsale.cli.merkle import merkle
from wlsale.cli.purchase import buy, claim, withdraw_raised, withdraw_refund
from wlsale.cli.serve import serve
from wlsale.nanocontracts.storage import StateFileError

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='wlsale', description='Whitelist token sale tools')
    parser.add_argument('--version', action='version', version=f'{wlsale.__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug logs')
    parser.add_argument(
        '--state',
        default=DEFAULT_STATE_FILE,
        help=f'State file with every contract, default: {DEFAULT_STATE_FILE}',
    )
    parser.add_argument(
        '--now',
        type=int,
        default=None,
        help='Unix timestamp used for the command, default: current time',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    p = subparsers.add_parser('deploy', help='Deploy the token and the sale')
    p.add_argument('-c', '--config', help='YAML file with the deployment parameters')
    p.set_defaults(func=deploy)

    p = subparsers.add_parser('create-token', help='Deploy a standalone token')
    p.add_argument('--name', default='My Token')
    p.add_argument('--symbol', default='MTK')
    p.add_argument('--mint', default='1000000', help='Tokens minted to the deployer')
    p.add_argument('--deployer', default=DEFAULT_ACCOUNTS[0])
    p.set_defaults(func=create_token)

    p = subparsers.add_parser('check-token', help='Show token information and balances')
    p.add_argument('--token', help='Token contract id, optional when there is a single token')
    p.add_argument('accounts', nargs='*', help='Accounts to show the balance of')
    p.set_defaults(func=check_token)

    p = subparsers.add_parser('check-sale', help='Show sale information and an account purchase')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--account', default=DEFAULT_ACCOUNTS[0])
    p.set_defaults(func=check_sale)

    p = subparsers.add_parser('check-whitelist', help='Show the whitelist status of addresses')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--merkle-file', help='Address list used to build the merkle root')
    p.add_argument('addresses', nargs='*')
    p.set_defaults(func=check_whitelist)

    p = subparsers.add_parser('merkle', help='Compute the merkle root and proofs of an address list')
    p.add_argument('file', help='File with one address per line')
    p.add_argument('--address', help='Only print the proof of this address')
    p.set_defaults(func=merkle)

    p = subparsers.add_parser('buy', help='Buy tokens')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--buyer', required=True)
    p.add_argument('--amount', required=True, help='Tokens to buy')
    p.add_argument('--pay', help='Payment sent, defaults to the exact cost')
    p.add_argument('--merkle-file', help='Address list used to build the merkle root')
    p.set_defaults(func=buy)

    p = subparsers.add_parser('claim', help='Claim purchased tokens')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--buyer', required=True)
    p.set_defaults(func=claim)

    p = subparsers.add_parser('withdraw-refund', help='Withdraw the overpayment of a buyer')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--buyer', required=True)
    p.set_defaults(func=withdraw_refund)

    p = subparsers.add_parser('withdraw-raised', help='Withdraw raised funds to the treasury')
    p.add_argument('--sale', help='Sale contract id, optional when there is a single sale')
    p.add_argument('--treasury', required=True)
    p.add_argument('--amount', help='Amount to withdraw, defaults to everything available')
    p.set_defaults(func=withdraw_raised)

    p = subparsers.add_parser('serve', help='Serve the contract state API')
    p.add_argument('--listen', default='127.0.0.1')
    p.add_argument('--port', type=int, default=8080)
    p.set_defaults(func=serve)

    args = parser.parse_args(argv)
    if args.now is None:
        args.now = int(time.time())
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        return args.func(args)
    except (NCFail, InvalidAddress, StateFileError, StateNotFound, ValidationError, ValueError, OSError) as e:
        logger.error('%s failed: %s: %s', args.command, type(e).__name__, e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
