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
import json
from typing import Iterator

from hathorlib.nanocontracts.types import Address

from wlsale.crypto.merkle import MerkleTree, hash_leaf
from wlsale.crypto.util import decode_address, encode_address


def read_address_file(filepath: str) -> Iterator[Address]:
    """Yield the addresses of a file with one address per line, `#` starts a comment."""
    with open(filepath, 'r') as f:
        for line in f:
            line = line.split('#', 1)[0].strip()
            if line:
                yield decode_address(line)


def merkle(args: argparse.Namespace) -> int:
    addresses = list(read_address_file(args.file))
    tree = MerkleTree.from_addresses(addresses)

    if args.address:
        address = decode_address(args.address)
        if hash_leaf(address) not in tree.leaves:
            raise ValueError(f'{encode_address(address)} is not listed in {args.file}')
        proof = tree.get_address_proof(address)
        print(json.dumps({
            'root': '0x' + tree.root.hex(),
            'address': encode_address(address),
            'proof': ['0x' + node.hex() for node in proof],
        }, indent=2))
        return 0

    print(json.dumps({
        'root': '0x' + tree.root.hex(),
        'proofs': {
            encode_address(address): ['0x' + node.hex() for node in tree.get_address_proof(address)]
            for address in addresses
        },
    }, indent=2))
    return 0
