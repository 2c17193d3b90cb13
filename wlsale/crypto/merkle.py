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

"""Merkle allow-lists compatible with sorted-pair keccak-256 trees.

A leaf is `keccak256(address)`. An inner node is the keccak-256 hash of its two
children concatenated in ascending byte order, so a proof is just the list of
sibling hashes from the leaf up to the root. When a layer has an odd number of
nodes the last one is promoted unchanged.
"""

from typing import Iterable, Sequence

from Crypto.Hash import keccak


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def hash_leaf(address: bytes) -> bytes:
    return keccak256(bytes(address))


def hash_pair(a: bytes, b: bytes) -> bytes:
    if a < b:
        return keccak256(a + b)
    return keccak256(b + a)


def process_proof(proof: Sequence[bytes], leaf: bytes) -> bytes:
    """Rebuild the root implied by `proof` for `leaf`."""
    computed = leaf
    for node in proof:
        computed = hash_pair(computed, node)
    return computed


def verify(proof: Sequence[bytes], root: bytes, leaf: bytes) -> bool:
    return process_proof(proof, leaf) == root


class MerkleTree:
    """Tree builder used off-chain to publish a root and hand out proofs.

    >>> tree = MerkleTree.from_addresses([alice, bob, carol])
    >>> verify(tree.get_address_proof(bob), tree.root, hash_leaf(bob))
    True
    """

    def __init__(self, leaves: Iterable[bytes]) -> None:
        layer = sorted(set(leaves))
        if not layer:
            raise ValueError('cannot build a tree without leaves')
        self._layers: list[list[bytes]] = [layer]
        while len(layer) > 1:
            layer = [
                hash_pair(layer[i], layer[i + 1]) if i + 1 < len(layer) else layer[i]
                for i in range(0, len(layer), 2)
            ]
            self._layers.append(layer)

    @classmethod
    def from_addresses(cls, addresses: Iterable[bytes]) -> 'MerkleTree':
        return cls(hash_leaf(address) for address in addresses)

    @property
    def root(self) -> bytes:
        return self._layers[-1][0]

    @property
    def leaves(self) -> list[bytes]:
        return list(self._layers[0])

    def get_proof(self, leaf: bytes) -> list[bytes]:
        try:
            index = self._layers[0].index(leaf)
        except ValueError:
            raise KeyError(f'leaf {leaf.hex()} is not in the tree') from None

        proof = []
        for layer in self._layers[:-1]:
            sibling = index ^ 1
            if sibling < len(layer):
                proof.append(layer[sibling])
            index //= 2
        return proof

    def get_address_proof(self, address: bytes) -> list[bytes]:
        return self.get_proof(hash_leaf(address))
