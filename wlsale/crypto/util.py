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

from hathorlib.conf import HathorSettings
from hathorlib.exceptions import InvalidAddress
from hathorlib.nanocontracts.types import Address, ContractId
from hathorlib.utils.address import get_address_b58_from_bytes, get_checksum, get_hash160

__all__ = [
    'InvalidAddress',
    'decode_address',
    'decode_contract_id',
    'encode_address',
    'get_address_for_name',
]


def decode_address(address: str) -> Address:
    """Parse a base58 address, checking its size and checksum."""
    return Address.from_str(address.strip())


def decode_contract_id(contract_id: str) -> ContractId:
    """Parse a hex contract id, with or without a `0x` prefix."""
    try:
        raw = bytes.fromhex(contract_id.strip().removeprefix('0x'))
    except ValueError as e:
        raise InvalidAddress(f'invalid contract id: {contract_id!r}') from e
    if len(raw) != 32:
        raise InvalidAddress(f'contract id must have 32 bytes: {contract_id!r}')
    return ContractId(raw)


def encode_address(address: bytes) -> str:
    return get_address_b58_from_bytes(bytes(address))


def _address_from_hash(public_key_hash: bytes) -> Address:
    settings = HathorSettings()
    payload = settings.P2PKH_VERSION_BYTE + public_key_hash
    return Address(payload + get_checksum(payload))


def get_address_for_name(name: str) -> Address:
    """Deterministic P2PKH address for a development account name."""
    return _address_from_hash(get_hash160(f'address:{name}'.encode()))