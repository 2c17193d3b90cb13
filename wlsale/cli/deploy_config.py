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

"""Deployment parameters read from YAML.

Token amounts are written as decimal strings in whole tokens (or native
currency) and converted to base units with `DECIMALS` decimals. Addresses are
base58:

    deployer: 'HH5As5aLtzFkcbmbXZmE65wSd22GqPWq2T'
    token:
      name: WhitelistToken
      symbol: WLT
    sale:
      token_price: '0.001'
      min_purchase: '10'
      max_purchase: '10000'
      max_supply: '100000000'
      start_delay: 3600
      duration: 2592000
    whitelist:
      - 'HVZjvL1FJ23kH3buGNuttVRsRKq66WHUVZ'
"""

from typing import Optional

import yaml
from hathorlib.nanocontracts.types import Address
from pydantic import BaseModel, ConfigDict, Field, field_validator

from wlsale.crypto.util import InvalidAddress, decode_address, encode_address, get_address_for_name
from wlsale.nanocontracts.blueprints.whitelist_token import DECIMALS
from wlsale.utils.units import parse_units

# Development accounts, the first one deploys by default.
DEFAULT_ACCOUNTS = [encode_address(get_address_for_name(name)) for name in ('deployer', 'alice', 'bob')]


def _validate_address(value: str) -> str:
    try:
        decode_address(value)
    except InvalidAddress as e:
        raise ValueError(f'invalid address {value!r}: {e}') from e
    return value


def _validate_amount(value: str) -> str:
    parse_units(value, DECIMALS)
    return value


class TokenParams(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: str = 'WhitelistToken'
    symbol: str = 'WLT'
    # Minted to the deployer on top of the sale supply.
    mint_amount: str = '0'

    @field_validator('mint_amount')
    @classmethod
    def _check_amount(cls, value: str) -> str:
        return _validate_amount(value)

    @property
    def mint_units(self) -> int:
        return parse_units(self.mint_amount, DECIMALS)


class SaleParams(BaseModel):
    model_config = ConfigDict(extra='forbid')

    token_price: str = '0.001'
    min_purchase: str = '10'
    max_purchase: str = '10000'
    max_supply: str = '100000000'
    # Seconds from the deployment time.
    start_delay: int = Field(default=3600, ge=0)
    duration: int = Field(default=30 * 24 * 3600, gt=0)
    whitelist_required: bool = True
    enable_claim: bool = True

    @field_validator('token_price', 'min_purchase', 'max_purchase', 'max_supply')
    @classmethod
    def _check_amounts(cls, value: str) -> str:
        return _validate_amount(value)

    def units(self, name: str) -> int:
        return parse_units(getattr(self, name), DECIMALS)


class DeployConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    deployer: str = DEFAULT_ACCOUNTS[0]
    # Defaults to the deployer.
    treasury: Optional[str] = None
    token: TokenParams = Field(default_factory=TokenParams)
    sale: SaleParams = Field(default_factory=SaleParams)
    whitelist: list[str] = Field(default_factory=list)
    merkle_whitelist: list[str] = Field(default_factory=list)

    @field_validator('deployer', 'treasury')
    @classmethod
    def _check_address(cls, value: Optional[str]) -> Optional[str]:
        return value if value is None else _validate_address(value)

    @field_validator('whitelist', 'merkle_whitelist')
    @classmethod
    def _check_address_lists(cls, value: list[str]) -> list[str]:
        return [_validate_address(address) for address in value]

    @classmethod
    def from_yaml(cls, *, filepath: str) -> 'DeployConfig':
        with open(filepath, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    @property
    def deployer_address(self) -> Address:
        return decode_address(self.deployer)

    @property
    def treasury_address(self) -> Address:
        return decode_address(self.treasury or self.deployer)
