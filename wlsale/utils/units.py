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

"""Conversion between decimal strings and integer base units."""

from decimal import Decimal, InvalidOperation
from typing import Union


def parse_units(value: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a decimal amount such as '0.001' to base units.

    >>> parse_units('0.001', 18)
    1000000000000000
    """
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f'invalid amount: {value!r}') from None
    if not amount.is_finite():
        raise ValueError(f'invalid amount: {value!r}')
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f'{value!r} has more than {decimals} decimal places')
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Convert base units to a decimal string without trailing zeros.

    >>> format_units(1500000000000000000, 18)
    '1.5'
    """
    sign = '-' if value < 0 else ''
    whole, fraction = divmod(abs(value), 10**decimals)
    if decimals == 0 or fraction == 0:
        return f'{sign}{whole}'
    fraction_str = str(fraction).rjust(decimals, '0').rstrip('0')
    return f'{sign}{whole}.{fraction_str}'
