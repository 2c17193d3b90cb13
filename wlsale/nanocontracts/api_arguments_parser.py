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

import json
from typing import Any

from hathorlib.exceptions import InvalidAddress
from hathorlib.nanocontracts import Blueprint
from hathorlib.nanocontracts.method import Method


def parse_nc_method_call(blueprint_class: type[Blueprint], call_info: str) -> tuple[str, list[Any]]:
    """Parse a call such as `balance_of("HH5As5aLtzFkcbmbXZmE65wSd22GqPWq2T")`.

    The arguments are a JSON list without its brackets. They are decoded with
    the argument types of the method, so addresses are given in base58 and
    bytes, token uids and contract ids as hex strings.
    """
    method_name, sep, args_str = call_info.strip().partition('(')
    if not sep:
        return method_name, []
    if not args_str.endswith(')'):
        raise ValueError(f'invalid call: {call_info}')

    method = getattr(blueprint_class, method_name, None)
    if method is None or not callable(method):
        raise ValueError(f'{blueprint_class.__name__} has no method {method_name}')

    json_args = json.loads(f'[{args_str[:-1]}]')
    method_type = Method.from_callable(method)
    if len(json_args) != len(method_type.arg_names):
        raise ValueError(f'{method_name} takes {len(method_type.arg_names)} arguments, {len(json_args)} given')

    try:
        args = method_type.args.json_to_value(json_args)
    except InvalidAddress as e:
        raise ValueError(f'invalid address in {call_info}') from e
    return method_name, list(args)
