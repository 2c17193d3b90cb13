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

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from hathorlib.conf.settings import HATHOR_TOKEN_UID
from hathorlib.nanocontracts.types import ContractId, NCAction, NCDepositAction, NCWithdrawalAction, TokenUid

from wlsale.nanocontracts.storage import JournaledSimulator, load_state_file

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = 'wlsale-state.json'
NATIVE_TOKEN_SYMBOL = 'HTR'


class StateNotFound(Exception):
    pass


def isoformat(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def open_state(filepath: str, *, create: bool = False, read_only: bool = False) -> JournaledSimulator:
    """Load the contracts saved at `filepath`, or start empty when `create` is set."""
    if os.path.exists(filepath):
        return load_state_file(filepath, read_only=read_only)
    if not create:
        raise StateNotFound(f'state file {filepath} does not exist, run `wlsale deploy` first')
    logger.info('creating new state file %s', filepath)
    return JournaledSimulator(read_only=read_only)


def native_deposit(amount: int) -> list[NCAction]:
    if amount <= 0:
        return []
    return [NCDepositAction(token_uid=TokenUid(HATHOR_TOKEN_UID), amount=amount)]


def native_withdrawal(amount: int) -> list[NCAction]:
    return [NCWithdrawalAction(token_uid=TokenUid(HATHOR_TOKEN_UID), amount=amount)]


def get_contract_of(state: JournaledSimulator, contract_id: ContractId, blueprint_name: str) -> ContractId:
    """Check that `contract_id` exists and runs the given blueprint."""
    blueprint_class = state.get_blueprint_class(contract_id)
    if blueprint_class.__name__ != blueprint_name:
        raise ValueError(f'{contract_id.hex()} is a {blueprint_class.__name__}, not a {blueprint_name}')
    return contract_id


def find_contract(
    state: JournaledSimulator,
    blueprint_name: str,
    contract_id: Optional[ContractId] = None,
) -> ContractId:
    """Return `contract_id`, or the only contract of the blueprint when it is not given."""
    if contract_id is not None:
        return get_contract_of(state, contract_id, blueprint_name)
    candidates = [
        cid for cid in state.get_contract_ids()
        if state.get_blueprint_class(cid).__name__ == blueprint_name
    ]
    if len(candidates) != 1:
        raise ValueError(f'found {len(candidates)} {blueprint_name} contracts, pass the contract id')
    return candidates[0]
