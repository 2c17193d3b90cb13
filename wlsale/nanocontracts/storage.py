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

"""Contract state kept as a journal of calls.

The simulator holds its storage in memory only. Instead of dumping that
storage, every call made through `JournaledSimulator` is recorded with its
caller, arguments, actions and timestamp, and loading a state file replays the
calls on a fresh simulator. Contract ids only depend on the sequence of calls,
so the replay reproduces them, and this is checked on every contract creation.

View calls are recorded too when writes may follow, since they also advance
the simulator's id sequence.
"""

import json
import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from hathorlib.conf.settings import HATHOR_TOKEN_UID
from hathorlib.nanocontracts import Blueprint, NCFail
from hathorlib.nanocontracts.exception import NanoContractDoesNotExist
from hathorlib.nanocontracts.method import Method
from hathorlib.nanocontracts.simulator import NanoSimulator, NanoSimulatorBuilder
from hathorlib.nanocontracts.simulator.result import NcCallResult
from hathorlib.nanocontracts.types import (
    Address,
    BlueprintId,
    ContractId,
    NCAction,
    NCDepositAction,
    NCWithdrawalAction,
    TokenUid,
)

from wlsale.nanocontracts.blueprints import BLUEPRINTS

logger = logging.getLogger(__name__)

STATE_FILE_VERSION = 2


class StateFileError(Exception):
    pass


def action_to_json(action: NCAction) -> dict[str, Any]:
    if isinstance(action, NCDepositAction):
        action_type = 'deposit'
    elif isinstance(action, NCWithdrawalAction):
        action_type = 'withdrawal'
    else:
        raise StateFileError(f'unsupported action: {action!r}')
    return {'type': action_type, 'token_uid': action.token_uid.hex(), 'amount': action.amount}


def action_from_json(data: dict[str, Any]) -> NCAction:
    token_uid = TokenUid(bytes.fromhex(data['token_uid']))
    amount = int(data['amount'])
    if data['type'] == 'deposit':
        return NCDepositAction(token_uid=token_uid, amount=amount)
    if data['type'] == 'withdrawal':
        return NCWithdrawalAction(token_uid=token_uid, amount=amount)
    raise StateFileError(f'unsupported action type: {data["type"]!r}')


class JournaledSimulator:
    """A NanoSimulator that can be saved to and rebuilt from a JSON file.

    With `read_only` set, public calls are refused and view calls are not
    recorded, which is what servers and inspection commands want.
    """

    def __init__(
        self,
        blueprints: Optional[dict[str, type[Blueprint]]] = None,
        *,
        read_only: bool = False,
    ) -> None:
        self.blueprints = blueprints if blueprints is not None else BLUEPRINTS
        self.read_only = read_only
        self.simulator: NanoSimulator = NanoSimulatorBuilder().build()
        self.journal: list[dict[str, Any]] = []
        self._blueprint_ids: dict[str, BlueprintId] = {
            name: self.simulator.register_blueprint_class(blueprint_class)
            for name, blueprint_class in self.blueprints.items()
        }
        self._contracts: dict[ContractId, str] = {}

    def get_current_timestamp(self) -> int:
        return int(self.simulator.clock_time)

    def get_contract_ids(self) -> list[ContractId]:
        return list(self._contracts)

    def get_blueprint_class(self, contract_id: ContractId) -> type[Blueprint]:
        try:
            return self.blueprints[self._contracts[contract_id]]
        except KeyError:
            raise NanoContractDoesNotExist(contract_id.hex()) from None

    def get_balance(self, contract_id: ContractId, token_uid: Optional[bytes] = None) -> int:
        """Native balance of a contract, or its balance of a Hathor token."""
        self.get_blueprint_class(contract_id)
        token = TokenUid(token_uid if token_uid is not None else HATHOR_TOKEN_UID)
        return self.simulator.get_balance(contract_id, token).value

    def create_contract(
        self,
        blueprint_name: str,
        caller: Address,
        *args: Any,
        actions: Sequence[NCAction] = (),
        timestamp: Optional[int] = None,
    ) -> ContractId:
        self._check_writable()
        try:
            blueprint_class = self.blueprints[blueprint_name]
        except KeyError:
            raise ValueError(f'unknown blueprint: {blueprint_name}') from None
        method = Method.from_callable(blueprint_class.initialize)
        timestamp = self._set_time(timestamp)
        entry = {
            'op': 'create',
            'blueprint': blueprint_name,
            'caller': str(caller),
            'args': method.args.value_to_json(tuple(args)),
            'actions': [action_to_json(action) for action in actions],
            'timestamp': timestamp,
        }
        with self._record(entry):
            result = self.simulator.create_contract_raw(
                self._blueprint_ids[blueprint_name],
                caller=caller,
                args=tuple(args),
                actions=list(actions),
            )
        entry['contract_id'] = result.contract_id.hex()
        self._contracts[result.contract_id] = blueprint_name
        logger.debug('created %s %s', blueprint_name, result.contract_id.hex())
        return result.contract_id

    def call_public(
        self,
        contract_id: ContractId,
        method_name: str,
        caller: Address,
        *args: Any,
        actions: Sequence[NCAction] = (),
        timestamp: Optional[int] = None,
    ) -> NcCallResult:
        self._check_writable()
        method = self._get_method(contract_id, method_name)
        timestamp = self._set_time(timestamp)
        entry = {
            'op': 'call',
            'contract_id': contract_id.hex(),
            'method': method_name,
            'caller': str(caller),
            'args': method.args.value_to_json(tuple(args)),
            'actions': [action_to_json(action) for action in actions],
            'timestamp': timestamp,
        }
        with self._record(entry):
            result = self.simulator.call_public(
                contract_id,
                method_name,
                caller=caller,
                args=tuple(args),
                actions=list(actions),
            )
        logger.debug('called %s on %s', method_name, contract_id.hex())
        return result

    def call_view(self, contract_id: ContractId, method_name: str, *args: Any) -> Any:
        method = self._get_method(contract_id, method_name)
        value = self.simulator.call_view(contract_id, method_name, *args)
        if not self.read_only:
            self.journal.append({
                'op': 'view',
                'contract_id': contract_id.hex(),
                'method': method_name,
                'args': method.args.value_to_json(tuple(args)),
            })
        return value

    def _get_method(self, contract_id: ContractId, method_name: str) -> Method:
        blueprint_class = self.get_blueprint_class(contract_id)
        method = getattr(blueprint_class, method_name, None)
        if method is None or not callable(method):
            raise ValueError(f'{blueprint_class.__name__} has no method {method_name}')
        return Method.from_callable(method)

    @contextmanager
    def _record(self, entry: dict[str, Any]) -> Iterator[None]:
        """Journal a write, failed or not. A failed call still advances the simulator's ids."""
        try:
            yield
        except NCFail:
            entry['failed'] = True
            self.journal.append(entry)
            raise
        self.journal.append(entry)

    def _check_writable(self) -> None:
        if self.read_only:
            raise StateFileError('state is open read-only')

    def _set_time(self, timestamp: Optional[int]) -> int:
        if timestamp is None:
            timestamp = int(time.time())
        self.simulator.set_time(timestamp)
        return timestamp

    def dump(self) -> dict[str, Any]:
        return {'version': STATE_FILE_VERSION, 'journal': list(self.journal)}

    @classmethod
    def load(
        cls,
        data: dict[str, Any],
        blueprints: Optional[dict[str, type[Blueprint]]] = None,
        *,
        read_only: bool = False,
    ) -> 'JournaledSimulator':
        """Rebuild a simulator from a dict created by `dump`."""
        if data.get('version') != STATE_FILE_VERSION:
            raise StateFileError(f'unsupported state file version: {data.get("version")!r}')

        state = cls(blueprints)
        for index, entry in enumerate(data['journal']):
            try:
                state._replay(entry)
            except (NCFail, KeyError, ValueError) as e:
                raise StateFileError(f'cannot replay entry {index} ({entry.get("op")!r}): {e!r}') from e
        state.read_only = read_only
        return state

    def _replay(self, entry: dict[str, Any]) -> None:
        op = entry['op']
        if op == 'view':
            contract_id = ContractId(bytes.fromhex(entry['contract_id']))
            args = self._get_method(contract_id, entry['method']).args.json_to_value(entry['args'])
            self.call_view(contract_id, entry['method'], *args)
            return
        if op not in ('create', 'call'):
            raise StateFileError(f'unknown journal entry: {op!r}')

        actions = [action_from_json(action) for action in entry.get('actions', [])]
        caller = Address.from_str(entry['caller'])
        failed = entry.get('failed', False)
        try:
            if op == 'create':
                blueprint_class = self.blueprints[entry['blueprint']]
                args = Method.from_callable(blueprint_class.initialize).args.json_to_value(entry['args'])
                contract_id = self.create_contract(
                    entry['blueprint'], caller, *args, actions=actions, timestamp=entry['timestamp'],
                )
            else:
                contract_id = ContractId(bytes.fromhex(entry['contract_id']))
                args = self._get_method(contract_id, entry['method']).args.json_to_value(entry['args'])
                self.call_public(
                    contract_id, entry['method'], caller, *args, actions=actions, timestamp=entry['timestamp'],
                )
        except NCFail:
            if failed:
                return
            raise
        if failed:
            raise StateFileError('a call recorded as failed succeeded on replay')
        if op == 'create' and contract_id.hex() != entry['contract_id']:
            raise StateFileError(f'replay created {contract_id.hex()} instead of {entry["contract_id"]}')


def save_state_file(state: JournaledSimulator, filepath: str) -> None:
    tmp_path = f'{filepath}.tmp'
    with open(tmp_path, 'w') as f:
        json.dump(state.dump(), f, indent=2)
    os.replace(tmp_path, filepath)
    logger.debug('state saved to %s', filepath)


def load_state_file(
    filepath: str,
    blueprints: Optional[dict[str, type[Blueprint]]] = None,
    *,
    read_only: bool = False,
) -> JournaledSimulator:
    with open(filepath, 'r') as f:
        data = json.load(f)
    logger.debug('state loaded from %s', filepath)
    return JournaledSimulator.load(data, blueprints, read_only=read_only)
